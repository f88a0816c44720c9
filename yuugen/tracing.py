"""OpenTelemetry wiring for spans around SDK operations."""

from __future__ import annotations

from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from yuugen.config import TracingConfig

INSTRUMENTATION_SCOPE = "yuugen"


def build_tracer_provider(
    config: Optional[TracingConfig] = None,
    api_key: Optional[str] = None,
) -> TracerProvider:
    """
    Build a TracerProvider for the SDK.

    When OTLP export is enabled, spans are batched to ``otlp_endpoint`` (or
    the OTel default) with the API key sent as a bearer token.
    """
    config = config or TracingConfig()
    provider = TracerProvider(resource=Resource.create({"service.name": config.service_name}))
    if config.enable_otlp:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else None
        exporter = OTLPSpanExporter(endpoint=config.otlp_endpoint, headers=headers)
        provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider


def get_tracer(provider: Optional[trace.TracerProvider] = None) -> trace.Tracer:
    """Tracer from ``provider``, or from the globally configured provider."""
    if provider is None:
        return trace.get_tracer(INSTRUMENTATION_SCOPE)
    return provider.get_tracer(INSTRUMENTATION_SCOPE)


def retry_event_recorder(span: trace.Span):
    """Return an ``on_retry`` callback recording each failed attempt on ``span``."""

    def _record(attempt: int, error: BaseException, delay: float) -> None:
        span.add_event(
            "retry",
            attributes={
                "retry.attempt": attempt,
                "retry.delay_s": delay,
                "error.type": type(error).__name__,
                "error.message": str(error)[:1000],
            },
        )

    return _record
