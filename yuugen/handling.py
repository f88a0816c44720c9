"""Error classification and the four handling strategies.

- network: retried with backoff, surfaced only after exhaustion
- privacy: never retried, logged at critical level, always surfaced
- ad serving: one fallback attempt, surfaced only if that fails too
- SDK integration: never retried, surfaced with troubleshooting guidance
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from typing import Any, Awaitable, Callable, Dict, List, NoReturn, Optional, TypeVar, Union

from yuugen.config import LoggerConfig, RetryPolicy, TelemetryConfig, coerce_retry_policy
from yuugen.errors import (
    AdServingError,
    ClassifiedError,
    ErrorCode,
    ErrorContext,
    ErrorSeverity,
    NetworkError,
    PrivacyViolationError,
    SDKIntegrationError,
)
from yuugen.exporter.http_exporter import HttpExporter
from yuugen.guidance import Guidance, format_guidance, get_guidance
from yuugen.logger import LogLevel, StructuredLogger
from yuugen.processors.batch_processor import TelemetryPipeline
from yuugen.processors.drop_policy import get_drop_policy
from yuugen.processors.entries import ErrorReport
from yuugen.retry import OnRetry, Sleep, run_with_retry

T = TypeVar("T")

_SEVERITY_LEVELS = {
    ErrorSeverity.LOW: LogLevel.INFO,
    ErrorSeverity.MEDIUM: LogLevel.WARN,
    ErrorSeverity.HIGH: LogLevel.ERROR,
    ErrorSeverity.CRITICAL: LogLevel.CRITICAL,
}

PrivacyListener = Callable[[PrivacyViolationError], None]


def build_error_reporter(config: TelemetryConfig) -> Optional[TelemetryPipeline]:
    """Create the error-report pipeline described by ``config``, if any."""
    if not config.enable_remote:
        return None
    exporter = None
    if config.remote_endpoint:
        exporter = HttpExporter(config.remote_endpoint, headers=config.headers, timeout=config.timeout)
    return TelemetryPipeline(
        exporter,
        payload_key="errors",
        batch_size=config.batch_size,
        flush_interval=config.flush_interval,
        include_sensitive_data=config.include_sensitive_data,
        include_stack_trace=config.include_stack_trace,
        max_queue_size=config.max_queue_size,
        drop_policy=get_drop_policy(config.drop_policy),
    )


class ErrorHandler:
    """Routes failures through the strategy matching their classification."""

    def __init__(
        self,
        retry: Optional[RetryPolicy] = None,
        reporting: Optional[TelemetryConfig] = None,
        logger: Optional[StructuredLogger] = None,
        *,
        reporter: Optional[TelemetryPipeline] = None,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.retry = retry or RetryPolicy()
        self.reporting = reporting or TelemetryConfig()
        self.logger = logger or StructuredLogger(LoggerConfig(level="error"))
        self.reporter = reporter if reporter is not None else build_error_reporter(self.reporting)
        self._sleep = sleep
        self._rng = rng
        self._privacy_listeners: List[PrivacyListener] = []

        self._network_log = self.logger.child("network")
        self._privacy_log = self.logger.child("privacy")
        self._ad_log = self.logger.child("ad-serving")
        self._sdk_log = self.logger.child("sdk")

    def start(self) -> None:
        if self.reporter is not None:
            self.reporter.start()

    async def destroy(self) -> None:
        if self.reporter is not None:
            await self.reporter.destroy()

    def add_privacy_listener(self, listener: PrivacyListener) -> None:
        self._privacy_listeners.append(listener)

    # Strategies
    async def handle_network_error(
        self,
        operation: Callable[[], Awaitable[T]],
        context: Optional[ErrorContext] = None,
        policy: Union[RetryPolicy, Dict[str, Any], None] = None,
        *,
        on_retry: Optional[OnRetry] = None,
    ) -> T:
        """Run ``operation`` under the retry engine; report only the terminal failure."""
        effective = self._effective_policy(policy)

        def _attempt_failed(attempt: int, exc: BaseException, delay: float) -> None:
            self._network_log.warn(
                f"Network attempt {attempt}/{effective.max_attempts} failed, retrying in {delay:.3f}s",
                {"error": repr(exc)},
                context=context,
            )
            if on_retry is not None:
                on_retry(attempt, exc, delay)

        try:
            return await run_with_retry(
                operation,
                context,
                effective,
                sleep=self._sleep,
                rng=self._rng,
                on_retry=_attempt_failed,
            )
        except NetworkError as err:
            self.log_error(err)
            self.report_error(err)
            raise

    def handle_privacy_violation(
        self,
        message: str,
        code: str = ErrorCode.PRIVACY_CONSENT_MISSING,
        context: Optional[ErrorContext] = None,
        original_error: Optional[BaseException] = None,
    ) -> NoReturn:
        error = PrivacyViolationError(message, code, context, original_error)
        self._privacy_log.critical(
            f"PRIVACY VIOLATION: {error.message}",
            error.to_dict(),
            context=error.context,
        )
        self.report_error(error)
        for listener in list(self._privacy_listeners):
            try:
                listener(error)
            except Exception:
                logging.getLogger(__name__).exception("Privacy violation listener failed")
        raise error

    async def handle_ad_serving_error(
        self,
        error: BaseException,
        context: Optional[ErrorContext] = None,
        fallback: Optional[Callable[[], Any]] = None,
    ) -> Any:
        """Try ``fallback`` exactly once; raise AdServingError if it is missing or fails."""
        context = context or ErrorContext()
        self._ad_log.warn(f"Ad serving failed: {error}", {"error": repr(error)}, context=context)

        fallback_error: Optional[BaseException] = None
        if fallback is not None:
            try:
                result = fallback()
                if inspect.isawaitable(result):
                    result = await result
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                fallback_error = exc
            else:
                self._ad_log.info("Ad serving fallback successful", context=context)
                return result

        diagnostics = {"originalError": repr(error)}
        if fallback_error is not None:
            diagnostics["fallbackError"] = repr(fallback_error)
        ad_error = AdServingError(
            f"Ad serving failed: {error}",
            ErrorCode.AD_SERVING_FAILED,
            context.with_data(**diagnostics),
            severity=ErrorSeverity.HIGH if fallback is not None else ErrorSeverity.MEDIUM,
            retryable=fallback is None,
            original_error=error,
        )
        self.log_error(ad_error)
        self.report_error(ad_error)
        raise ad_error

    def handle_sdk_error(
        self,
        message: str,
        code: str,
        context: Optional[ErrorContext] = None,
        severity: ErrorSeverity = ErrorSeverity.HIGH,
        original_error: Optional[BaseException] = None,
    ) -> NoReturn:
        error = SDKIntegrationError(message, code, context, severity, original_error)
        self.log_error(error)
        self.report_error(error)
        self.provide_troubleshooting_guidance(error)
        raise error

    # Reporting
    def log_error(self, error: ClassifiedError) -> None:
        log = {
            "network": self._network_log,
            "privacy": self._privacy_log,
            "ad_serving": self._ad_log,
            "sdk_integration": self._sdk_log,
        }[error.category.value]
        log.log(_SEVERITY_LEVELS[error.severity], error.message, error.to_dict(), context=error.context)

    def report_error(self, error: ClassifiedError) -> None:
        if self.reporter is not None:
            self.reporter.record(ErrorReport(error))

    def provide_troubleshooting_guidance(self, error: SDKIntegrationError) -> Guidance:
        guidance = get_guidance(error.code)
        self._sdk_log.console(LogLevel.WARN, format_guidance(error.code, error.category.value))
        return guidance

    def _effective_policy(self, policy: Union[RetryPolicy, Dict[str, Any], None]) -> RetryPolicy:
        if policy is None:
            return self.retry
        if isinstance(policy, RetryPolicy):
            return policy
        return coerce_retry_policy({**self.retry.model_dump(), **policy})
