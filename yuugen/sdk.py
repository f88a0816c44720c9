"""SDK facade: lifecycle state machine composing retry, telemetry and fallback."""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, NoReturn, Optional, Union
from urllib.parse import urlparse

from opentelemetry import trace
from pydantic import ValidationError

from yuugen.client import AdService, AdServiceClient
from yuugen.config import SDKConfig, YuugenSettings
from yuugen.errors import ErrorCode, ErrorContext, ErrorSeverity, SDKIntegrationError
from yuugen.fallback import is_fallback, synthesize_fallback
from yuugen.handling import ErrorHandler
from yuugen.logger import StructuredLogger
from yuugen.models import Ad, AdEvent, AdPlacement, AIContext
from yuugen.processors.entries import LogEntry
from yuugen.retry import Sleep
from yuugen.tracing import build_tracer_provider, get_tracer, retry_event_recorder

logger = logging.getLogger(__name__)

MIN_API_KEY_LENGTH = 10
VALID_ENVIRONMENTS = ("development", "staging", "production")


class SDKState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    DESTROYED = "destroyed"


def _new_session_id() -> str:
    return f"sdk_{uuid.uuid4().hex[:16]}"


class YuugenSDK:
    """
    Public entry point: ``initialize``, ``request_ad``, ``track_event``,
    ``destroy``.

    State moves uninitialized -> initializing -> initialized, and to the
    terminal destroyed state from any of them. Every state change happens
    in a single synchronous step, never across an ``await``.
    """

    def __init__(
        self,
        settings: Optional[YuugenSettings] = None,
        *,
        service: Optional[AdService] = None,
        logger: Optional[StructuredLogger] = None,
        error_handler: Optional[ErrorHandler] = None,
        tracer_provider: Optional[trace.TracerProvider] = None,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings or YuugenSettings()
        self.logger = logger or StructuredLogger(self.settings.logging)
        self.errors = error_handler or ErrorHandler(
            self.settings.retry,
            self.settings.reporting,
            self.logger,
            sleep=sleep,
            rng=rng,
        )
        self.service: AdService = service or AdServiceClient()
        self._owns_service = service is None

        self._owned_provider = None
        if tracer_provider is None and self.settings.tracing.enable_otlp:
            tracer_provider = self._owned_provider = build_tracer_provider(
                self.settings.tracing, api_key=self.settings.sdk.api_key or None
            )
        self._tracer = get_tracer(tracer_provider)

        self._log = self.logger.child("sdk")
        self._state = SDKState.UNINITIALIZED
        self._config: Optional[SDKConfig] = None
        self._permissions: FrozenSet[str] = frozenset()
        self._init_task: Optional[asyncio.Task] = None
        self._telemetry_started = False
        self.session_id = _new_session_id()
        self._log.info("Yuugen SDK instance created", {"sessionId": self.session_id})

    # Lifecycle
    @property
    def state(self) -> SDKState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state is SDKState.INITIALIZED

    @property
    def permissions(self) -> FrozenSet[str]:
        return self._permissions

    @property
    def config(self) -> Optional[SDKConfig]:
        return self._config

    async def __aenter__(self) -> "YuugenSDK":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.destroy()

    async def initialize(self, config: Union[SDKConfig, Mapping[str, Any]]) -> None:
        """
        Validate ``config`` and run the permissions check through the retry
        engine. Validation failures raise ``SDKIntegrationError(init-failed)``
        before any network call; retry exhaustion propagates the
        ``NetworkError`` and leaves the SDK uninitialized.
        """
        if self._state is SDKState.DESTROYED:
            self._raise_destroyed()
        if self._state is SDKState.INITIALIZED:
            return
        if self._init_task is not None:
            await self._init_task
            return

        sdk_config = self._validate_config(config)
        self._start_telemetry()

        self._state = SDKState.INITIALIZING
        task = asyncio.ensure_future(self._perform_initialization(sdk_config))
        self._init_task = task
        try:
            await task
        finally:
            if self._init_task is task:
                self._init_task = None

    async def request_ad(self, placement: Union[AdPlacement, str], context: Optional[AIContext] = None) -> Ad:
        """
        Fetch an ad for ``placement``; on any failure substitute a fallback ad.

        The initialization check runs before the first suspension point, so
        calling this on an uninitialized SDK fails without network traffic.
        """
        self._ensure_initialized()
        if isinstance(placement, str):
            placement = AdPlacement(id=placement)
        if context is None:
            context = {}
        config = self._config
        error_context = self._context(placementId=placement.id)

        with self._tracer.start_as_current_span(
            "yuugen.request_ad",
            attributes={"yuugen.placement.id": placement.id, "yuugen.session.id": self.session_id},
        ) as span:
            try:
                ad = await self.errors.handle_network_error(
                    lambda: self.service.fetch_ad(config, placement, context),
                    error_context,
                    on_retry=retry_event_recorder(span),
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                ad = await self.errors.handle_ad_serving_error(
                    exc,
                    error_context,
                    lambda: self._fallback_ad(placement),
                )

            if self._state is SDKState.DESTROYED:
                self._raise_destroyed()
            span.set_attribute("yuugen.ad.id", ad.id)
            span.set_attribute("yuugen.ad.fallback", is_fallback(ad))
            return ad

    def track_event(self, event: Union[AdEvent, Mapping[str, Any]]) -> None:
        """Queue an analytics event. Never raises and never waits."""
        try:
            if self._state is not SDKState.INITIALIZED:
                self._log.debug("Dropping event: SDK is not initialized")
                return
            if self._config is not None and not self._config.enable_analytics:
                return
            if not isinstance(event, AdEvent):
                event = AdEvent(**event)
            pipeline = self.logger.pipeline
            if pipeline is None:
                self._log.debug(f"Event {event.type}", event.to_dict())
                return
            pipeline.record(
                LogEntry(
                    level="info",
                    category="analytics",
                    message=f"event:{event.type}",
                    data=event.to_dict(),
                    context=ErrorContext(session_id=self.session_id),
                )
            )
        except Exception:
            logger.debug("Failed to track event", exc_info=True)

    def report_privacy_violation(
        self,
        message: str,
        code: str = ErrorCode.PRIVACY_CONSENT_MISSING,
        **data: Any,
    ) -> NoReturn:
        """Surface a consent/regulatory breach detected by a collaborator."""
        self.errors.handle_privacy_violation(message, code, self._context(**data))

    async def destroy(self) -> None:
        """Tear everything down. Idempotent; never raises."""
        if self._state is SDKState.DESTROYED:
            return
        self._state = SDKState.DESTROYED
        self._config = None
        self._permissions = frozenset()
        self._log.info("Destroying SDK instance")

        closers = [self.errors.destroy, self.logger.destroy]
        if self._owns_service:
            closers.append(self.service.aclose)
        for close in closers:
            try:
                await close()
            except Exception:
                logger.exception("Error during SDK teardown")
        if self._owned_provider is not None:
            try:
                await asyncio.to_thread(self._owned_provider.shutdown)
            except Exception:
                logger.exception("Tracer provider shutdown failed")

    def masked_config(self) -> Optional[Dict[str, Any]]:
        if self._config is None:
            return None
        data = self._config.model_dump()
        key = data.get("api_key") or ""
        data["api_key"] = f"{key[:4]}...{key[-4:]}" if len(key) > 8 else "***"
        return data

    # Internal
    async def _perform_initialization(self, config: SDKConfig) -> None:
        context = self._context(environment=config.environment)
        self._log.info("Starting SDK initialization", {"environment": config.environment})

        with self._tracer.start_as_current_span(
            "yuugen.initialize",
            attributes={"yuugen.environment": config.environment, "yuugen.session.id": self.session_id},
        ) as span:
            try:
                permissions = await self.errors.handle_network_error(
                    lambda: self.service.check_permissions(config),
                    context,
                    on_retry=retry_event_recorder(span),
                )
            except SDKIntegrationError as exc:
                self._reset_after_failed_init()
                self.errors.handle_sdk_error(
                    exc.message, exc.code, context, ErrorSeverity.CRITICAL, original_error=exc
                )
            except BaseException:
                self._reset_after_failed_init()
                raise

            if self._state is SDKState.DESTROYED:
                self._raise_destroyed()
            self._config = config
            self._permissions = permissions
            self._state = SDKState.INITIALIZED
            span.set_attribute("yuugen.permissions", sorted(permissions))

        self._log.info("SDK initialization completed", {"permissions": sorted(permissions)})

    def _reset_after_failed_init(self) -> None:
        if self._state is SDKState.INITIALIZING:
            self._state = SDKState.UNINITIALIZED

    def _validate_config(self, config: Union[SDKConfig, Mapping[str, Any]]) -> SDKConfig:
        context = self._context()
        try:
            sdk_config = config if isinstance(config, SDKConfig) else SDKConfig.model_validate(dict(config))
        except (ValidationError, TypeError) as exc:
            self.errors.handle_sdk_error(
                f"SDK initialization failed: invalid configuration ({exc})",
                ErrorCode.INIT_FAILED,
                context,
                ErrorSeverity.CRITICAL,
                original_error=exc,
            )

        problems: List[str] = []
        api_key = sdk_config.api_key
        if not api_key or not api_key.strip():
            problems.append("API key is required")
        elif len(api_key) < MIN_API_KEY_LENGTH:
            problems.append(f"API key appears to be too short (minimum {MIN_API_KEY_LENGTH} characters)")
        if sdk_config.environment not in VALID_ENVIRONMENTS:
            problems.append(f"Environment must be one of: {', '.join(VALID_ENVIRONMENTS)}")
        if not 1.0 <= sdk_config.timeout <= 30.0:
            problems.append("Timeout must be between 1 and 30 seconds")
        if sdk_config.base_url is not None and urlparse(sdk_config.base_url).scheme != "https":
            problems.append("Base URL must be a valid HTTPS URL")

        if problems:
            self.errors.handle_sdk_error(
                f"SDK initialization failed: {'; '.join(problems)}",
                ErrorCode.INIT_FAILED,
                context.with_data(validationErrors=problems),
                ErrorSeverity.CRITICAL,
            )
        return sdk_config

    def _ensure_initialized(self) -> None:
        if self._state is SDKState.DESTROYED:
            self._raise_destroyed()
        if self._state is not SDKState.INITIALIZED:
            self.errors.handle_sdk_error(
                "SDK must be initialized before use",
                ErrorCode.NOT_INITIALIZED,
                self._context(state=self._state.value),
            )

    def _raise_destroyed(self) -> NoReturn:
        self.errors.handle_sdk_error(
            "SDK instance has been destroyed",
            ErrorCode.SDK_DESTROYED,
            self._context(),
        )

    def _start_telemetry(self) -> None:
        if self._telemetry_started:
            return
        self._telemetry_started = True
        self.logger.start()
        self.errors.start()

    def _fallback_ad(self, placement: AdPlacement) -> Ad:
        self._log.info("Using fallback ad for placement", {"placementId": placement.id})
        return synthesize_fallback(placement)

    def _context(self, **data: Any) -> ErrorContext:
        return ErrorContext(
            session_id=self.session_id,
            additional_data={k: v for k, v in data.items() if v is not None} or None,
        )
