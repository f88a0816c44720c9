"""Yuugen SDK: resilient ad requests with retry, fallback ads and batched telemetry."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from yuugen.config import (
    LoggerConfig,
    RetryPolicy,
    SDKConfig,
    TelemetryConfig,
    TracingConfig,
    YuugenSettings,
    load_settings,
)
from yuugen.errors import (
    AdServingError,
    ClassifiedError,
    ConfigError,
    ErrorCategory,
    ErrorCode,
    ErrorContext,
    ErrorSeverity,
    NetworkError,
    PrivacyViolationError,
    SDKIntegrationError,
    YuugenError,
)
from yuugen.fallback import FALLBACK_ID_PREFIX, FALLBACK_TITLE, is_fallback, synthesize_fallback
from yuugen.handling import ErrorHandler
from yuugen.logger import LogLevel, StructuredLogger
from yuugen.models import Ad, AdContent, AdEvent, AdPlacement, AIContext
from yuugen.processors import TelemetryPipeline
from yuugen.retry import backoff_delay, run_with_retry
from yuugen.sdk import SDKState, YuugenSDK

__version__ = "1.0.0"

logger = logging.getLogger(__name__)

_default_sdk: Optional[YuugenSDK] = None


async def init(
    config: Union[SDKConfig, Mapping[str, Any], None] = None,
    *,
    config_file: Optional[str] = None,
    **overrides: Any,
) -> YuugenSDK:
    """
    Create, initialize and register the process-wide default SDK.

    Settings come from ``config_file`` (or a discovered ``yuugen.toml``),
    ``YUUGEN_*`` environment variables and ``overrides``, in increasing
    priority. ``config`` replaces the ``[sdk]`` section when given.
    """
    global _default_sdk
    if _default_sdk is not None:
        logger.warning("Yuugen SDK already initialized; returning the existing instance")
        return _default_sdk

    settings = load_settings(config_file=config_file, overrides=overrides)
    sdk = YuugenSDK(settings)
    try:
        await sdk.initialize(config if config is not None else settings.sdk)
    except BaseException:
        await sdk.destroy()
        raise
    _default_sdk = sdk
    return sdk


def get_sdk() -> Optional[YuugenSDK]:
    """Return the default SDK registered by ``init()``, if any."""
    return _default_sdk


async def shutdown() -> None:
    """Destroy and unregister the default SDK. Safe to call repeatedly."""
    global _default_sdk
    sdk, _default_sdk = _default_sdk, None
    if sdk is not None:
        await sdk.destroy()


__all__ = [
    "__version__",
    "init",
    "get_sdk",
    "shutdown",
    "YuugenSDK",
    "SDKState",
    "YuugenSettings",
    "SDKConfig",
    "RetryPolicy",
    "TelemetryConfig",
    "LoggerConfig",
    "TracingConfig",
    "load_settings",
    "YuugenError",
    "ConfigError",
    "ClassifiedError",
    "NetworkError",
    "PrivacyViolationError",
    "AdServingError",
    "SDKIntegrationError",
    "ErrorCategory",
    "ErrorSeverity",
    "ErrorCode",
    "ErrorContext",
    "ErrorHandler",
    "StructuredLogger",
    "LogLevel",
    "TelemetryPipeline",
    "run_with_retry",
    "backoff_delay",
    "synthesize_fallback",
    "is_fallback",
    "FALLBACK_ID_PREFIX",
    "FALLBACK_TITLE",
    "Ad",
    "AdContent",
    "AdEvent",
    "AdPlacement",
    "AIContext",
]
