"""Yuugen SDK error hierarchy and exceptions."""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from yuugen.serialization import to_jsonable

DOCS_BASE_URL = "https://docs.ai-yuugen.com/troubleshooting"


class YuugenError(Exception):
    """Base exception for all Yuugen SDK errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigError(YuugenError):
    """Raised when configuration is invalid or conflicting."""
    pass


class ExportError(YuugenError):
    """Raised when a telemetry batch cannot be submitted."""
    pass


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    NETWORK = "network"
    PRIVACY = "privacy"
    AD_SERVING = "ad_serving"
    SDK_INTEGRATION = "sdk_integration"


class ErrorCode:
    """Stable error codes used across the SDK."""

    NETWORK_OPERATION_FAILED = "network-operation-failed"
    AD_SERVING_FAILED = "ad-serving-failed"
    INIT_FAILED = "init-failed"
    NOT_INITIALIZED = "not-initialized"
    SDK_DESTROYED = "sdk-destroyed"
    INVALID_API_KEY = "invalid-api-key"
    INSUFFICIENT_PERMISSIONS = "insufficient-permissions"
    PLACEMENT_NOT_FOUND = "placement-not-found"
    PRIVACY_CONSENT_MISSING = "privacy-consent-missing"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ErrorContext:
    """
    Diagnostic context attached to a classified error.

    Instances are immutable; use ``with_data`` to derive a new context
    carrying extra diagnostic fields.
    """

    timestamp: datetime = field(default_factory=_utcnow)
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    request_id: Optional[str] = None
    additional_data: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        if self.additional_data is not None and not isinstance(self.additional_data, MappingProxyType):
            object.__setattr__(self, "additional_data", MappingProxyType(dict(self.additional_data)))

    def with_data(self, **data: Any) -> "ErrorContext":
        merged = dict(self.additional_data or {})
        merged.update(data)
        return replace(self, additional_data=merged)

    def to_dict(self, include_sensitive_data: bool = True) -> Dict[str, Any]:
        """Serialize for the wire; sensitive fields are omitted unless requested."""
        payload: Dict[str, Any] = {"timestamp": self.timestamp.isoformat()}
        if self.session_id is not None:
            payload["sessionId"] = self.session_id
        if self.request_id is not None:
            payload["requestId"] = self.request_id
        if include_sensitive_data:
            if self.user_id is not None:
                payload["userId"] = self.user_id
            if self.additional_data is not None:
                payload["additionalData"] = to_jsonable(self.additional_data)
        return payload


_VARIANTS = frozenset(
    {"NetworkError", "PrivacyViolationError", "AdServingError", "SDKIntegrationError"}
)


class ClassifiedError(YuugenError):
    """
    Closed union of the four classified error kinds.

    Category and default retryability are fixed by the variant; only the
    variants defined in this module may subclass it.
    """

    category: ErrorCategory

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.__module__ != __name__ or cls.__name__ not in _VARIANTS:
            raise TypeError(f"{cls.__name__} cannot extend the closed ClassifiedError union")

    def __init__(
        self,
        message: str,
        code: str,
        context: Optional[ErrorContext],
        severity: ErrorSeverity,
        retryable: bool,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message, {"code": code})
        self.code = code
        self.context = context or ErrorContext()
        self.severity = ErrorSeverity(severity)
        self.retryable = retryable
        self.original_error = original_error
        if original_error is not None:
            self.__cause__ = original_error

    @property
    def troubleshooting_url(self) -> str:
        return f"{DOCS_BASE_URL}/{self.category.value}/{self.code}"

    def stack_trace(self) -> Optional[str]:
        if self.__traceback__ is None:
            return None
        return "".join(traceback.format_exception(type(self), self, self.__traceback__))

    def to_dict(
        self,
        include_sensitive_data: bool = False,
        include_stack_trace: bool = False,
    ) -> Dict[str, Any]:
        payload = {
            "timestamp": self.context.timestamp.isoformat(),
            "name": type(self).__name__,
            "category": self.category.value,
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "troubleshootingUrl": self.troubleshooting_url,
            "context": self.context.to_dict(include_sensitive_data),
        }
        if include_stack_trace:
            payload["stackTrace"] = self.stack_trace()
        return payload

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, severity={self.severity.value!r}, message={self.message!r})"


class NetworkError(ClassifiedError):
    """Transient I/O failure; retryable."""

    category = ErrorCategory.NETWORK

    def __init__(
        self,
        message: str,
        code: str,
        context: Optional[ErrorContext] = None,
        severity: ErrorSeverity = ErrorSeverity.HIGH,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message, code, context, severity, True, original_error)


class PrivacyViolationError(ClassifiedError):
    """Consent or regulatory breach. Always critical, never retryable."""

    category = ErrorCategory.PRIVACY

    def __init__(
        self,
        message: str,
        code: str,
        context: Optional[ErrorContext] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message, code, context, ErrorSeverity.CRITICAL, False, original_error)


class AdServingError(ClassifiedError):
    """Upstream ad-source failure."""

    category = ErrorCategory.AD_SERVING

    def __init__(
        self,
        message: str,
        code: str,
        context: Optional[ErrorContext] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        retryable: bool = True,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message, code, context, severity, retryable, original_error)


class SDKIntegrationError(ClassifiedError):
    """SDK misuse or misconfiguration; never retryable."""

    category = ErrorCategory.SDK_INTEGRATION

    def __init__(
        self,
        message: str,
        code: str,
        context: Optional[ErrorContext] = None,
        severity: ErrorSeverity = ErrorSeverity.HIGH,
        original_error: Optional[BaseException] = None,
    ):
        severity = ErrorSeverity(severity)
        if severity not in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            raise ValueError("SDKIntegrationError severity must be high or critical")
        super().__init__(message, code, context, severity, False, original_error)


def create_network_error(
    message: str,
    code: str,
    context: Optional[ErrorContext] = None,
    original_error: Optional[BaseException] = None,
) -> NetworkError:
    return NetworkError(message, code, context, ErrorSeverity.HIGH, original_error)


def create_privacy_violation_error(
    message: str,
    code: str,
    context: Optional[ErrorContext] = None,
    original_error: Optional[BaseException] = None,
) -> PrivacyViolationError:
    return PrivacyViolationError(message, code, context, original_error)


def create_ad_serving_error(
    message: str,
    code: str,
    context: Optional[ErrorContext] = None,
    retryable: bool = True,
    original_error: Optional[BaseException] = None,
) -> AdServingError:
    return AdServingError(message, code, context, ErrorSeverity.MEDIUM, retryable, original_error)


def create_sdk_integration_error(
    message: str,
    code: str,
    context: Optional[ErrorContext] = None,
    severity: ErrorSeverity = ErrorSeverity.HIGH,
    original_error: Optional[BaseException] = None,
) -> SDKIntegrationError:
    return SDKIntegrationError(message, code, context, severity, original_error)
