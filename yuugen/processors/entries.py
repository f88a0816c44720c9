"""Telemetry entries held in a pipeline buffer until they are flushed."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from yuugen.errors import ClassifiedError, ErrorContext
from yuugen.serialization import to_jsonable


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TelemetryEntry:
    """Base interface for anything recorded into a TelemetryPipeline."""

    context: Optional[ErrorContext] = None

    def to_payload(self, include_sensitive_data: bool, include_stack_trace: bool) -> Dict[str, Any]:
        raise NotImplementedError


@dataclass
class LogEntry(TelemetryEntry):
    level: str
    category: str
    message: str
    data: Any = None
    timestamp: datetime = field(default_factory=_utcnow)
    context: Optional[ErrorContext] = None
    stack_trace: Optional[str] = None

    def to_payload(self, include_sensitive_data: bool, include_stack_trace: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "category": self.category,
            "message": self.message,
        }
        if self.data is not None:
            payload["data"] = to_jsonable(self.data)
        if self.context is not None:
            payload["context"] = self.context.to_dict(include_sensitive_data)
        if include_stack_trace and self.stack_trace:
            payload["stackTrace"] = self.stack_trace
        return payload


@dataclass
class ErrorReport(TelemetryEntry):
    error: ClassifiedError

    @property
    def context(self) -> ErrorContext:  # type: ignore[override]
        return self.error.context

    def to_payload(self, include_sensitive_data: bool, include_stack_trace: bool) -> Dict[str, Any]:
        return self.error.to_dict(
            include_sensitive_data=include_sensitive_data,
            include_stack_trace=include_stack_trace,
        )
