"""Structured, category-tagged logging with an optional batched remote channel."""

from __future__ import annotations

import logging
import traceback
from enum import IntEnum
from typing import Any, Dict, Optional

from yuugen.config import LoggerConfig
from yuugen.errors import ErrorContext
from yuugen.exporter.http_exporter import HttpExporter
from yuugen.processors.batch_processor import TelemetryPipeline
from yuugen.processors.drop_policy import get_drop_policy
from yuugen.processors.entries import LogEntry

CRITICAL_MARKER = "\U0001f6a8 CRITICAL:"


class LogLevel(IntEnum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    CRITICAL = 4

    @classmethod
    def parse(cls, value) -> "LogLevel":
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)
        name = str(value).strip().upper()
        if name == "WARNING":
            name = "WARN"
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"Unknown log level: {value!r}") from None


_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.CRITICAL: logging.CRITICAL,
}


def build_log_pipeline(config: LoggerConfig) -> Optional[TelemetryPipeline]:
    """Create the remote log pipeline described by ``config``, if any."""
    if not config.enable_remote:
        return None
    exporter = None
    if config.remote_endpoint:
        exporter = HttpExporter(config.remote_endpoint, headers=config.headers, timeout=config.timeout)
    return TelemetryPipeline(
        exporter,
        payload_key="logs",
        batch_size=config.batch_size,
        flush_interval=config.flush_interval,
        include_sensitive_data=config.include_sensitive_data,
        include_stack_trace=config.include_stack_trace,
        max_queue_size=config.max_queue_size,
        drop_policy=get_drop_policy(config.drop_policy),
    )


class StructuredLogger:
    """
    Five-level logger writing to the standard ``logging`` module and,
    when remote logging is enabled, to a ``TelemetryPipeline``.

    Local output happens synchronously on every call at or above the
    configured level. Children share the parent's configuration, user
    context and pipeline but tag records with their own category; only
    the root logger owns (and destroys) the pipeline.
    """

    def __init__(
        self,
        config: Optional[LoggerConfig] = None,
        *,
        pipeline: Optional[TelemetryPipeline] = None,
        category: str = "general",
        _parent: Optional["StructuredLogger"] = None,
    ) -> None:
        self.config = config or LoggerConfig()
        self.category = category
        self.level = LogLevel.parse(self.config.level)
        self._parent = _parent
        if _parent is not None:
            self.pipeline = _parent.pipeline
            self._user_context = _parent._user_context
        else:
            self.pipeline = pipeline if pipeline is not None else build_log_pipeline(self.config)
            self._user_context: Dict[str, Optional[str]] = {}
        self._logger = logging.getLogger(f"yuugen.{category}")

    @property
    def is_child(self) -> bool:
        return self._parent is not None

    def debug(self, message: str, data: Any = None, *, context: Optional[ErrorContext] = None) -> None:
        self.log(LogLevel.DEBUG, message, data, context=context)

    def info(self, message: str, data: Any = None, *, context: Optional[ErrorContext] = None) -> None:
        self.log(LogLevel.INFO, message, data, context=context)

    def warn(self, message: str, data: Any = None, *, context: Optional[ErrorContext] = None) -> None:
        self.log(LogLevel.WARN, message, data, context=context)

    warning = warn

    def error(self, message: str, data: Any = None, *, context: Optional[ErrorContext] = None) -> None:
        self.log(LogLevel.ERROR, message, data, context=context)

    def critical(self, message: str, data: Any = None, *, context: Optional[ErrorContext] = None) -> None:
        self.log(LogLevel.CRITICAL, message, data, context=context)

    def log(
        self,
        level: LogLevel,
        message: str,
        data: Any = None,
        *,
        context: Optional[ErrorContext] = None,
        category: Optional[str] = None,
    ) -> None:
        level = LogLevel.parse(level)
        if level < self.level:
            return
        category = category or self.category

        if self.config.enable_console:
            self.console(level, message, data, category=category)

        if self.config.enable_remote and self.pipeline is not None:
            self.pipeline.record(
                LogEntry(
                    level=level.name.lower(),
                    category=category,
                    message=message,
                    data=data,
                    context=context or self._default_context(),
                    stack_trace=_stack_trace(data),
                )
            )

    def console(self, level: LogLevel, message: str, data: Any = None, *, category: Optional[str] = None) -> None:
        """Write one local record, bypassing the level threshold."""
        if not self.config.enable_console:
            return
        category = category or self.category
        exc_info = data if self.config.include_stack_trace and isinstance(data, BaseException) else None
        prefix = f"{CRITICAL_MARKER} " if level == LogLevel.CRITICAL else ""
        if data is None:
            self._logger.log(_STDLIB_LEVELS[level], "%s[%s] %s", prefix, category, message, exc_info=exc_info)
        else:
            self._logger.log(
                _STDLIB_LEVELS[level], "%s[%s] %s %s", prefix, category, message, data, exc_info=exc_info
            )

    def set_user_context(self, user_id: Optional[str], session_id: Optional[str] = None) -> None:
        """Attach user/session identifiers to subsequent remote records."""
        self._user_context["user_id"] = user_id
        self._user_context["session_id"] = session_id

    def child(self, category: str) -> "StructuredLogger":
        return StructuredLogger(self.config, category=category, _parent=self)

    def start(self) -> None:
        if self.pipeline is not None and not self.is_child:
            self.pipeline.start()

    async def flush(self) -> None:
        if self.pipeline is not None:
            await self.pipeline.flush()

    async def destroy(self) -> None:
        if self.is_child or self.pipeline is None:
            return
        await self.pipeline.destroy()

    def _default_context(self) -> Optional[ErrorContext]:
        if not any(self._user_context.values()):
            return None
        return ErrorContext(
            user_id=self._user_context.get("user_id"),
            session_id=self._user_context.get("session_id"),
        )


def _stack_trace(data: Any) -> Optional[str]:
    if isinstance(data, BaseException) and data.__traceback__ is not None:
        return "".join(traceback.format_exception(type(data), data, data.__traceback__))
    return None
