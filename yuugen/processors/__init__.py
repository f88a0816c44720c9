"""Telemetry batching pipeline and supporting utilities."""

from yuugen.processors.batch_processor import TelemetryPipeline
from yuugen.processors.drop_policy import (
    DROP_POLICIES,
    DropNewestPolicy,
    DropOldestPolicy,
    DropPolicy,
    get_drop_policy,
)
from yuugen.processors.entries import ErrorReport, LogEntry, TelemetryEntry

__all__ = [
    "TelemetryPipeline",
    "DropPolicy",
    "DropOldestPolicy",
    "DropNewestPolicy",
    "DROP_POLICIES",
    "get_drop_policy",
    "TelemetryEntry",
    "LogEntry",
    "ErrorReport",
]
