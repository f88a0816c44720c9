"""Admission control for the bounded telemetry buffer."""

import logging
from typing import Deque, Dict, Type

from yuugen.processors.entries import TelemetryEntry

logger = logging.getLogger("yuugen.telemetry")


class DropPolicy:
    """
    Decides what gives way when a pipeline's buffer is full.

    A policy instance belongs to one pipeline: it counts every entry lost to
    overflow in ``dropped`` and logs a warning on the first loss of each
    overflow episode. The episode ends as soon as an entry is admitted
    without displacing another.
    """

    name = "base"

    def __init__(self) -> None:
        self.dropped = 0
        self._overflowing = False

    def admit(self, buffer: Deque[TelemetryEntry], entry: TelemetryEntry, capacity: int) -> bool:
        """Buffer ``entry``; returns False if it was the entry discarded."""
        if len(buffer) < capacity:
            self._overflowing = False
            buffer.append(entry)
            return True
        discarded = self._make_room(buffer, entry)
        self.dropped += 1
        if not self._overflowing:
            self._overflowing = True
            logger.warning(
                "Telemetry buffer full (%d entries); discarding %s entries until it drains",
                capacity,
                self.name,
            )
        return discarded is not entry

    def _make_room(self, buffer: Deque[TelemetryEntry], entry: TelemetryEntry) -> TelemetryEntry:
        """Resolve overflow for ``entry`` and return whichever entry was discarded."""
        raise NotImplementedError


class DropOldestPolicy(DropPolicy):
    """Evict the oldest buffered entry in favour of the new one."""

    name = "oldest"

    def _make_room(self, buffer: Deque[TelemetryEntry], entry: TelemetryEntry) -> TelemetryEntry:
        evicted = buffer.popleft()
        buffer.append(entry)
        return evicted


class DropNewestPolicy(DropPolicy):
    """Keep what is buffered; the incoming entry is lost."""

    name = "newest"

    def _make_room(self, buffer: Deque[TelemetryEntry], entry: TelemetryEntry) -> TelemetryEntry:
        return entry


DROP_POLICIES: Dict[str, Type[DropPolicy]] = {
    DropOldestPolicy.name: DropOldestPolicy,
    DropNewestPolicy.name: DropNewestPolicy,
}


def get_drop_policy(name: str = "oldest") -> DropPolicy:
    """Fresh policy instance for a config value (``oldest`` or ``newest``)."""
    try:
        return DROP_POLICIES[name]()
    except KeyError:
        raise ValueError(f"Unknown drop policy: {name!r}") from None
