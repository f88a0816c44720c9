"""Batching telemetry pipeline with bounded queue and timer-driven flush."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Set

from yuugen.processors.drop_policy import DropOldestPolicy, DropPolicy
from yuugen.processors.entries import TelemetryEntry

# Pipeline failures are reported here only, never back into a pipeline.
logger = logging.getLogger("yuugen.telemetry")


class TelemetryPipeline:
    """
    Buffers telemetry entries and submits them in batches.

    The buffer is flushed as a unit when it reaches ``batch_size`` and on
    every ``flush_interval`` tick. Delivery is at-most-once: a batch whose
    submission fails is logged and discarded, never re-queued.

    The periodic timer is an asyncio task owned by the pipeline; it is
    created by ``start()`` on the running loop and cancelled by
    ``destroy()``, which also performs a final best-effort flush.
    """

    def __init__(
        self,
        exporter=None,
        *,
        payload_key: str = "logs",
        batch_size: int = 10,
        flush_interval: float = 30.0,
        include_sensitive_data: bool = False,
        include_stack_trace: bool = False,
        max_queue_size: int = 1000,
        drop_policy: Optional[DropPolicy] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if flush_interval <= 0:
            raise ValueError("flush_interval must be > 0")
        self.exporter = exporter
        self.payload_key = payload_key
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.include_sensitive_data = include_sensitive_data
        self.include_stack_trace = include_stack_trace
        self.max_queue_size = max(max_queue_size, batch_size)
        self.drop_policy = drop_policy or DropOldestPolicy()

        self._queue: Deque[TelemetryEntry] = deque()
        self._timer: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self._destroyed = False

        self._recorded = 0
        self._exported = 0
        self._failed_batches = 0

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def __len__(self) -> int:
        return len(self._queue)

    def start(self) -> None:
        """Start the periodic flush timer on the running event loop."""
        if self._destroyed or self.is_running:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.create_task(self._worker_loop(), name=f"yuugen-flush-{self.payload_key}")

    async def __aenter__(self) -> "TelemetryPipeline":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.destroy()

    def record(self, entry: TelemetryEntry) -> bool:
        """
        Append an entry to the buffer.

        Returns False if the entry was dropped (pipeline destroyed or
        discarded by the drop policy).
        """
        if self._destroyed:
            return False

        enqueued = self.drop_policy.admit(self._queue, entry, self.max_queue_size)
        if enqueued:
            self._recorded += 1

        if len(self._queue) >= self.batch_size:
            self._flush_nowait()
        return enqueued

    async def flush(self) -> bool:
        """Submit everything currently buffered. Never raises."""
        batch = self._drain_queue()
        if not batch:
            return True
        return await self._export(batch)

    async def destroy(self) -> None:
        """Cancel the timer, flush once more and release the buffer. Idempotent."""
        if self._destroyed:
            return
        self._destroyed = True

        timer, self._timer = self._timer, None
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()
            await asyncio.gather(timer, return_exceptions=True)

        await self.flush()
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        self._queue.clear()

        shutdown = getattr(self.exporter, "shutdown", None)
        if shutdown is not None:
            try:
                await shutdown()
            except Exception:
                logger.exception("Telemetry exporter shutdown failed")

    def stats(self) -> Dict[str, Any]:
        return {
            "payload_key": self.payload_key,
            "buffered": len(self._queue),
            "recorded": self._recorded,
            "exported": self._exported,
            "dropped": self.drop_policy.dropped,
            "failed_batches": self._failed_batches,
        }

    # Internal
    async def _worker_loop(self) -> None:
        """Background task that flushes on every interval tick."""
        while not self._destroyed:
            await asyncio.sleep(self.flush_interval)
            await self.flush()

    def _flush_nowait(self) -> None:
        """Snapshot the buffer now and submit it in the background."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to submit on; the entries wait for the next flush.
            return
        batch = self._drain_queue()
        if not batch:
            return
        task = loop.create_task(self._export(batch))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _drain_queue(self) -> List[TelemetryEntry]:
        items = list(self._queue)
        self._queue.clear()
        return items

    def _sanitize(self, entry: TelemetryEntry) -> Dict[str, Any]:
        return entry.to_payload(
            include_sensitive_data=self.include_sensitive_data,
            include_stack_trace=self.include_stack_trace,
        )

    async def _export(self, batch: List[TelemetryEntry]) -> bool:
        if self.exporter is None:
            return True
        try:
            payload = [self._sanitize(entry) for entry in batch]
            await self.exporter.export(self.payload_key, payload)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # At-most-once: the batch is not re-queued.
            self._failed_batches += 1
            logger.warning(
                "Failed to submit %d %s entries; batch discarded: %s",
                len(batch),
                self.payload_key,
                exc,
            )
            return False
        self._exported += len(batch)
        return True
