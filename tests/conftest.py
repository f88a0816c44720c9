"""Shared fakes for the Yuugen SDK tests."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from yuugen.config import LoggerConfig, RetryPolicy, TelemetryConfig, YuugenSettings
from yuugen.models import Ad, AdContent


class RecordingExporter:
    """Stands in for HttpExporter; keeps every submitted batch."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.batches = []
        self.shutdown_called = False

    async def export(self, payload_key, entries):
        if self.fail:
            raise RuntimeError("telemetry endpoint unavailable")
        self.batches.append((payload_key, list(entries)))

    async def shutdown(self):
        self.shutdown_called = True

    @property
    def entries(self):
        return [entry for _, batch in self.batches for entry in batch]


class RecordingSleep:
    """Async sleep replacement capturing requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_ad(ad_id: str = "ad-123", placement_id: str = "sidebar") -> Ad:
    now = datetime.now(timezone.utc)
    return Ad(
        id=ad_id,
        content=AdContent(
            title="Real Product",
            description="A real ad",
            cta_text="Buy",
            brand_name="Acme",
        ),
        created_at=now,
        expires_at=now + timedelta(hours=1),
        placement_id=placement_id,
    )


class FakeAdService:
    """In-memory AdService with scripted failures."""

    def __init__(
        self,
        permissions=("ads:read", "analytics:write"),
        permission_failures: int = 0,
        permission_error: Exception = None,
        fetch_failures: int = 0,
        fetch_error: Exception = None,
        permission_delay: float = 0.0,
    ):
        self.permissions = permissions
        self.permission_failures = permission_failures
        self.permission_error = permission_error
        self.fetch_failures = fetch_failures
        self.fetch_error = fetch_error
        self.permission_delay = permission_delay
        self.permission_calls = 0
        self.fetch_calls = 0
        self.contexts = []
        self.closed = False

    async def check_permissions(self, config):
        self.permission_calls += 1
        if self.permission_delay:
            await asyncio.sleep(self.permission_delay)
        if self.permission_error is not None:
            raise self.permission_error
        if self.permission_calls <= self.permission_failures:
            raise ConnectionError("auth service unreachable")
        return frozenset(self.permissions)

    async def fetch_ad(self, config, placement, context):
        self.fetch_calls += 1
        self.contexts.append(context)
        if self.fetch_error is not None:
            raise self.fetch_error
        if self.fetch_calls <= self.fetch_failures:
            raise ConnectionError("ad service unreachable")
        return make_ad(placement_id=placement.id)

    async def aclose(self):
        self.closed = True


VALID_KEY = "yk_test_0123456789"


@pytest.fixture
def settings():
    return YuugenSettings(
        retry=RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=30.0, jitter=False),
        reporting=TelemetryConfig(enable_remote=False),
        logging=LoggerConfig(level="debug"),
    )


async def drain_loop(rounds: int = 5) -> None:
    """Let background tasks scheduled on the loop run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)
