"""Tests for the bounded exponential-backoff retry engine."""

import asyncio
import random

import pytest

from yuugen.config import RetryPolicy
from yuugen.errors import (
    AdServingError,
    ConfigError,
    ErrorCode,
    ErrorContext,
    NetworkError,
    PrivacyViolationError,
    SDKIntegrationError,
)
from yuugen.retry import backoff_delay, is_retryable, run_with_retry

from conftest import RecordingSleep


class FlakyOperation:
    def __init__(self, failures, result="ok", error_factory=lambda: ConnectionError("unreachable")):
        self.failures = failures
        self.result = result
        self.error_factory = error_factory
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error_factory()
        return self.result


class TestBackoffDelay:
    def test_exponential_growth_capped_at_max(self):
        policy = RetryPolicy(base_delay=1.0, backoff_multiplier=2.0, max_delay=5.0, jitter=False)
        delays = [backoff_delay(policy, attempt) for attempt in range(1, 6)]
        assert delays == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_jitter_stays_within_half_and_full_delay(self):
        policy = RetryPolicy(base_delay=1.0, backoff_multiplier=2.0, max_delay=30.0, jitter=True)
        rng = random.Random(42)
        for attempt in range(1, 8):
            nominal = min(2.0 ** (attempt - 1), 30.0)
            delay = backoff_delay(policy, attempt, rng)
            assert 0.5 * nominal <= delay <= nominal
            assert delay <= policy.max_delay

    def test_attempt_must_be_positive(self):
        with pytest.raises(ValueError):
            backoff_delay(RetryPolicy(), 0)


class TestIsRetryable:
    def test_unclassified_errors_are_transient(self):
        assert is_retryable(ConnectionError())
        assert is_retryable(ValueError())

    def test_classified_errors_carry_their_flag(self):
        assert is_retryable(NetworkError("x", ErrorCode.NETWORK_OPERATION_FAILED))
        assert not is_retryable(PrivacyViolationError("x", ErrorCode.PRIVACY_CONSENT_MISSING))
        assert not is_retryable(SDKIntegrationError("x", ErrorCode.INVALID_API_KEY))
        assert not is_retryable(AdServingError("x", ErrorCode.PLACEMENT_NOT_FOUND, retryable=False))


class TestRunWithRetry:
    @pytest.mark.asyncio
    async def test_first_success_returns_without_sleeping(self):
        sleep = RecordingSleep()
        op = FlakyOperation(failures=0, result=42)
        assert await run_with_retry(op, sleep=sleep) == 42
        assert op.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_fail_twice_then_succeed(self):
        sleep = RecordingSleep()
        op = FlakyOperation(failures=2, result="ad")
        policy = RetryPolicy(max_attempts=3, base_delay=1.0, jitter=False)

        result = await run_with_retry(op, policy=policy, sleep=sleep)

        assert result == "ad"
        assert op.calls == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhaustion_makes_exactly_max_attempts(self):
        sleep = RecordingSleep()
        op = FlakyOperation(failures=100)
        policy = RetryPolicy(max_attempts=4, base_delay=0.5, jitter=False)

        with pytest.raises(NetworkError) as exc_info:
            await run_with_retry(op, policy=policy, sleep=sleep)

        assert op.calls == 4
        assert sleep.delays == [0.5, 1.0, 2.0]
        err = exc_info.value
        assert err.code == ErrorCode.NETWORK_OPERATION_FAILED
        assert err.retryable is True
        assert isinstance(err.__cause__, ConnectionError)
        assert err.context.additional_data["attempts"] == 4

    @pytest.mark.asyncio
    async def test_single_attempt_policy(self):
        sleep = RecordingSleep()
        op = FlakyOperation(failures=1)
        with pytest.raises(NetworkError):
            await run_with_retry(op, policy=RetryPolicy(max_attempts=1), sleep=sleep)
        assert op.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_terminal_error_keeps_caller_context(self):
        ctx = ErrorContext(session_id="sdk_1", additional_data={"placementId": "sidebar"})
        with pytest.raises(NetworkError) as exc_info:
            await run_with_retry(
                FlakyOperation(failures=5),
                ctx,
                RetryPolicy(max_attempts=2, jitter=False),
                sleep=RecordingSleep(),
            )
        context = exc_info.value.context
        assert context.session_id == "sdk_1"
        assert context.additional_data["placementId"] == "sidebar"
        assert "unreachable" in context.additional_data["lastError"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            PrivacyViolationError("no consent", ErrorCode.PRIVACY_CONSENT_MISSING),
            SDKIntegrationError("bad key", ErrorCode.INVALID_API_KEY),
            AdServingError("missing", ErrorCode.PLACEMENT_NOT_FOUND, retryable=False),
        ],
    )
    async def test_non_retryable_error_passes_through(self, error):
        sleep = RecordingSleep()
        op = FlakyOperation(failures=100, error_factory=lambda: error)

        with pytest.raises(type(error)) as exc_info:
            await run_with_retry(op, policy=RetryPolicy(max_attempts=5), sleep=sleep)

        assert exc_info.value is error
        assert op.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_on_retry_called_before_each_backoff(self):
        seen = []
        op = FlakyOperation(failures=10)
        with pytest.raises(NetworkError):
            await run_with_retry(
                op,
                policy=RetryPolicy(max_attempts=3, jitter=False),
                sleep=RecordingSleep(),
                on_retry=lambda attempt, exc, delay: seen.append((attempt, delay)),
            )
        assert seen == [(1, 1.0), (2, 2.0)]

    @pytest.mark.asyncio
    async def test_policy_mapping_accepted(self):
        op = FlakyOperation(failures=10)
        with pytest.raises(NetworkError):
            await run_with_retry(op, policy={"max_attempts": 2, "jitter": False}, sleep=RecordingSleep())
        assert op.calls == 2

    @pytest.mark.asyncio
    async def test_invalid_policy_rejected(self):
        op = FlakyOperation(failures=0)
        with pytest.raises(ConfigError):
            await run_with_retry(op, policy={"max_attempts": 0})
        assert op.calls == 0

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self):
        op = FlakyOperation(failures=10, error_factory=asyncio.CancelledError)
        with pytest.raises(asyncio.CancelledError):
            await run_with_retry(op, sleep=RecordingSleep())
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_real_sleep_is_used_by_default(self):
        op = FlakyOperation(failures=1, result="done")
        policy = RetryPolicy(max_attempts=2, base_delay=0.01, jitter=False)
        assert await run_with_retry(op, policy=policy) == "done"
