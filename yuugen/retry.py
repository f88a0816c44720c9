"""Bounded exponential-backoff retry for asynchronous operations."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

from yuugen.config import RetryPolicy, coerce_retry_policy
from yuugen.errors import ClassifiedError, ErrorCode, ErrorContext, NetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]
OnRetry = Callable[[int, BaseException, float], None]


def backoff_delay(policy: RetryPolicy, attempt: int, rng: Optional[random.Random] = None) -> float:
    """
    Delay to wait after the given failed attempt (1-based).

    ``min(base_delay * backoff_multiplier ** (attempt - 1), max_delay)``; with
    jitter the capped delay is scaled by a random factor in [0.5, 1.0], so the
    result never exceeds ``max_delay``.
    """
    if attempt < 1:
        raise ValueError("attempt must be >= 1")
    delay = min(policy.base_delay * policy.backoff_multiplier ** (attempt - 1), policy.max_delay)
    if policy.jitter:
        factor = (rng or random).uniform(0.5, 1.0)
        delay *= factor
    return delay


def is_retryable(error: BaseException) -> bool:
    """Classified errors carry their own retryability; anything else is transient."""
    if isinstance(error, ClassifiedError):
        return error.retryable
    return True


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    context: Optional[ErrorContext] = None,
    policy: Any = None,
    *,
    sleep: Sleep = asyncio.sleep,
    rng: Optional[random.Random] = None,
    on_retry: Optional[OnRetry] = None,
) -> T:
    """
    Run ``operation`` up to ``policy.max_attempts`` times.

    Attempts are strictly sequential. A classified error marked
    non-retryable is re-raised as is. When every attempt fails, the last
    failure is wrapped in a ``NetworkError`` which the engine never retries
    itself.

    Args:
        operation: Zero-argument callable returning an awaitable
        context: Diagnostic context for the terminal error
        policy: RetryPolicy, mapping of its fields, or None for defaults
        sleep: Awaitable sleep used between attempts
        rng: Random source for jitter
        on_retry: Called with (attempt, error, delay) before each backoff
    """
    policy = coerce_retry_policy(policy)
    context = context or ErrorContext()
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if not is_retryable(exc):
                raise
            last_error = exc
            if attempt == policy.max_attempts:
                break
            delay = backoff_delay(policy, attempt, rng)
            logger.debug(
                "Attempt %d/%d failed (%s); retrying in %.3fs",
                attempt,
                policy.max_attempts,
                exc,
                delay,
            )
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            await sleep(delay)

    raise NetworkError(
        f"Network operation failed after {policy.max_attempts} attempts: {last_error}",
        ErrorCode.NETWORK_OPERATION_FAILED,
        context.with_data(attempts=policy.max_attempts, lastError=repr(last_error)),
        original_error=last_error,
    )
