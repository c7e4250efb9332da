"""Caller-driven retries for remote fetches.

Nothing in the performance layer retries on its own: a failed fetch is
surfaced immediately so that an outage is not amplified. Callers that want
retries wrap the operation explicitly with a bounded attempt count.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, Sequence

from .base import RecordSourceError


DEFAULT_BACKOFF = (1, 2, 4)


def is_retryable(exc: BaseException) -> bool:
    """Client errors (HTTP 4xx) fail the same way on every attempt."""
    if isinstance(exc, RecordSourceError) and exc.is_client_error:
        return False
    return True


async def retry_async(
    operation: Callable[[], Awaitable[Any]],
    attempts: int = 3,
    backoff: Optional[Sequence[float]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> Any:
    """Await ``operation()`` up to ``attempts`` times.

    Args:
        operation: Coroutine function performing one attempt
        attempts: Maximum number of attempts (at least 1)
        backoff: Delay before each retry in seconds; the last value repeats
            when there are more retries than delays. Defaults to 1, 2, 4.
        sleep: Awaitable sleep, injectable for tests
        on_retry: Called with (attempt, error, delay) before each retry

    Raises:
        The last error once attempts are exhausted, or immediately for a
        non-retryable error.
    """
    attempts = max(1, attempts)
    delays = list(backoff) if backoff else list(DEFAULT_BACKOFF)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            if attempt == attempts or not is_retryable(exc):
                raise
            delay = delays[min(attempt - 1, len(delays) - 1)]
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            await sleep(delay)
