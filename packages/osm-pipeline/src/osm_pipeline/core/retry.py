import asyncio
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")

RetryHook = Callable[[int, float, Exception], None]


def backoff_delay(attempt: int, base_delay_seconds: float, max_delay_seconds: float) -> float:
    """Seconds to wait after failed ``attempt`` (1-based), capped at ``max_delay_seconds``."""
    return min(max_delay_seconds, base_delay_seconds * 2 ** (attempt - 1))


async def with_exponential_backoff(
    operation: Callable[[], Awaitable[T]],
    retries: int = 3,
    base_delay_seconds: float = 0.1,
    max_delay_seconds: float = 30.0,
    on_retry: RetryHook | None = None,
    should_retry: Callable[[Exception], bool] | None = None,
    sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``operation`` at most ``retries`` times.

    The exception of the final attempt, or the first one ``should_retry``
    declines, propagates unchanged.
    """
    if retries <= 0:
        raise ValueError("retries must be > 0")
    for attempt in range(1, retries):
        try:
            return await operation()
        except Exception as exc:
            if should_retry is not None and not should_retry(exc):
                raise
            delay = backoff_delay(attempt, base_delay_seconds, max_delay_seconds)
            if on_retry is not None:
                on_retry(attempt, delay, exc)
            await sleep_fn(delay)
    return await operation()
