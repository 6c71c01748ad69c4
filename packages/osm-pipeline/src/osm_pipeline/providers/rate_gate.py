from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import time

DEFAULT_MIN_INTERVAL_SECONDS = 0.5


class RateGate:
    """Enforce a minimum interval between the starts of consecutive requests.

    One instance is shared by every client talking to the same provider. The
    lock means a single caller sleeps on the gate at a time; the rest wait on
    the lock in arrival order.
    """

    def __init__(
        self,
        min_interval_seconds: float = DEFAULT_MIN_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if min_interval_seconds < 0:
            raise ValueError("min_interval_seconds must be >= 0")
        self._min_interval_seconds = min_interval_seconds
        self._clock = clock
        self._sleep_fn = sleep_fn
        self._last_started: float | None = None
        self._lock = asyncio.Lock()

    @property
    def min_interval_seconds(self) -> float:
        return self._min_interval_seconds

    async def wait(self) -> float:
        """Block until a request may start; return the seconds spent waiting."""
        async with self._lock:
            waited = 0.0
            if self._last_started is not None and self._min_interval_seconds > 0:
                remaining = self._min_interval_seconds - (self._clock() - self._last_started)
                if remaining > 0:
                    await self._sleep_fn(remaining)
                    waited = remaining
            self._last_started = self._clock()
            return waited
