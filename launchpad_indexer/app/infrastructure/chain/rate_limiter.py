from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


def _loop_time() -> float:
    return asyncio.get_event_loop().time()


class SlidingWindowRateLimiter:
    """
    Sliding-window limiter shared by every RPC call of one chain client.

    A caller that would exceed max_calls inside the window sleeps until the
    oldest call falls out of it and then re-checks. There is no FIFO queue:
    after a wake-up whichever caller re-checks first takes the free slot.
    """

    def __init__(
        self,
        max_calls: int,
        *,
        window_seconds: float = 10.0,
        clock: Callable[[], float] = _loop_time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_calls <= 0:
            raise ValueError("max_calls must be positive")
        self._max_calls = max_calls
        self._window = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._calls: deque[float] = deque()

    @property
    def in_flight(self) -> int:
        self._evict(self._clock())
        return len(self._calls)

    def _evict(self, now: float) -> None:
        while self._calls and now - self._calls[0] >= self._window:
            self._calls.popleft()

    async def acquire(self) -> None:
        while True:
            now = self._clock()
            self._evict(now)
            if len(self._calls) < self._max_calls:
                self._calls.append(now)
                return

            wait = self._window - (now - self._calls[0])
            logger.debug("RPC rate limit reached, sleeping %.2fs", wait)
            await self._sleep(max(wait, 0.0))
