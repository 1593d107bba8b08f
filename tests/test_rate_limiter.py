"""Tests for the sliding-window RPC rate limiter."""

import pytest

from launchpad_indexer.app.infrastructure.chain.rate_limiter import SlidingWindowRateLimiter


class ManualClock:
    """Clock whose sleep() simply moves time forward."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestSlidingWindowRateLimiter:
    @pytest.mark.asyncio
    async def test_calls_under_limit_do_not_wait(self) -> None:
        clock = ManualClock()
        limiter = SlidingWindowRateLimiter(3, window_seconds=10.0, clock=clock, sleep=clock.sleep)

        for _ in range(3):
            await limiter.acquire()

        assert clock.sleeps == []
        assert limiter.in_flight == 3

    @pytest.mark.asyncio
    async def test_call_over_limit_waits_for_oldest_to_expire(self) -> None:
        clock = ManualClock()
        limiter = SlidingWindowRateLimiter(2, window_seconds=10.0, clock=clock, sleep=clock.sleep)

        await limiter.acquire()
        clock.now = 4.0
        await limiter.acquire()
        clock.now = 5.0
        await limiter.acquire()

        assert clock.sleeps == [pytest.approx(5.0)]
        assert clock.now == pytest.approx(10.0)
        assert limiter.in_flight == 2

    @pytest.mark.asyncio
    async def test_window_slides(self) -> None:
        clock = ManualClock()
        limiter = SlidingWindowRateLimiter(1, window_seconds=10.0, clock=clock, sleep=clock.sleep)

        await limiter.acquire()
        clock.now = 10.0
        await limiter.acquire()

        assert clock.sleeps == []

    def test_rejects_non_positive_limit(self) -> None:
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(0)
