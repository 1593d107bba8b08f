"""Tests for the multi-endpoint resilient chain client."""

import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from web3.exceptions import ContractLogicError

from launchpad_indexer.app.domain.errors import ChainUnavailableError, NonRetryableChainError
from launchpad_indexer.app.infrastructure.chain.rate_limiter import SlidingWindowRateLimiter
from launchpad_indexer.app.infrastructure.chain.rpc_client import (
    EndpointStats,
    RpcEndpoint,
    Web3ChainClient,
)


def _client(*endpoints: RpcEndpoint, retries: int = 2, stall_timeout: float = 1.0, sleep=None) -> Web3ChainClient:
    return Web3ChainClient(
        endpoints,
        rate_limiter=SlidingWindowRateLimiter(1000),
        retries=retries,
        stall_timeout=stall_timeout,
        sleep=sleep or AsyncMock(),
    )


def _call(w3):
    # Each fake endpoint is just an async callable.
    return w3()


def _returns(value):
    async def _fn():
        return value

    return _fn


def _raises(exc):
    async def _fn():
        raise exc

    return _fn


class _Eth:
    def __init__(self, head: int, timestamp: int) -> None:
        self._head = head
        self._timestamp = timestamp

    @property
    def block_number(self):
        async def _get():
            return self._head

        return _get()

    async def get_block(self, number):
        return {"number": number, "timestamp": self._timestamp}


class TestEndpointStats:
    def test_unhealthy_after_many_errors(self) -> None:
        assert EndpointStats(calls=11, errors=6).is_healthy is False

    def test_unhealthy_from_tenth_call(self) -> None:
        assert EndpointStats(calls=10, errors=6).is_healthy is False
        assert EndpointStats(calls=9, errors=9).is_healthy is True

    def test_few_calls_never_unhealthy(self) -> None:
        assert EndpointStats(calls=4, errors=4).is_healthy is True


class TestWeb3ChainClient:
    @pytest.mark.asyncio
    async def test_first_endpoint_answers(self) -> None:
        primary = RpcEndpoint(url="primary", w3=_returns(1))
        secondary = RpcEndpoint(url="secondary", w3=_returns(2))

        assert await _client(primary, secondary).execute(_call) == 1
        assert secondary.stats.calls == 0

    @pytest.mark.asyncio
    async def test_failure_falls_through_to_next_endpoint(self) -> None:
        sleep = AsyncMock()
        primary = RpcEndpoint(url="primary", w3=_raises(ConnectionError("refused")))
        secondary = RpcEndpoint(url="secondary", w3=_returns(42))

        result = await _client(primary, secondary, sleep=sleep).execute(_call)

        assert result == 42
        assert primary.stats.errors == 1
        assert "refused" in primary.stats.last_error
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stalled_endpoint_is_raced_and_cancelled(self) -> None:
        cancelled = asyncio.Event()

        async def _stall():
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return "slow"

        primary = RpcEndpoint(url="primary", w3=_stall)
        secondary = RpcEndpoint(url="secondary", w3=_returns("fast"))

        result = await _client(primary, secondary, stall_timeout=0.01).execute(_call)

        assert result == "fast"
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_non_retryable_error_raised_immediately(self) -> None:
        sleep = AsyncMock()
        primary = RpcEndpoint(url="primary", w3=_raises(ContractLogicError("execution reverted")))
        secondary = RpcEndpoint(url="secondary", w3=_returns(1))

        with pytest.raises(NonRetryableChainError):
            await _client(primary, secondary, sleep=sleep).execute(_call)

        assert secondary.stats.calls == 0
        assert primary.stats.errors == 0
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_exhausted(self) -> None:
        sleep = AsyncMock()
        primary = RpcEndpoint(url="primary", w3=_raises(ConnectionError("down")))
        secondary = RpcEndpoint(url="secondary", w3=_raises(TimeoutError("slow")))

        with pytest.raises(ChainUnavailableError):
            await _client(primary, secondary, retries=2, sleep=sleep).execute(_call)

        assert primary.stats.calls == 3
        assert secondary.stats.calls == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_unhealthy_endpoint_tried_last(self) -> None:
        primary = RpcEndpoint(url="primary", w3=_returns("primary"), stats=EndpointStats(calls=20, errors=15))
        secondary = RpcEndpoint(url="secondary", w3=_returns("secondary"))

        assert await _client(primary, secondary).execute(_call) == "secondary"

    @pytest.mark.asyncio
    async def test_block_reads(self) -> None:
        w3 = SimpleNamespace(eth=_Eth(head=1234, timestamp=1_700_000_000))
        client = _client(RpcEndpoint(url="primary", w3=w3))

        assert await client.get_block_number() == 1234
        assert await client.get_block_timestamp(1234) == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
        assert await client.health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_reports_failure(self) -> None:
        client = _client(RpcEndpoint(url="primary", w3=SimpleNamespace(eth=None)), retries=0)
        assert await client.health_check() is False

    def test_requires_an_endpoint(self) -> None:
        with pytest.raises(ValueError):
            _client()

    @pytest.mark.asyncio
    async def test_backoff_is_exponential_and_capped(self) -> None:
        sleep = AsyncMock()
        primary = RpcEndpoint(url="primary", w3=_raises(ConnectionError("down")))

        with pytest.raises(ChainUnavailableError) as info:
            await _client(primary, retries=5, sleep=sleep).execute(_call)

        assert primary.stats.calls == 6
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0, 5.0, 5.0]
        assert isinstance(info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_recovers_on_later_attempt(self) -> None:
        sleep = AsyncMock()
        answers = iter([ConnectionError("blip"), None])

        async def _flaky():
            exc = next(answers)
            if exc is not None:
                raise exc
            return "ok"

        primary = RpcEndpoint(url="primary", w3=_flaky)

        assert await _client(primary, sleep=sleep).execute(_call) == "ok"
        assert primary.stats.calls == 2
        assert [c.args[0] for c in sleep.await_args_list] == [1.0]

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self) -> None:
        sleep = AsyncMock()
        primary = RpcEndpoint(url="primary", w3=_raises(asyncio.CancelledError()))

        with pytest.raises(asyncio.CancelledError):
            await _client(primary, sleep=sleep).execute(_call)

        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_stats_track_each_endpoint(self) -> None:
        primary = RpcEndpoint(url="primary", w3=_raises(ConnectionError("refused")))
        secondary = RpcEndpoint(url="secondary", w3=_returns(7))
        client = _client(primary, secondary)

        await client.execute(_call)

        stats = {s["url"]: s for s in client.provider_stats()}
        assert (stats["primary"]["calls"], stats["primary"]["errors"]) == (1, 1)
        assert stats["primary"]["error_rate"] == 1.0
        assert stats["primary"]["healthy"] is True
        assert stats["primary"]["last_error_at"] is not None
        assert (stats["secondary"]["calls"], stats["secondary"]["errors"]) == (1, 0)
