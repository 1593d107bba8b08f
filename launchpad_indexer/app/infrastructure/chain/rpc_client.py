from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import (
    BadFunctionCallOutput,
    ContractLogicError,
    InvalidAddress,
    Web3ValidationError,
)

from launchpad_indexer.app.domain.errors import ChainUnavailableError, NonRetryableChainError
from launchpad_indexer.app.domain.ports.out import ChainClient
from launchpad_indexer.app.infrastructure.chain.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MAX_BACKOFF_SECONDS = 5.0
_UNHEALTHY_MIN_CALLS = 10
_UNHEALTHY_ERROR_RATE = 0.5

# Deterministic failures: retrying or asking another node gives the same answer.
_NON_RETRYABLE = (
    ContractLogicError,
    BadFunctionCallOutput,
    Web3ValidationError,
    InvalidAddress,
    TypeError,
)


@dataclass
class EndpointStats:
    calls: int = 0
    errors: int = 0
    last_error_at: float | None = None
    last_error: str | None = None

    @property
    def error_rate(self) -> float:
        return self.errors / self.calls if self.calls else 0.0

    @property
    def is_healthy(self) -> bool:
        return not (self.calls >= _UNHEALTHY_MIN_CALLS and self.error_rate > _UNHEALTHY_ERROR_RATE)


@dataclass
class RpcEndpoint:
    url: str
    w3: Any
    stats: EndpointStats = field(default_factory=EndpointStats)


def build_endpoints(urls: Sequence[str], *, request_timeout: float = 30) -> list[RpcEndpoint]:
    return [
        RpcEndpoint(
            url=url,
            w3=AsyncWeb3(
                AsyncHTTPProvider(
                    url,
                    request_kwargs={"timeout": request_timeout},
                )
            ),
        )
        for url in urls
    ]


def _is_retryable(exc: BaseException) -> bool:
    # Cancellation and deterministic failures propagate unchanged.
    return isinstance(exc, Exception) and not isinstance(exc, NonRetryableChainError)


class Web3ChainClient(ChainClient):
    """
    Resilient JSON-RPC client over one to three AsyncWeb3 endpoints.

    Each logical call takes one rate-limiter slot per attempt and is raced
    across endpoints: the best endpoint starts alone, the next one joins when
    the current ones stall past stall_timeout or fail, and the first
    successful answer wins. Losers are cancelled.
    """

    def __init__(
        self,
        endpoints: Sequence[RpcEndpoint],
        *,
        rate_limiter: SlidingWindowRateLimiter,
        retries: int = 2,
        stall_timeout: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not endpoints:
            raise ValueError("at least one RPC endpoint is required")
        self._endpoints = list(endpoints)
        self._rate_limiter = rate_limiter
        self._retries = retries
        self._stall_timeout = stall_timeout
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Resilience core
    # ------------------------------------------------------------------

    async def execute(self, fn: Callable[[Any], Awaitable[T]]) -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._retries + 1),
            wait=wait_exponential(multiplier=1, max=_MAX_BACKOFF_SECONDS),
            retry=retry_if_exception(_is_retryable),
            before_sleep=self._log_retry,
            sleep=self._sleep,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self._rate_limiter.acquire()
                    return await self._race(fn)
        except RetryError as exc:
            last_exc = exc.last_attempt.exception()
            raise ChainUnavailableError(
                f"RPC call failed after {self._retries + 1} attempts: {last_exc}"
            ) from last_exc
        raise AssertionError("unreachable")

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "RPC call failed (attempt %s/%s), retrying in %.1fs: %s",
            retry_state.attempt_number,
            self._retries + 1,
            retry_state.next_action.sleep if retry_state.next_action else 0.0,
            retry_state.outcome.exception() if retry_state.outcome else None,
        )

    def _ordered_endpoints(self) -> list[RpcEndpoint]:
        # sorted() is stable: configured order is kept among equals.
        return sorted(self._endpoints, key=lambda ep: not ep.stats.is_healthy)

    async def _call_endpoint(self, endpoint: RpcEndpoint, fn: Callable[[Any], Awaitable[T]]) -> T:
        endpoint.stats.calls += 1
        try:
            return await fn(endpoint.w3)
        except _NON_RETRYABLE:
            raise
        except Exception as exc:
            endpoint.stats.errors += 1
            endpoint.stats.last_error_at = time.time()
            endpoint.stats.last_error = repr(exc)
            raise

    async def _race(self, fn: Callable[[Any], Awaitable[T]]) -> T:
        ordered = self._ordered_endpoints()
        pending: dict[asyncio.Future[Any], RpcEndpoint] = {}
        errors: list[BaseException] = []
        next_idx = 0

        def launch_next() -> None:
            nonlocal next_idx
            endpoint = ordered[next_idx]
            next_idx += 1
            task = asyncio.ensure_future(self._call_endpoint(endpoint, fn))
            pending[task] = endpoint

        launch_next()
        try:
            while pending:
                timeout = self._stall_timeout if next_idx < len(ordered) else None
                done, _ = await asyncio.wait(
                    pending.keys(),
                    timeout=timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if not done:
                    logger.debug(
                        "RPC endpoint stalled for %.1fs, racing %s",
                        self._stall_timeout,
                        ordered[next_idx].url,
                    )
                    launch_next()
                    continue

                winner: asyncio.Future[Any] | None = None
                for task in done:
                    endpoint = pending.pop(task)
                    exc = task.exception()
                    if exc is None:
                        if winner is None:
                            winner = task
                        continue
                    if isinstance(exc, _NON_RETRYABLE):
                        raise NonRetryableChainError(str(exc)) from exc
                    logger.debug("RPC endpoint %s failed: %r", endpoint.url, exc)
                    errors.append(exc)

                if winner is not None:
                    return winner.result()

                if next_idx < len(ordered):
                    launch_next()

            raise errors[-1]
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Typed reads
    # ------------------------------------------------------------------

    async def get_block_number(self) -> int:
        async def _fn(w3: Any) -> int:
            return int(await w3.eth.block_number)

        return await self.execute(_fn)

    async def get_block_timestamp(self, block_number: int) -> datetime:
        async def _fn(w3: Any) -> int:
            block = await w3.eth.get_block(block_number)
            return int(block["timestamp"])

        ts = await self.execute(_fn)
        return datetime.fromtimestamp(ts, tz=timezone.utc)

    async def get_logs(
        self,
        *,
        address: str,
        topic0: bytes,
        from_block: int,
        to_block: int,
        extra_topics: Sequence[bytes | None] = (),
    ) -> list[dict[str, Any]]:
        params = {
            "address": AsyncWeb3.to_checksum_address(address),
            "fromBlock": from_block,
            "toBlock": to_block,
            "topics": [topic0, *extra_topics],
        }

        async def _fn(w3: Any) -> list[dict[str, Any]]:
            return [dict(log) for log in await w3.eth.get_logs(params)]

        return await self.execute(_fn)

    async def call(
        self,
        *,
        address: str,
        abi: list[dict[str, Any]],
        function: str,
        args: Sequence[Any] = (),
    ) -> Any:
        checksum = AsyncWeb3.to_checksum_address(address)

        async def _fn(w3: Any) -> Any:
            contract = w3.eth.contract(address=checksum, abi=abi)
            fn = getattr(contract.functions, function)
            return await fn(*args).call()

        return await self.execute(_fn)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def provider_stats(self) -> list[dict[str, Any]]:
        return [
            {
                "url": ep.url,
                "calls": ep.stats.calls,
                "errors": ep.stats.errors,
                "error_rate": ep.stats.error_rate,
                "healthy": ep.stats.is_healthy,
                "last_error_at": ep.stats.last_error_at,
            }
            for ep in self._endpoints
        ]

    async def health_check(self) -> bool:
        try:
            block = await self.get_block_number()
        except (ChainUnavailableError, NonRetryableChainError) as exc:
            logger.error("RPC health check failed: %s, endpoints=%s", exc, self.provider_stats())
            return False
        logger.info("RPC health check ok, head block %s", block)
        return True
