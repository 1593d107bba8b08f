from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone

from launchpad_indexer.app.domain.models import (
    WEI_PER_ETH,
    TokenMetrics,
    TransactionRecord,
    TransactionType,
)
from launchpad_indexer.app.domain.ports.out import ContractGateway, KeyValueCache, LedgerStore

logger = logging.getLogger(__name__)

VOLUME_WINDOW = timedelta(hours=24)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_volume_24h(trades: Sequence[TransactionRecord], now: datetime) -> float:
    """Sum of the ETH side of every BUY/SELL in (now - 24h, now], in ETH."""
    since = now - VOLUME_WINDOW
    total_wei = 0
    for tx in trades:
        if tx.timestamp < since or tx.timestamp > now:
            continue
        if tx.type is TransactionType.BUY:
            total_wei += tx.amount_in
        elif tx.type is TransactionType.SELL:
            total_wei += tx.amount_out
    return total_wei / WEI_PER_ETH


def select_baseline_price(trades: Sequence[TransactionRecord], now: datetime) -> float | None:
    """
    Price of the trade whose timestamp is closest to exactly 24h ago.

    Not simply the oldest trade in range: with sparse trading the oldest trade
    can sit far from the 24h mark and bias the change figure.
    """
    target = now - VOLUME_WINDOW
    candidates = [tx for tx in trades if tx.type in (TransactionType.BUY, TransactionType.SELL)]
    if not candidates:
        return None
    closest = min(candidates, key=lambda tx: abs((tx.timestamp - target).total_seconds()))
    return closest.price


def compute_price_change_24h(current_price: float, baseline_price: float | None) -> float:
    if baseline_price is None or baseline_price <= 0:
        return 0.0
    return (current_price - baseline_price) / baseline_price * 100


class TokenMetricsRefresher:
    """
    Recompute the derived market fields of one token from chain + ledger and
    write them back.

    Used synchronously by the indexer after a trade and in bulk by the tiered
    scheduler. Chain errors propagate to the caller, which decides whether a
    failure is isolated (scheduler) or best-effort (indexer).
    """

    def __init__(
        self,
        *,
        gateway: ContractGateway,
        store: LedgerStore,
        cache: KeyValueCache,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._cache = cache
        self._now = now

    async def compute(self, token_address: str) -> TokenMetrics:
        now = self._now()

        price_wei, market, holder_count, trades = await asyncio.gather(
            self._gateway.get_current_price(token_address),
            self._gateway.get_market_info(token_address),
            self._store.count_nonzero_holders(token_address),
            self._store.get_trades_since(token_address=token_address, since=now - VOLUME_WINDOW),
        )

        current_price = price_wei / WEI_PER_ETH
        baseline = select_baseline_price(trades, now)

        return TokenMetrics(
            current_price=current_price,
            market_cap=market.current_supply / WEI_PER_ETH * current_price,
            current_supply=market.current_supply,
            reserve_balance=market.reserve_balance,
            holder_count=holder_count,
            volume_24h=compute_volume_24h(trades, now),
            price_change_24h=compute_price_change_24h(current_price, baseline),
            metrics_updated_at=now,
        ).sanitized()

    async def refresh(self, token_address: str) -> TokenMetrics:
        metrics = await self.compute(token_address)
        await self._store.update_token_metrics(token_address, metrics)
        await self.invalidate(token_address)
        logger.debug(
            "Refreshed metrics for %s price=%s volume_24h=%s",
            token_address,
            metrics.current_price,
            metrics.volume_24h,
        )
        return metrics

    async def initial_metrics(self, token_address: str) -> TokenMetrics:
        """
        Best-effort price/supply/reserve read for a freshly discovered token.

        On any chain failure the token keeps zeroed metrics with
        metrics_updated_at=None, which queues it for the next COLD pass.
        """
        try:
            price_wei, market = await asyncio.gather(
                self._gateway.get_current_price(token_address),
                self._gateway.get_market_info(token_address),
            )
        except Exception as exc:
            logger.warning("Initial metrics unavailable for %s: %s", token_address, exc)
            return TokenMetrics()

        current_price = price_wei / WEI_PER_ETH
        return TokenMetrics(
            current_price=current_price,
            market_cap=market.current_supply / WEI_PER_ETH * current_price,
            current_supply=market.current_supply,
            reserve_balance=market.reserve_balance,
            metrics_updated_at=self._now(),
        ).sanitized()

    async def invalidate(self, token_address: str) -> None:
        await self._cache.delete_pattern(f"token:{token_address}")
        await self._cache.delete_pattern("market:")
