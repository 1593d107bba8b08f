from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from launchpad_indexer.app.application.services.token_metrics import TokenMetricsRefresher
from launchpad_indexer.app.domain.models import Tier
from launchpad_indexer.app.domain.ports.out import LedgerStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TierPolicy:
    cadence: timedelta
    cap: int


DEFAULT_TIER_POLICIES: dict[Tier, TierPolicy] = {
    Tier.HOT: TierPolicy(cadence=timedelta(seconds=30), cap=100),
    Tier.WARM: TierPolicy(cadence=timedelta(minutes=5), cap=200),
    Tier.ACTIVE: TierPolicy(cadence=timedelta(minutes=30), cap=500),
    Tier.COLD: TierPolicy(cadence=timedelta(hours=12), cap=50),
}


@dataclass(frozen=True)
class TierRunResult:
    tier: Tier
    attempted: int
    refreshed: int
    failed: int


class TieredMetricsScheduler:
    """
    Keeps derived token metrics fresh in proportion to trading activity.

    Every tick (default 30s) each tier whose cadence has elapsed refreshes up
    to its cap of tokens in parallel; a failing token is counted and logged
    and never aborts the tier. Ticks are single-flight: a tick that starts
    while the previous one is still running is skipped.

    COLD pages through the long tail with a rotating offset, after first
    taking tokens whose metrics were never read successfully.
    """

    def __init__(
        self,
        *,
        store: LedgerStore,
        refresher: TokenMetricsRefresher,
        tick_interval: float = 30.0,
        policies: dict[Tier, TierPolicy] | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._refresher = refresher
        self._tick_interval = tick_interval
        self._policies = policies or DEFAULT_TIER_POLICIES
        self._now = now

        self._last_run: dict[Tier, datetime] = {}
        self._cold_offset = 0
        self._tick_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()

    @property
    def cold_offset(self) -> int:
        return self._cold_offset

    def _is_due(self, tier: Tier, now: datetime) -> bool:
        last = self._last_run.get(tier)
        return last is None or now - last >= self._policies[tier].cadence

    async def tick(self) -> list[TierRunResult]:
        if self._tick_lock.locked():
            logger.debug("Previous metrics tick still running, skipping")
            return []

        async with self._tick_lock:
            now = self._now()
            results: list[TierRunResult] = []
            for tier in (Tier.HOT, Tier.WARM, Tier.ACTIVE, Tier.COLD):
                if not self._is_due(tier, now):
                    continue
                self._last_run[tier] = now
                try:
                    results.append(await self.run_tier(tier, now))
                except Exception:
                    logger.exception("Metrics tier %s failed", tier.value)
            return results

    async def run_tier(self, tier: Tier, now: datetime) -> TierRunResult:
        cap = self._policies[tier].cap
        if tier is Tier.COLD:
            addresses = await self._cold_addresses(now, cap)
        else:
            addresses = await self._store.list_tier_addresses(tier=tier, now=now, limit=cap)

        if not addresses:
            return TierRunResult(tier=tier, attempted=0, refreshed=0, failed=0)

        outcomes = await asyncio.gather(
            *(self._refresher.refresh(address) for address in addresses),
            return_exceptions=True,
        )

        failed = 0
        for address, outcome in zip(addresses, outcomes, strict=True):
            if isinstance(outcome, Exception):
                failed += 1
                logger.warning("Metrics refresh failed for %s (%s): %s", address, tier.value, outcome)

        result = TierRunResult(
            tier=tier,
            attempted=len(addresses),
            refreshed=len(addresses) - failed,
            failed=failed,
        )
        logger.info(
            "Metrics tier %s: refreshed=%s failed=%s",
            tier.value,
            result.refreshed,
            result.failed,
        )
        return result

    async def _cold_addresses(self, now: datetime, cap: int) -> list[str]:
        selected = await self._store.list_unenriched_addresses(limit=cap)
        remaining = cap - len(selected)
        if remaining <= 0:
            return selected

        page = await self._store.list_tier_addresses(
            tier=Tier.COLD,
            now=now,
            limit=remaining,
            offset=self._cold_offset,
        )
        if page:
            self._cold_offset += len(page)
        else:
            self._cold_offset = 0

        seen = set(selected)
        selected.extend(a for a in page if a not in seen)
        return selected

    async def run(self) -> None:
        self._stop_event.clear()
        logger.info("Tiered metrics scheduler started (tick=%ss)", self._tick_interval)
        while not self._stop_event.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._tick_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Tiered metrics scheduler stopped")

    async def stop(self) -> None:
        self._stop_event.set()
