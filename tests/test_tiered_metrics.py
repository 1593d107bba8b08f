"""Tests for the tiered metrics scheduler."""

import asyncio
from datetime import timedelta

import pytest
from fakes import addr, make_token, make_trade

from launchpad_indexer.app.application.services.tiered_metrics import (
    TieredMetricsScheduler,
    TierPolicy,
)
from launchpad_indexer.app.domain.models import Tier, TokenMetrics, TransactionType

ETH = 10**18
USER = addr(0xB1)


async def _token_traded(store, n: int, when):
    token = addr(0xA0 + n)
    await store.insert_token(make_token(token))
    if when is not None:
        await store.insert_transaction(
            make_trade(
                n,
                token=token,
                user=USER,
                type=TransactionType.BUY,
                amount_in=ETH,
                amount_out=ETH,
                timestamp=when,
            )
        )
    return token


def _enrich(store, token, clock) -> None:
    store.tokens[token].metrics = TokenMetrics(metrics_updated_at=clock())


class TestTierMembership:
    @pytest.mark.asyncio
    async def test_token_moves_through_tiers(self, store, clock) -> None:
        token = await _token_traded(store, 1, clock() - timedelta(minutes=5))

        async def tier_of(now):
            for tier in Tier:
                if token in await store.list_tier_addresses(tier=tier, now=now, limit=10):
                    return tier
            return None

        assert await tier_of(clock()) is Tier.HOT
        assert await tier_of(clock() + timedelta(minutes=10)) is Tier.WARM
        assert await tier_of(clock() + timedelta(hours=2)) is Tier.ACTIVE
        assert await tier_of(clock() + timedelta(hours=25)) is Tier.COLD


class TestTieredMetricsScheduler:
    @pytest.mark.asyncio
    async def test_first_tick_runs_every_tier(self, store, refresher, clock) -> None:
        hot = await _token_traded(store, 1, clock() - timedelta(minutes=1))
        warm = await _token_traded(store, 2, clock() - timedelta(minutes=30))
        active = await _token_traded(store, 3, clock() - timedelta(hours=3))
        cold = await _token_traded(store, 4, None)
        for token in (hot, warm, active, cold):
            _enrich(store, token, clock)
        scheduler = TieredMetricsScheduler(store=store, refresher=refresher, now=clock)

        results = await scheduler.tick()

        by_tier = {r.tier: r for r in results}
        assert set(by_tier) == {Tier.HOT, Tier.WARM, Tier.ACTIVE, Tier.COLD}
        assert all(r.attempted == 1 and r.failed == 0 for r in results)

    @pytest.mark.asyncio
    async def test_tiers_respect_cadence(self, store, refresher, clock) -> None:
        await _token_traded(store, 1, clock() - timedelta(minutes=1))
        scheduler = TieredMetricsScheduler(store=store, refresher=refresher, now=clock)
        await scheduler.tick()

        clock.advance(timedelta(seconds=30))
        results = await scheduler.tick()
        assert [r.tier for r in results] == [Tier.HOT]

        clock.advance(timedelta(minutes=5))
        results = await scheduler.tick()
        assert [r.tier for r in results] == [Tier.HOT, Tier.WARM]

    @pytest.mark.asyncio
    async def test_failures_are_counted_not_raised(self, store, refresher, gateway, clock) -> None:
        await _token_traded(store, 1, clock() - timedelta(minutes=1))
        await _token_traded(store, 2, clock() - timedelta(minutes=2))
        gateway.failing.add("get_current_price")
        scheduler = TieredMetricsScheduler(store=store, refresher=refresher, now=clock)

        result = await scheduler.run_tier(Tier.HOT, clock())

        assert result.attempted == 2
        assert result.failed == 2
        assert result.refreshed == 0

    @pytest.mark.asyncio
    async def test_cold_takes_unenriched_tokens_first(self, store, refresher, clock) -> None:
        enriched = [await _token_traded(store, n, None) for n in range(1, 4)]
        for token in enriched:
            _enrich(store, token, clock)
        never = await _token_traded(store, 9, None)
        policies = {tier: TierPolicy(cadence=timedelta(seconds=1), cap=2) for tier in Tier}
        scheduler = TieredMetricsScheduler(store=store, refresher=refresher, policies=policies, now=clock)

        result = await scheduler.run_tier(Tier.COLD, clock())

        assert result.attempted == 2
        assert store.tokens[never].metrics.metrics_updated_at == clock()

    @pytest.mark.asyncio
    async def test_cold_offset_rotates_and_wraps(self, store, refresher, clock) -> None:
        tokens = [await _token_traded(store, n, None) for n in range(1, 4)]
        for token in tokens:
            _enrich(store, token, clock)
        policies = {tier: TierPolicy(cadence=timedelta(seconds=1), cap=2) for tier in Tier}
        scheduler = TieredMetricsScheduler(store=store, refresher=refresher, policies=policies, now=clock)

        await scheduler.run_tier(Tier.COLD, clock())
        assert scheduler.cold_offset == 2
        await scheduler.run_tier(Tier.COLD, clock())
        assert scheduler.cold_offset == 3
        await scheduler.run_tier(Tier.COLD, clock())
        assert scheduler.cold_offset == 0

    @pytest.mark.asyncio
    async def test_overlapping_tick_is_skipped(self, store, refresher, clock) -> None:
        await _token_traded(store, 1, clock() - timedelta(minutes=1))
        release = asyncio.Event()
        original = refresher.refresh

        async def slow_refresh(address):
            await release.wait()
            return await original(address)

        refresher.refresh = slow_refresh
        scheduler = TieredMetricsScheduler(store=store, refresher=refresher, now=clock)

        first = asyncio.create_task(scheduler.tick())
        await asyncio.sleep(0)
        assert await scheduler.tick() == []

        release.set()
        results = await first
        assert results

    @pytest.mark.asyncio
    async def test_run_until_stopped(self, store, refresher, clock) -> None:
        scheduler = TieredMetricsScheduler(store=store, refresher=refresher, tick_interval=0.01, now=clock)

        task = asyncio.create_task(scheduler.run())
        await asyncio.sleep(0.05)
        await scheduler.stop()

        await asyncio.wait_for(task, timeout=1.0)
