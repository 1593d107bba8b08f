"""Tests for derived market metrics."""

from datetime import timedelta

import pytest
from fakes import GENESIS, addr, make_token, make_trade

from launchpad_indexer.app.application.services.token_metrics import (
    compute_price_change_24h,
    compute_volume_24h,
    select_baseline_price,
)
from launchpad_indexer.app.domain.errors import ChainUnavailableError
from launchpad_indexer.app.domain.models import HolderRecord, MarketInfo, TransactionType

ETH = 10**18
TOKEN = addr(0xA1)
USER = addr(0xB1)
NOW = GENESIS + timedelta(days=3)


def _trade(n: int, hours_ago: float, price: float, type: TransactionType = TransactionType.BUY, eth: int = ETH):
    amount_in, amount_out = (eth, 1000 * ETH) if type is TransactionType.BUY else (1000 * ETH, eth)
    return make_trade(
        n,
        token=TOKEN,
        user=USER,
        type=type,
        amount_in=amount_in,
        amount_out=amount_out,
        timestamp=NOW - timedelta(hours=hours_ago),
        price=price,
    )


class TestBaselinePrice:
    def test_picks_trade_closest_to_24h_ago(self) -> None:
        trades = [_trade(1, 30, 0.001), _trade(2, 23, 0.002), _trade(3, 1, 0.003)]

        baseline = select_baseline_price(trades, NOW)

        assert baseline == 0.002
        assert compute_price_change_24h(0.0035, baseline) == pytest.approx(75.0)

    def test_no_trades_means_no_baseline(self) -> None:
        assert select_baseline_price([], NOW) is None
        assert compute_price_change_24h(0.5, None) == 0.0

    def test_zero_baseline_guard(self) -> None:
        assert compute_price_change_24h(0.5, 0.0) == 0.0

    def test_create_rows_are_ignored(self) -> None:
        create = _trade(1, 24, 0.0, type=TransactionType.CREATE)
        assert select_baseline_price([create, _trade(2, 2, 0.004)], NOW) == 0.004


class TestVolume:
    def test_sums_eth_side_inside_window(self) -> None:
        trades = [
            _trade(1, 2, 0.001, TransactionType.BUY, eth=2 * ETH),
            _trade(2, 1, 0.001, TransactionType.SELL, eth=ETH // 2),
            _trade(3, 25, 0.001, TransactionType.BUY, eth=10 * ETH),
        ]
        assert compute_volume_24h(trades, NOW) == pytest.approx(2.5)

    def test_empty_volume(self) -> None:
        assert compute_volume_24h([], NOW) == 0.0


class TestTokenMetricsRefresher:
    @pytest.mark.asyncio
    async def test_refresh_writes_metrics_and_invalidates_cache(self, gateway, store, cache, clock, refresher) -> None:
        clock.current = NOW
        await store.insert_token(make_token(TOKEN))
        gateway.prices[TOKEN] = 2 * 10**15  # 0.002 ETH per token
        gateway.markets[TOKEN] = MarketInfo(
            current_supply=1000 * ETH,
            reserve_balance=3 * ETH,
            reserve_ratio=500000,
            trading_enabled=True,
        )
        await store.upsert_holder(HolderRecord(token_address=TOKEN, holder_address=USER, balance=ETH))
        await store.upsert_holder(HolderRecord(token_address=TOKEN, holder_address=addr(0xB2), balance=0))
        for tx in (_trade(1, 23, 0.001, eth=ETH), _trade(2, 1, 0.0015, TransactionType.SELL, eth=ETH)):
            await store.insert_transaction(tx)
        cache.values[f"token:{TOKEN}:detail"] = {"stale": True}
        cache.values["market:overview"] = {"stale": True}

        metrics = await refresher.refresh(TOKEN)

        assert metrics.current_price == pytest.approx(0.002)
        assert metrics.market_cap == pytest.approx(2.0)
        assert metrics.holder_count == 1
        assert metrics.volume_24h == pytest.approx(2.0)
        assert metrics.price_change_24h == pytest.approx(100.0)
        assert metrics.metrics_updated_at == NOW
        assert store.tokens[TOKEN].metrics == metrics
        assert cache.values == {}

    @pytest.mark.asyncio
    async def test_refresh_propagates_chain_errors(self, gateway, store, refresher) -> None:
        await store.insert_token(make_token(TOKEN))
        gateway.failing.add("get_current_price")

        with pytest.raises(ChainUnavailableError):
            await refresher.refresh(TOKEN)
        assert store.tokens[TOKEN].metrics.metrics_updated_at is None

    @pytest.mark.asyncio
    async def test_initial_metrics_fall_back_to_unenriched(self, gateway, refresher) -> None:
        gateway.failing.add("get_market_info")

        metrics = await refresher.initial_metrics(TOKEN)

        assert metrics.metrics_updated_at is None
        assert metrics.current_price == 0.0

    @pytest.mark.asyncio
    async def test_initial_metrics_reads_price_and_supply(self, gateway, clock, refresher) -> None:
        gateway.prices[TOKEN] = 10**15
        gateway.markets[TOKEN] = MarketInfo(
            current_supply=500 * ETH,
            reserve_balance=ETH,
            reserve_ratio=1,
            trading_enabled=False,
        )

        metrics = await refresher.initial_metrics(TOKEN)

        assert metrics.current_price == pytest.approx(0.001)
        assert metrics.market_cap == pytest.approx(0.5)
        assert metrics.reserve_balance == ETH
        assert metrics.metrics_updated_at == clock()
