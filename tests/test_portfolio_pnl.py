"""Tests for weighted-average cost basis and portfolio rows."""

from datetime import timedelta

import pytest
from fakes import GENESIS, addr, make_trade

from launchpad_indexer.app.application.services.portfolio_pnl import compute_portfolio, replay_cost_basis
from launchpad_indexer.app.domain.models import TransactionType

ETH = 10**18
TOKEN = addr(0xA1)
USER = addr(0xB1)


def _buy(n: int, eth: float, tokens: float, minutes: int = 0):
    return make_trade(
        n,
        token=TOKEN,
        user=USER,
        type=TransactionType.BUY,
        amount_in=int(eth * ETH),
        amount_out=int(tokens * ETH),
        timestamp=GENESIS + timedelta(minutes=minutes),
    )


def _sell(n: int, tokens: float, eth: float, minutes: int = 0):
    return make_trade(
        n,
        token=TOKEN,
        user=USER,
        type=TransactionType.SELL,
        amount_in=int(tokens * ETH),
        amount_out=int(eth * ETH),
        timestamp=GENESIS + timedelta(minutes=minutes),
    )


class TestReplayCostBasis:
    def test_buy_then_partial_sell(self) -> None:
        """BUY 1 ETH -> 1000 tokens, SELL 500 tokens -> 0.6 ETH."""
        basis = replay_cost_basis([_buy(1, 1, 1000), _sell(2, 500, 0.6, minutes=1)])

        assert basis.realized_pnl == pytest.approx(0.1)
        assert basis.tokens_held == pytest.approx(500)
        assert basis.cost_basis == pytest.approx(0.5)
        assert basis.average_price == pytest.approx(0.001)
        assert basis.total_invested == pytest.approx(1.0)

    def test_two_buys_average(self) -> None:
        basis = replay_cost_basis([_buy(1, 1, 1000), _buy(2, 3, 1000, minutes=1)])
        assert basis.average_price == pytest.approx(0.002)
        assert basis.total_invested == pytest.approx(4.0)

    def test_full_exit_clears_dust(self) -> None:
        basis = replay_cost_basis([_buy(1, 1, 1000), _sell(2, 1000, 1.5, minutes=1)])
        assert basis.tokens_held == 0.0
        assert basis.cost_basis == pytest.approx(0.0, abs=1e-9)
        assert basis.average_price == 0.0
        assert basis.realized_pnl == pytest.approx(0.5)

    def test_sell_without_holdings_has_zero_basis(self) -> None:
        basis = replay_cost_basis([_sell(1, 10, 0.2)])
        assert basis.realized_pnl == pytest.approx(0.2)
        assert basis.tokens_held == 0.0
        assert basis.cost_basis == 0.0

    def test_create_adds_tokens_at_zero_cost(self) -> None:
        create = make_trade(
            1,
            token=TOKEN,
            user=USER,
            type=TransactionType.CREATE,
            amount_in=0,
            amount_out=100 * ETH,
            timestamp=GENESIS,
        )
        basis = replay_cost_basis([create])
        assert basis.tokens_held == pytest.approx(100)
        assert basis.cost_basis == 0.0
        assert basis.total_invested == 0.0


class TestComputePortfolio:
    def test_unrealized_uses_onchain_balance(self) -> None:
        history = [_buy(1, 1, 1000), _sell(2, 500, 0.6, minutes=1)]

        portfolio = compute_portfolio(
            user_address=USER,
            token_address=TOKEN,
            history=history,
            onchain_balance=400 * ETH,
            current_price=0.002,
            now=GENESIS,
        )

        assert portfolio.balance == 400 * ETH
        assert portfolio.unrealized_pnl == pytest.approx(0.002 * 400 - 0.5)
        assert portfolio.realized_pnl == pytest.approx(0.1)
        assert portfolio.average_price == pytest.approx(0.001)
        assert portfolio.updated_at == GENESIS

    def test_no_unrealized_after_full_exit(self) -> None:
        portfolio = compute_portfolio(
            user_address=USER,
            token_address=TOKEN,
            history=[_buy(1, 1, 1000), _sell(2, 1000, 1.2, minutes=1)],
            onchain_balance=5 * ETH,
            current_price=0.01,
        )
        assert portfolio.unrealized_pnl == 0.0
