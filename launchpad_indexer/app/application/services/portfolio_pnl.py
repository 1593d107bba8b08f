from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from launchpad_indexer.app.domain.models import (
    WEI_PER_ETH,
    PortfolioRecord,
    TransactionRecord,
    TransactionType,
)

# Residual token dust below this is treated as a closed position.
_DUST = 1e-7


@dataclass(frozen=True)
class CostBasis:
    tokens_held: float
    cost_basis: float
    total_invested: float
    realized_pnl: float

    @property
    def average_price(self) -> float:
        return self.cost_basis / self.tokens_held if self.tokens_held > 0 else 0.0


def replay_cost_basis(history: Iterable[TransactionRecord]) -> CostBasis:
    """
    Weighted-average cost basis over a user's complete history for one token.

    history must be in timestamp order. Amounts are smallest units (1e18 per
    whole token / ETH). CREATE adds the minted supply at zero basis.
    """
    tokens_held = 0.0
    cost_basis = 0.0
    total_invested = 0.0
    realized_pnl = 0.0

    for tx in history:
        if tx.type is TransactionType.BUY:
            eth = tx.amount_in / WEI_PER_ETH
            tokens = tx.amount_out / WEI_PER_ETH
            cost_basis += eth
            tokens_held += tokens
            total_invested += eth

        elif tx.type is TransactionType.SELL:
            tokens = tx.amount_in / WEI_PER_ETH
            eth = tx.amount_out / WEI_PER_ETH
            avg = cost_basis / tokens_held if tokens_held > 0 else 0.0
            sold_basis = avg * tokens
            realized_pnl += eth - sold_basis
            tokens_held -= tokens
            cost_basis -= sold_basis
            if tokens_held < _DUST:
                tokens_held = 0.0
            if cost_basis < 0:
                cost_basis = 0.0

        elif tx.type is TransactionType.CREATE:
            tokens_held += tx.amount_out / WEI_PER_ETH

    return CostBasis(
        tokens_held=tokens_held,
        cost_basis=cost_basis,
        total_invested=total_invested,
        realized_pnl=realized_pnl,
    )


def compute_portfolio(
    *,
    user_address: str,
    token_address: str,
    history: Iterable[TransactionRecord],
    onchain_balance: int,
    current_price: float,
    now: datetime | None = None,
) -> PortfolioRecord:
    """
    Full portfolio row for (user, token).

    balance is the on-chain balance, not the replayed one. current_price is
    ETH per whole token. Unrealized PnL is only reported while the replayed
    history still holds tokens.
    """
    basis = replay_cost_basis(history)
    held_onchain = onchain_balance / WEI_PER_ETH

    if basis.tokens_held > 0:
        unrealized = current_price * held_onchain - basis.cost_basis
    else:
        unrealized = 0.0

    return PortfolioRecord(
        user_address=user_address,
        token_address=token_address,
        balance=onchain_balance,
        average_price=basis.average_price,
        total_invested=basis.total_invested,
        realized_pnl=basis.realized_pnl,
        unrealized_pnl=unrealized,
        updated_at=now,
    )
