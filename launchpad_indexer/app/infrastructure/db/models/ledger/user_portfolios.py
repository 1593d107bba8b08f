from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKeyConstraint,
    Numeric,
    PrimaryKeyConstraint,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from launchpad_indexer.app.infrastructure.db.db_base import LEDGER_SCHEMA, BaseDB


class UserPortfoliosDB(BaseDB):
    """
    Weighted-average cost basis position per (user, token).

    Recomputed in full from the transaction history on every write; the row
    is replaced, never incrementally adjusted.
    """

    __tablename__ = "user_portfolios"
    __table_args__ = (
        PrimaryKeyConstraint("user_address", "token_address"),
        ForeignKeyConstraint(
            ["token_address"],
            [f"{LEDGER_SCHEMA}.tokens.address"],
        ),
        {"schema": LEDGER_SCHEMA},
    )

    user_address: Mapped[str] = mapped_column(Text, nullable=False)
    token_address: Mapped[str] = mapped_column(Text, nullable=False)

    balance: Mapped[Decimal] = mapped_column(Numeric(78, 0), nullable=False)
    average_price: Mapped[float] = mapped_column(Float, nullable=False)
    total_invested: Mapped[float] = mapped_column(Float, nullable=False)
    realized_pnl: Mapped[float] = mapped_column(Float, nullable=False)
    unrealized_pnl: Mapped[float] = mapped_column(Float, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
