from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    DateTime,
    ForeignKeyConstraint,
    Index,
    Numeric,
    PrimaryKeyConstraint,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from launchpad_indexer.app.infrastructure.db.db_base import LEDGER_SCHEMA, BaseDB


class HoldersDB(BaseDB):
    """
    Token balances per holder. balance is always the value re-read on chain,
    never derived from event amounts.
    """

    __tablename__ = "holders"
    __table_args__ = (
        PrimaryKeyConstraint("token_address", "holder_address"),
        ForeignKeyConstraint(
            ["token_address"],
            [f"{LEDGER_SCHEMA}.tokens.address"],
        ),
        Index("ix_holders_holder", "holder_address"),
        {"schema": LEDGER_SCHEMA},
    )

    token_address: Mapped[str] = mapped_column(Text, nullable=False)
    holder_address: Mapped[str] = mapped_column(Text, nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(78, 0), nullable=False)

    first_acquired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    last_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
