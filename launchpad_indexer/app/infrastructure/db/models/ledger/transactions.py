from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKeyConstraint,
    Index,
    Numeric,
    PrimaryKeyConstraint,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from launchpad_indexer.app.infrastructure.db.db_base import LEDGER_SCHEMA, BaseDB


class TransactionsDB(BaseDB):
    """
    Immutable trade history: CREATE (synthetic, one per token), BUY and SELL.

    Idempotency:
      - PK is the transaction hash; replays of the same event are no-ops.

    The indexer cursor is derived from MAX(block_number) of this table.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        PrimaryKeyConstraint("hash"),
        ForeignKeyConstraint(
            ["token_address"],
            [f"{LEDGER_SCHEMA}.tokens.address"],
        ),
        CheckConstraint("type IN ('CREATE', 'BUY', 'SELL')", name="type"),
        # Per-token timeline (metrics, tiers)
        Index("ix_transactions_token_time", "token_address", "timestamp"),
        # PnL history per (user, token)
        Index("ix_transactions_user_token_time", "user_address", "token_address", "timestamp"),
        # Cursor
        Index("ix_transactions_block_number", "block_number"),
        {"schema": LEDGER_SCHEMA},
    )

    hash: Mapped[str] = mapped_column(Text, nullable=False)
    user_address: Mapped[str] = mapped_column(Text, nullable=False)
    token_address: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)

    # Smallest units. BUY: in=wei, out=tokens. SELL: in=tokens, out=wei.
    amount_in: Mapped[Decimal] = mapped_column(Numeric(78, 0), nullable=False)
    amount_out: Mapped[Decimal] = mapped_column(Numeric(78, 0), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)

    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default="SUCCESS")
