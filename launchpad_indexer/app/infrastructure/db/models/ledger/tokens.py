from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    Numeric,
    PrimaryKeyConstraint,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from launchpad_indexer.app.infrastructure.db.db_base import LEDGER_SCHEMA, BaseDB


class TokensDB(BaseDB):
    """
    Launchpad token registry.

    One row = one token created by the factory. Creation fields are NULL for
    placeholder rows written when a trade was seen before its TokenCreated
    event, and for rows created by bootstrap sync.

    metrics_updated_at IS NULL marks a token whose market fields were never
    successfully read from chain (the zeros are placeholders).
    """

    __tablename__ = "tokens"
    __table_args__ = (
        PrimaryKeyConstraint("address"),
        Index("ix_tokens_creator", "creator"),
        Index("ix_tokens_metrics_updated_at", "metrics_updated_at"),
        Index("ix_tokens_created_at", "created_at"),
        {"schema": LEDGER_SCHEMA},
    )

    address: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    symbol: Mapped[str] = mapped_column(Text, nullable=False)
    creator: Mapped[str] = mapped_column(Text, nullable=False)
    total_supply: Mapped[Decimal] = mapped_column(Numeric(78, 0), nullable=False)
    reserve_ratio: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # -------------------------------------------------------------------------
    # Off-chain metadata (sanitized)
    # -------------------------------------------------------------------------
    metadata_uri: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    metadata_cache: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    logo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    social_links: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)

    # -------------------------------------------------------------------------
    # Origin (NULL for placeholder / bootstrapped rows)
    # -------------------------------------------------------------------------
    creation_block: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    creation_tx_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    trading_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))

    # -------------------------------------------------------------------------
    # Market metrics
    # -------------------------------------------------------------------------
    current_price: Mapped[float] = mapped_column(Float, nullable=False, server_default=text("0"))
    market_cap: Mapped[float] = mapped_column(Float, nullable=False, server_default=text("0"))
    current_supply: Mapped[Decimal] = mapped_column(Numeric(78, 0), nullable=False, server_default=text("0"))
    reserve_balance: Mapped[Decimal] = mapped_column(Numeric(78, 0), nullable=False, server_default=text("0"))
    holder_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    volume_24h: Mapped[float] = mapped_column(Float, nullable=False, server_default=text("0"))
    price_change_24h: Mapped[float] = mapped_column(Float, nullable=False, server_default=text("0"))
    metrics_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    inserted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
