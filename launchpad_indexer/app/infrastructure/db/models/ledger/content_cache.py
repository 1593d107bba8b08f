from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    PrimaryKeyConstraint,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from launchpad_indexer.app.infrastructure.db.db_base import LEDGER_SCHEMA, BaseDB


class ContentCacheDB(BaseDB):
    """Durable cache of content-addressed documents (json) and image URLs."""

    __tablename__ = "content_cache"
    __table_args__ = (
        PrimaryKeyConstraint("content_hash"),
        {"schema": LEDGER_SCHEMA},
    )

    content_hash: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[str] = mapped_column(Text, nullable=False)  # json | image
    data: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))

    last_accessed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
