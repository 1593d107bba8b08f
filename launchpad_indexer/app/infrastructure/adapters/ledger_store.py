from __future__ import annotations

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Final, Mapping

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from launchpad_indexer.app.domain.models import (
    ContentCacheRecord,
    HolderRecord,
    PortfolioRecord,
    Tier,
    TokenMetrics,
    TokenRecord,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
    tier_bounds,
)
from launchpad_indexer.app.domain.ports.out import LedgerStore

logger = logging.getLogger(__name__)

_TOKEN_COLUMNS: Final[str] = """
    address, name, symbol, creator, total_supply, reserve_ratio,
    metadata_uri, metadata_cache, logo_url, description, social_links,
    creation_block, creation_tx_hash, created_at, trading_enabled,
    current_price, market_cap, current_supply, reserve_balance, holder_count,
    volume_24h, price_change_24h, metrics_updated_at
"""

_TX_COLUMNS: Final[str] = """
    hash, user_address, token_address, type, amount_in, amount_out, price,
    block_number, timestamp, status
"""

# -------------------------------------------------------------------------
# tokens
# -------------------------------------------------------------------------

_SELECT_TOKEN_SQL = text(f"SELECT {_TOKEN_COLUMNS} FROM ledger.tokens WHERE address = :address")

_INSERT_TOKEN_SQL = text(
    """
    INSERT INTO ledger.tokens (
        address, name, symbol, creator, total_supply, reserve_ratio,
        metadata_uri, metadata_cache, logo_url, description, social_links,
        creation_block, creation_tx_hash, created_at, trading_enabled,
        current_price, market_cap, current_supply, reserve_balance, holder_count,
        volume_24h, price_change_24h, metrics_updated_at
    )
    VALUES (
        :address, :name, :symbol, :creator, :total_supply, :reserve_ratio,
        :metadata_uri, CAST(:metadata_cache AS JSONB), :logo_url, :description,
        CAST(:social_links AS JSONB),
        :creation_block, :creation_tx_hash, :created_at, :trading_enabled,
        :current_price, :market_cap, :current_supply, :reserve_balance, :holder_count,
        :volume_24h, :price_change_24h, :metrics_updated_at
    )
    ON CONFLICT (address) DO NOTHING
    RETURNING address
    """
)

# Only placeholder rows (no origin yet) are completed; market fields and the
# trading flag are left to their own writers.
_COMPLETE_TOKEN_SQL = text(
    """
    UPDATE ledger.tokens SET
        name = :name,
        symbol = :symbol,
        creator = :creator,
        total_supply = :total_supply,
        reserve_ratio = :reserve_ratio,
        metadata_uri = :metadata_uri,
        metadata_cache = COALESCE(CAST(:metadata_cache AS JSONB), metadata_cache),
        logo_url = COALESCE(:logo_url, logo_url),
        description = COALESCE(:description, description),
        social_links = COALESCE(CAST(:social_links AS JSONB), social_links),
        creation_block = :creation_block,
        creation_tx_hash = :creation_tx_hash,
        created_at = :created_at,
        updated_at = now()
    WHERE address = :address
      AND creation_tx_hash IS NULL
    RETURNING address
    """
)

_ENABLE_TRADING_SQL = text(
    """
    UPDATE ledger.tokens
    SET trading_enabled = true, updated_at = now()
    WHERE address = :address
      AND trading_enabled = false
    RETURNING address
    """
)

_SET_TRADING_SQL = text(
    """
    UPDATE ledger.tokens
    SET trading_enabled = :enabled, updated_at = now()
    WHERE address = :address
    """
)

_UPDATE_METRICS_SQL = text(
    """
    UPDATE ledger.tokens SET
        current_price = :current_price,
        market_cap = :market_cap,
        current_supply = :current_supply,
        reserve_balance = :reserve_balance,
        holder_count = :holder_count,
        volume_24h = :volume_24h,
        price_change_24h = :price_change_24h,
        metrics_updated_at = :metrics_updated_at,
        updated_at = now()
    WHERE address = :address
    """
)

_UPDATE_METADATA_SQL = text(
    """
    UPDATE ledger.tokens SET
        metadata_cache = CAST(:metadata_cache AS JSONB),
        logo_url = :logo_url,
        description = :description,
        social_links = CAST(:social_links AS JSONB),
        updated_at = now()
    WHERE address = :address
    """
)

_LIST_TOKEN_ADDRESSES_SQL = text("SELECT address, metrics_updated_at FROM ledger.tokens")

_LIST_MISSING_METADATA_SQL = text(
    f"""
    SELECT {_TOKEN_COLUMNS}
    FROM ledger.tokens
    WHERE metadata_uri <> ''
      AND metadata_cache IS NULL
    ORDER BY created_at DESC NULLS LAST, inserted_at DESC
    LIMIT :limit
    """
)

_COUNT_TOKENS_SQL = text("SELECT COUNT(*) FROM ledger.tokens")

_LIST_UNENRICHED_SQL = text(
    """
    SELECT address
    FROM ledger.tokens
    WHERE metrics_updated_at IS NULL
    ORDER BY inserted_at, address
    LIMIT :limit
    """
)

# Tier membership by last BUY/SELL. Bounds: lower inclusive, upper exclusive;
# NULL bound = unbounded on that side.
_LIST_TRADED_TIER_SQL = text(
    """
    SELECT token_address
    FROM (
        SELECT token_address, MAX(timestamp) AS last_trade_at
        FROM ledger.transactions
        WHERE type IN ('BUY', 'SELL')
        GROUP BY token_address
    ) AS lt
    WHERE (CAST(:lower AS TIMESTAMPTZ) IS NULL OR lt.last_trade_at >= :lower)
      AND (CAST(:upper AS TIMESTAMPTZ) IS NULL OR lt.last_trade_at < :upper)
    ORDER BY lt.last_trade_at DESC, token_address
    LIMIT :limit OFFSET :offset
    """
)

_LIST_COLD_TIER_SQL = text(
    """
    SELECT t.address
    FROM ledger.tokens AS t
    LEFT JOIN (
        SELECT token_address, MAX(timestamp) AS last_trade_at
        FROM ledger.transactions
        WHERE type IN ('BUY', 'SELL')
        GROUP BY token_address
    ) AS lt
      ON lt.token_address = t.address
    WHERE lt.last_trade_at IS NULL
       OR lt.last_trade_at < :upper
    ORDER BY t.address
    LIMIT :limit OFFSET :offset
    """
)

# -------------------------------------------------------------------------
# transactions
# -------------------------------------------------------------------------

_TX_EXISTS_SQL = text("SELECT 1 FROM ledger.transactions WHERE hash = :hash")

_INSERT_TX_SQL = text(
    """
    INSERT INTO ledger.transactions (
        hash, user_address, token_address, type, amount_in, amount_out, price,
        block_number, timestamp, status
    )
    VALUES (
        :hash, :user_address, :token_address, :type, :amount_in, :amount_out, :price,
        :block_number, :timestamp, :status
    )
    ON CONFLICT (hash) DO NOTHING
    RETURNING hash
    """
)

_USER_HISTORY_SQL = text(
    f"""
    SELECT {_TX_COLUMNS}
    FROM ledger.transactions
    WHERE user_address = :user_address
      AND token_address = :token_address
    ORDER BY timestamp, block_number, hash
    """
)

_TRADES_SINCE_SQL = text(
    f"""
    SELECT {_TX_COLUMNS}
    FROM ledger.transactions
    WHERE token_address = :token_address
      AND type IN ('BUY', 'SELL')
      AND timestamp >= :since
    ORDER BY timestamp, block_number, hash
    """
)

_MAX_BLOCK_SQL = text("SELECT MAX(block_number) FROM ledger.transactions")

# -------------------------------------------------------------------------
# holders / portfolios
# -------------------------------------------------------------------------

_UPSERT_HOLDER_SQL = text(
    """
    INSERT INTO ledger.holders (
        token_address, holder_address, balance, first_acquired_at, last_updated_at
    )
    VALUES (
        :token_address, :holder_address, :balance,
        COALESCE(:first_acquired_at, now()), COALESCE(:last_updated_at, now())
    )
    ON CONFLICT (token_address, holder_address) DO UPDATE SET
        balance = EXCLUDED.balance,
        last_updated_at = EXCLUDED.last_updated_at
    """
)

_LIST_HOLDERS_SQL = text("SELECT holder_address FROM ledger.holders WHERE token_address = :token_address")

_COUNT_HOLDERS_SQL = text(
    "SELECT COUNT(*) FROM ledger.holders WHERE token_address = :token_address AND balance > 0"
)

_UPSERT_PORTFOLIO_SQL = text(
    """
    INSERT INTO ledger.user_portfolios (
        user_address, token_address, balance, average_price, total_invested,
        realized_pnl, unrealized_pnl, updated_at
    )
    VALUES (
        :user_address, :token_address, :balance, :average_price, :total_invested,
        :realized_pnl, :unrealized_pnl, COALESCE(:updated_at, now())
    )
    ON CONFLICT (user_address, token_address) DO UPDATE SET
        balance = EXCLUDED.balance,
        average_price = EXCLUDED.average_price,
        total_invested = EXCLUDED.total_invested,
        realized_pnl = EXCLUDED.realized_pnl,
        unrealized_pnl = EXCLUDED.unrealized_pnl,
        updated_at = EXCLUDED.updated_at
    """
)

# -------------------------------------------------------------------------
# content cache
# -------------------------------------------------------------------------

_SELECT_CONTENT_SQL = text(
    """
    SELECT content_hash, content_type, data, url, pinned, last_accessed_at
    FROM ledger.content_cache
    WHERE content_hash = :content_hash
    """
)

_UPSERT_CONTENT_SQL = text(
    """
    INSERT INTO ledger.content_cache (
        content_hash, content_type, data, url, pinned, last_accessed_at
    )
    VALUES (
        :content_hash, :content_type, CAST(:data AS JSONB), :url, :pinned,
        COALESCE(:last_accessed_at, now())
    )
    ON CONFLICT (content_hash) DO UPDATE SET
        data = COALESCE(EXCLUDED.data, ledger.content_cache.data),
        url = EXCLUDED.url,
        last_accessed_at = EXCLUDED.last_accessed_at
    """
)

_TOUCH_CONTENT_SQL = text(
    "UPDATE ledger.content_cache SET last_accessed_at = :accessed_at WHERE content_hash = :content_hash"
)


# -------------------------------------------------------------------------
# value conversion
# -------------------------------------------------------------------------


def _num(value: int) -> Decimal:
    return Decimal(int(value))


def _json_param(value: Any) -> str | None:
    return None if value is None else json.dumps(value)


def _json_value(value: Any) -> Any:
    # Untyped text() results come back as the raw JSON string under asyncpg.
    if isinstance(value, str):
        return json.loads(value)
    return value


def _token_from_row(r: Mapping[str, Any]) -> TokenRecord:
    return TokenRecord(
        address=r["address"],
        name=r["name"],
        symbol=r["symbol"],
        creator=r["creator"],
        total_supply=int(r["total_supply"]),
        reserve_ratio=int(r["reserve_ratio"]),
        metadata_uri=r["metadata_uri"],
        metadata=_json_value(r["metadata_cache"]),
        logo_url=r["logo_url"],
        description=r["description"],
        social_links=_json_value(r["social_links"]),
        creation_block=r["creation_block"],
        creation_tx_hash=r["creation_tx_hash"],
        created_at=r["created_at"],
        trading_enabled=bool(r["trading_enabled"]),
        metrics=TokenMetrics(
            current_price=float(r["current_price"]),
            market_cap=float(r["market_cap"]),
            current_supply=int(r["current_supply"]),
            reserve_balance=int(r["reserve_balance"]),
            holder_count=int(r["holder_count"]),
            volume_24h=float(r["volume_24h"]),
            price_change_24h=float(r["price_change_24h"]),
            metrics_updated_at=r["metrics_updated_at"],
        ),
    )


def _token_params(token: TokenRecord) -> dict[str, Any]:
    m = token.metrics.sanitized()
    return {
        "address": token.address,
        "name": token.name,
        "symbol": token.symbol,
        "creator": token.creator,
        "total_supply": _num(token.total_supply),
        "reserve_ratio": int(token.reserve_ratio),
        "metadata_uri": token.metadata_uri or "",
        "metadata_cache": _json_param(token.metadata),
        "logo_url": token.logo_url,
        "description": token.description,
        "social_links": _json_param(token.social_links),
        "creation_block": token.creation_block,
        "creation_tx_hash": token.creation_tx_hash,
        "created_at": token.created_at,
        "trading_enabled": token.trading_enabled,
        "current_price": m.current_price,
        "market_cap": m.market_cap,
        "current_supply": _num(m.current_supply),
        "reserve_balance": _num(m.reserve_balance),
        "holder_count": m.holder_count,
        "volume_24h": m.volume_24h,
        "price_change_24h": m.price_change_24h,
        "metrics_updated_at": m.metrics_updated_at,
    }


def _tx_from_row(r: Mapping[str, Any]) -> TransactionRecord:
    return TransactionRecord(
        hash=r["hash"],
        user_address=r["user_address"],
        token_address=r["token_address"],
        type=TransactionType(r["type"]),
        amount_in=int(r["amount_in"]),
        amount_out=int(r["amount_out"]),
        price=float(r["price"]),
        block_number=int(r["block_number"]),
        timestamp=r["timestamp"],
        status=TransactionStatus(r["status"]),
    )


class SqlAlchemyLedgerStore(LedgerStore):
    """
    PostgreSQL/SQLAlchemy implementation of LedgerStore over the ledger schema.

    Each method runs in its own short transaction on the shared AsyncEngine.
    Concurrent writers are resolved by the primary keys through
    INSERT ... ON CONFLICT; the loser's write is a no-op in the database.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    # ------------------------------------------------------------------
    # tokens
    # ------------------------------------------------------------------

    async def get_token(self, address: str) -> TokenRecord | None:
        async with self._engine.connect() as conn:
            result = await conn.execute(_SELECT_TOKEN_SQL, {"address": address})
            row = result.mappings().one_or_none()
        return None if row is None else _token_from_row(row)

    async def insert_token(self, token: TokenRecord) -> bool:
        async with self._engine.begin() as conn:
            result = await conn.execute(_INSERT_TOKEN_SQL, _token_params(token))
            inserted = result.scalar_one_or_none() is not None
        if not inserted:
            logger.debug("Token %s already exists, insert skipped", token.address)
        return inserted

    async def complete_token_creation(self, token: TokenRecord) -> bool:
        params = _token_params(token)
        async with self._engine.begin() as conn:
            result = await conn.execute(
                _COMPLETE_TOKEN_SQL,
                {
                    k: params[k]
                    for k in (
                        "address",
                        "name",
                        "symbol",
                        "creator",
                        "total_supply",
                        "reserve_ratio",
                        "metadata_uri",
                        "metadata_cache",
                        "logo_url",
                        "description",
                        "social_links",
                        "creation_block",
                        "creation_tx_hash",
                        "created_at",
                    )
                },
            )
            return result.scalar_one_or_none() is not None

    async def enable_trading(self, address: str) -> bool:
        async with self._engine.begin() as conn:
            result = await conn.execute(_ENABLE_TRADING_SQL, {"address": address})
            return result.scalar_one_or_none() is not None

    async def set_trading_enabled(self, address: str, enabled: bool) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(_SET_TRADING_SQL, {"address": address, "enabled": enabled})

    async def update_token_metrics(self, address: str, metrics: TokenMetrics) -> None:
        m = metrics.sanitized()
        async with self._engine.begin() as conn:
            await conn.execute(
                _UPDATE_METRICS_SQL,
                {
                    "address": address,
                    "current_price": m.current_price,
                    "market_cap": m.market_cap,
                    "current_supply": _num(m.current_supply),
                    "reserve_balance": _num(m.reserve_balance),
                    "holder_count": m.holder_count,
                    "volume_24h": m.volume_24h,
                    "price_change_24h": m.price_change_24h,
                    "metrics_updated_at": m.metrics_updated_at,
                },
            )

    async def update_token_metadata(
        self,
        address: str,
        *,
        metadata: dict[str, Any],
        logo_url: str | None,
        description: str | None,
        social_links: dict[str, str] | None,
    ) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                _UPDATE_METADATA_SQL,
                {
                    "address": address,
                    "metadata_cache": _json_param(metadata),
                    "logo_url": logo_url,
                    "description": description,
                    "social_links": _json_param(social_links),
                },
            )

    async def list_token_addresses(self) -> dict[str, datetime | None]:
        async with self._engine.connect() as conn:
            result = await conn.execute(_LIST_TOKEN_ADDRESSES_SQL)
            return {r["address"]: r["metrics_updated_at"] for r in result.mappings().all()}

    async def list_tokens_missing_metadata(self, *, limit: int) -> list[TokenRecord]:
        async with self._engine.connect() as conn:
            result = await conn.execute(_LIST_MISSING_METADATA_SQL, {"limit": limit})
            return [_token_from_row(r) for r in result.mappings().all()]

    async def count_tokens(self) -> int:
        async with self._engine.connect() as conn:
            result = await conn.execute(_COUNT_TOKENS_SQL)
            return int(result.scalar_one())

    async def list_tier_addresses(
        self,
        *,
        tier: Tier,
        now: datetime,
        limit: int,
        offset: int = 0,
    ) -> list[str]:
        lower, upper = tier_bounds(tier, now)
        async with self._engine.connect() as conn:
            if tier is Tier.COLD:
                result = await conn.execute(
                    _LIST_COLD_TIER_SQL,
                    {"upper": upper, "limit": limit, "offset": offset},
                )
            else:
                result = await conn.execute(
                    _LIST_TRADED_TIER_SQL,
                    {"lower": lower, "upper": upper, "limit": limit, "offset": offset},
                )
            return list(result.scalars().all())

    async def list_unenriched_addresses(self, *, limit: int) -> list[str]:
        async with self._engine.connect() as conn:
            result = await conn.execute(_LIST_UNENRICHED_SQL, {"limit": limit})
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # transactions
    # ------------------------------------------------------------------

    async def transaction_exists(self, tx_hash: str) -> bool:
        async with self._engine.connect() as conn:
            result = await conn.execute(_TX_EXISTS_SQL, {"hash": tx_hash})
            return result.scalar_one_or_none() is not None

    async def insert_transaction(self, tx: TransactionRecord) -> bool:
        async with self._engine.begin() as conn:
            result = await conn.execute(
                _INSERT_TX_SQL,
                {
                    "hash": tx.hash,
                    "user_address": tx.user_address,
                    "token_address": tx.token_address,
                    "type": tx.type.value,
                    "amount_in": _num(tx.amount_in),
                    "amount_out": _num(tx.amount_out),
                    "price": tx.price,
                    "block_number": tx.block_number,
                    "timestamp": tx.timestamp,
                    "status": tx.status.value,
                },
            )
            return result.scalar_one_or_none() is not None

    async def get_user_transactions(self, *, user_address: str, token_address: str) -> list[TransactionRecord]:
        async with self._engine.connect() as conn:
            result = await conn.execute(
                _USER_HISTORY_SQL,
                {"user_address": user_address, "token_address": token_address},
            )
            return [_tx_from_row(r) for r in result.mappings().all()]

    async def get_trades_since(self, *, token_address: str, since: datetime) -> list[TransactionRecord]:
        async with self._engine.connect() as conn:
            result = await conn.execute(
                _TRADES_SINCE_SQL,
                {"token_address": token_address, "since": since},
            )
            return [_tx_from_row(r) for r in result.mappings().all()]

    async def max_block_number(self) -> int | None:
        async with self._engine.connect() as conn:
            result = await conn.execute(_MAX_BLOCK_SQL)
            value = result.scalar_one_or_none()
        return None if value is None else int(value)

    # ------------------------------------------------------------------
    # holders / portfolios
    # ------------------------------------------------------------------

    async def upsert_holder(self, holder: HolderRecord) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                _UPSERT_HOLDER_SQL,
                {
                    "token_address": holder.token_address,
                    "holder_address": holder.holder_address,
                    "balance": _num(holder.balance),
                    "first_acquired_at": holder.first_acquired_at,
                    "last_updated_at": holder.last_updated_at,
                },
            )

    async def list_holder_addresses(self, token_address: str) -> list[str]:
        async with self._engine.connect() as conn:
            result = await conn.execute(_LIST_HOLDERS_SQL, {"token_address": token_address})
            return list(result.scalars().all())

    async def count_nonzero_holders(self, token_address: str) -> int:
        async with self._engine.connect() as conn:
            result = await conn.execute(_COUNT_HOLDERS_SQL, {"token_address": token_address})
            return int(result.scalar_one())

    async def upsert_portfolio(self, portfolio: PortfolioRecord) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                _UPSERT_PORTFOLIO_SQL,
                {
                    "user_address": portfolio.user_address,
                    "token_address": portfolio.token_address,
                    "balance": _num(portfolio.balance),
                    "average_price": portfolio.average_price,
                    "total_invested": portfolio.total_invested,
                    "realized_pnl": portfolio.realized_pnl,
                    "unrealized_pnl": portfolio.unrealized_pnl,
                    "updated_at": portfolio.updated_at,
                },
            )

    # ------------------------------------------------------------------
    # content cache
    # ------------------------------------------------------------------

    async def get_cached_content(self, content_hash: str) -> ContentCacheRecord | None:
        async with self._engine.connect() as conn:
            result = await conn.execute(_SELECT_CONTENT_SQL, {"content_hash": content_hash})
            row = result.mappings().one_or_none()
        if row is None:
            return None
        return ContentCacheRecord(
            content_hash=row["content_hash"],
            content_type=row["content_type"],
            data=_json_value(row["data"]),
            url=row["url"],
            pinned=bool(row["pinned"]),
            last_accessed_at=row["last_accessed_at"],
        )

    async def put_cached_content(self, record: ContentCacheRecord) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                _UPSERT_CONTENT_SQL,
                {
                    "content_hash": record.content_hash,
                    "content_type": record.content_type,
                    "data": _json_param(record.data),
                    "url": record.url,
                    "pinned": record.pinned,
                    "last_accessed_at": record.last_accessed_at,
                },
            )

    async def touch_cached_content(self, content_hash: str, accessed_at: datetime) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                _TOUCH_CONTENT_SQL,
                {"content_hash": content_hash, "accessed_at": accessed_at},
            )
