from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

WEI_PER_ETH = 10**18
ZERO_ADDRESS = "0x" + "0" * 40


def normalize_address(value: str) -> str:
    """Lower-case, 0x-prefixed 20-byte hex. Raises ValueError otherwise."""
    v = value.strip().lower()
    if not v.startswith("0x"):
        v = "0x" + v
    if len(v) != 42:
        raise ValueError(f"Expected 20-byte address, got {value!r}")
    int(v[2:], 16)
    return v


def normalize_hash(value: str | bytes) -> str:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex()
    v = value.strip().lower()
    return v if v.startswith("0x") else "0x" + v


def finite_non_negative(value: float) -> float:
    if value is None or math.isnan(value) or math.isinf(value) or value < 0:
        return 0.0
    return float(value)


def finite(value: float) -> float:
    if value is None or math.isnan(value) or math.isinf(value):
        return 0.0
    return float(value)


class TransactionType(str, Enum):
    CREATE = "CREATE"
    BUY = "BUY"
    SELL = "SELL"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Tier(str, Enum):
    HOT = "HOT"
    WARM = "WARM"
    ACTIVE = "ACTIVE"
    COLD = "COLD"


HOT_WINDOW = timedelta(minutes=10)
WARM_WINDOW = timedelta(hours=1)
ACTIVE_WINDOW = timedelta(hours=24)


def classify_tier(last_trade_at: datetime | None, now: datetime) -> Tier:
    """Tier of a token from the timestamp of its last BUY/SELL."""
    if last_trade_at is None:
        return Tier.COLD
    age = now - last_trade_at
    if age <= HOT_WINDOW:
        return Tier.HOT
    if age <= WARM_WINDOW:
        return Tier.WARM
    if age <= ACTIVE_WINDOW:
        return Tier.ACTIVE
    return Tier.COLD


def tier_bounds(tier: Tier, now: datetime) -> tuple[datetime | None, datetime | None]:
    """
    (lower, upper) bounds on the last-trade timestamp for a tier: lower is
    inclusive, upper exclusive. COLD is everything older than ACTIVE plus
    tokens that never traded, so it only has an upper bound.
    """
    if tier is Tier.HOT:
        return now - HOT_WINDOW, None
    if tier is Tier.WARM:
        return now - WARM_WINDOW, now - HOT_WINDOW
    if tier is Tier.ACTIVE:
        return now - ACTIVE_WINDOW, now - WARM_WINDOW
    return None, now - ACTIVE_WINDOW


# -------------------------------------------------------------------------
# On-chain view results
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class MarketInfo:
    current_supply: int
    reserve_balance: int
    reserve_ratio: int
    trading_enabled: bool


@dataclass(frozen=True)
class TokenDetails:
    name: str
    symbol: str
    decimals: int
    total_supply: int


@dataclass(frozen=True)
class FactoryTokenInfo:
    creator: str
    total_supply: int
    reserve_ratio: int
    metadata_uri: str


# -------------------------------------------------------------------------
# Ledger rows
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenMetrics:
    """
    Derived market fields of a token.

    metrics_updated_at is None while the token has never been successfully
    enriched from the chain; the zeros are then placeholders, not observations.
    """

    current_price: float = 0.0
    market_cap: float = 0.0
    current_supply: int = 0
    reserve_balance: int = 0
    holder_count: int = 0
    volume_24h: float = 0.0
    price_change_24h: float = 0.0
    metrics_updated_at: datetime | None = None

    def sanitized(self) -> "TokenMetrics":
        return replace(
            self,
            current_price=finite_non_negative(self.current_price),
            market_cap=finite_non_negative(self.market_cap),
            current_supply=max(int(self.current_supply), 0),
            reserve_balance=max(int(self.reserve_balance), 0),
            holder_count=max(int(self.holder_count), 0),
            volume_24h=finite_non_negative(self.volume_24h),
            price_change_24h=finite(self.price_change_24h),
        )


@dataclass
class TokenRecord:
    address: str
    name: str
    symbol: str
    creator: str
    total_supply: int
    reserve_ratio: int
    metadata_uri: str = ""
    metadata: dict[str, Any] | None = None
    logo_url: str | None = None
    description: str | None = None
    social_links: dict[str, str] | None = None
    creation_block: int | None = None
    creation_tx_hash: str | None = None
    created_at: datetime | None = None
    trading_enabled: bool = False
    metrics: TokenMetrics = field(default_factory=TokenMetrics)

    @property
    def has_creation_info(self) -> bool:
        # Placeholder rows (trade seen before creation) have no origin yet.
        return self.creation_tx_hash is not None


@dataclass(frozen=True)
class TransactionRecord:
    hash: str
    user_address: str
    token_address: str
    type: TransactionType
    amount_in: int
    amount_out: int
    price: float
    block_number: int
    timestamp: datetime
    status: TransactionStatus = TransactionStatus.SUCCESS


@dataclass(frozen=True)
class HolderRecord:
    token_address: str
    holder_address: str
    balance: int
    first_acquired_at: datetime | None = None
    last_updated_at: datetime | None = None


@dataclass(frozen=True)
class PortfolioRecord:
    user_address: str
    token_address: str
    balance: int
    average_price: float
    total_invested: float
    realized_pnl: float
    unrealized_pnl: float
    updated_at: datetime | None = None


@dataclass(frozen=True)
class ContentCacheRecord:
    content_hash: str
    content_type: str
    data: dict[str, Any] | None
    url: str | None
    pinned: bool = True
    last_accessed_at: datetime | None = None


# -------------------------------------------------------------------------
# Job / status results
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class IndexerStatus:
    is_running: bool
    current_block: int
    last_processed_block: int


@dataclass(frozen=True)
class SyncResult:
    synced: int
    skipped: int
    errors: int


@dataclass(frozen=True)
class SyncStatus:
    factory_token_count: int
    db_token_count: int
    sync_needed: bool
