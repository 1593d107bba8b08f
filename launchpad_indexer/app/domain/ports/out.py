from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import Any, Protocol, TypeVar

from launchpad_indexer.app.domain.events import (
    TokenCreated,
    TokenListed,
    TokensBought,
    TokensSold,
    Transfer,
)
from launchpad_indexer.app.domain.metadata import TokenMetadata
from launchpad_indexer.app.domain.models import (
    ContentCacheRecord,
    FactoryTokenInfo,
    HolderRecord,
    MarketInfo,
    PortfolioRecord,
    Tier,
    TokenDetails,
    TokenMetrics,
    TokenRecord,
    TransactionRecord,
)

T = TypeVar("T")


class ChainClient(Protocol):
    """
    Port for JSON-RPC reads against the chain.

    Implementations own rate limiting, retry with backoff and multi-endpoint
    fallback; callers only see the final result or a ChainError.
    """

    async def execute(self, fn: Callable[[Any], Awaitable[T]]) -> T:
        """Run fn(w3) through the resilience layer."""
        ...

    async def get_block_number(self) -> int: ...

    async def get_block_timestamp(self, block_number: int) -> datetime: ...

    async def get_logs(
        self,
        *,
        address: str,
        topic0: bytes,
        from_block: int,
        to_block: int,
        extra_topics: Sequence[bytes | None] = (),
    ) -> list[dict[str, Any]]: ...

    async def call(
        self,
        *,
        address: str,
        abi: list[dict[str, Any]],
        function: str,
        args: Sequence[Any] = (),
    ) -> Any: ...


class ContractGateway(Protocol):
    """
    Port for typed access to the launchpad contracts (factory, marketplace)
    and the ERC-20 tokens they create.

    Addresses going in and out are lower-case 0x hex.
    """

    async def get_token_created_events(self, *, from_block: int, to_block: int) -> list[TokenCreated]: ...

    async def get_token_listed_events(self, *, from_block: int, to_block: int) -> list[TokenListed]: ...

    async def get_tokens_bought_events(self, *, from_block: int, to_block: int) -> list[TokensBought]: ...

    async def get_tokens_sold_events(self, *, from_block: int, to_block: int) -> list[TokensSold]: ...

    async def get_transfer_events(self, *, token_address: str, from_block: int, to_block: int) -> list[Transfer]: ...

    async def get_all_tokens(self) -> list[str]: ...

    async def get_factory_token_info(self, token_address: str) -> FactoryTokenInfo: ...

    async def get_current_price(self, token_address: str) -> int: ...

    async def get_market_info(self, token_address: str) -> MarketInfo: ...

    async def calculate_purchase_return(self, token_address: str, eth_amount: int) -> int: ...

    async def calculate_sale_return(self, token_address: str, token_amount: int) -> int: ...

    async def get_token_details(self, token_address: str) -> TokenDetails: ...

    async def get_token_balance(self, token_address: str, holder_address: str) -> int: ...


class ContentFetcher(Protocol):
    """
    Low-level dependency of the metadata resolver: fetch a JSON document from
    the content-addressed store by hash.

    Returns (document, url it was served from) or None when every gateway
    failed. Never raises for network problems.
    """

    async def fetch_json(self, content_hash: str) -> tuple[Any, str] | None: ...

    def display_url(self, content_hash: str) -> str: ...


class MetadataResolver(Protocol):
    async def fetch_metadata(self, uri: str) -> TokenMetadata | None: ...

    async def resolve_image_url(self, uri: str | None) -> str | None: ...


class KeyValueCache(Protocol):
    """
    Performance-only cache. Implementations must degrade to misses/no-ops when
    the backend is unavailable; correctness never depends on it.
    """

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def delete_pattern(self, prefix: str) -> bool: ...


class LedgerStore(Protocol):
    """
    Port for the relational read model.

    The write methods are the upsert contracts: each is safe under concurrent
    callers because the uniqueness constraints decide the winner.
    """

    # --- tokens ---------------------------------------------------------
    async def get_token(self, address: str) -> TokenRecord | None: ...

    async def insert_token(self, token: TokenRecord) -> bool:
        """Insert unless the address exists. True when a row was written."""
        ...

    async def complete_token_creation(self, token: TokenRecord) -> bool:
        """Fill creation fields of a placeholder row (creation_tx_hash IS NULL)."""
        ...

    async def enable_trading(self, address: str) -> bool:
        """Flip trading_enabled false -> true. True when the flag changed."""
        ...

    async def set_trading_enabled(self, address: str, enabled: bool) -> None: ...

    async def update_token_metrics(self, address: str, metrics: TokenMetrics) -> None: ...

    async def update_token_metadata(
        self,
        address: str,
        *,
        metadata: dict[str, Any],
        logo_url: str | None,
        description: str | None,
        social_links: dict[str, str] | None,
    ) -> None: ...

    async def list_token_addresses(self) -> dict[str, datetime | None]:
        """address -> metrics_updated_at for every stored token."""
        ...

    async def list_tokens_missing_metadata(self, *, limit: int) -> list[TokenRecord]: ...

    async def count_tokens(self) -> int: ...

    async def list_tier_addresses(
        self,
        *,
        tier: Tier,
        now: datetime,
        limit: int,
        offset: int = 0,
    ) -> list[str]: ...

    async def list_unenriched_addresses(self, *, limit: int) -> list[str]: ...

    # --- transactions ---------------------------------------------------
    async def transaction_exists(self, tx_hash: str) -> bool: ...

    async def insert_transaction(self, tx: TransactionRecord) -> bool:
        """Insert unless the hash exists. True when a row was written."""
        ...

    async def get_user_transactions(self, *, user_address: str, token_address: str) -> list[TransactionRecord]:
        """Complete history for the pair, ordered by timestamp ascending."""
        ...

    async def get_trades_since(self, *, token_address: str, since: datetime) -> list[TransactionRecord]: ...

    async def max_block_number(self) -> int | None: ...

    # --- holders / portfolios -------------------------------------------
    async def upsert_holder(self, holder: HolderRecord) -> None: ...

    async def list_holder_addresses(self, token_address: str) -> list[str]: ...

    async def count_nonzero_holders(self, token_address: str) -> int: ...

    async def upsert_portfolio(self, portfolio: PortfolioRecord) -> None: ...

    # --- content cache --------------------------------------------------
    async def get_cached_content(self, content_hash: str) -> ContentCacheRecord | None: ...

    async def put_cached_content(self, record: ContentCacheRecord) -> None: ...

    async def touch_cached_content(self, content_hash: str, accessed_at: datetime) -> None: ...
