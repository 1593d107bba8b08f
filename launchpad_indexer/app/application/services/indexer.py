from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from enum import Enum

from launchpad_indexer.app.application.services.block_range import BlockRange, next_window
from launchpad_indexer.app.application.services.portfolio_pnl import compute_portfolio
from launchpad_indexer.app.application.services.token_metrics import TokenMetricsRefresher
from launchpad_indexer.app.domain.errors import ChainUnavailableError
from launchpad_indexer.app.domain.events import (
    LaunchpadEvent,
    TokenCreated,
    TokenListed,
    TokensBought,
    TokensSold,
    trade_price,
)
from launchpad_indexer.app.domain.metadata import TokenMetadata
from launchpad_indexer.app.domain.models import (
    ZERO_ADDRESS,
    HolderRecord,
    IndexerStatus,
    TokenMetrics,
    TokenRecord,
    TransactionRecord,
    TransactionType,
)
from launchpad_indexer.app.domain.ports.out import (
    ChainClient,
    ContractGateway,
    LedgerStore,
    MetadataResolver,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "Unknown"
PLACEHOLDER_SYMBOL = "UNKNOWN"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IndexerState(str, Enum):
    STOPPED = "STOPPED"
    RUNNING = "RUNNING"


def _event_position(event: LaunchpadEvent) -> tuple[int, int]:
    return event.block_number, event.log_index


class LaunchpadIndexer:
    """
    Block-cursor indexer for the launchpad contracts.

    The cursor is implicit: on start it is MAX(transactions.block_number) + 1
    (or the configured start block), so a restart re-processes at most the
    last partially written window. Every write is idempotent, which makes
    that replay harmless.

    Within one window the four event queries run concurrently, then the
    creation, listing and trade groups are handled concurrently with events
    inside each group in chain order. A failing event is logged and skipped;
    a failing fetch aborts the window, which is retried after error_backoff.
    """

    def __init__(
        self,
        *,
        chain: ChainClient,
        gateway: ContractGateway,
        store: LedgerStore,
        resolver: MetadataResolver,
        metrics: TokenMetricsRefresher,
        confirmations: int = 3,
        batch_size: int = 50,
        poll_interval: float = 5.0,
        error_backoff: float = 5.0,
        start_block: int = 0,
        start_from_current: bool = False,
        enabled: bool = True,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._chain = chain
        self._gateway = gateway
        self._store = store
        self._resolver = resolver
        self._metrics = metrics
        self._confirmations = confirmations
        self._batch_size = batch_size
        self._poll_interval = poll_interval
        self._error_backoff = error_backoff
        self._start_block = start_block
        self._start_from_current = start_from_current
        self._enabled = enabled
        self._now = now

        self._state = IndexerState.STOPPED
        self._stop_event = asyncio.Event()
        self._cursor: int | None = None
        self._last_processed_block: int | None = None
        self._block_times: dict[int, datetime] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> IndexerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is IndexerState.RUNNING

    def get_status(self) -> IndexerStatus:
        return IndexerStatus(
            is_running=self.is_running,
            current_block=self._cursor or 0,
            last_processed_block=self._last_processed_block or 0,
        )

    async def start(self) -> None:
        """Run until stop() is called. Returns immediately when disabled."""
        if not self._enabled:
            logger.info("Indexer disabled by configuration, not starting")
            return
        if self.is_running:
            logger.warning("Indexer already running")
            return

        self._stop_event.clear()
        self._state = IndexerState.RUNNING
        logger.info("Indexer started")

        try:
            while not self._stop_event.is_set():
                try:
                    did_work = await self.process_next_batch()
                except Exception:
                    logger.exception(
                        "Indexer batch failed at block %s, retrying in %.1fs",
                        self._cursor,
                        self._error_backoff,
                    )
                    await self._wait(self._error_backoff)
                    continue

                if not did_work:
                    await self._wait(self._poll_interval)
        finally:
            self._state = IndexerState.STOPPED
            logger.info("Indexer stopped at block %s", self._cursor)

    async def stop(self) -> None:
        # Cooperative: an in-flight window always completes.
        self._stop_event.set()

    async def _wait(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _initial_cursor(self) -> int:
        if self._start_from_current:
            head = await self._chain.get_block_number()
            logger.info("Starting from current head %s, history is skipped", head)
            return head

        max_block = await self._store.max_block_number()
        if max_block is None:
            logger.info("Ledger empty, starting from block %s", self._start_block)
            return self._start_block

        cursor = max(max_block + 1, self._start_block)
        logger.info("Resuming from block %s", cursor)
        return cursor

    # ------------------------------------------------------------------
    # One window
    # ------------------------------------------------------------------

    async def process_next_batch(self) -> bool:
        """
        Index the next confirmed window. Returns False when the cursor is
        already past head - confirmations (nothing to do yet).
        """
        if self._cursor is None:
            self._cursor = await self._initial_cursor()

        head = await self._chain.get_block_number()
        window = next_window(
            cursor=self._cursor,
            head=head,
            confirmations=self._confirmations,
            batch_size=self._batch_size,
        )
        if window is None:
            return False

        await self.process_window(window)

        self._cursor = window.to_block + 1
        self._last_processed_block = window.to_block
        return True

    async def process_window(self, window: BlockRange) -> None:
        window.validate()
        self._block_times = {}

        created, listed, bought, sold = await asyncio.gather(
            self._gateway.get_token_created_events(from_block=window.from_block, to_block=window.to_block),
            self._gateway.get_token_listed_events(from_block=window.from_block, to_block=window.to_block),
            self._gateway.get_tokens_bought_events(from_block=window.from_block, to_block=window.to_block),
            self._gateway.get_tokens_sold_events(from_block=window.from_block, to_block=window.to_block),
        )
        trades: list[LaunchpadEvent] = [*bought, *sold]

        outcomes = await asyncio.gather(
            self._handle_group(created),
            self._handle_group(listed),
            self._handle_group(trades),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        logger.info(
            "Indexed blocks %s-%s: created=%s listed=%s trades=%s",
            window.from_block,
            window.to_block,
            len(created),
            len(listed),
            len(trades),
        )

    async def _handle_group(self, events: Sequence[LaunchpadEvent]) -> None:
        for event in sorted(events, key=_event_position):
            try:
                await self.handle_event(event)
            except ChainUnavailableError:
                # Transient: the whole window is retried from the same cursor.
                logger.warning(
                    "Chain unavailable while handling %s tx=%s, abandoning window",
                    type(event).__name__,
                    event.transaction_hash,
                )
                raise
            except Exception:
                logger.error(
                    "Failed to handle %s tx=%s block=%s token=%s",
                    type(event).__name__,
                    event.transaction_hash,
                    event.block_number,
                    event.token_address,
                    exc_info=True,
                )

    async def handle_event(self, event: LaunchpadEvent) -> None:
        match event:
            case TokenCreated():
                await self._on_token_created(event)
            case TokenListed():
                await self._on_token_listed(event)
            case TokensBought() | TokensSold():
                await self._on_trade(event)
            case _:
                logger.warning("Unhandled event type %s", type(event).__name__)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _on_token_created(self, event: TokenCreated) -> None:
        existing = await self._store.get_token(event.token_address)

        if existing is not None and existing.has_creation_info:
            logger.debug("Token %s already indexed, skipping creation", event.token_address)
        else:
            token = await self._build_token(
                address=event.token_address,
                name=event.name,
                symbol=event.symbol,
                creator=event.creator,
                total_supply=event.total_supply,
                reserve_ratio=event.reserve_ratio,
                metadata_uri=event.metadata_uri,
                trading_enabled=False,
                creation_block=event.block_number,
                creation_tx_hash=event.transaction_hash,
                created_at=await self._block_time(event.block_number),
            )
            if await self._store.insert_token(token):
                logger.info("Token created %s (%s)", token.address, token.symbol)
            elif await self._store.complete_token_creation(token):
                logger.info("Placeholder token %s completed from creation event", token.address)

        await self._record_create(
            tx_hash=event.transaction_hash,
            creator=event.creator,
            token_address=event.token_address,
            total_supply=event.total_supply,
            block_number=event.block_number,
        )

    async def _on_token_listed(self, event: TokenListed) -> None:
        existing = await self._store.get_token(event.token_address)
        if existing is not None:
            if not existing.trading_enabled and await self._store.enable_trading(event.token_address):
                logger.info("Trading enabled for %s", event.token_address)
            return

        name, symbol = PLACEHOLDER_NAME, PLACEHOLDER_SYMBOL
        try:
            details = await self._gateway.get_token_details(event.token_address)
            name, symbol = details.name or name, details.symbol or symbol
        except Exception as exc:
            logger.warning("Token details unavailable for %s: %s", event.token_address, exc)

        # Origin stays NULL: a later TokenCreated may still complete the row.
        token = await self._build_token(
            address=event.token_address,
            name=name,
            symbol=symbol,
            creator=event.creator,
            total_supply=event.total_supply,
            reserve_ratio=event.reserve_ratio,
            metadata_uri=event.metadata_uri,
            trading_enabled=True,
            created_at=await self._block_time(event.block_number),
        )
        if await self._store.insert_token(token):
            logger.info("Token discovered via listing %s (%s)", token.address, token.symbol)
        else:
            await self._store.enable_trading(event.token_address)

        await self._record_create(
            tx_hash=event.transaction_hash,
            creator=event.creator,
            token_address=event.token_address,
            total_supply=event.total_supply,
            block_number=event.block_number,
        )

    async def _on_trade(self, event: TokensBought | TokensSold) -> None:
        if isinstance(event, TokensBought):
            user, tx_type = event.buyer, TransactionType.BUY
            amount_in, amount_out = event.eth_amount, event.token_amount
        else:
            user, tx_type = event.seller, TransactionType.SELL
            amount_in, amount_out = event.token_amount, event.eth_amount

        token_address = event.token_address
        await self._ensure_token(token_address)

        timestamp = await self._block_time(event.block_number)
        if await self._store.transaction_exists(event.transaction_hash):
            # Follow-up writes are idempotent and redone so a replay repairs them.
            logger.debug("Trade %s already indexed, refreshing holder and portfolio", event.transaction_hash)
        else:
            await self._store.insert_transaction(
                TransactionRecord(
                    hash=event.transaction_hash,
                    user_address=user,
                    token_address=token_address,
                    type=tx_type,
                    amount_in=amount_in,
                    amount_out=amount_out,
                    price=trade_price(event.eth_amount, event.token_amount),
                    block_number=event.block_number,
                    timestamp=timestamp,
                )
            )

        balance = await self._gateway.get_token_balance(token_address, user)
        await self._store.upsert_holder(
            HolderRecord(
                token_address=token_address,
                holder_address=user,
                balance=balance,
                first_acquired_at=timestamp,
                last_updated_at=self._now(),
            )
        )

        current_price = await self._refresh_metrics(token_address)

        history = await self._store.get_user_transactions(user_address=user, token_address=token_address)
        await self._store.upsert_portfolio(
            compute_portfolio(
                user_address=user,
                token_address=token_address,
                history=history,
                onchain_balance=balance,
                current_price=current_price,
                now=self._now(),
            )
        )

        logger.debug("%s %s by %s in block %s", tx_type.value, token_address, user, event.block_number)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _refresh_metrics(self, token_address: str) -> float:
        """Synchronous metrics refresh after a trade; returns the price to value positions at."""
        try:
            metrics = await self._metrics.refresh(token_address)
            return metrics.current_price
        except Exception as exc:
            logger.warning("Metrics refresh failed for %s: %s", token_address, exc)

        token = await self._store.get_token(token_address)
        return token.metrics.current_price if token is not None else 0.0

    async def _ensure_token(self, token_address: str) -> None:
        if await self._store.get_token(token_address) is not None:
            return
        placeholder = TokenRecord(
            address=token_address,
            name=PLACEHOLDER_NAME,
            symbol=PLACEHOLDER_SYMBOL,
            creator=ZERO_ADDRESS,
            total_supply=0,
            reserve_ratio=0,
        )
        if await self._store.insert_token(placeholder):
            logger.info("Placeholder token %s written for out-of-order trade", token_address)

    async def _record_create(
        self,
        *,
        tx_hash: str,
        creator: str,
        token_address: str,
        total_supply: int,
        block_number: int,
    ) -> None:
        if await self._store.transaction_exists(tx_hash):
            return
        await self._store.insert_transaction(
            TransactionRecord(
                hash=tx_hash,
                user_address=creator,
                token_address=token_address,
                type=TransactionType.CREATE,
                amount_in=0,
                amount_out=total_supply,
                price=0.0,
                block_number=block_number,
                timestamp=await self._block_time(block_number),
            )
        )

    async def _block_time(self, block_number: int) -> datetime:
        cached = self._block_times.get(block_number)
        if cached is None:
            cached = await self._chain.get_block_timestamp(block_number)
            self._block_times[block_number] = cached
        return cached

    async def _resolve_metadata(self, uri: str) -> TokenMetadata | None:
        if not uri:
            return None
        try:
            return await self._resolver.fetch_metadata(uri)
        except Exception as exc:
            logger.warning("Metadata resolution failed for %s: %s", uri, exc)
            return None

    async def _build_token(
        self,
        *,
        address: str,
        name: str,
        symbol: str,
        creator: str,
        total_supply: int,
        reserve_ratio: int,
        metadata_uri: str,
        trading_enabled: bool,
        creation_block: int | None = None,
        creation_tx_hash: str | None = None,
        created_at: datetime | None = None,
    ) -> TokenRecord:
        metadata = await self._resolve_metadata(metadata_uri)
        metrics: TokenMetrics = await self._metrics.initial_metrics(address)

        logo_url = None
        if metadata is not None and metadata.image:
            logo_url = await self._resolver.resolve_image_url(metadata.image)

        return TokenRecord(
            address=address,
            name=name,
            symbol=symbol,
            creator=creator,
            total_supply=total_supply,
            reserve_ratio=reserve_ratio,
            metadata_uri=metadata_uri,
            metadata=metadata.to_document() if metadata is not None else None,
            logo_url=logo_url,
            description=metadata.description if metadata is not None else None,
            social_links=(metadata.social or None) if metadata is not None else None,
            creation_block=creation_block,
            creation_tx_hash=creation_tx_hash,
            created_at=created_at,
            trading_enabled=trading_enabled,
            metrics=metrics,
        )
