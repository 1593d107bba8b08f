from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TypeVar

from launchpad_indexer.app.application.services.block_range import BlockRange, chunk_range
from launchpad_indexer.app.application.services.token_metrics import TokenMetricsRefresher
from launchpad_indexer.app.domain.models import (
    ZERO_ADDRESS,
    FactoryTokenInfo,
    HolderRecord,
    MarketInfo,
    SyncResult,
    SyncStatus,
    TokenRecord,
    normalize_address,
)
from launchpad_indexer.app.domain.ports.out import (
    ChainClient,
    ContractGateway,
    LedgerStore,
    MetadataResolver,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_SYNCED = "synced"
_SKIPPED = "skipped"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MetadataRetryResult:
    attempted: int
    updated: int
    failed: int


async def _bounded_gather(
    items: Iterable[T],
    fn: Callable[[T], Awaitable[R]],
    *,
    concurrency: int,
) -> list[R | BaseException]:
    semaphore = asyncio.Semaphore(concurrency)

    async def _run(item: T) -> R:
        async with semaphore:
            return await fn(item)

    return await asyncio.gather(*(_run(i) for i in items), return_exceptions=True)


class BootstrapSync:
    """
    Populate and repair the ledger from current on-chain state, independent
    of the event cursor.

    Full sync enumerates the factory, creates tokens the ledger does not know
    yet and backfills metrics for tokens that were never enriched. It is
    idempotent: running it twice in a row syncs nothing the second time.
    """

    def __init__(
        self,
        *,
        chain: ChainClient,
        gateway: ContractGateway,
        store: LedgerStore,
        resolver: MetadataResolver,
        metrics: TokenMetricsRefresher,
        start_block: int = 0,
        concurrency: int = 10,
        holder_block_chunk: int = 5000,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._chain = chain
        self._gateway = gateway
        self._store = store
        self._resolver = resolver
        self._metrics = metrics
        self._start_block = start_block
        self._concurrency = concurrency
        self._holder_block_chunk = holder_block_chunk
        self._now = now

    # ------------------------------------------------------------------
    # Full token sync
    # ------------------------------------------------------------------

    async def sync_all_tokens(self) -> SyncResult:
        logger.info("Starting bootstrap token sync")

        factory_tokens = await self._gateway.get_all_tokens()
        existing = await self._store.list_token_addresses()
        needs_metrics = {addr for addr, updated_at in existing.items() if updated_at is None}

        logger.info(
            "Factory lists %s tokens, ledger has %s (%s never enriched)",
            len(factory_tokens),
            len(existing),
            len(needs_metrics),
        )

        async def _sync_one(address: str) -> str:
            if address in existing:
                if address in needs_metrics:
                    await self._backfill_existing(address)
                return _SKIPPED
            await self._sync_new_token(address)
            return _SYNCED

        outcomes = await _bounded_gather(factory_tokens, _sync_one, concurrency=self._concurrency)

        synced = skipped = errors = 0
        for address, outcome in zip(factory_tokens, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                errors += 1
                logger.error("Bootstrap sync failed for %s: %s", address, outcome)
            elif outcome == _SYNCED:
                synced += 1
            else:
                skipped += 1

        result = SyncResult(synced=synced, skipped=skipped, errors=errors)
        logger.info(
            "Bootstrap sync complete: synced=%s skipped=%s errors=%s",
            result.synced,
            result.skipped,
            result.errors,
        )
        return result

    async def _factory_info(self, address: str) -> FactoryTokenInfo:
        try:
            return await self._gateway.get_factory_token_info(address)
        except Exception as exc:
            logger.warning("Factory info unavailable for %s: %s", address, exc)
            return FactoryTokenInfo(creator=ZERO_ADDRESS, total_supply=0, reserve_ratio=0, metadata_uri="")

    async def _market_info(self, address: str) -> MarketInfo | None:
        # None: trading stays disabled until the next full sync backfills the token.
        try:
            return await self._gateway.get_market_info(address)
        except Exception as exc:
            logger.warning("Market info unavailable for %s: %s", address, exc)
            return None

    async def _sync_new_token(self, address: str) -> None:
        details = await self._gateway.get_token_details(address)
        info = await self._factory_info(address)
        market = await self._market_info(address)

        metadata = None
        if info.metadata_uri:
            try:
                metadata = await self._resolver.fetch_metadata(info.metadata_uri)
            except Exception as exc:
                logger.warning("Metadata resolution failed for %s: %s", address, exc)

        logo_url = None
        if metadata is not None and metadata.image:
            logo_url = await self._resolver.resolve_image_url(metadata.image)

        metrics = await self._metrics.initial_metrics(address)

        token = TokenRecord(
            address=address,
            name=details.name,
            symbol=details.symbol,
            creator=info.creator,
            total_supply=details.total_supply,
            reserve_ratio=info.reserve_ratio or (market.reserve_ratio if market is not None else 0),
            metadata_uri=info.metadata_uri,
            metadata=metadata.to_document() if metadata is not None else None,
            logo_url=logo_url,
            description=metadata.description if metadata is not None else None,
            social_links=(metadata.social or None) if metadata is not None else None,
            trading_enabled=market.trading_enabled if market is not None else False,
            metrics=metrics,
        )
        if await self._store.insert_token(token):
            logger.info("Bootstrapped token %s (%s)", address, details.symbol)

    async def _backfill_existing(self, address: str) -> None:
        market = await self._gateway.get_market_info(address)
        token = await self._store.get_token(address)
        await self._metrics.refresh(address)
        if token is not None and token.trading_enabled != market.trading_enabled:
            await self._store.set_trading_enabled(address, market.trading_enabled)

    async def get_status(self) -> SyncStatus:
        factory_count = len(await self._gateway.get_all_tokens())
        db_count = await self._store.count_tokens()
        return SyncStatus(
            factory_token_count=factory_count,
            db_token_count=db_count,
            sync_needed=factory_count != db_count,
        )

    # ------------------------------------------------------------------
    # Holder resync
    # ------------------------------------------------------------------

    async def resync_holders(self, token_address: str) -> int:
        """
        Rebuild the holder set of one token.

        Addresses come from Transfer events since the start block plus the
        holders already stored; every balance is re-read on chain. Returns
        the number of non-zero holders.
        """
        token_address = normalize_address(token_address)
        head = await self._chain.get_block_number()
        logger.info("Resyncing holders for %s, blocks %s-%s", token_address, self._start_block, head)

        addresses: set[str] = set(await self._store.list_holder_addresses(token_address))
        if head >= self._start_block:
            for chunk in chunk_range(BlockRange(self._start_block, head), self._holder_block_chunk):
                transfers = await self._gateway.get_transfer_events(
                    token_address=token_address,
                    from_block=chunk.from_block,
                    to_block=chunk.to_block,
                )
                for transfer in transfers:
                    addresses.add(transfer.sender)
                    addresses.add(transfer.recipient)
                logger.debug(
                    "Blocks %s-%s: %s transfers",
                    chunk.from_block,
                    chunk.to_block,
                    len(transfers),
                )
        addresses.discard(ZERO_ADDRESS)

        async def _refresh(holder: str) -> int:
            balance = await self._gateway.get_token_balance(token_address, holder)
            await self._store.upsert_holder(
                HolderRecord(
                    token_address=token_address,
                    holder_address=holder,
                    balance=balance,
                    last_updated_at=self._now(),
                )
            )
            return balance

        ordered = sorted(addresses)
        outcomes = await _bounded_gather(ordered, _refresh, concurrency=self._concurrency)

        nonzero = 0
        for holder, outcome in zip(ordered, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                logger.warning("Balance re-read failed for %s on %s: %s", holder, token_address, outcome)
            elif outcome > 0:
                nonzero += 1

        logger.info("Synced %s holders for %s", nonzero, token_address)
        return nonzero

    # ------------------------------------------------------------------
    # Metadata retry
    # ------------------------------------------------------------------

    async def retry_missing_metadata(self, *, limit: int = 100) -> MetadataRetryResult:
        tokens = await self._store.list_tokens_missing_metadata(limit=limit)
        updated = failed = 0

        for token in tokens:
            try:
                metadata = await self._resolver.fetch_metadata(token.metadata_uri)
                if metadata is None:
                    failed += 1
                    continue

                logo_url = await self._resolver.resolve_image_url(metadata.image) if metadata.image else None
                await self._store.update_token_metadata(
                    token.address,
                    metadata=metadata.to_document(),
                    logo_url=logo_url,
                    description=metadata.description,
                    social_links=metadata.social or None,
                )
            except Exception as exc:
                failed += 1
                logger.error("Metadata retry failed for %s: %s", token.address, exc)
                continue
            updated += 1

        logger.info("Metadata retry: attempted=%s updated=%s failed=%s", len(tokens), updated, failed)
        return MetadataRetryResult(attempted=len(tokens), updated=updated, failed=failed)
