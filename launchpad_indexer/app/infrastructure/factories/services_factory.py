from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Dict

from sqlalchemy.ext.asyncio import AsyncEngine

from launchpad_indexer.app.application.services.admin import AdminService
from launchpad_indexer.app.application.services.bootstrap_sync import BootstrapSync
from launchpad_indexer.app.application.services.indexer import LaunchpadIndexer
from launchpad_indexer.app.application.services.tiered_metrics import TieredMetricsScheduler
from launchpad_indexer.app.application.services.token_metrics import TokenMetricsRefresher
from launchpad_indexer.app.config import Settings
from launchpad_indexer.app.domain.ports.out import LedgerStore
from launchpad_indexer.app.infrastructure.adapters.ledger_store import SqlAlchemyLedgerStore
from launchpad_indexer.app.infrastructure.cache.redis_cache import NullCache, RedisKeyValueCache
from launchpad_indexer.app.infrastructure.chain.rate_limiter import SlidingWindowRateLimiter
from launchpad_indexer.app.infrastructure.chain.rpc_client import Web3ChainClient, build_endpoints
from launchpad_indexer.app.infrastructure.contracts.gateway import Web3ContractGateway
from launchpad_indexer.app.infrastructure.metadata.content_fetcher import GatewayContentFetcher
from launchpad_indexer.app.infrastructure.metadata.resolver import IpfsMetadataResolver

logger = logging.getLogger(__name__)

LedgerStoreFactory = Callable[[AsyncEngine], LedgerStore]

_LEDGER_STORE_REGISTRY: Dict[str, LedgerStoreFactory] = {}

# Register backends
_LEDGER_STORE_REGISTRY["sqlalchemy"] = lambda engine: SqlAlchemyLedgerStore(engine)


@dataclass
class LaunchpadServices:
    """Everything one process needs, wired once and passed explicitly."""

    settings: Settings
    chain: Web3ChainClient
    gateway: Web3ContractGateway
    store: LedgerStore
    cache: RedisKeyValueCache | NullCache
    fetcher: GatewayContentFetcher
    resolver: IpfsMetadataResolver
    metrics: TokenMetricsRefresher
    indexer: LaunchpadIndexer
    scheduler: TieredMetricsScheduler
    sync: BootstrapSync
    admin: AdminService

    async def aclose(self) -> None:
        await self.fetcher.close()
        await self.cache.close()


def launchpad_services_factory(
    *,
    backend: str,
    engine: AsyncEngine,
    settings: Settings,
) -> LaunchpadServices:
    """
    Wire the full service graph for the given ledger backend:
    - rate-limited multi-endpoint AsyncWeb3 chain client,
    - contract gateway for factory / marketplace / ERC-20,
    - gateway content fetcher + metadata resolver,
    - Redis cache (or NullCache without REDIS_URL),
    - indexer, tiered metrics scheduler, bootstrap sync, admin surface.
    """
    try:
        store_factory = _LEDGER_STORE_REGISTRY[backend]
    except KeyError:
        raise ValueError(f"Unsupported ledger store backend: {backend!r}")

    store = store_factory(engine)

    chain = Web3ChainClient(
        build_endpoints(settings.rpc_urls, request_timeout=settings.rpc_request_timeout),
        rate_limiter=SlidingWindowRateLimiter(settings.rpc_rate_limit, window_seconds=10.0),
        retries=settings.rpc_retries,
        stall_timeout=settings.rpc_stall_timeout,
    )
    gateway = Web3ContractGateway(
        chain=chain,
        factory_address=settings.token_factory_address,
        marketplace_address=settings.marketplace_address,
    )

    if settings.redis_url:
        cache: RedisKeyValueCache | NullCache = RedisKeyValueCache.from_url(settings.redis_url)
    else:
        logger.info("REDIS_URL not set, key/value caching disabled")
        cache = NullCache()

    fetcher = GatewayContentFetcher(settings.metadata_gateways, timeout=settings.metadata_timeout)
    resolver = IpfsMetadataResolver(
        fetcher=fetcher,
        store=store,
        cache=cache,
        cache_ttl=settings.metadata_cache_ttl,
    )
    metrics = TokenMetricsRefresher(gateway=gateway, store=store, cache=cache)

    indexer = LaunchpadIndexer(
        chain=chain,
        gateway=gateway,
        store=store,
        resolver=resolver,
        metrics=metrics,
        confirmations=settings.confirmations,
        batch_size=settings.indexer_batch_size,
        poll_interval=settings.indexer_poll_interval,
        error_backoff=settings.indexer_error_backoff,
        start_block=settings.start_block,
        start_from_current=settings.indexer_start_from_current,
        enabled=settings.indexer_enabled,
    )
    scheduler = TieredMetricsScheduler(
        store=store,
        refresher=metrics,
        tick_interval=settings.metrics_tick_interval,
    )
    sync = BootstrapSync(
        chain=chain,
        gateway=gateway,
        store=store,
        resolver=resolver,
        metrics=metrics,
        start_block=settings.start_block,
        concurrency=settings.bootstrap_concurrency,
        holder_block_chunk=settings.holder_resync_block_chunk,
    )

    return LaunchpadServices(
        settings=settings,
        chain=chain,
        gateway=gateway,
        store=store,
        cache=cache,
        fetcher=fetcher,
        resolver=resolver,
        metrics=metrics,
        indexer=indexer,
        scheduler=scheduler,
        sync=sync,
        admin=AdminService(sync=sync, indexer=indexer),
    )
