from __future__ import annotations

import logging

from launchpad_indexer.app.application.services.bootstrap_sync import MetadataRetryResult
from launchpad_indexer.app.domain.models import SyncResult, SyncStatus
from launchpad_indexer.app.interface.tasks.runtime import launchpad_runtime

logger = logging.getLogger(__name__)


async def bootstrap_sync_task(*, backend: str = "sqlalchemy") -> SyncResult:
    """
    Task: create every factory token missing from the ledger from current
    on-chain state and backfill metrics for never-enriched tokens.
    """
    async with launchpad_runtime(backend) as services:
        return await services.sync.sync_all_tokens()


async def sync_status_task(*, backend: str = "sqlalchemy") -> SyncStatus:
    async with launchpad_runtime(backend) as services:
        status = await services.sync.get_status()
        logger.info(
            "Factory tokens=%s ledger tokens=%s sync_needed=%s",
            status.factory_token_count,
            status.db_token_count,
            status.sync_needed,
        )
        return status


async def resync_holders_task(*, token_address: str, backend: str = "sqlalchemy") -> int:
    """Task: rebuild one token's holder set from Transfer events and on-chain balances."""
    async with launchpad_runtime(backend) as services:
        return await services.sync.resync_holders(token_address)


async def retry_metadata_task(*, limit: int | None = None, backend: str = "sqlalchemy") -> MetadataRetryResult:
    """Task: re-resolve off-chain metadata for tokens that still have none cached."""
    async with launchpad_runtime(backend) as services:
        return await services.sync.retry_missing_metadata(limit=limit or 100)
