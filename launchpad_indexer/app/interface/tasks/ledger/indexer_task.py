from __future__ import annotations

import asyncio
import logging

from launchpad_indexer.app.application.services.block_range import BlockRange, chunk_range
from launchpad_indexer.app.interface.tasks.runtime import launchpad_runtime

logger = logging.getLogger(__name__)


async def run_indexer_task(*, backend: str = "sqlalchemy") -> None:
    """
    Task: follow the chain head and index launchpad events into the ledger.

    Runs until interrupted; the current window is allowed to finish.
    """
    async with launchpad_runtime(backend) as services:
        if not await services.chain.health_check():
            logger.warning("No RPC endpoint answered the health check, starting anyway")
        try:
            await services.indexer.start()
        finally:
            await services.indexer.stop()


async def serve_task(*, backend: str = "sqlalchemy") -> None:
    """
    Task: indexer loop and tiered metrics scheduler side by side on one loop,
    sharing one engine pool and one RPC client.
    """
    async with launchpad_runtime(backend) as services:
        try:
            await asyncio.gather(
                services.indexer.start(),
                services.scheduler.run(),
            )
        finally:
            await services.indexer.stop()
            await services.scheduler.stop()


async def index_block_range_task(
    *,
    from_block: int | str,
    to_block: int | str,
    backend: str = "sqlalchemy",
) -> None:
    """
    Task: (re)index an explicit block range without moving the live cursor.

    Safe to run over already indexed blocks: every write is idempotent.
    to_block may be "latest" (head - confirmations is not applied here).
    """
    async with launchpad_runtime(backend) as services:
        head = await services.chain.get_block_number()
        resolved_from = (
            services.settings.start_block
            if str(from_block).strip().lower() in ("", "earliest")
            else int(from_block)
        )
        resolved_to = head if str(to_block).strip().lower() in ("", "latest") else int(to_block)

        block_range = BlockRange(from_block=resolved_from, to_block=resolved_to)
        block_range.validate()

        for window in chunk_range(block_range, 500):
            await services.indexer.process_window(window)
        logger.info("Indexed block range %s-%s", resolved_from, resolved_to)
