from __future__ import annotations

from launchpad_indexer.app.interface.tasks.runtime import launchpad_runtime


async def tiered_metrics_task(*, backend: str = "sqlalchemy") -> None:
    """Task: run only the tiered metrics scheduler (no event indexing)."""
    async with launchpad_runtime(backend) as services:
        try:
            await services.scheduler.run()
        finally:
            await services.scheduler.stop()
