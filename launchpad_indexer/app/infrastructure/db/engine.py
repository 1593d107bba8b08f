from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from launchpad_indexer.app.config import Settings


def create_app_async_engine(settings: Settings, *, echo: bool = False) -> AsyncEngine:
    """
    Factory for the AsyncEngine shared by the indexer loop, the metrics
    scheduler and admin jobs of one process.

    Every ledger operation checks a connection out of this pool for one short
    transaction, so pool size bounds database concurrency.
    """
    return create_async_engine(
        settings.database_url,  # postgresql+asyncpg://...
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=10,
    )
