from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from launchpad_indexer.app.config import load_settings
from launchpad_indexer.app.infrastructure.db.engine import create_app_async_engine
from launchpad_indexer.app.infrastructure.factories.services_factory import (
    LaunchpadServices,
    launchpad_services_factory,
)


@asynccontextmanager
async def launchpad_runtime(backend: str = "sqlalchemy") -> AsyncIterator[LaunchpadServices]:
    """
    Settings -> engine -> wired services for the duration of one task.

    The engine is disposed and HTTP / Redis clients are closed on exit,
    whether the task finished or failed.
    """
    settings = load_settings()
    engine = create_app_async_engine(settings)
    services: LaunchpadServices | None = None
    try:
        services = launchpad_services_factory(
            backend=backend,
            engine=engine,
            settings=settings,
        )
        yield services
    finally:
        if services is not None:
            await services.aclose()
        await engine.dispose()
