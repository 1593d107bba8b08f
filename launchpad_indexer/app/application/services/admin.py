from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from launchpad_indexer.app.application.services.bootstrap_sync import BootstrapSync
from launchpad_indexer.app.application.services.indexer import LaunchpadIndexer
from launchpad_indexer.app.domain.models import IndexerStatus, normalize_address

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class JobStatus:
    state: JobState = JobState.IDLE
    started_at: datetime | None = None
    finished_at: datetime | None = None
    result: Any = None
    error: str | None = None


class AdminService:
    """
    Trigger surface for operators (wired behind HTTP admin routes or the CLI).

    Triggers are fire-and-forget: they schedule a background task on the
    running loop and return the job status immediately. A full sync trigger
    while one is running returns the running job instead of starting another.
    """

    def __init__(
        self,
        *,
        sync: BootstrapSync,
        indexer: LaunchpadIndexer,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._sync = sync
        self._indexer = indexer
        self._now = now

        self._sync_job = JobStatus()
        self._holder_jobs: dict[str, JobStatus] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def trigger_full_sync(self) -> JobStatus:
        if self._sync_job.state is JobState.RUNNING:
            logger.info("Full sync already running since %s", self._sync_job.started_at)
            return self._sync_job

        self._sync_job = JobStatus(state=JobState.RUNNING, started_at=self._now())

        async def _on_done(status: JobStatus) -> None:
            self._sync_job = status

        self._spawn(self._sync.sync_all_tokens, self._sync_job, _on_done, "full sync")
        return self._sync_job

    def sync_job_status(self) -> JobStatus:
        return self._sync_job

    def trigger_holder_resync(self, token_address: str) -> JobStatus:
        token = normalize_address(token_address)
        current = self._holder_jobs.get(token)
        if current is not None and current.state is JobState.RUNNING:
            return current

        status = JobStatus(state=JobState.RUNNING, started_at=self._now())
        self._holder_jobs[token] = status

        async def _on_done(final: JobStatus) -> None:
            self._holder_jobs[token] = final

        self._spawn(lambda: self._sync.resync_holders(token), status, _on_done, f"holder resync {token}")
        return status

    def holder_resync_status(self, token_address: str) -> JobStatus:
        return self._holder_jobs.get(normalize_address(token_address), JobStatus())

    def indexer_status(self) -> IndexerStatus:
        return self._indexer.get_status()

    async def wait_idle(self) -> None:
        """Wait for every background job started by this service."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(
        self,
        job: Callable[[], Awaitable[Any]],
        started: JobStatus,
        on_done: Callable[[JobStatus], Awaitable[None]],
        label: str,
    ) -> None:
        async def _run() -> None:
            try:
                result = await job()
            except Exception as exc:
                logger.exception("Admin job %s failed", label)
                await on_done(replace(started, state=JobState.FAILED, finished_at=self._now(), error=str(exc)))
                return
            logger.info("Admin job %s completed", label)
            await on_done(replace(started, state=JobState.COMPLETED, finished_at=self._now(), result=result))

        task = asyncio.get_running_loop().create_task(_run())
        # Keep a strong reference until the task finishes.
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
