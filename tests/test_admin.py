"""Tests for the operator trigger surface."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fakes import addr

from launchpad_indexer.app.application.services.admin import AdminService, JobState
from launchpad_indexer.app.domain.models import IndexerStatus, SyncResult

TOKEN = addr(0xA1)


def _admin(sync=None, indexer=None, clock=None) -> AdminService:
    kwargs = {"now": clock} if clock is not None else {}
    return AdminService(sync=sync or AsyncMock(), indexer=indexer or MagicMock(), **kwargs)


class TestFullSyncJob:
    @pytest.mark.asyncio
    async def test_job_completes_with_result(self, clock) -> None:
        sync = AsyncMock()
        sync.sync_all_tokens.return_value = SyncResult(synced=3, skipped=1, errors=0)
        admin = _admin(sync=sync, clock=clock)

        started = admin.trigger_full_sync()
        assert started.state is JobState.RUNNING
        await admin.wait_idle()

        status = admin.sync_job_status()
        assert status.state is JobState.COMPLETED
        assert status.result == SyncResult(synced=3, skipped=1, errors=0)
        assert status.started_at == clock()

    @pytest.mark.asyncio
    async def test_concurrent_trigger_returns_running_job(self) -> None:
        release = asyncio.Event()
        sync = AsyncMock()

        async def slow_sync():
            await release.wait()
            return SyncResult(synced=0, skipped=0, errors=0)

        sync.sync_all_tokens.side_effect = slow_sync
        admin = _admin(sync=sync)

        first = admin.trigger_full_sync()
        await asyncio.sleep(0)
        second = admin.trigger_full_sync()

        assert second is first
        release.set()
        await admin.wait_idle()
        assert sync.sync_all_tokens.await_count == 1

    @pytest.mark.asyncio
    async def test_failure_is_recorded(self) -> None:
        sync = AsyncMock()
        sync.sync_all_tokens.side_effect = RuntimeError("rpc down")
        admin = _admin(sync=sync)

        admin.trigger_full_sync()
        await admin.wait_idle()

        status = admin.sync_job_status()
        assert status.state is JobState.FAILED
        assert status.error == "rpc down"

    def test_idle_before_any_trigger(self) -> None:
        assert _admin().sync_job_status().state is JobState.IDLE


class TestHolderResyncJob:
    @pytest.mark.asyncio
    async def test_resync_tracked_per_token(self) -> None:
        sync = AsyncMock()
        sync.resync_holders.return_value = 7
        admin = _admin(sync=sync)

        admin.trigger_holder_resync(TOKEN.upper().replace("0X", "0x"))
        await admin.wait_idle()

        status = admin.holder_resync_status(TOKEN)
        assert status.state is JobState.COMPLETED
        assert status.result == 7
        sync.resync_holders.assert_awaited_once_with(TOKEN)
        assert admin.holder_resync_status(addr(0xA2)).state is JobState.IDLE


class TestIndexerStatus:
    def test_delegates_to_indexer(self) -> None:
        indexer = MagicMock()
        indexer.get_status.return_value = IndexerStatus(is_running=True, current_block=10, last_processed_block=9)

        assert _admin(indexer=indexer).indexer_status().current_block == 10
