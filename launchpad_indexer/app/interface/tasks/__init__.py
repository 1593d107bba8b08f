from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from .ledger.bootstrap_task import (
    bootstrap_sync_task as ledger__bootstrap_sync_task,
    resync_holders_task as ledger__resync_holders_task,
    retry_metadata_task as ledger__retry_metadata_task,
    sync_status_task as ledger__sync_status_task,
)
from .ledger.indexer_task import (
    index_block_range_task as ledger__index_block_range_task,
    run_indexer_task as ledger__run_indexer_task,
    serve_task as ledger__serve_task,
)
from .ledger.metrics_task import tiered_metrics_task as ledger__tiered_metrics_task

TaskFn = Callable[..., Awaitable[Any]]

TASKS: dict[str, TaskFn] = {
    "ledger__run_indexer_task": ledger__run_indexer_task,
    "ledger__serve_task": ledger__serve_task,
    "ledger__index_block_range_task": ledger__index_block_range_task,
    "ledger__tiered_metrics_task": ledger__tiered_metrics_task,
    "ledger__bootstrap_sync_task": ledger__bootstrap_sync_task,
    "ledger__sync_status_task": ledger__sync_status_task,
    "ledger__resync_holders_task": ledger__resync_holders_task,
    "ledger__retry_metadata_task": ledger__retry_metadata_task,
}
