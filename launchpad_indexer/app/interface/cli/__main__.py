import asyncio
import inspect
import logging
import os
from collections.abc import Awaitable
from typing import Any

import typer
from dotenv import load_dotenv
from InquirerPy import inquirer

from launchpad_indexer.app.domain.errors import ConfigurationError
from launchpad_indexer.app.interface.tasks import TASKS
from launchpad_indexer.app.interface.tasks.ledger.bootstrap_task import (
    bootstrap_sync_task,
    resync_holders_task,
    retry_metadata_task,
    sync_status_task,
)
from launchpad_indexer.app.interface.tasks.ledger.indexer_task import serve_task


load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

logger = logging.getLogger("launchpad_indexer.cli")

app = typer.Typer()
indexer_app = typer.Typer(help="cli for indexing launchpad tokens and trades.")
app.add_typer(indexer_app, name="indexer")


def _run(coro: Awaitable[Any]) -> Any:
    try:
        return asyncio.run(coro)  # type: ignore[arg-type]
    except ConfigurationError as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return None


@indexer_app.command("run")
def run() -> None:
    """Pick a task interactively and run it."""
    task_name = inquirer.select(
        message="Select task:",
        choices=list(TASKS.keys()),
        pointer="❯",
        instruction="Use ↑/↓ to move, Enter to select",
    ).execute()

    task = TASKS[task_name]

    kwargs: dict[str, object] = {}

    sig = inspect.signature(task)
    params = sig.parameters

    if "from_block" in params:
        kwargs["from_block"] = inquirer.text(
            message="From block (inclusive):",
            default="earliest",
        ).execute()
    if "to_block" in params:
        kwargs["to_block"] = inquirer.text(
            message="To block (inclusive):",
            default="latest",
        ).execute()
    if "token_address" in params:
        kwargs["token_address"] = inquirer.text(message="Token address (0x...):").execute()
    if "limit" in params:
        limit_str = inquirer.text(
            message="Limit (optional, empty = default):",
            default="",
        ).execute()
        kwargs["limit"] = int(limit_str) if limit_str.strip() else None

    result = _run(task(**kwargs))
    if result is not None:
        typer.echo(result)


@indexer_app.command("serve")
def serve() -> None:
    """Run the indexer and the tiered metrics scheduler together."""
    _run(serve_task())


@indexer_app.command("bootstrap")
def bootstrap() -> None:
    """Sync every factory token from current on-chain state."""
    result = _run(bootstrap_sync_task())
    if result is not None:
        typer.echo(f"synced={result.synced} skipped={result.skipped} errors={result.errors}")


@indexer_app.command("sync-status")
def sync_status() -> None:
    """Compare factory token count with the ledger."""
    status = _run(sync_status_task())
    if status is not None:
        typer.echo(
            f"factory={status.factory_token_count} ledger={status.db_token_count} "
            f"sync_needed={status.sync_needed}"
        )


@indexer_app.command("resync-holders")
def resync_holders(token_address: str = typer.Argument(..., help="Token contract address")) -> None:
    """Rebuild the holder set of one token."""
    count = _run(resync_holders_task(token_address=token_address))
    if count is not None:
        typer.echo(f"holders={count}")


@indexer_app.command("retry-metadata")
def retry_metadata(limit: int = typer.Option(100, help="Max tokens to retry")) -> None:
    """Re-resolve metadata for tokens that have none cached."""
    result = _run(retry_metadata_task(limit=limit))
    if result is not None:
        typer.echo(f"attempted={result.attempted} updated={result.updated} failed={result.failed}")


if __name__ == "__main__":
    LOGO = r"""
     _                        _                     _
    | | __ _ _   _ _ __   ___| |__  _ __   __ _  __| |
    | |/ _` | | | | '_ \ / __| '_ \| '_ \ / _` |/ _` |
    | | (_| | |_| | | | | (__| | | | |_) | (_| | (_| |
    |_|\__,_|\__,_|_| |_|\___|_| |_| .__/ \__,_|\__,_|
                                   |_|
      --- Launchpad Indexer CLI ---
    """
    typer.echo(LOGO)
    app()
