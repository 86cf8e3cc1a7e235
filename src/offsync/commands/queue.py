"""Queue commands -- inspect, replay and discard offline mutations."""

from __future__ import annotations

from typing import Optional

import typer

from offsync.commands import current_config, open_worker, run
from offsync.exit_codes import EXIT_CONNECTION_ERROR
from offsync.config import resolve_cache_dir
from offsync.models import DrainResult
from offsync.output import error, info, print_table, success
from offsync.sync.queue import MutationQueue

queue_app = typer.Typer(no_args_is_help=True)


@queue_app.command("list")
def queue_list(ctx: typer.Context) -> None:
    """List queued mutations in replay order."""
    config = current_config(ctx)
    queue = MutationQueue(resolve_cache_dir(config))
    try:
        rows = [
            [
                str(m.sequence),
                m.request.method,
                m.request.url,
                m.enqueued_at.isoformat(),
                str(m.attempts),
                m.last_error or "",
            ]
            for m in queue.pending()
        ]
    finally:
        queue.close()
    print_table(["seq", "method", "url", "enqueued_at", "attempts", "last_error"], rows, title="Queue")


@queue_app.command("sync")
def queue_sync(
    ctx: typer.Context,
    tag: Optional[str] = typer.Option(None, "--tag", help="Sync tag to trigger."),
) -> None:
    """Replay queued mutations against the backend.

    Example::

        offsync queue sync
        offsync queue sync --tag sync-transactions
    """
    config = current_config(ctx)

    async def _sync() -> Optional[DrainResult]:
        async with open_worker(config) as worker:
            return await worker.handle_sync(tag)

    result = run(_sync())
    if result is None:
        info(f"Nothing registered for tag '{tag}'")
        return
    for mutation in result.rejected:
        error(f"#{mutation.sequence} {mutation.request.method} {mutation.request.url} rejected by server")
    success(
        f"{len(result.succeeded)} replayed, {len(result.rejected)} rejected, "
        f"{len(result.still_pending)} still pending"
    )
    if result.still_pending:
        raise typer.Exit(code=EXIT_CONNECTION_ERROR)


@queue_app.command("clear")
def queue_clear(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Discard every queued mutation without sending it."""
    if not force and not typer.confirm("Discard all queued mutations?"):
        raise typer.Abort()
    config = current_config(ctx)
    queue = MutationQueue(resolve_cache_dir(config))
    try:
        removed = queue.clear()
    finally:
        queue.close()
    success(f"Discarded {removed} mutations")
