"""Lifecycle commands -- install, activate and inspect cache generations."""

from __future__ import annotations

import typer

from offsync.commands import current_config, open_worker, run
from offsync.output import format_response, info, success

lifecycle_app = typer.Typer(no_args_is_help=True)


@lifecycle_app.command("install")
def install(ctx: typer.Context) -> None:
    """Fetch every manifest asset into the static bucket of the current version.

    Fails without touching the active version if any asset cannot be
    fetched.

    Example::

        offsync lifecycle install
        OFFSYNC_VERSION=v2 offsync lifecycle install
    """
    config = current_config(ctx)

    async def _install() -> int:
        async with open_worker(config) as worker:
            return await worker.handle_install()

    count = run(_install())
    success(f"Installed {config.version}: {count} assets in {config.static_bucket}")


@lifecycle_app.command("activate")
def activate(ctx: typer.Context) -> None:
    """Make the installed version current and delete every other bucket."""
    config = current_config(ctx)

    async def _activate() -> list[str]:
        async with open_worker(config) as worker:
            return await worker.handle_activate()

    evicted = run(_activate())
    for name in evicted:
        info(f"Deleted {name}")
    success(f"Activated {config.version}")


@lifecycle_app.command("status")
def status(ctx: typer.Context) -> None:
    """Show the configured version, its state and the active version."""
    config = current_config(ctx)

    async def _status() -> dict:
        async with open_worker(config) as worker:
            return {
                "version": config.version,
                "state": worker.lifecycle.state.value,
                "active_version": worker.lifecycle.active_version(),
                "buckets": worker.store.bucket_names(),
                "pending_mutations": len(worker.queue),
            }

    format_response(run(_status()))
