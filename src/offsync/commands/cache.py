"""Cache commands -- inspect and clear the response buckets."""

from __future__ import annotations

from typing import Optional

import typer

from offsync.cache.store import CacheStore
from offsync.commands import current_config
from offsync.config import resolve_cache_dir
from offsync.output import format_response, print_table, success

cache_app = typer.Typer(no_args_is_help=True)


def _open_store(ctx: typer.Context) -> CacheStore:
    config = current_config(ctx)
    return CacheStore(resolve_cache_dir(config), vary_headers=config.cache.vary_headers)


@cache_app.command("list")
def cache_list(
    ctx: typer.Context,
    bucket: Optional[str] = typer.Argument(None, help="Only list this bucket."),
) -> None:
    """List cached entries, one row per request."""
    with _open_store(ctx) as store:
        names = [bucket] if bucket else store.bucket_names()
        rows: list[list[str]] = []
        for name in names:
            for entry in store.entries(name):
                stored_at = entry.response.stored_at
                rows.append([
                    name,
                    entry.request.method,
                    entry.request.url,
                    str(entry.response.status_code),
                    stored_at.isoformat() if stored_at else "",
                ])
    print_table(["bucket", "method", "url", "status", "stored_at"], rows, title="Cache")


@cache_app.command("stats")
def cache_stats(ctx: typer.Context) -> None:
    """Show entry counts per bucket."""
    with _open_store(ctx) as store:
        format_response(store.stats())


@cache_app.command("clear")
def cache_clear(
    ctx: typer.Context,
    bucket: Optional[str] = typer.Argument(None, help="Only clear this bucket."),
) -> None:
    """Delete one bucket, or every bucket and the lifecycle metadata."""
    with _open_store(ctx) as store:
        if bucket:
            store.delete_bucket(bucket)
            success(f"Deleted {bucket}")
        else:
            store.clear()
            success("Cache cleared")
