"""Built-in CLI command groups.

Each module exposes a :class:`typer.Typer` sub-application registered on the
root app in :mod:`offsync.app`. :func:`open_worker` builds the engine from
the resolved configuration for commands that need it.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Coroutine, TypeVar

import typer

from offsync.config import resolve_config
from offsync.models import EngineConfig
from offsync.transport import HttpxTransport
from offsync.worker import OfflineWorker

T = TypeVar("T")


def current_config(ctx: typer.Context) -> EngineConfig:
    """Resolve the configuration with the root callback's CLI overrides."""
    obj = ctx.find_root().obj or {}
    return resolve_config(obj.get("overrides"))


@asynccontextmanager
async def open_worker(config: EngineConfig) -> AsyncIterator[OfflineWorker]:
    """Yield a worker with a live HTTP transport, closing both on exit."""
    async with HttpxTransport(config) as transport:
        worker = OfflineWorker.from_config(config, transport)
        try:
            yield worker
            await worker.wait_idle()
        finally:
            worker.close()


def run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)
