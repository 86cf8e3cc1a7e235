"""Strategy executors -- cache-first, network-first and stale-while-revalidate.

Every executor takes a :class:`~offsync.models.CachedRequest` and returns a
:class:`~offsync.models.StoredResponse`. Connectivity failures are caught
here and degrade to a cached entry or to a typed offline response; a
caller on a cacheable GET flow never sees a raw transport exception, with
one exception: stale-while-revalidate on a cold cache has nothing to fall
back to and lets :class:`~offsync.exceptions.ConnectivityError` through.

Every network fetch that may end in a cache write runs as its own
:class:`asyncio.Task`, held in :attr:`StrategyExecutor.background` until it
finishes. Callers await it through :func:`asyncio.shield`, so a caller that
gives up mid-flight never cancels the fetch or the write that follows it.
Background refreshes started by stale-while-revalidate are tracked the same
way; their failures are logged and discarded.

Lookups and writes go to the buckets of the *active* generation (the version
recorded by the last activation). A newly configured version only starts
serving once it has been activated; before any activation the configured
version is used.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Optional, TypeVar

from offsync.cache.store import ACTIVE_VERSION_META, CacheStore
from offsync.exceptions import ConnectivityError
from offsync.models import CachedRequest, EngineConfig, StoredResponse, Strategy
from offsync.transport import Transport

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StrategyExecutor:
    """Runs caching strategies against a store and a transport.

    Args:
        store: Shared cache store.
        transport: Network transport.
        config: Engine configuration; supplies the bucket prefix, the
            fallback version and the offline page location.
    """

    def __init__(
        self,
        store: CacheStore,
        transport: Transport,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self._store = store
        self._transport = transport
        self._config = config or EngineConfig()
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def background(self) -> frozenset[asyncio.Task[Any]]:
        """Fetches and refreshes still running."""
        return frozenset(self._background)

    async def execute(self, strategy: Strategy, request: CachedRequest) -> StoredResponse:
        """Dispatch *request* to the executor for *strategy*.

        ``bypass`` goes straight to the transport; its connectivity errors
        propagate to the caller, which decides whether to queue.
        """
        if strategy is Strategy.CACHE_FIRST:
            return await self.cache_first(request)
        if strategy is Strategy.NETWORK_FIRST:
            return await self.network_first(request)
        if strategy is Strategy.STALE_WHILE_REVALIDATE:
            return await self.stale_while_revalidate(request)
        return await self._transport.send(request)

    # ------------------------------------------------------------------ #
    # Strategies
    # ------------------------------------------------------------------ #

    async def cache_first(self, request: CachedRequest) -> StoredResponse:
        """Serve from cache; fetch and store in the static bucket on a miss.

        When the network is down, the cached offline page is returned if
        there is one, otherwise a 503 placeholder.
        """
        serving = self._serving()
        cached = self._store.match(request, serving.current_buckets)
        if cached is not None:
            logger.debug("cache-first hit %s", request.url)
            return cached

        try:
            return await self._fetch_through(serving.static_bucket, request)
        except ConnectivityError as exc:
            logger.debug("cache-first offline for %s: %s", request.url, exc)
            return self._offline_page(serving)

    async def network_first(self, request: CachedRequest) -> StoredResponse:
        """Ask the network first; fall back to the cache when unreachable.

        Successful responses refresh the dynamic bucket. 4xx/5xx answers are
        returned verbatim and never cached. With neither network nor cache,
        the structured offline payload is returned.
        """
        serving = self._serving()
        try:
            return await self._fetch_through(serving.dynamic_bucket, request)
        except ConnectivityError as exc:
            logger.debug("network-first offline for %s: %s", request.url, exc)
            cached = self._store.match(request, serving.current_buckets)
            if cached is not None:
                return cached
            return StoredResponse.offline_payload()

    async def stale_while_revalidate(self, request: CachedRequest) -> StoredResponse:
        """Return the cached entry at once and refresh it in the background.

        On a cold cache the network result is awaited and returned directly.

        Raises:
            ConnectivityError: Cold cache and unreachable network.
        """
        serving = self._serving()
        cached = self._store.match(request, serving.current_buckets)
        if cached is None:
            return await self._fetch_through(serving.dynamic_bucket, request)

        self._track(self._revalidate(serving.dynamic_bucket, request))
        return cached

    async def wait_background(self) -> None:
        """Wait for every outstanding fetch and background refresh to finish."""
        while self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _serving(self) -> EngineConfig:
        active = self._store.get_meta(ACTIVE_VERSION_META)
        if active and active != self._config.version:
            return self._config.model_copy(update={"version": active})
        return self._config

    def _track(self, coro: Coroutine[Any, Any, T]) -> asyncio.Task[T]:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._settle)
        return task

    def _settle(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        # mark the outcome as retrieved when the caller was cancelled
        if not task.cancelled():
            task.exception()

    async def _fetch_through(self, bucket: str, request: CachedRequest) -> StoredResponse:
        return await asyncio.shield(self._track(self._send_and_store(bucket, request)))

    async def _send_and_store(self, bucket: str, request: CachedRequest) -> StoredResponse:
        response = await self._transport.send(request)
        if response.ok:
            self._store.put(bucket, request, response)
        return response

    async def _revalidate(self, bucket: str, request: CachedRequest) -> None:
        try:
            await self._send_and_store(bucket, request)
        except ConnectivityError as exc:
            logger.debug("background refresh of %s failed: %s", request.url, exc)
        except Exception:
            logger.warning("background refresh of %s crashed", request.url, exc_info=True)

    def _offline_page(self, serving: EngineConfig) -> StoredResponse:
        page = serving.offline_page
        if page:
            cached = self._store.match(
                CachedRequest(url=serving.absolute_url(page)),
                serving.current_buckets,
            )
            if cached is not None:
                return cached.model_copy(update={"offline": True})
        return StoredResponse.offline_placeholder()
