"""Dispatcher tying the engine together.

:class:`OfflineWorker` owns one instance of every component (store,
resolver, executor, mutation queue, lifecycle manager, client registry,
notifier) and exposes one async handler per trigger type. Nothing registers
itself on an event loop; the host calls :meth:`OfflineWorker.dispatch` (or
a handler directly) whenever an install, activate, fetch, push, notification
click or sync trigger arrives.

Example::

    async with HttpxTransport(config) as transport:
        worker = OfflineWorker.from_config(config, transport)
        await worker.handle_install()
        await worker.handle_activate()
        response = await worker.handle_fetch(CachedRequest(url="/api/transactions"))
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import ValidationError

from offsync.cache.store import CacheStore
from offsync.clients import Client, ClientRegistry
from offsync.config import resolve_cache_dir
from offsync.exceptions import ConnectivityError, InvalidUsageError
from offsync.lifecycle import LifecycleManager
from offsync.models import (
    CachedRequest,
    DrainResult,
    EngineConfig,
    Notification,
    PushPayload,
    StoredResponse,
    Strategy,
)
from offsync.notifications import LogNotifier, Notifier, build_notification
from offsync.strategies.executors import StrategyExecutor
from offsync.strategies.resolver import StrategyResolver
from offsync.sync.queue import MutationQueue, should_enqueue
from offsync.transport import Transport

logger = logging.getLogger(__name__)


class OfflineWorker:
    """Maps external triggers to the engine's async handlers.

    Args:
        config: Engine configuration.
        store: Shared cache store.
        queue: Mutation queue.
        transport: Network transport.
        clients: Client registry; a fresh one is created when omitted.
        notifier: Displays push notifications; defaults to
            :class:`~offsync.notifications.LogNotifier`.
    """

    def __init__(
        self,
        config: EngineConfig,
        store: CacheStore,
        queue: MutationQueue,
        transport: Transport,
        clients: Optional[ClientRegistry] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.queue = queue
        self.transport = transport
        self.clients = clients or ClientRegistry()
        self.notifier = notifier or LogNotifier()
        self.resolver = StrategyResolver(config)
        self.executor = StrategyExecutor(store, transport, config)
        self.lifecycle = LifecycleManager(store, transport, config, self.clients)

    @classmethod
    def from_config(cls, config: EngineConfig, transport: Transport, **kwargs: Any) -> OfflineWorker:
        """Build a worker whose store and queue live in the configured cache dir."""
        cache_dir = resolve_cache_dir(config)
        store = CacheStore(cache_dir, vary_headers=config.cache.vary_headers)
        queue = MutationQueue(
            cache_dir,
            halt_policy=config.sync.halt_policy,
            api_prefix=config.api_prefix,
        )
        return cls(config, store, queue, transport, **kwargs)

    def close(self) -> None:
        self.store.close()
        self.queue.close()

    # ------------------------------------------------------------------ #
    # Handlers
    # ------------------------------------------------------------------ #

    async def handle_install(self) -> int:
        return await self.lifecycle.install()

    async def handle_activate(self) -> list[str]:
        return await self.lifecycle.activate()

    async def handle_fetch(self, request: CachedRequest) -> StoredResponse:
        """Route *request* through the strategy its classification selects.

        Relative URLs are resolved against ``config.base_url`` first. A
        bypassed API mutation that cannot reach the network is queued and
        answered with a 503 offline payload carrying ``queued: true`` and
        the assigned ``sequence``. Any other bypassed request re-raises the
        connectivity error.

        Raises:
            ConnectivityError: Bypassed non-API request, or a cold
                stale-while-revalidate request, with the network down.
        """
        request = request.model_copy(update={"url": self.config.absolute_url(request.url)})
        strategy = self.resolver.classify(request.method, request.url)
        logger.debug("%s %s -> %s", request.method, request.url, strategy.value)

        if strategy is not Strategy.BYPASS:
            return await self.executor.execute(strategy, request)

        try:
            return await self.transport.send(request)
        except ConnectivityError:
            if not should_enqueue(request, self.config):
                raise
            mutation = self.queue.enqueue(request)
            return StoredResponse.offline_payload(queued=True, sequence=mutation.sequence)

    async def handle_sync(self, tag: Optional[str] = None) -> Optional[DrainResult]:
        """Drain the mutation queue when *tag* is the configured sync tag."""
        if (tag or self.config.sync.tag) != self.config.sync.tag:
            logger.debug("Ignoring sync tag %s", tag)
            return None
        result = await self.queue.drain(self.transport)
        logger.info(
            "Sync: %d replayed, %d rejected, %d pending",
            len(result.succeeded), len(result.rejected), len(result.still_pending),
        )
        return result

    async def handle_push(self, data: Any) -> Optional[Notification]:
        """Show a notification for a push message. Empty pushes are ignored.

        *data* is the decoded payload, or the raw JSON text of the push body.

        Raises:
            InvalidUsageError: If *data* is not a JSON object with string
                ``title``, ``body`` and ``url`` fields.
        """
        if not data:
            return None
        try:
            if isinstance(data, (str, bytes)):
                payload = PushPayload.model_validate_json(data)
            else:
                payload = PushPayload.model_validate(data)
        except ValidationError as exc:
            raise InvalidUsageError(f"Malformed push payload: {exc}") from exc
        notification = build_notification(payload, self.config)
        self.notifier.show(notification)
        return notification

    async def handle_notification_click(
        self,
        notification: Notification,
        action: Optional[str] = None,
    ) -> Optional[Client]:
        """Focus a client showing the notification URL, or open one."""
        if action == "close":
            return None
        url = notification.data.get("url") or "/"
        return self.clients.focus_or_open(url, controller=self.lifecycle.active_version())

    async def wait_idle(self) -> None:
        """Wait for background cache refreshes to finish."""
        await self.executor.wait_background()

    async def dispatch(self, event: str, payload: Any = None) -> Any:
        """Invoke the handler registered for trigger *event*.

        Raises:
            InvalidUsageError: For an unknown trigger name.
        """
        if event == "install":
            return await self.handle_install()
        if event == "activate":
            return await self.handle_activate()
        if event == "fetch":
            return await self.handle_fetch(payload)
        if event == "sync":
            return await self.handle_sync(payload)
        if event == "push":
            return await self.handle_push(payload)
        if event == "notificationclick":
            notification, action = payload
            return await self.handle_notification_click(notification, action)
        raise InvalidUsageError(f"Unknown trigger: {event}")
