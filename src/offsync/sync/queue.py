"""Durable FIFO queue of mutations that failed for lack of connectivity.

A mutation (POST/PUT/PATCH/DELETE against the API namespace) that could not
reach the backend is captured with :meth:`MutationQueue.enqueue` and kept in
a :class:`diskcache.Cache` until a sync trigger calls
:meth:`MutationQueue.drain`. The queue never polls on its own and applies no
backoff; a failed replay waits for the next trigger.

Replay semantics:

* entries are replayed in ascending ``sequence`` order;
* a response with status < 400 means success and the entry is removed;
* a 4xx/5xx response is the server's final answer: the entry is removed and
  reported as *rejected*, never retried;
* a connectivity failure leaves the entry in place and applies the
  configured :class:`~offsync.models.HaltPolicy`. Under the ``resource``
  policy, mutations are grouped by the first path segment below the API
  prefix, so a failed ``POST /api/transactions`` also holds back a later
  ``PUT /api/transactions/5``.

Only one drain runs at a time per queue directory, across processes as well
as within one: the drain holds a lease key in the queue's own
:class:`diskcache.Cache`, renewed before every send.

There is no deduplication. If the backend committed a write whose response
never arrived, replaying it creates a duplicate. Callers that need
exactly-once semantics must send their own idempotency key header.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Optional

import diskcache

from offsync.exceptions import ConnectivityError, QueueError
from offsync.models import (
    CachedRequest,
    DrainResult,
    EngineConfig,
    HaltPolicy,
    QueuedMutation,
)
from offsync.strategies.resolver import StrategyResolver
from offsync.transport import Transport

logger = logging.getLogger(__name__)

_SEQUENCE_KEY = "sequence"
_MUTATION = "mutation"
_DRAIN_LEASE = "drain-lease"

DRAIN_LEASE_SECONDS = 300
DRAIN_POLL_SECONDS = 0.05


def should_enqueue(request: CachedRequest, config: Optional[EngineConfig] = None) -> bool:
    """Return ``True`` if *request* is a mutation against the API namespace."""
    return request.is_mutation and StrategyResolver(config).is_api(request.url)


class MutationQueue:
    """Persistent queue of :class:`~offsync.models.QueuedMutation` records.

    Args:
        cache_dir: Root directory. A ``queue/`` subdirectory is created
            inside it.
        halt_policy: What :meth:`drain` does after a connectivity failure.
        api_prefix: API namespace prefix; defines the resource groups of
            the ``resource`` halt policy.

    Example::

        queue = MutationQueue("/tmp/offsync")
        queue.enqueue(CachedRequest(method="POST", url=".../api/transactions", body=b"{}"))
        result = await queue.drain(transport)
    """

    def __init__(
        self,
        cache_dir: str | Path,
        halt_policy: HaltPolicy = HaltPolicy.RESOURCE,
        api_prefix: str = "/api/",
    ) -> None:
        self._cache = diskcache.Cache(str(Path(cache_dir) / "queue"))
        self._halt_policy = halt_policy
        self._api_prefix = "/" + api_prefix.strip("/") + "/"
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._mutation_keys())

    def close(self) -> None:
        self._cache.close()

    @property
    def is_draining(self) -> bool:
        """True while this handle, or any other process, is draining."""
        return self._lock.locked() or self._cache.get(_DRAIN_LEASE) is not None

    def enqueue(self, request: CachedRequest) -> QueuedMutation:
        """Append *request* with the next sequence number."""
        with self._cache.transact():
            sequence = self._cache.incr(_SEQUENCE_KEY, default=0)
            mutation = QueuedMutation(sequence=sequence, request=request)
            self._cache.set((_MUTATION, sequence), mutation.model_dump())
        logger.info("Queued %s %s as #%d", request.method, request.url, sequence)
        return mutation

    def pending(self) -> list[QueuedMutation]:
        """Return queued mutations in replay order."""
        result: list[QueuedMutation] = []
        for key in self._mutation_keys():
            raw = self._cache.get(key)
            if raw is None:
                continue
            try:
                result.append(QueuedMutation.model_validate(raw))
            except ValueError as exc:
                raise QueueError(f"Corrupt queue entry #{key[1]}: {exc}") from exc
        return result

    def remove(self, sequence: int) -> bool:
        return self._cache.delete((_MUTATION, sequence))

    def clear(self) -> int:
        """Drop every queued mutation. Returns the number removed."""
        keys = self._mutation_keys()
        for key in keys:
            self._cache.delete(key)
        return len(keys)

    def resource_of(self, request: CachedRequest) -> str:
        """Return the group a mutation belongs to under the ``resource`` policy.

        ``/api/transactions/5`` and ``/api/transactions`` both map to
        ``/api/transactions``. Paths outside the API namespace are their
        own group.
        """
        path = request.path
        if not path.startswith(self._api_prefix):
            return path
        segment = path[len(self._api_prefix):].split("/", 1)[0]
        return self._api_prefix + segment

    async def drain(self, transport: Transport) -> DrainResult:
        """Replay queued mutations in FIFO order.

        Drains are serialised within the process by an :class:`asyncio.Lock`
        and across processes by a lease in the queue directory, so no
        mutation is ever in flight twice. A drain that finds the lease taken
        waits for it, then replays whatever is still queued.
        """
        async with self._lock:
            token = await self._acquire_lease()
            try:
                return await self._drain(transport, token)
            finally:
                self._release_lease(token)

    async def _drain(self, transport: Transport, token: str) -> DrainResult:
        result = DrainResult()
        held: set[str] = set()
        halted = False

        for mutation in self.pending():
            resource = self.resource_of(mutation.request)
            if halted or resource in held:
                result.still_pending.append(mutation)
                continue

            self._renew_lease(token)
            try:
                response = await transport.send(mutation.request)
            except ConnectivityError as exc:
                failed = mutation.model_copy(
                    update={"attempts": mutation.attempts + 1, "last_error": str(exc)}
                )
                self._cache.set((_MUTATION, mutation.sequence), failed.model_dump())
                result.still_pending.append(failed)
                logger.info("Replay of #%d failed: %s", mutation.sequence, exc)
                if self._halt_policy is HaltPolicy.ALL:
                    halted = True
                elif self._halt_policy is HaltPolicy.RESOURCE:
                    held.add(resource)
                continue

            self.remove(mutation.sequence)
            if response.status_code >= 400:
                logger.warning(
                    "Replay of #%d rejected with HTTP %d",
                    mutation.sequence, response.status_code,
                )
                result.rejected.append(mutation)
            else:
                result.succeeded.append(mutation)

        return result

    async def _acquire_lease(self) -> str:
        token = uuid.uuid4().hex
        while not self._cache.add(_DRAIN_LEASE, token, expire=DRAIN_LEASE_SECONDS):
            logger.debug("Waiting for another drain to finish")
            await asyncio.sleep(DRAIN_POLL_SECONDS)
        return token

    def _renew_lease(self, token: str) -> None:
        with self._cache.transact():
            if self._cache.get(_DRAIN_LEASE) != token:
                raise QueueError("Drain lease lost to another process")
            self._cache.touch(_DRAIN_LEASE, expire=DRAIN_LEASE_SECONDS)

    def _release_lease(self, token: str) -> None:
        with self._cache.transact():
            if self._cache.get(_DRAIN_LEASE) == token:
                self._cache.delete(_DRAIN_LEASE)

    def _mutation_keys(self) -> list[tuple[str, int]]:
        keys = [
            key for key in self._cache.iterkeys()
            if isinstance(key, tuple) and key[0] == _MUTATION
        ]
        return sorted(keys, key=lambda key: key[1])
