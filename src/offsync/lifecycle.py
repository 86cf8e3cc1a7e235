"""Version lifecycle -- install, activate and supersede cache generations.

A :class:`LifecycleManager` owns one version tag and moves through::

    installing -> waiting -> active -> superseded
         \\
          -> redundant   (install failed)

Installing a new version only ever writes to that version's static bucket,
so the currently active generation keeps serving until :meth:`activate`
runs. Seeding is all-or-nothing: every manifest asset is fetched before any
of them is stored, and one failed fetch abandons the install.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from offsync.cache.store import ACTIVE_VERSION_META, CacheStore
from offsync.clients import ClientRegistry
from offsync.exceptions import ConnectivityError, InstallError
from offsync.models import CachedRequest, EngineConfig, LifecycleState, StoredResponse
from offsync.transport import Transport

logger = logging.getLogger(__name__)

INSTALLED_META = "installed:{version}"


class LifecycleManager:
    """Drives install/activate for the version in *config*.

    Args:
        store: Shared cache store.
        transport: Used to fetch manifest assets.
        config: Supplies the version tag, bucket names and the manifest.
        clients: Registry claimed on activation.
    """

    def __init__(
        self,
        store: CacheStore,
        transport: Transport,
        config: EngineConfig,
        clients: Optional[ClientRegistry] = None,
    ) -> None:
        self._store = store
        self._transport = transport
        self._config = config
        self._clients = clients or ClientRegistry()
        self._state = self._restore_state()

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def version(self) -> str:
        return self._config.version

    def active_version(self) -> Optional[str]:
        """Return the version tag recorded by the last successful activation."""
        return self._store.get_meta(ACTIVE_VERSION_META)

    async def install(self) -> int:
        """Seed the static bucket with every manifest asset.

        Returns:
            The number of assets stored.

        Raises:
            InstallError: If any asset is unreachable or answers non-2xx.
                The static bucket of this version is removed and the
                manager becomes ``redundant``.
        """
        self._state = LifecycleState.INSTALLING
        bucket = self._config.static_bucket
        requests = [
            CachedRequest(url=self._config.absolute_url(asset))
            for asset in self._config.manifest
        ]
        logger.info("Installing %s (%d assets)", self.version, len(requests))

        try:
            responses = await asyncio.gather(*(self._fetch(req) for req in requests))
        except InstallError:
            self._abandon(bucket)
            raise

        self._store.open(bucket)
        for request, response in zip(requests, responses):
            self._store.put(bucket, request, response)

        self._store.set_meta(INSTALLED_META.format(version=self.version), True)
        self._state = LifecycleState.WAITING
        return len(requests)

    async def activate(self) -> list[str]:
        """Evict other generations and take control of every client.

        Returns:
            Names of the evicted buckets.

        Raises:
            InstallError: If :meth:`install` has not completed.
        """
        if self._state not in (LifecycleState.WAITING, LifecycleState.ACTIVE):
            raise InstallError(
                f"Cannot activate {self.version} from state '{self._state.value}'"
            )

        current = set(self._config.current_buckets)
        evicted = self._store.evict_buckets(lambda name: name in current)
        for name in evicted:
            logger.info("Deleted stale bucket %s", name)

        self._store.open(self._config.dynamic_bucket)
        self._store.set_meta(ACTIVE_VERSION_META, self.version)
        self._clients.claim(self.version)
        self._state = LifecycleState.ACTIVE
        return evicted

    def supersede(self) -> None:
        """Mark this version as replaced by a newer active one."""
        self._state = LifecycleState.SUPERSEDED

    async def _fetch(self, request: CachedRequest) -> StoredResponse:
        try:
            response = await self._transport.send(request)
        except ConnectivityError as exc:
            raise InstallError(f"Could not fetch {request.url}: {exc}") from exc
        if not response.ok:
            raise InstallError(f"Could not fetch {request.url}: HTTP {response.status_code}")
        return response

    def _restore_state(self) -> LifecycleState:
        if self.active_version() == self.version:
            return LifecycleState.ACTIVE
        if self._store.get_meta(INSTALLED_META.format(version=self.version)):
            return LifecycleState.WAITING
        return LifecycleState.INSTALLING

    def _abandon(self, bucket: str) -> None:
        self._store.delete_bucket(bucket)
        self._store.set_meta(INSTALLED_META.format(version=self.version), False)
        self._state = LifecycleState.REDUNDANT
        logger.warning("Install of %s abandoned", self.version)
