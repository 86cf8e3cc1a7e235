"""Controlled clients -- the windows or sessions the engine serves.

:class:`ClientRegistry` tracks which version tag controls each client.
:meth:`ClientRegistry.claim` is called on activation so that no client stays
pinned to a superseded generation. It also backs notification clicks, which
either focus a client already showing the target URL or open a new one.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class Client:
    """A single controlled client."""

    id: str
    url: str
    controller: Optional[str] = None
    focused: bool = False


@dataclass
class ClientRegistry:
    """In-process registry of clients.

    Args:
        opener: Called with a URL when a new client must be opened, e.g. a
            browser launcher. Defaults to a no-op.
    """

    opener: Callable[[str], None] = lambda url: None
    _clients: dict[str, Client] = field(default_factory=dict)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    def register(self, url: str, controller: Optional[str] = None) -> Client:
        client = Client(id=f"client-{next(self._ids)}", url=url, controller=controller)
        self._clients[client.id] = client
        return client

    def unregister(self, client_id: str) -> None:
        self._clients.pop(client_id, None)

    def all(self) -> list[Client]:
        return list(self._clients.values())

    def claim(self, version: str) -> int:
        """Make *version* the controller of every registered client."""
        for client in self._clients.values():
            client.controller = version
        logger.debug("Claimed %d clients for %s", len(self._clients), version)
        return len(self._clients)

    def focus(self, client_id: str) -> Client:
        for client in self._clients.values():
            client.focused = client.id == client_id
        return self._clients[client_id]

    def open_window(self, url: str, controller: Optional[str] = None) -> Client:
        self.opener(url)
        client = self.register(url, controller)
        return self.focus(client.id)

    def focus_or_open(self, url: str, controller: Optional[str] = None) -> Client:
        """Focus the first client at *url*, or open a new one."""
        for client in self._clients.values():
            if client.url == url:
                return self.focus(client.id)
        return self.open_window(url, controller)
