"""Network transport -- the engine's only path to the backend.

The strategies, the mutation queue and the lifecycle manager depend on the
:class:`Transport` protocol alone: ``send(request) -> StoredResponse``,
raising :class:`~offsync.exceptions.ConnectivityError` when the network is
unreachable. HTTP error statuses are *not* exceptions at this layer; they
come back as ordinary responses so callers can tell an application error
from a connectivity failure.

:class:`HttpxTransport` is the production implementation, wrapping
:class:`httpx.AsyncClient`. Tests plug in :class:`httpx.MockTransport` or a
fake that implements the protocol directly.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, runtime_checkable

import httpx

from offsync.exceptions import ConnectivityError
from offsync.models import CachedRequest, EngineConfig, StoredResponse

logger = logging.getLogger(__name__)

_TRANSIENT = (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError)
"""Transport failures worth retrying. Every other one fails at once."""


@runtime_checkable
class Transport(Protocol):
    """Anything that can send a :class:`~offsync.models.CachedRequest`."""

    async def send(self, request: CachedRequest) -> StoredResponse: ...


class HttpxTransport:
    """Asynchronous HTTP transport backed by :class:`httpx.AsyncClient`.

    Every :class:`httpx.TransportError` (no response arrived) surfaces as
    :class:`~offsync.exceptions.ConnectivityError`. Connection, network and
    timeout errors are first retried ``max_retries`` times with exponential
    backoff (1 s, 2 s, 4 s, ...); protocol, proxy and unsupported-scheme
    errors are not retried. The request timeout is the only deadline;
    strategies add none of their own.

    Args:
        config: Engine configuration (timeout, SSL verification, retries,
            base URL for relative requests).
        transport: Optional low-level httpx transport, e.g.
            :class:`httpx.MockTransport` in tests.

    Example::

        async with HttpxTransport(config) as transport:
            response = await transport.send(CachedRequest(url="/api/auth/me"))
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> HttpxTransport:
        self._ensure_client()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            settings = self._config.request
            self._client = httpx.AsyncClient(
                timeout=settings.timeout,
                verify=settings.verify_ssl,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def send(self, request: CachedRequest) -> StoredResponse:
        """Send *request* and return the response, whatever its status.

        Raises:
            ConnectivityError: When no response could be obtained after all
                retries.
        """
        client = self._ensure_client()
        url = self._config.absolute_url(request.url)
        max_retries = self._config.request.max_retries

        for attempt in range(max_retries + 1):
            try:
                response = await client.request(
                    request.method,
                    url,
                    headers=request.headers,
                    content=request.body,
                )
            except httpx.TransportError as exc:
                if isinstance(exc, _TRANSIENT) and attempt < max_retries:
                    delay = 2 ** attempt
                    logger.debug(
                        "Connection error: %s, retrying in %ss (attempt %d/%d)",
                        exc, delay, attempt + 1, max_retries,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise ConnectivityError(
                    f"{request.method} {url} unreachable after {attempt + 1} attempt(s): {exc}"
                ) from exc

            return StoredResponse(
                status_code=response.status_code,
                headers={k.lower(): v for k, v in response.headers.items()},
                body=response.content,
            )

        raise ConnectivityError(f"{request.method} {url} unreachable")  # pragma: no cover
