"""JSON API client on top of :class:`~offsync.worker.OfflineWorker`.

Every call goes through :meth:`~offsync.worker.OfflineWorker.handle_fetch`,
so reads benefit from the cache and writes are queued when offline. The
client adds what a front-end expects from its API wrapper:

* the bearer token from the :class:`~offsync.session.SessionStore`;
* JSON encoding of request bodies and decoding of responses;
* HTTP error mapping: 401/403 clear the session and raise
  :class:`~offsync.exceptions.AuthError`, other 4xx/5xx raise
  :class:`~offsync.exceptions.ApplicationError` with the server's
  ``{"error": ...}`` message.

Degraded responses are not errors: the offline payload
(``{"error": "offline", "offline": true, ...}``) is returned as data.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from offsync.exceptions import ApplicationError, AuthError
from offsync.models import CachedRequest, StoredResponse
from offsync.session import SessionStore
from offsync.worker import OfflineWorker


class ApiClient:
    """Resource-oriented JSON client.

    Args:
        worker: The dispatcher every request is routed through.
        session: Session store supplying the bearer token. When ``None``
            no ``Authorization`` header is sent.

    Example::

        client = ApiClient(worker, SessionStore())
        transactions = await client.get("/api/transactions?type=expense")
    """

    def __init__(self, worker: OfflineWorker, session: Optional[SessionStore] = None) -> None:
        self._worker = worker
        self._session = session

    async def request(
        self,
        method: str,
        path: str,
        json_body: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """Send a request and return its decoded JSON body.

        Raises:
            AuthError: On 401 / 403 (the session is cleared first).
            ApplicationError: On any other 4xx / 5xx that is not an offline
                placeholder.
        """
        body = json.dumps(json_body).encode() if json_body is not None else None
        response = await self.fetch(method, path, body=body, headers=headers)
        return self._decode(response)

    async def fetch(
        self,
        method: str,
        path: str,
        body: Optional[bytes] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> StoredResponse:
        """Send a request with the JSON and bearer headers and return the raw response.

        No status mapping is applied; ``offsync fetch`` uses this to print
        whatever came back.
        """
        merged: dict[str, str] = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._session is not None:
            merged.update(self._session.auth_headers())
        for name, value in (headers or {}).items():
            for existing in [key for key in merged if key.lower() == name.lower()]:
                del merged[existing]
            merged[name] = value
        request = CachedRequest(method=method, url=path, headers=merged, body=body)
        return await self._worker.handle_fetch(request)

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, json_body: Any = None, **kwargs: Any) -> Any:
        return await self.request("POST", path, json_body=json_body, **kwargs)

    async def put(self, path: str, json_body: Any = None, **kwargs: Any) -> Any:
        return await self.request("PUT", path, json_body=json_body, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)

    def _decode(self, response: StoredResponse) -> Any:
        try:
            data = response.json() if response.body else None
        except ValueError:
            data = response.text

        if response.offline or response.status_code < 400:
            return data

        message = ""
        if isinstance(data, dict):
            message = data.get("error") or data.get("message") or ""
        full_msg = f"HTTP {response.status_code}: {message}" if message else f"HTTP {response.status_code}"

        if response.status_code in (401, 403):
            if self._session is not None:
                self._session.clear()
            raise AuthError(full_msg, status_code=response.status_code)
        raise ApplicationError(full_msg, status_code=response.status_code)
