"""Shared test fixtures for offsync.

Provides an isolated XDG environment, a fresh cache store and mutation
queue per test, and :class:`FakeTransport`, an in-memory implementation of
the :class:`~offsync.transport.Transport` protocol that records every call.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional, Union

import pytest

from offsync.cache.store import CacheStore
from offsync.exceptions import ConnectivityError
from offsync.models import CachedRequest, EngineConfig, StoredResponse
from offsync.output import OutputFormat, OutputManager, reset_output, set_output
from offsync.sync.queue import MutationQueue

BASE_URL = "https://app.example.com"

Handler = Callable[[CachedRequest], StoredResponse]


def make_response(
    body: Union[bytes, str] = b"{}",
    status_code: int = 200,
    content_type: str = "application/json",
) -> StoredResponse:
    if isinstance(body, str):
        body = body.encode()
    return StoredResponse(status_code=status_code, headers={"content-type": content_type}, body=body)


class FakeTransport:
    """In-memory transport.

    Responses are looked up by URL in :attr:`routes` (a response or a
    handler). Unknown URLs answer 404. Setting :attr:`offline` makes every
    call raise :class:`ConnectivityError`; :attr:`offline_urls` does so for
    selected URLs only. When :attr:`gate` is set, calls block until it is
    released.
    """

    def __init__(self) -> None:
        self.routes: dict[str, Union[StoredResponse, Handler]] = {}
        self.calls: list[CachedRequest] = []
        self.offline = False
        self.offline_urls: set[str] = set()
        self.gate: Optional[asyncio.Event] = None

    def route(self, url: str, response: Union[StoredResponse, Handler]) -> None:
        self.routes[url] = response

    def calls_to(self, url: str) -> int:
        return sum(1 for call in self.calls if call.url == url)

    async def send(self, request: CachedRequest) -> StoredResponse:
        self.calls.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.offline or request.url in self.offline_urls:
            raise ConnectivityError(f"{request.url} unreachable")
        target = self.routes.get(request.url)
        if target is None:
            return make_response(b'{"error": "not found"}', status_code=404)
        if callable(target):
            return target(request)
        return target


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager and the CLI log handlers after every test."""
    yield
    reset_output()
    logger = logging.getLogger("offsync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every XDG directory at tmp_path and clear OFFSYNC_* variables."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("offsync.config._is_xdg_platform", lambda: True)
    for var in ["OFFSYNC_VERSION", "OFFSYNC_BASE_URL", "OFFSYNC_CACHE_DIR"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig(
        base_url=BASE_URL,
        manifest=["/", "/js/app.js", "/css/main.css"],
    )


@pytest.fixture
def store(tmp_path: Path) -> CacheStore:
    s = CacheStore(tmp_path / "store", vary_headers=["accept"])
    yield s
    s.close()


@pytest.fixture
def queue(tmp_path: Path) -> MutationQueue:
    q = MutationQueue(tmp_path / "store")
    yield q
    q.close()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def quiet_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()
