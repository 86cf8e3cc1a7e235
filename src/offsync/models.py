"""Canonical Pydantic models shared across all offsync modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig`, :class:`CacheConfig`, :class:`SyncConfig`, and
    :class:`EngineConfig`.

**Engine models** -- requests, responses and queue records that flow between
the cache store, the strategies, the mutation queue and the lifecycle
manager:
    :class:`Strategy`, :class:`CachedRequest`, :class:`StoredResponse`,
    :class:`CacheEntry`, :class:`QueuedMutation`, :class:`DrainResult`,
    :class:`LifecycleState`, :class:`PushPayload`, and :class:`Notification`.

All models use Pydantic v2. Engine models are stored in :mod:`diskcache` as
plain dicts produced by ``model_dump()`` and validated back on read.
"""

from __future__ import annotations

import enum
import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urljoin, urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator


MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
"""HTTP methods treated as non-idempotent writes."""

DEFAULT_STATIC_EXTENSIONS = [
    ".css",
    ".js",
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".ico",
    ".webp",
    ".woff",
    ".woff2",
    ".ttf",
    ".otf",
]

DEFAULT_MANIFEST = [
    "/",
    "/index.html",
    "/css/main.css",
    "/css/components.css",
    "/js/app.js",
    "/js/config.js",
    "/js/api.js",
    "/js/auth.js",
    "/js/finances.js",
    "/js/formation.js",
    "/manifest.json",
    "/assets/icon-192.png",
    "/assets/icon-512.png",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Configuration ---


class RequestConfig(BaseModel):
    """Network transport settings applied to every outgoing request."""

    timeout: float = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(default=0, description="Transport-level retry attempts")


class CacheConfig(BaseModel):
    """Response cache settings."""

    directory: Optional[str] = Field(
        default=None,
        description="Cache directory override (defaults to the XDG cache dir)",
    )
    vary_headers: list[str] = Field(
        default_factory=lambda: ["accept"],
        description="Request headers that take part in the cache key",
    )


class HaltPolicy(str, enum.Enum):
    """What :meth:`~offsync.sync.queue.MutationQueue.drain` does after a failed replay.

    ``RESOURCE`` holds back later mutations aimed at the same URL path so
    per-resource ordering is kept while unrelated resources still sync.
    ``ALL`` stops the drain entirely. ``NONE`` attempts every entry.
    """

    RESOURCE = "resource"
    ALL = "all"
    NONE = "none"


class SyncConfig(BaseModel):
    """Background sync settings."""

    tag: str = Field(default="sync-transactions", description="Sync trigger tag")
    halt_policy: HaltPolicy = Field(
        default=HaltPolicy.RESOURCE,
        description="Behaviour after a replay fails with a connectivity error",
    )


class EngineConfig(BaseModel):
    """Complete engine configuration, persisted as ``config.json``.

    The ``version`` tag names the current generation of cached assets. Bucket
    names derive from it, so bumping the tag and running install/activate
    replaces every bucket of the previous generation.

    Example::

        EngineConfig(
            version="v2",
            base_url="https://e-corisfin-api.onrender.com",
            manifest=["/", "/index.html", "/js/app.js"],
        )
    """

    app_name: str = Field(default="E-Coris", description="Display name used in notifications")
    cache_prefix: str = Field(default="e-coris", description="Prefix shared by all bucket names")
    version: str = Field(default="v1", description="Current version tag")
    base_url: str = Field(
        default="http://localhost:3000",
        description="Origin that relative request URLs are resolved against",
    )
    api_prefix: str = Field(default="/api/", description="Path prefix of the REST namespace")
    static_extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_STATIC_EXTENSIONS))
    manifest: list[str] = Field(
        default_factory=lambda: list(DEFAULT_MANIFEST),
        description="Assets fetched into the static bucket at install time",
    )
    offline_page: Optional[str] = Field(
        default="/offline.html",
        description="Cached page served by cache-first when the network is down",
    )
    notification_icon: str = Field(default="/assets/icon-192.png")
    notification_badge: str = Field(default="/assets/badge.png")
    request: RequestConfig = Field(default_factory=RequestConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)

    @property
    def static_bucket(self) -> str:
        """Name of the static bucket for the current version."""
        return f"{self.cache_prefix}-static-{self.version}"

    @property
    def dynamic_bucket(self) -> str:
        """Name of the dynamic bucket for the current version."""
        return f"{self.cache_prefix}-dynamic-{self.version}"

    @property
    def current_buckets(self) -> tuple[str, str]:
        return (self.static_bucket, self.dynamic_bucket)

    def absolute_url(self, url: str) -> str:
        """Resolve *url* against :attr:`base_url` unless it is already absolute."""
        if urlsplit(url).scheme:
            return url
        return urljoin(self.base_url.rstrip("/") + "/", url.lstrip("/"))


# --- Engine models ---


class Strategy(str, enum.Enum):
    """Caching policy applied to a request."""

    CACHE_FIRST = "cache_first"
    NETWORK_FIRST = "network_first"
    STALE_WHILE_REVALIDATE = "stale_while_revalidate"
    BYPASS = "bypass"


class CachedRequest(BaseModel):
    """A captured HTTP request, used both as a cache key and as a queue record.

    Attributes:
        method: Upper-cased HTTP method.
        url: Absolute URL, including the query string.
        headers: Request headers as sent by the caller.
        body: Raw request body, or ``None``.
    """

    method: str = "GET"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[bytes] = None

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def is_mutation(self) -> bool:
        return self.method in MUTATING_METHODS

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    def cache_key(self, vary_headers: Optional[list[str]] = None) -> str:
        """Return the canonical key for this request.

        SHA-256 of ``METHOD|URL`` followed by ``name=value`` for every vary
        header the request carries, so header order and casing never matter.
        """
        parts = [self.method, self.url]
        for name in sorted(h.lower() for h in vary_headers or []):
            value = self.header(name)
            if value is not None:
                parts.append(f"{name}={value}")
        raw = "|".join(parts)
        return hashlib.sha256(raw.encode()).hexdigest()


class StoredResponse(BaseModel):
    """An HTTP response as stored in, or served from, the cache.

    Attributes:
        status_code: HTTP status.
        headers: Response headers (lower-cased names).
        body: Raw body bytes.
        stored_at: When the response was written to the cache.
        from_cache: ``True`` when this instance was read from a bucket.
        offline: ``True`` for the synthetic placeholders produced while the
            network is unreachable.
    """

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""
    stored_at: Optional[datetime] = None
    from_cache: bool = False
    offline: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)

    @classmethod
    def offline_payload(cls, **extra: Any) -> StoredResponse:
        """Build the structured 503 JSON payload returned when fully offline."""
        payload: dict[str, Any] = {"error": "offline", "offline": True}
        payload.update(extra)
        return cls(
            status_code=503,
            headers={"content-type": "application/json"},
            body=json.dumps(payload).encode(),
            offline=True,
        )

    @classmethod
    def offline_placeholder(cls) -> StoredResponse:
        """Build the plain-text 503 placeholder served for uncached assets."""
        return cls(
            status_code=503,
            headers={"content-type": "text/plain; charset=utf-8"},
            body=b"Offline",
            offline=True,
        )


class CacheEntry(BaseModel):
    """A request/response pair held in a bucket."""

    model_config = ConfigDict(frozen=True)

    request: CachedRequest
    response: StoredResponse


class QueuedMutation(BaseModel):
    """A write request captured while the network was unreachable.

    Attributes:
        sequence: Monotonically increasing replay position.
        request: The captured request.
        enqueued_at: UTC time of capture.
        attempts: Number of failed replay attempts so far.
        last_error: Message of the most recent replay failure.
    """

    sequence: int
    request: CachedRequest
    enqueued_at: datetime = Field(default_factory=_utcnow)
    attempts: int = 0
    last_error: Optional[str] = None


class DrainResult(BaseModel):
    """Outcome of one :meth:`~offsync.sync.queue.MutationQueue.drain` pass."""

    succeeded: list[QueuedMutation] = Field(default_factory=list)
    rejected: list[QueuedMutation] = Field(default_factory=list)
    still_pending: list[QueuedMutation] = Field(default_factory=list)


class LifecycleState(str, enum.Enum):
    """States of a :class:`~offsync.lifecycle.LifecycleManager`."""

    INSTALLING = "installing"
    WAITING = "waiting"
    ACTIVE = "active"
    SUPERSEDED = "superseded"
    REDUNDANT = "redundant"


class PushPayload(BaseModel):
    """Data carried by a push message."""

    title: Optional[str] = None
    body: Optional[str] = None
    url: Optional[str] = None


class NotificationAction(BaseModel):
    action: str
    title: str


class Notification(BaseModel):
    """A notification ready to be shown by a notifier."""

    title: str
    body: str
    icon: str
    badge: str
    vibrate: list[int] = Field(default_factory=lambda: [100, 50, 100])
    data: dict[str, Any] = Field(default_factory=dict)
    actions: list[NotificationAction] = Field(default_factory=list)
