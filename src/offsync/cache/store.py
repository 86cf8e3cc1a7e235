"""Disk-based bucket store for cached responses.

Uses :mod:`diskcache` to persist request/response pairs on the filesystem.
Entries live in named *buckets* (``e-coris-static-v1``,
``e-coris-dynamic-v1``, ...). Every entry is tagged with its bucket name so
that a whole bucket can be evicted in one call.

Only successful (2xx) responses are stored. A ``put`` for an existing key
replaces the previous entry in a single SQLite transaction, so readers never
observe a half-written entry.

Key layout inside the underlying :class:`diskcache.Cache`::

    ("bucket", name)            -> creation timestamp
    ("entry", name, cache_key)  -> {"request": ..., "response": ...}
    ("meta", name)              -> arbitrary value
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

import diskcache

from offsync.models import CacheEntry, CachedRequest, StoredResponse

logger = logging.getLogger(__name__)

_BUCKET = "bucket"
_ENTRY = "entry"
_META = "meta"

ACTIVE_VERSION_META = "active_version"
"""Metadata key holding the version tag of the generation currently served."""


class CacheStore:
    """Persistent store of named buckets of request/response entries.

    Args:
        cache_dir: Root directory. A ``buckets/`` subdirectory is created
            inside it.
        vary_headers: Request headers that take part in the entry key.

    Example::

        store = CacheStore("/tmp/offsync")
        req = CachedRequest(url="https://app.example.com/js/app.js")
        store.put("e-coris-static-v1", req, StoredResponse(status_code=200, body=b"..."))
        hit = store.get("e-coris-static-v1", req)
    """

    def __init__(self, cache_dir: str | Path, vary_headers: Optional[list[str]] = None) -> None:
        self._cache_dir = Path(cache_dir)
        self._vary_headers = list(vary_headers or [])
        self._cache = diskcache.Cache(str(self._cache_dir / "buckets"), tag_index=True)

    def __enter__(self) -> CacheStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def directory(self) -> Path:
        return self._cache_dir / "buckets"

    # ------------------------------------------------------------------ #
    # Buckets
    # ------------------------------------------------------------------ #

    def open(self, bucket: str) -> None:
        """Create *bucket* if it does not exist yet."""
        self._cache.add((_BUCKET, bucket), _now().isoformat())

    def has_bucket(self, bucket: str) -> bool:
        return (_BUCKET, bucket) in self._cache

    def bucket_names(self) -> list[str]:
        """Return every bucket name, sorted."""
        return sorted(key[1] for key in self._snapshot_keys() if key[0] == _BUCKET)

    def delete_bucket(self, bucket: str) -> bool:
        """Drop *bucket* and all its entries. Returns ``True`` if it existed."""
        existed = self.has_bucket(bucket)
        removed = self._cache.evict(bucket)
        self._cache.delete((_BUCKET, bucket))
        if existed:
            logger.debug("Deleted bucket %s (%d entries)", bucket, removed)
        return existed

    def evict_buckets(self, keep: Callable[[str], bool]) -> list[str]:
        """Delete every bucket whose name fails *keep*.

        Returns:
            The names of the evicted buckets.
        """
        evicted = [name for name in self.bucket_names() if not keep(name)]
        for name in evicted:
            self.delete_bucket(name)
        return evicted

    # ------------------------------------------------------------------ #
    # Entries
    # ------------------------------------------------------------------ #

    def get(self, bucket: str, request: CachedRequest) -> Optional[StoredResponse]:
        """Look up *request* in *bucket*.

        Returns:
            The stored response marked ``from_cache``, or ``None`` on a miss.
        """
        raw = self._cache.get(self._entry_key(bucket, request))
        if raw is None:
            return None
        response = StoredResponse.model_validate(raw["response"])
        return response.model_copy(update={"from_cache": True})

    def put(self, bucket: str, request: CachedRequest, response: StoredResponse) -> bool:
        """Store *response* for *request*, replacing any previous entry.

        Non-2xx responses are ignored.

        Returns:
            ``True`` if the entry was written.
        """
        if not response.ok:
            return False
        stored = response.model_copy(
            update={"stored_at": _now(), "from_cache": False, "offline": False}
        )
        value = {"request": request.model_dump(), "response": stored.model_dump()}
        with self._cache.transact():
            self._cache.add((_BUCKET, bucket), _now().isoformat())
            self._cache.set(self._entry_key(bucket, request), value, tag=bucket)
        return True

    def delete(self, bucket: str, request: CachedRequest) -> bool:
        """Remove the entry for *request*. Returns ``True`` if one existed."""
        return self._cache.delete(self._entry_key(bucket, request))

    def keys(self, bucket: str) -> list[CachedRequest]:
        """Return the requests stored in *bucket*, as of the time of the call."""
        return [entry.request for entry in self.entries(bucket)]

    def entries(self, bucket: str) -> list[CacheEntry]:
        result: list[CacheEntry] = []
        for key in self._snapshot_keys():
            if key[0] != _ENTRY or key[1] != bucket:
                continue
            raw = self._cache.get(key)
            if raw is None:
                # deleted between the key snapshot and the read
                continue
            result.append(CacheEntry.model_validate(raw))
        return result

    def match(
        self,
        request: CachedRequest,
        buckets: Optional[Iterable[str]] = None,
    ) -> Optional[StoredResponse]:
        """Return the first hit for *request* across *buckets* (default: all)."""
        names = list(buckets) if buckets is not None else self.bucket_names()
        for name in names:
            hit = self.get(name, request)
            if hit is not None:
                return hit
        return None

    # ------------------------------------------------------------------ #
    # Metadata
    # ------------------------------------------------------------------ #

    def get_meta(self, name: str, default: Any = None) -> Any:
        return self._cache.get((_META, name), default)

    def set_meta(self, name: str, value: Any) -> None:
        self._cache.set((_META, name), value)

    # ------------------------------------------------------------------ #
    # Housekeeping
    # ------------------------------------------------------------------ #

    def stats(self) -> dict[str, Any]:
        """Return per-bucket entry counts and the cache directory."""
        counts = {name: 0 for name in self.bucket_names()}
        for key in self._snapshot_keys():
            if key[0] == _ENTRY and key[1] in counts:
                counts[key[1]] += 1
        return {
            "directory": str(self.directory),
            "buckets": counts,
            "entries": sum(counts.values()),
        }

    def clear(self) -> None:
        """Remove every bucket, entry and metadata value."""
        self._cache.clear()

    def close(self) -> None:
        self._cache.close()

    def _entry_key(self, bucket: str, request: CachedRequest) -> tuple[str, str, str]:
        return (_ENTRY, bucket, request.cache_key(self._vary_headers))

    def _snapshot_keys(self) -> list[tuple]:
        return [key for key in self._cache.iterkeys() if isinstance(key, tuple)]


def _now() -> datetime:
    return datetime.now(timezone.utc)
