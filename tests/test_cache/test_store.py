"""Tests for the CacheStore module."""

from __future__ import annotations

import pytest

from conftest import make_response
from offsync.cache import CacheStore
from offsync.models import CachedRequest

STATIC = "e-coris-static-v1"
DYNAMIC = "e-coris-dynamic-v1"


def _req(path: str = "/js/app.js", **kwargs) -> CachedRequest:
    return CachedRequest(url=f"https://app.example.com{path}", **kwargs)


# ------------------------------------------------------------------ #
# Core get/put behaviour
# ------------------------------------------------------------------ #


class TestGetPut:
    def test_put_and_get(self, store: CacheStore) -> None:
        assert store.put(STATIC, _req(), make_response(b"console.log(1)"))
        hit = store.get(STATIC, _req())
        assert hit is not None
        assert hit.body == b"console.log(1)"
        assert hit.from_cache is True
        assert hit.stored_at is not None

    def test_miss_returns_none(self, store: CacheStore) -> None:
        assert store.get(STATIC, _req("/missing.js")) is None

    def test_put_replaces_existing_entry(self, store: CacheStore) -> None:
        store.put(DYNAMIC, _req("/api/transactions"), make_response(b"[1]"))
        store.put(DYNAMIC, _req("/api/transactions"), make_response(b"[1, 2]"))
        assert store.get(DYNAMIC, _req("/api/transactions")).body == b"[1, 2]"
        assert len(store.keys(DYNAMIC)) == 1

    def test_buckets_are_isolated(self, store: CacheStore) -> None:
        store.put(STATIC, _req(), make_response(b"static"))
        assert store.get(DYNAMIC, _req()) is None

    def test_put_creates_bucket(self, store: CacheStore) -> None:
        store.put(DYNAMIC, _req(), make_response())
        assert store.has_bucket(DYNAMIC)


class TestStatusFiltering:
    @pytest.mark.parametrize("status", [301, 400, 404, 500, 503])
    def test_non_2xx_not_stored(self, store: CacheStore, status: int) -> None:
        assert store.put(STATIC, _req(), make_response(status_code=status)) is False
        assert store.get(STATIC, _req()) is None

    @pytest.mark.parametrize("status", [200, 201, 204])
    def test_2xx_stored(self, store: CacheStore, status: int) -> None:
        assert store.put(STATIC, _req(), make_response(status_code=status)) is True
        assert store.get(STATIC, _req()).status_code == status


# ------------------------------------------------------------------ #
# Delete, keys and match
# ------------------------------------------------------------------ #


class TestDeleteAndKeys:
    def test_delete_existing(self, store: CacheStore) -> None:
        store.put(STATIC, _req(), make_response())
        assert store.delete(STATIC, _req()) is True
        assert store.get(STATIC, _req()) is None

    def test_delete_missing(self, store: CacheStore) -> None:
        assert store.delete(STATIC, _req()) is False

    def test_keys_returns_requests(self, store: CacheStore) -> None:
        store.put(STATIC, _req("/a.js"), make_response())
        store.put(STATIC, _req("/b.js"), make_response())
        urls = sorted(r.url for r in store.keys(STATIC))
        assert urls == ["https://app.example.com/a.js", "https://app.example.com/b.js"]

    def test_keys_is_a_snapshot(self, store: CacheStore) -> None:
        store.put(STATIC, _req("/a.js"), make_response())
        keys = store.keys(STATIC)
        store.put(STATIC, _req("/b.js"), make_response())
        assert len(keys) == 1

    def test_match_searches_buckets_in_order(self, store: CacheStore) -> None:
        store.put(STATIC, _req(), make_response(b"static"))
        store.put(DYNAMIC, _req(), make_response(b"dynamic"))
        assert store.match(_req(), [DYNAMIC, STATIC]).body == b"dynamic"
        assert store.match(_req(), [STATIC, DYNAMIC]).body == b"static"

    def test_match_miss(self, store: CacheStore) -> None:
        assert store.match(_req()) is None


# ------------------------------------------------------------------ #
# Bucket management
# ------------------------------------------------------------------ #


class TestBuckets:
    def test_open_registers_empty_bucket(self, store: CacheStore) -> None:
        store.open(STATIC)
        assert store.bucket_names() == [STATIC]
        assert store.keys(STATIC) == []

    def test_delete_bucket_drops_entries(self, store: CacheStore) -> None:
        store.put(STATIC, _req("/a.js"), make_response())
        store.put(DYNAMIC, _req("/a.js"), make_response())
        assert store.delete_bucket(STATIC) is True
        assert not store.has_bucket(STATIC)
        assert store.get(STATIC, _req("/a.js")) is None
        assert store.get(DYNAMIC, _req("/a.js")) is not None

    def test_delete_missing_bucket(self, store: CacheStore) -> None:
        assert store.delete_bucket("nope") is False

    def test_evict_buckets_keeps_matching(self, store: CacheStore) -> None:
        for name in ["e-coris-static-v1", "e-coris-dynamic-v1", "e-coris-static-v2"]:
            store.put(name, _req(), make_response())
        evicted = store.evict_buckets(lambda name: name.endswith("-v2"))
        assert sorted(evicted) == ["e-coris-dynamic-v1", "e-coris-static-v1"]
        assert store.bucket_names() == ["e-coris-static-v2"]


class TestPersistence:
    def test_entries_survive_reopen(self, tmp_path) -> None:
        first = CacheStore(tmp_path)
        first.put(STATIC, _req(), make_response(b"kept"))
        first.set_meta("active_version", "v1")
        first.close()

        second = CacheStore(tmp_path)
        try:
            assert second.get(STATIC, _req()).body == b"kept"
            assert second.get_meta("active_version") == "v1"
        finally:
            second.close()


class TestStats:
    def test_stats_counts_per_bucket(self, store: CacheStore) -> None:
        store.put(STATIC, _req("/a.js"), make_response())
        store.put(STATIC, _req("/b.js"), make_response())
        store.open(DYNAMIC)
        stats = store.stats()
        assert stats["buckets"] == {DYNAMIC: 0, STATIC: 2}
        assert stats["entries"] == 2

    def test_clear(self, store: CacheStore) -> None:
        store.put(STATIC, _req(), make_response())
        store.clear()
        assert store.bucket_names() == []


# ------------------------------------------------------------------ #
# Cache key
# ------------------------------------------------------------------ #


class TestCacheKey:
    def test_method_case_insensitive(self) -> None:
        a = CachedRequest(method="get", url="https://x/a")
        b = CachedRequest(method="GET", url="https://x/a")
        assert a.cache_key() == b.cache_key()

    def test_url_changes_key(self) -> None:
        assert CachedRequest(url="https://x/a").cache_key() != CachedRequest(url="https://x/b").cache_key()

    def test_vary_header_changes_key(self) -> None:
        a = CachedRequest(url="https://x/a", headers={"Accept": "application/json"})
        b = CachedRequest(url="https://x/a", headers={"Accept": "text/html"})
        assert a.cache_key(["accept"]) != b.cache_key(["accept"])

    def test_non_vary_header_ignored(self) -> None:
        a = CachedRequest(url="https://x/a", headers={"Authorization": "Bearer 1"})
        b = CachedRequest(url="https://x/a", headers={"Authorization": "Bearer 2"})
        assert a.cache_key(["accept"]) == b.cache_key(["accept"])

    def test_vary_header_lookup_case_insensitive(self) -> None:
        a = CachedRequest(url="https://x/a", headers={"ACCEPT": "text/html"})
        b = CachedRequest(url="https://x/a", headers={"accept": "text/html"})
        assert a.cache_key(["Accept"]) == b.cache_key(["accept"])
