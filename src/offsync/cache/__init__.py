"""Persistent, bucketed response storage for offsync.

This package provides :class:`CacheStore`, a versioned collection of named
buckets holding request/response pairs on disk via :mod:`diskcache`. It is
shared by the strategy executors (reads and write-through), the lifecycle
manager (seeding and eviction) and the CLI (inspection).
"""

from offsync.cache.store import CacheStore

__all__ = ["CacheStore"]
