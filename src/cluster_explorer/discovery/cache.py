"""Sharded in-memory TTL cache for discovered resource pages.

Keys are spread over a fixed number of shards, each guarded by its own lock,
so workers touching unrelated keys never contend. Entries expire lazily: an
entry whose age has reached its TTL is treated as a miss and dropped on read.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, NamedTuple

import structlog
from pydantic import BaseModel, Field

from cluster_explorer.discovery.exceptions import CacheError
from cluster_explorer.integrations.kubernetes.config import DEFAULT_CACHE_TTL

logger = structlog.get_logger()

DEFAULT_SHARDS = 16


class CacheKey(NamedTuple):
    """Cache key for one page of one discovery unit."""

    kind: str
    namespace: str
    selector: str
    bucket: str

    @staticmethod
    def bucket_for(page_size: int, cursor: str | None) -> str:
        """Cursor bucket combining page size and cursor so pages never alias."""
        return f"{page_size}:{cursor or ''}"


@dataclass
class CacheEntry:
    """A cached value with its insertion time and lifetime."""

    value: Any
    inserted_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.inserted_at >= self.ttl


class CacheStats(BaseModel):
    """Snapshot of cache occupancy and effectiveness."""

    entries_by_kind: dict[str, int] = Field(default_factory=dict, description="Live entries")
    total_entries: int = Field(default=0, description="Live entries across all kinds")
    default_ttl: float = Field(default=DEFAULT_CACHE_TTL, description="Default TTL in seconds")
    hits: int = Field(default=0, description="Lookups answered from the cache")
    misses: int = Field(default=0, description="Lookups that fell through")

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class _Shard:
    __slots__ = ("entries", "hits", "lock", "misses")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.entries: dict[CacheKey, CacheEntry] = {}
        self.hits = 0
        self.misses = 0


class TTLCache:
    """Thread-safe TTL cache keyed by :class:`CacheKey`.

    Args:
        default_ttl: Lifetime in seconds of entries stored without an explicit TTL.
        shards: Number of independently locked shards.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_CACHE_TTL,
        shards: int = DEFAULT_SHARDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if shards < 1:
            raise ValueError("shards must be at least 1")
        self.default_ttl = default_ttl
        self._clock = clock
        self._shards = [_Shard() for _ in range(shards)]

    def _shard_for(self, key: CacheKey) -> _Shard:
        try:
            return self._shards[hash(key) % len(self._shards)]
        except TypeError as e:
            raise CacheError(f"Unhashable cache key: {key!r}") from e

    def get(self, key: CacheKey, *, record: bool = True) -> Any | None:
        """Return the cached value, or None on a miss or expired entry.

        With ``record=False`` the lookup leaves the hit/miss counters alone.
        """
        try:
            shard = self._shard_for(key)
            with shard.lock:
                entry = shard.entries.get(key)
                if entry is None:
                    shard.misses += record
                    return None
                if entry.is_expired(self._clock()):
                    del shard.entries[key]
                    shard.misses += record
                    logger.debug("cache_entry_expired", kind=key.kind, namespace=key.namespace)
                    return None
                shard.hits += record
                return entry.value
        except (CacheError, MemoryError) as e:
            logger.warning("cache_get_failed", error=str(e))
            return None

    def put(self, key: CacheKey, value: Any, ttl: float | None = None) -> None:
        """Store a value. A TTL of zero stores nothing useful: it is already expired."""
        try:
            shard = self._shard_for(key)
            entry = CacheEntry(
                value=value,
                inserted_at=self._clock(),
                ttl=self.default_ttl if ttl is None else ttl,
            )
            with shard.lock:
                shard.entries[key] = entry
        except (CacheError, MemoryError) as e:
            logger.warning("cache_put_failed", error=str(e))

    def invalidate(self, kind: str, namespace: str | None = None) -> int:
        """Drop every entry for a kind, or for a kind in one namespace scope.

        Returns:
            Number of entries removed.
        """
        removed = 0
        for shard in self._shards:
            with shard.lock:
                stale = [
                    key
                    for key in shard.entries
                    if key.kind == kind and (namespace is None or key.namespace == namespace)
                ]
                for key in stale:
                    del shard.entries[key]
                removed += len(stale)
        logger.debug("cache_invalidated", kind=kind, namespace=namespace, removed=removed)
        return removed

    def clear(self) -> int:
        """Drop every entry and reset hit/miss counters.

        Returns:
            Number of entries removed.
        """
        removed = 0
        for shard in self._shards:
            with shard.lock:
                removed += len(shard.entries)
                shard.entries.clear()
                shard.hits = 0
                shard.misses = 0
        logger.info("cache_cleared", removed=removed)
        return removed

    def cleanup_expired(self) -> int:
        """Sweep expired entries from every shard.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        removed = 0
        for shard in self._shards:
            with shard.lock:
                stale = [key for key, entry in shard.entries.items() if entry.is_expired(now)]
                for key in stale:
                    del shard.entries[key]
                removed += len(stale)
        if removed:
            logger.debug("cache_expired_entries_removed", removed=removed)
        return removed

    def stats(self) -> CacheStats:
        """Counts of live entries per kind plus hit/miss counters."""
        now = self._clock()
        by_kind: dict[str, int] = {}
        hits = misses = 0
        for shard in self._shards:
            with shard.lock:
                hits += shard.hits
                misses += shard.misses
                for key, entry in shard.entries.items():
                    if not entry.is_expired(now):
                        by_kind[key.kind] = by_kind.get(key.kind, 0) + 1
        return CacheStats(
            entries_by_kind=dict(sorted(by_kind.items())),
            total_entries=sum(by_kind.values()),
            default_ttl=self.default_ttl,
            hits=hits,
            misses=misses,
        )

    def __len__(self) -> int:
        return self.stats().total_entries
