"""Unit tests for the sharded TTL cache."""

from __future__ import annotations

import threading

import pytest

from cluster_explorer.discovery.cache import CacheKey, CacheStats, TTLCache


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def key(kind: str = "Pod", namespace: str = "default", cursor: str | None = None) -> CacheKey:
    return CacheKey(kind, namespace, "", CacheKey.bucket_for(100, cursor))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> TTLCache:
    return TTLCache(default_ttl=10.0, clock=clock)


@pytest.mark.unit
class TestTTLCache:
    """Test cache get/put and expiry."""

    def test_put_then_get(self, cache: TTLCache) -> None:
        """Test a stored value is returned within its TTL."""
        cache.put(key(), "page")

        assert cache.get(key()) == "page"

    def test_miss_returns_none(self, cache: TTLCache) -> None:
        """Test an unknown key is a miss."""
        assert cache.get(key()) is None

    def test_entry_expires_at_ttl(self, cache: TTLCache, clock: FakeClock) -> None:
        """Test an entry is never returned once its age reaches the TTL."""
        cache.put(key(), "page")
        clock.advance(9)
        assert cache.get(key()) == "page"

        clock.advance(1)
        assert cache.get(key()) is None
        assert len(cache) == 0

    def test_explicit_ttl_overrides_default(self, cache: TTLCache, clock: FakeClock) -> None:
        """Test per-entry TTL."""
        cache.put(key(), "short", ttl=1.0)
        clock.advance(1.0)

        assert cache.get(key()) is None

    def test_zero_ttl_is_never_served(self, cache: TTLCache) -> None:
        """Test a zero TTL entry is already expired."""
        cache.put(key(), "page", ttl=0)

        assert cache.get(key()) is None

    def test_buckets_do_not_alias(self, cache: TTLCache) -> None:
        """Test page size and cursor are both part of the key."""
        cache.put(CacheKey("Pod", "default", "", CacheKey.bucket_for(2, None)), "small")
        cache.put(CacheKey("Pod", "default", "", CacheKey.bucket_for(100, None)), "large")
        cache.put(key(cursor="abc"), "second")

        assert cache.get(CacheKey("Pod", "default", "", "2:")) == "small"
        assert cache.get(CacheKey("Pod", "default", "", "100:")) == "large"
        assert cache.get(key(cursor="abc")) == "second"

    def test_invalid_shard_count(self) -> None:
        """Test at least one shard is required."""
        with pytest.raises(ValueError):
            TTLCache(shards=0)


@pytest.mark.unit
class TestTTLCacheMaintenance:
    """Test invalidation, clearing, sweeping and stats."""

    def test_invalidate_kind(self, cache: TTLCache) -> None:
        """Test invalidating a kind removes only that kind."""
        cache.put(key("Pod", "a"), 1)
        cache.put(key("Pod", "b"), 2)
        cache.put(key("Service", "a"), 3)

        assert cache.invalidate("Pod") == 2
        assert cache.get(key("Service", "a")) == 3

    def test_invalidate_kind_in_namespace(self, cache: TTLCache) -> None:
        """Test invalidating a kind in one namespace scope."""
        cache.put(key("Pod", "a"), 1)
        cache.put(key("Pod", "b"), 2)

        assert cache.invalidate("Pod", "a") == 1
        assert cache.get(key("Pod", "b")) == 2

    def test_clear_resets_counters(self, cache: TTLCache) -> None:
        """Test clear drops entries and hit/miss counters."""
        cache.put(key(), 1)
        cache.get(key())
        cache.get(key("Service"))

        assert cache.clear() == 1
        stats = cache.stats()
        assert stats.total_entries == 0
        assert stats.hits == 0
        assert stats.misses == 0

    def test_cleanup_expired(self, cache: TTLCache, clock: FakeClock) -> None:
        """Test the sweep removes only expired entries."""
        cache.put(key("Pod"), 1, ttl=5)
        cache.put(key("Service"), 2, ttl=50)
        clock.advance(10)

        assert cache.cleanup_expired() == 1
        assert cache.get(key("Service")) == 2

    def test_stats(self, cache: TTLCache, clock: FakeClock) -> None:
        """Test stats count live entries per kind and hit rate."""
        cache.put(key("Pod", "a"), 1)
        cache.put(key("Pod", "b"), 2)
        cache.put(key("Service", "a"), 3, ttl=1)
        clock.advance(2)
        cache.get(key("Pod", "a"))
        cache.get(key("Secret", "a"))

        stats = cache.stats()

        assert isinstance(stats, CacheStats)
        assert stats.entries_by_kind == {"Pod": 2}
        assert stats.total_entries == 2
        assert stats.default_ttl == 10.0
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == 0.5

    def test_unrecorded_lookup_leaves_counters(self, cache: TTLCache) -> None:
        """Test record=False lookups return values without touching hit/miss stats."""
        cache.put(key("Pod", "a"), 1)

        assert cache.get(key("Pod", "a"), record=False) == 1
        assert cache.get(key("Pod", "b"), record=False) is None

        stats = cache.stats()
        assert (stats.hits, stats.misses) == (0, 0)

    def test_hit_rate_without_lookups(self) -> None:
        """Test hit rate is zero before any lookup."""
        assert CacheStats().hit_rate == 0.0


@pytest.mark.unit
class TestTTLCacheConcurrency:
    """Test concurrent use of the cache."""

    def test_concurrent_puts_and_gets(self) -> None:
        """Test many threads writing distinct keys lose nothing."""
        cache = TTLCache(default_ttl=60, shards=4)

        def worker(n: int) -> None:
            for i in range(50):
                k = key("Pod", f"ns-{n}", cursor=str(i))
                cache.put(k, (n, i))
                assert cache.get(k) == (n, i)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(cache) == 400
