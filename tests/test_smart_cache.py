"""Tests for the in-memory result cache."""

from universal_parser.ingest.base import FetchStrategy, ProductRecord
from universal_parser.ingest.smart_cache import RedisResultCache, ResultCache


class TickingClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def record(url):
    return ProductRecord(url=url, name="Item", confidence=0.9)


def test_fifo_eviction_ignores_reads():
    cache = ResultCache(max_size=2, ttl_seconds=60, rendered_ttl_seconds=120)
    cache.set("a", record("a"), FetchStrategy.DIRECT)
    cache.set("b", record("b"), FetchStrategy.DIRECT)

    assert cache.get("a") is not None
    cache.set("c", record("c"), FetchStrategy.DIRECT)

    assert "a" not in cache
    assert "b" in cache and "c" in cache
    assert cache.get_stats()["evictions"] == 1


def test_reinsert_moves_entry_to_back():
    cache = ResultCache(max_size=2, ttl_seconds=60, rendered_ttl_seconds=120)
    cache.set("a", record("a"), FetchStrategy.DIRECT)
    cache.set("b", record("b"), FetchStrategy.DIRECT)
    cache.set("a", record("a"), FetchStrategy.DIRECT)
    cache.set("c", record("c"), FetchStrategy.DIRECT)

    assert "b" not in cache
    assert "a" in cache


def test_ttl_depends_on_strategy():
    clock = TickingClock()
    cache = ResultCache(max_size=10, ttl_seconds=60, rendered_ttl_seconds=120, clock=clock)
    cache.set("direct", record("direct"), FetchStrategy.DIRECT)
    cache.set("rendered", record("rendered"), FetchStrategy.RENDERED)

    clock.now += 90

    assert cache.get("direct") is None
    assert cache.get("rendered") is not None
    assert "direct" not in cache

    clock.now += 60
    assert cache.get("rendered") is None


def test_stats_track_hits_and_misses():
    cache = ResultCache(max_size=10, ttl_seconds=60, rendered_ttl_seconds=120)
    cache.set("a", record("a"), FetchStrategy.DIRECT)

    cache.get("a")
    cache.get("missing")

    stats = cache.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 0.5


def test_zero_capacity_stores_nothing():
    cache = ResultCache(max_size=0, ttl_seconds=60, rendered_ttl_seconds=120)
    cache.set("a", record("a"), FetchStrategy.DIRECT)
    assert len(cache) == 0


def test_redis_keys_are_prefixed_hashes():
    cache = RedisResultCache(redis_url="redis://localhost:6379/0", prefix="parser:")
    key = cache._get_cache_key("https://shop.example/p/1")

    assert key.startswith("parser:")
    assert len(key) == len("parser:") + 32
    assert key == cache._get_cache_key("https://shop.example/p/1")
