"""
TTL cache tests.

Uses a fake clock so expiry is deterministic.
"""

import pytest

from stockcheck.services.cache import ProductKey, StockKey, TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(ttl_seconds=60, max_entries=2, clock=clock)


def test_hit_within_ttl(cache, clock):
    cache.set(ProductKey("ABC"), "abc")
    clock.advance(59)
    assert cache.get(ProductKey("ABC")) == "abc"


def test_entry_expires(cache, clock):
    cache.set(ProductKey("ABC"), "abc")
    clock.advance(60)
    assert cache.get(ProductKey("ABC")) is None
    assert len(cache) == 0


def test_keys_are_compared_by_value(cache):
    cache.set(StockKey("T01", "ABC"), 10)
    assert cache.get(StockKey("T01", "ABC")) == 10
    assert cache.get(StockKey("T02", "ABC")) is None


def test_least_recently_used_is_evicted(cache):
    cache.set(ProductKey("A"), 1)
    cache.set(ProductKey("B"), 2)
    cache.get(ProductKey("A"))
    cache.set(ProductKey("C"), 3)

    assert cache.get(ProductKey("B")) is None
    assert cache.get(ProductKey("A")) == 1
    assert cache.stats()["evictions"] == 1


def test_invalidate(cache):
    cache.set(ProductKey("A"), 1)
    assert cache.invalidate(ProductKey("A")) is True
    assert cache.invalidate(ProductKey("A")) is False


def test_get_or_load_does_not_cache_none(cache):
    calls = []

    def loader():
        calls.append(1)
        return None

    assert cache.get_or_load(ProductKey("NOPE"), loader) is None
    assert cache.get_or_load(ProductKey("NOPE"), loader) is None
    assert len(calls) == 2


def test_get_or_load_caches_values(cache):
    calls = []

    def loader():
        calls.append(1)
        return "abc"

    cache.get_or_load(ProductKey("ABC"), loader)
    cache.get_or_load(ProductKey("ABC"), loader)

    assert len(calls) == 1
    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 0.5


def test_load_overlapping_an_invalidation_is_not_cached(cache):
    key = ProductKey("ABC")

    def loader():
        # a writer invalidates while this load is still reading
        cache.invalidate(key)
        return "stale"

    assert cache.get_or_load(key, loader) == "stale"
    assert cache.get(key) is None
    assert cache.get_or_load(key, lambda: "fresh") == "fresh"
    assert cache.get(key) == "fresh"


def test_clear(cache):
    cache.set(ProductKey("A"), 1)
    cache.set(ProductKey("B"), 2)
    assert cache.clear() == 2
    assert len(cache) == 0


@pytest.mark.parametrize("kwargs", [{"ttl_seconds": 0}, {"max_entries": 0}])
def test_rejects_bad_settings(kwargs):
    with pytest.raises(ValueError):
        TTLCache(**kwargs)
