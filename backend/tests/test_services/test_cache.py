"""Tests for the TTL + LRU profile cache."""

import pytest

from elverra.cache import TTLCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class TestTTLCache:
    def test_get_missing(self, clock):
        cache = TTLCache(maxsize=2, ttl=10, timer=clock)
        assert cache.get("a") is None

    def test_entry_expires(self, clock):
        cache = TTLCache(maxsize=2, ttl=10, timer=clock)
        cache.set("a", 1)
        clock.now = 9.9
        assert cache.get("a") == 1
        clock.now = 10.0
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_set_refreshes_expiry(self, clock):
        cache = TTLCache(maxsize=2, ttl=10, timer=clock)
        cache.set("a", 1)
        clock.now = 8
        cache.set("a", 2)
        clock.now = 15
        assert cache.get("a") == 2

    def test_evicts_least_recently_used(self, clock):
        cache = TTLCache(maxsize=2, ttl=10, timer=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert "b" not in cache
        assert cache.get("a") == 1
        assert cache.get("c") == 3
        assert len(cache) == 2

    def test_invalidate(self, clock):
        cache = TTLCache(maxsize=2, ttl=10, timer=clock)
        cache.set("a", 1)
        cache.invalidate("a")
        cache.invalidate("missing")
        assert cache.get("a") is None

    def test_clear(self, clock):
        cache = TTLCache(maxsize=2, ttl=10, timer=clock)
        cache.set("a", 1)
        cache.clear()
        assert len(cache) == 0

    @pytest.mark.parametrize("maxsize, ttl", [(0, 10), (-1, 10), (2, 0), (2, -5)])
    def test_rejects_non_positive_bounds(self, maxsize, ttl):
        with pytest.raises(ValueError):
            TTLCache(maxsize=maxsize, ttl=ttl)
