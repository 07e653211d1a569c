"""Tests for the TTL cache."""

import pytest

from servicarr.server.core.cache import TTLCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> TTLCache:
    return TTLCache(30, clock=clock)


class TestTTLCache:
    """Test expiry and invalidation."""

    def test_get_missing_returns_default(self, cache: TTLCache):
        assert cache.get("x") is None
        assert cache.get("x", 5) == 5
        assert cache.contains("x") is False

    def test_value_expires_after_ttl(self, cache: TTLCache, clock: FakeClock):
        cache.set("x", 1)
        clock.advance(29)
        assert cache.get("x") == 1
        clock.advance(1)
        assert cache.get("x") is None
        assert len(cache) == 0

    def test_per_entry_ttl(self, cache: TTLCache, clock: FakeClock):
        cache.set("short", 1, ttl=5)
        cache.set("long", 2)
        clock.advance(10)
        assert cache.contains("short") is False
        assert cache.get("long") == 2

    def test_falsy_values_are_cached(self, cache: TTLCache):
        cache.set("zero", 0)
        assert cache.contains("zero") is True

    def test_delete_and_delete_prefix(self, cache: TTLCache):
        cache.set("uptime:plex", 1)
        cache.set("uptime:sonarr", 2)
        cache.set("uptime_stats:plex", 3)
        cache.delete("uptime:plex")
        assert cache.get("uptime:plex") is None

        assert cache.delete_prefix("uptime_stats:") == 1
        assert cache.get("uptime:sonarr") == 2
        assert len(cache) == 1

    def test_purge_expired(self, cache: TTLCache, clock: FakeClock):
        cache.set("a", 1, ttl=1)
        cache.set("b", 2, ttl=100)
        clock.advance(2)
        assert cache.purge_expired() == 1
        assert len(cache) == 1

    def test_clear(self, cache: TTLCache):
        cache.set("a", 1)
        cache.clear()
        assert len(cache) == 0

    def test_invalid_ttl(self):
        with pytest.raises(ValueError):
            TTLCache(0)
