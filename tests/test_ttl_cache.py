from __future__ import annotations

from ttl_cache import LONG_TTL_S, MEDIUM_TTL_S, SHORT_TTL_S, TTLCache, cache_key


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_ttl_constants() -> None:
    assert (SHORT_TTL_S, MEDIUM_TTL_S, LONG_TTL_S) == (60.0, 300.0, 3600.0)


def test_entry_valid_until_ttl_elapses() -> None:
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    cache.set("u1:speaking-stats:", {"total": 3}, ttl_s=60)

    clock.advance(60)
    assert cache.get("u1:speaking-stats:") == {"total": 3}

    clock.advance(0.5)
    assert cache.get("u1:speaking-stats:") is None
    assert len(cache) == 0


def test_default_ttl() -> None:
    clock = FakeClock()
    cache = TTLCache(default_ttl_s=MEDIUM_TTL_S, clock=clock)
    cache.set("k", 1)

    clock.advance(299)
    assert "k" in cache
    clock.advance(2)
    assert "k" not in cache


def test_set_overwrites_and_restarts_ttl() -> None:
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    cache.set("k", "old", ttl_s=10)
    clock.advance(8)
    cache.set("k", "new", ttl_s=10)
    clock.advance(8)

    assert cache.get("k") == "new"


def test_delete_prefix_invalidates_one_user() -> None:
    cache = TTLCache(clock=FakeClock())
    cache.set(cache_key("u1", "speaking-stats"), 1)
    cache.set(cache_key("u1", "history", {"page": 2}), 2)
    cache.set(cache_key("u2", "speaking-stats"), 3)

    assert cache.delete_prefix("u1:") == 2
    assert cache.get(cache_key("u2", "speaking-stats")) == 3
    assert cache.delete("missing") is False


def test_purge_expired() -> None:
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    cache.set("short", 1, ttl_s=SHORT_TTL_S)
    cache.set("long", 2, ttl_s=LONG_TTL_S)

    clock.advance(120)

    assert cache.purge_expired() == 1
    assert len(cache) == 1
    cache.clear()
    assert len(cache) == 0


def test_cache_key_sorts_params() -> None:
    assert cache_key("u1", "stats") == "u1:stats:"
    assert cache_key("u1", "history", {"b": 2, "a": 1}) == 'u1:history:{"a": 1, "b": 2}'
