# Overview: Pytest coverage for the explicit TTL lookup cache.

from stockledger.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=300, clock=clock)
    cache.set("category-code:NET", 1)

    clock.now = 299.0
    assert cache.get("category-code:NET") == 1

    clock.now = 300.0
    assert cache.get("category-code:NET") is None
    assert len(cache) == 0


def test_get_or_load_calls_loader_once():
    cache = TTLCache(ttl_seconds=60, clock=FakeClock())
    calls = []

    def loader():
        calls.append(1)
        return 42

    assert cache.get_or_load("k", loader) == 42
    assert cache.get_or_load("k", loader) == 42
    assert len(calls) == 1


def test_none_is_not_cached():
    cache = TTLCache(ttl_seconds=60, clock=FakeClock())

    assert cache.get_or_load("k", lambda: None) is None
    assert cache.get_or_load("k", lambda: 7) == 7


def test_invalidate_and_clear():
    cache = TTLCache(ttl_seconds=60, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)

    cache.invalidate("a")
    cache.invalidate("missing")
    assert cache.get("a") is None
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0
