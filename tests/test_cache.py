from services.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_entries_expire():
    clock = FakeClock()
    cache = TTLCache(10, clock=clock)
    cache.set("a", 1)
    clock.now = 9.9
    assert cache.get("a") == 1
    clock.now = 10.0
    assert cache.get("a") is None
    assert "a" not in cache


def test_get_or_set_calls_factory_once():
    calls = []
    cache = TTLCache(60, clock=FakeClock())

    def factory():
        calls.append(1)
        return "plan"

    assert cache.get_or_set("sub-1", factory) == "plan"
    assert cache.get_or_set("sub-1", factory) == "plan"
    assert len(calls) == 1


def test_lru_eviction():
    cache = TTLCache(60, clock=FakeClock(), maxsize=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")              # touch
    cache.set("c", 3)
    assert "b" not in cache
    assert "a" in cache and "c" in cache
    assert len(cache) == 2


def test_invalidate_and_disabled():
    cache = TTLCache(60, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.invalidate("a")
    assert "a" not in cache and "b" in cache
    cache.invalidate()
    assert len(cache) == 0

    off = TTLCache(0)
    off.set("a", 1)
    assert off.get("a") is None
