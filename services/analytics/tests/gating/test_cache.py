from app.gating.cache import TTLCache


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_entry_served_until_ttl_elapses() -> None:
    clock = _Clock()
    cache: TTLCache[str] = TTLCache(300, clock)
    cache.put("new_layout", "definition-v1")

    clock.now = 299.9
    assert cache.get("new_layout") == "definition-v1"

    clock.now = 300.0
    assert cache.get("new_layout") is None
    assert len(cache) == 0


def test_invalidate_and_clear() -> None:
    cache: TTLCache[int] = TTLCache(60, _Clock())
    cache.put("a", 1)
    cache.put("b", 2)

    cache.invalidate("a")
    assert "a" not in cache
    assert "b" in cache

    cache.clear()
    assert len(cache) == 0


def test_invalidate_missing_key_is_noop() -> None:
    cache: TTLCache[int] = TTLCache(60, _Clock())
    cache.invalidate("missing")
    assert len(cache) == 0
