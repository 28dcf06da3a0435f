from scouting.cache import TtlCache


def test_entries_expire_after_ttl() -> None:
    now = [100.0]
    cache = TtlCache(max_entries=10, clock=lambda: now[0])
    cache.set("a", {"v": 1}, ttl_s=30)

    now[0] = 129.0
    assert cache.get("a") == {"v": 1}
    now[0] = 131.0
    assert cache.get("a") is None
    assert len(cache) == 0


def test_oldest_inserted_entry_is_evicted_at_capacity() -> None:
    cache = TtlCache(max_entries=2, clock=lambda: 0.0)
    cache.set("a", 1, ttl_s=60)
    cache.set("b", 2, ttl_s=60)
    cache.set("c", 3, ttl_s=60)

    assert "a" not in cache
    assert cache.get("b") == 2
    assert cache.get("c") == 3


def test_overwrite_refreshes_insertion_order() -> None:
    cache = TtlCache(max_entries=2, clock=lambda: 0.0)
    cache.set("a", 1, ttl_s=60)
    cache.set("b", 2, ttl_s=60)
    cache.set("a", 10, ttl_s=60)
    cache.set("c", 3, ttl_s=60)

    assert cache.get("a") == 10
    assert "b" not in cache
