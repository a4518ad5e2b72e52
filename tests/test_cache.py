from datetime import timedelta

from stockkeeper.services.cache import CacheStore


class TestTtl:
    def test_hit_within_ttl(self, cache, clock):
        cache.set("list_a", [1, 2])
        clock.advance(minutes=4)
        assert cache.get("list_a") == [1, 2]

    def test_hit_exactly_at_ttl(self, cache, clock):
        cache.set("list_a", "v", ttl=timedelta(seconds=30))
        clock.advance(seconds=30)
        assert cache.get("list_a") == "v"

    def test_expired_entry_is_absent_and_removed(self, cache, clock):
        cache.set("list_a", "v", ttl=timedelta(seconds=30))
        clock.advance(seconds=31)

        assert cache.get("list_a") is None
        assert "list_a" not in cache

        stats_before = cache.get_stats().misses
        assert cache.get("list_a") is None
        assert cache.get_stats().misses == stats_before + 1

    def test_ttl_override_on_lookup(self, cache, clock):
        cache.set("low_stock", "v")
        clock.advance(seconds=45)
        assert cache.get("low_stock", ttl=timedelta(seconds=30)) is None

    def test_falsy_values_are_cached(self, cache):
        cache.set("list_empty", [])
        assert cache.get("list_empty") == []


class TestInvalidation:
    def test_prefix_invalidation(self, cache):
        cache.set("list_x", 1)
        cache.set("list_y", 2)
        cache.set("detail_x", 3)

        removed = cache.invalidate("list_")

        assert removed == 2
        assert cache.get("list_x") is None
        assert cache.get("list_y") is None
        assert cache.get("detail_x") == 3

    def test_prefix_does_not_match_substring(self, cache):
        cache.set("materiaPrima_get_m1_active", 1)
        cache.set("other_materiaPrima_get_m1_active", 2)

        cache.invalidate("materiaPrima_get_m1_")

        assert "other_materiaPrima_get_m1_active" in cache

    def test_clear(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear()
        assert len(cache) == 0


class TestSweep:
    def test_sweep_removes_only_expired(self, cache, clock):
        cache.set("short", 1, ttl=timedelta(seconds=10))
        cache.set("long", 2)
        clock.advance(seconds=11)

        assert cache.sweep() == 1
        assert cache.keys() == ["long"]

    def test_stale_read_survives_expiry_until_evicted(self, cache, clock):
        cache.set("list_a", "old", ttl=timedelta(seconds=10))
        clock.advance(minutes=10)

        assert cache.get_stale("list_a") == "old"
        assert cache.sweep() == 1
        assert cache.get_stale("list_a") is None


class TestBounds:
    def test_oldest_entry_evicted_at_capacity(self, clock):
        cache = CacheStore(max_size=2, clock=clock)
        cache.set("a", 1)
        clock.advance(seconds=1)
        cache.set("b", 2)
        clock.advance(seconds=1)
        cache.set("c", 3)

        assert "a" not in cache
        assert cache.get_stats().evictions == 1

    def test_overwrite_at_capacity_does_not_evict(self, clock):
        cache = CacheStore(max_size=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 3)
        assert len(cache) == 2
        assert cache.get("a") == 3


class TestKeys:
    def test_params_serialized_with_sorted_keys(self):
        k1 = CacheStore.generate_key("mp", "list", {"b": 1, "a": 2})
        k2 = CacheStore.generate_key("mp", "list", {"a": 2, "b": 1})
        assert k1 == k2
        assert k1.startswith("mp_list_")

    def test_long_params_hashed_keep_namespace(self):
        key = CacheStore.generate_key("mp", "search", {"term": "x" * 500})
        assert key.startswith("mp_search_")
        assert len(key) < 60

    def test_namespace_only(self):
        assert CacheStore.generate_key("mp", "low_stock") == "mp_low_stock_"


def test_stats_hit_rate(cache):
    cache.set("a", 1)
    cache.get("a")
    cache.get("missing")
    stats = cache.get_stats().to_dict()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == "50.00%"


def test_zero_ttl_expires_immediately(cache, clock):
    cache.set("list_a", 1, ttl=timedelta(0))
    clock.advance(seconds=1)
    assert cache.get("list_a") is None
