"""Tests for the intelligent cache."""

from datetime import timedelta

import pytest

from facility_perf.data.cache import (
    CacheError,
    CacheSweepWorker,
    IntelligentCache,
    estimate_size,
)


class TestIntelligentCache:
    def test_set_then_get_returns_same_object(self):
        cache = IntelligentCache()
        value = ({"id": 1},)
        assert cache.set("k", value) is True
        assert cache.get("k") is value

    def test_miss_returns_default(self):
        cache = IntelligentCache()
        assert cache.get("missing") is None
        assert cache.get("missing", "fallback") == "fallback"

    def test_least_recently_used_evicted_first(self):
        cache = IntelligentCache(max_entries=3)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        cache.get("a")

        cache.set("d", 4)

        assert "b" not in cache
        assert cache.keys() == ["c", "a", "d"]
        assert cache.get_stats().evictions == 1

    def test_byte_budget(self):
        cache = IntelligentCache(max_size_bytes=1000)
        for i in range(12):
            assert cache.set(f"k{i}", i, size_hint=90) is True

        stats = cache.get_stats()
        assert stats.size_bytes <= 1000
        assert stats.entries == 11
        assert "k0" not in cache

    def test_oversized_entry_not_cached(self):
        cache = IntelligentCache(max_size_bytes=1000)
        assert cache.set("big", "x", size_hint=101) is False
        assert "big" not in cache

    def test_oversized_replacement_drops_previous_value(self):
        cache = IntelligentCache(max_size_bytes=1000)
        assert cache.set("k", "old") is True

        assert cache.set("k", "x" * 500) is False
        assert cache.get("k") is None
        assert cache.get_stats().size_bytes == 0

    def test_replacing_key_updates_size(self):
        cache = IntelligentCache()
        cache.set("k", "v", size_hint=10)
        cache.set("k", "w", size_hint=30)
        assert cache.get_stats().size_bytes == 30
        assert cache.get("k") == "w"

    def test_expired_entry_is_a_miss(self, fake_clock):
        cache = IntelligentCache(max_age=timedelta(minutes=20), clock=fake_clock)
        cache.set("k", "v")

        fake_clock.advance(21 * 60)

        assert cache.get("k") is None
        stats = cache.get_stats()
        assert stats.misses == 1
        assert stats.expirations == 1
        assert stats.entries == 0

    def test_entry_within_max_age_is_a_hit(self, fake_clock):
        cache = IntelligentCache(max_age=timedelta(minutes=20), clock=fake_clock)
        cache.set("k", "v")
        fake_clock.advance(19 * 60)
        assert cache.get("k") == "v"

    def test_purge_expired(self, fake_clock):
        cache = IntelligentCache(max_age=timedelta(seconds=60), clock=fake_clock)
        cache.set("old", 1)
        fake_clock.advance(45)
        cache.set("new", 2)
        fake_clock.advance(30)

        assert cache.purge_expired() == 1
        assert cache.keys() == ["new"]

    def test_hit_rate(self):
        cache = IntelligentCache()
        assert cache.get_stats().hit_rate == 0.0

        cache.set("k", 1)
        cache.get("k")
        cache.get("other")

        stats = cache.get_stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == 0.5
        assert stats.to_dict()["hitRate"] == 0.5

    def test_has_does_not_count(self):
        cache = IntelligentCache()
        cache.set("k", 1)
        assert cache.has("k") is True
        assert cache.has("nope") is False
        stats = cache.get_stats()
        assert stats.hits == 0
        assert stats.misses == 0

    def test_delete_and_clear(self):
        cache = IntelligentCache()
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")

        assert cache.delete("a") is True
        assert cache.delete("a") is False

        cache.clear()
        stats = cache.get_stats()
        assert stats.entries == 0
        assert stats.size_bytes == 0
        assert stats.hits == 0

    def test_delete_prefix(self):
        cache = IntelligentCache()
        cache.set("record:contractors:1", {"id": 1})
        cache.set("record:contractors:2", {"id": 2})
        cache.set("records:contractors:{}", ())

        assert cache.delete_prefix("record:contractors:") == 2
        assert cache.keys() == ["records:contractors:{}"]
        assert cache.delete_prefix("record:contractors:") == 0

    def test_closed_cache_raises(self):
        cache = IntelligentCache()
        cache.set("k", 1)
        cache.close()

        assert cache.closed is True
        with pytest.raises(CacheError):
            cache.get("k")
        with pytest.raises(CacheError):
            cache.set("k", 2)
        # Stats stay readable for the dashboard snapshot
        assert cache.get_stats().entries == 0

    def test_estimate_size_uses_json_length(self):
        assert estimate_size({"a": 1}) == len('{"a": 1}')
        assert estimate_size(object()) > 0


class TestCacheSweepWorker:
    def test_sweep_purges_expired(self, fake_clock):
        cache = IntelligentCache(max_age=timedelta(seconds=10), clock=fake_clock)
        cache.set("k", 1)
        fake_clock.advance(11)

        worker = CacheSweepWorker(cache, interval_seconds=60)
        assert worker.sweep() == 1
        assert len(cache) == 0

    def test_sweep_stops_on_closed_cache(self):
        cache = IntelligentCache()
        cache.close()

        worker = CacheSweepWorker(cache)
        assert worker.sweep() == 0
        assert worker._stop_event.is_set()

    def test_thread_stops(self):
        worker = CacheSweepWorker(IntelligentCache(), interval_seconds=60)
        worker.start()
        worker.stop()
        worker.join(timeout=2)
        assert not worker.is_alive()
