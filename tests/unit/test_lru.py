"""Tests for the bounded in-memory LRU."""

import threading
from datetime import datetime, timezone

import pytest

from conftest import make_plot
from plotmatch.cache.lru import LruCache
from plotmatch.core.types import CacheEntry


def _entry(n: int) -> CacheEntry:
    return CacheEntry(record=make_plot(str(n)), last_verified=datetime(2025, 1, 1, tzinfo=timezone.utc))


class TestLruCache:
    def test_evicts_least_recently_used(self):
        cache = LruCache(500)
        for i in range(501):
            cache.set(f"plot:{i}", _entry(i))

        assert len(cache) == 500
        assert cache.get("plot:0") is None
        assert cache.get("plot:500") is not None
        assert cache.evictions == 1

    def test_read_refreshes_recency(self):
        cache = LruCache(3)
        for i in range(3):
            cache.set(f"k{i}", _entry(i))
        cache.get("k0")
        cache.set("k3", _entry(3))

        assert "k0" in cache
        assert "k1" not in cache

    def test_peek_does_not_refresh(self):
        cache = LruCache(2)
        cache.set("a", _entry(1))
        cache.set("b", _entry(2))
        cache.peek("a")
        cache.set("c", _entry(3))
        assert "a" not in cache

    def test_replace_existing_does_not_evict(self):
        cache = LruCache(2)
        cache.set("a", _entry(1))
        cache.set("b", _entry(2))
        cache.set("a", _entry(3))
        assert len(cache) == 2
        assert cache.evictions == 0
        assert cache.get("a").record.land_number == "3"

    def test_delete_and_clear(self):
        cache = LruCache(2)
        cache.set("a", _entry(1))
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        cache.set("b", _entry(2))
        cache.clear()
        assert len(cache) == 0

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            LruCache(0)

    def test_concurrent_writers_respect_bound(self):
        cache = LruCache(50)

        def writer(offset):
            for i in range(200):
                cache.set(f"{offset}:{i}", _entry(i))

        threads = [threading.Thread(target=writer, args=(t,)) for t in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(cache) == 50
        assert cache.evictions == 750
