"""Bounded LRU for the in-memory cache tier.

Each PlotDataCache owns one instance; nothing is shared at module level.
All operations hold a lock so the map stays consistent when one instance
serves requests from several threads.
"""

import threading
from collections import OrderedDict

from plotmatch.core.types import CacheEntry


class LruCache:
    """OrderedDict-backed LRU. Oldest entry first, most recently used last."""

    def __init__(self, max_entries: int) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._max = max_entries
        self._map: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.evictions = 0

    @property
    def capacity(self) -> int:
        return self._max

    def get(self, key: str) -> CacheEntry | None:
        """Return the entry and mark it most recently used."""
        with self._lock:
            entry = self._map.get(key)
            if entry is None:
                return None
            self._map.move_to_end(key)
            self.hits += 1
            return entry

    def peek(self, key: str) -> CacheEntry | None:
        """Return the entry without touching recency."""
        with self._lock:
            return self._map.get(key)

    def set(self, key: str, value: CacheEntry) -> None:
        """Insert or replace, evicting the least recently used entry on overflow."""
        with self._lock:
            if key in self._map:
                self._map.move_to_end(key)
            elif len(self._map) >= self._max:
                self._map.popitem(last=False)
                self.evictions += 1
            self._map[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._map.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._map.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._map)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._map
