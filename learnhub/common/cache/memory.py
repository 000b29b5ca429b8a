"""
Memory Cache Backend Module

This module implements an in-process cache backend with TTL expiry and LRU
eviction. Expired entries are dropped lazily when they are read or when
room is needed; there is no background cleanup task.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Dict, Optional, TypeVar

from .base import CacheBackend, CacheResult
from .entry import CacheEntry

logger = logging.getLogger(__name__)

K = TypeVar('K')
V = TypeVar('V')


class MemoryCacheBackend(CacheBackend[K, V]):
    """
    In-memory cache backend implementation.

    Features:
    - LRU eviction when reaching maximum size
    - Lazy expiry of entries past their TTL
    - Hit, miss, eviction and expiration counters
    """

    def __init__(self, max_size: int = 10000, default_ttl: Optional[float] = None, name: str = "memory"):
        """
        Initialize the memory cache backend.

        Args:
            max_size: Maximum number of entries to store
            default_ttl: TTL applied when ``set`` is called without one
            name: Name for this cache backend
        """
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._cache: "OrderedDict[K, CacheEntry[V]]" = OrderedDict()
        self._lock = threading.RLock()
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._name = name

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    @property
    def name(self) -> str:
        return self._name

    async def get(self, key: K) -> CacheResult[V]:
        with self._lock:
            entry = self._cache.get(key)

            if entry is None:
                self._misses += 1
                return CacheResult(success=False, source=self.name, error="Key not found")

            if entry.is_expired():
                del self._cache[key]
                self._expirations += 1
                self._misses += 1
                return CacheResult(success=False, source=self.name, error="Entry expired")

            entry.access()
            self._cache.move_to_end(key)
            self._hits += 1

            return CacheResult(
                success=True,
                value=entry.value,
                hit=True,
                ttl=entry.get_ttl(),
                source=self.name
            )

    async def set(self, key: K, value: V, ttl: Optional[float] = None) -> CacheResult[V]:
        if ttl is None:
            ttl = self._default_ttl
        with self._lock:
            if key not in self._cache and len(self._cache) >= self._max_size:
                self._evict_entries()

            self._cache[key] = CacheEntry(value, ttl=ttl)
            self._cache.move_to_end(key)

            return CacheResult(success=True, value=value, ttl=ttl, source=self.name)

    async def delete(self, key: K) -> bool:
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    async def clear(self) -> bool:
        with self._lock:
            self._cache.clear()
            return True

    async def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                'backend': self.name,
                'size': len(self._cache),
                'max_size': self._max_size,
                'hits': self._hits,
                'misses': self._misses,
                'hit_rate': self._hits / total if total > 0 else 0,
                'evictions': self._evictions,
                'expirations': self._expirations
            }

    def _evict_entries(self) -> None:
        """Drop expired entries first, then least recently used ones until there is room."""
        now = time.time()
        for key in [k for k, entry in self._cache.items() if entry.is_expired(now)]:
            del self._cache[key]
            self._expirations += 1

        while len(self._cache) >= self._max_size:
            self._cache.popitem(last=False)
            self._evictions += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
