"""
Caching System

Key-value stores with TTL that are constructed at start-up and injected into
the components that need them. Two backends are provided: an in-process LRU
cache and a Redis backed cache.
"""

from learnhub.common.cache.base import CacheBackend, CacheResult
from learnhub.common.cache.entry import CacheEntry
from learnhub.common.cache.memory import MemoryCacheBackend
from learnhub.common.cache.key_builder import build_cache_key

__all__ = [
    "CacheBackend",
    "CacheResult",
    "CacheEntry",
    "MemoryCacheBackend",
    "build_cache_key",
]
