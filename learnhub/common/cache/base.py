"""
Base Cache Module

This module defines the cache backend interface injected into the LLM gateway
and any other component that wants a key-value store with TTL.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

# Type variables for generic cache key and value types
K = TypeVar('K')
V = TypeVar('V')


@dataclass
class CacheResult(Generic[V]):
    """
    Result of a cache operation.

    Attributes:
        success: Whether the operation was successful
        value: The value retrieved or stored
        hit: Whether the value was found in cache (for get operations)
        ttl: Remaining time-to-live in seconds
        source: Source of the cached value (e.g., 'memory', 'redis')
        error: Optional error message if the operation failed
    """
    success: bool
    value: Optional[V] = None
    hit: bool = False
    ttl: Optional[float] = None
    source: Optional[str] = None
    error: Optional[str] = None


class CacheBackend(Generic[K, V], ABC):
    """
    Abstract interface for cache backends.

    Backends never raise on a miss; failures are reported through
    ``CacheResult.success`` and ``CacheResult.error`` so a broken cache
    degrades to a cache that always misses.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the name of this cache backend."""

    @abstractmethod
    async def get(self, key: K) -> CacheResult[V]:
        """
        Retrieve a value from the cache.

        Args:
            key: The cache key

        Returns:
            CacheResult with the value and metadata
        """

    @abstractmethod
    async def set(self, key: K, value: V, ttl: Optional[float] = None) -> CacheResult[V]:
        """
        Store a value in the cache.

        Args:
            key: The cache key
            value: The value to cache
            ttl: Time-to-live in seconds (None means no expiration)

        Returns:
            CacheResult indicating success/failure
        """

    @abstractmethod
    async def delete(self, key: K) -> bool:
        """Delete a value from the cache."""

    @abstractmethod
    async def clear(self) -> bool:
        """Clear all entries from the cache."""

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the cache."""
