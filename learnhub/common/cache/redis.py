"""
Redis Cache Backend Module

This module implements a Redis cache backend on top of ``redis.asyncio`` so the
LLM response cache can be shared between processes. Values are stored as JSON.
"""

import json
import logging
from typing import Any, Dict, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from .base import CacheBackend, CacheResult

logger = logging.getLogger(__name__)


class RedisCacheBackend(CacheBackend[str, Any]):
    """
    Redis cache backend implementation.

    All keys are prefixed so several applications can share one database.
    Redis failures are logged and reported as unsuccessful results; they are
    never raised to the caller.
    """

    def __init__(
        self,
        redis_client: Optional[aioredis.Redis] = None,
        url: str = "redis://localhost:6379/0",
        key_prefix: str = "learnhub:",
        default_ttl: Optional[int] = None,
        name: str = "redis"
    ):
        """
        Initialize the Redis cache backend.

        Args:
            redis_client: Optional existing asyncio Redis client to use
            url: Redis connection URL used when no client is given
            key_prefix: Prefix for all Redis keys
            default_ttl: TTL applied when ``set`` is called without one
            name: Name for this cache backend
        """
        self._redis = redis_client or aioredis.Redis.from_url(url, decode_responses=False)
        self._key_prefix = key_prefix
        self._default_ttl = default_ttl
        self._name = name

        self._hits = 0
        self._misses = 0
        self._errors = 0

    @property
    def name(self) -> str:
        return self._name

    def _build_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def get(self, key: str) -> CacheResult[Any]:
        redis_key = self._build_key(key)
        try:
            data = await self._redis.get(redis_key)
            if data is None:
                self._misses += 1
                return CacheResult(success=False, source=self.name, error="Key not found")

            value = json.loads(data)
            ttl = await self._redis.ttl(redis_key)
        except RedisError as e:
            self._errors += 1
            logger.error(f"Redis error in get: {e}")
            return CacheResult(success=False, source=self.name, error=str(e))
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
            self._misses += 1
            logger.warning(f"Discarding undecodable cache entry {redis_key}: {e}")
            return CacheResult(success=False, source=self.name, error="Deserialization failed")

        self._hits += 1
        return CacheResult(
            success=True,
            value=value,
            hit=True,
            ttl=ttl if isinstance(ttl, int) and ttl > 0 else None,
            source=self.name
        )

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> CacheResult[Any]:
        if ttl is None:
            ttl = self._default_ttl
        redis_key = self._build_key(key)
        try:
            data = json.dumps(value).encode('utf-8')
        except (TypeError, ValueError) as e:
            return CacheResult(success=False, source=self.name, error=f"Serialization failed: {e}")

        try:
            if ttl:
                await self._redis.set(redis_key, data, ex=int(ttl))
            else:
                await self._redis.set(redis_key, data)
        except RedisError as e:
            self._errors += 1
            logger.error(f"Redis error in set: {e}")
            return CacheResult(success=False, source=self.name, error=str(e))

        return CacheResult(success=True, value=value, ttl=ttl, source=self.name)

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._redis.delete(self._build_key(key)))
        except RedisError as e:
            self._errors += 1
            logger.error(f"Redis error in delete: {e}")
            return False

    async def clear(self) -> bool:
        """Delete every key under this backend's prefix."""
        try:
            keys = [key async for key in self._redis.scan_iter(match=f"{self._key_prefix}*")]
            if keys:
                await self._redis.delete(*keys)
            return True
        except RedisError as e:
            self._errors += 1
            logger.error(f"Redis error in clear: {e}")
            return False

    async def get_stats(self) -> Dict[str, Any]:
        total = self._hits + self._misses
        return {
            'backend': self.name,
            'hits': self._hits,
            'misses': self._misses,
            'errors': self._errors,
            'hit_rate': self._hits / total if total > 0 else 0,
        }

    async def close(self) -> None:
        await self._redis.aclose()
