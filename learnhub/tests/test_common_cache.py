import json
import time
import unittest
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from learnhub.common.cache import CacheEntry, MemoryCacheBackend, build_cache_key
from learnhub.common.cache.redis import RedisCacheBackend


class TestCacheEntry(unittest.TestCase):
    """Test the CacheEntry class."""

    def test_init(self):
        """Test initializing a CacheEntry."""
        entry = CacheEntry({"content": "hi"})
        self.assertEqual(entry.value, {"content": "hi"})
        self.assertIsNone(entry.expires_at)
        self.assertEqual(entry.access_count, 0)
        self.assertIsNone(entry.get_ttl())

        entry = CacheEntry("x", ttl=10)
        self.assertEqual(entry.expires_at, entry.created_at + 10)

    def test_zero_ttl_never_expires(self):
        entry = CacheEntry("x", ttl=0)
        self.assertIsNone(entry.expires_at)
        self.assertFalse(entry.is_expired())

    def test_is_expired(self):
        entry = CacheEntry("test", ttl=10)
        self.assertFalse(entry.is_expired())
        self.assertTrue(entry.is_expired(now=entry.created_at + 10))

        entry.expires_at = time.time() - 1
        self.assertTrue(entry.is_expired())
        self.assertEqual(entry.get_ttl(), 0.0)

    def test_access(self):
        entry = CacheEntry("test")
        entry.access()
        entry.access()
        self.assertEqual(entry.access_count, 2)
        self.assertGreaterEqual(entry.last_accessed, entry.created_at)


class TestBuildCacheKey(unittest.TestCase):

    def test_key_is_deterministic_and_order_insensitive(self):
        first = build_cache_key("llm", {"model": "gpt-4o", "temperature": 0.7})
        second = build_cache_key("llm", {"temperature": 0.7, "model": "gpt-4o"})
        self.assertEqual(first, second)
        self.assertTrue(first.startswith("llm:"))

    def test_payload_changes_key(self):
        self.assertNotEqual(
            build_cache_key("llm", [{"role": "user", "content": "a"}]),
            build_cache_key("llm", [{"role": "user", "content": "b"}]),
        )

    def test_version_suffix(self):
        self.assertTrue(build_cache_key("llm", {}, version="2").endswith(":v2"))


def test_memory_backend_rejects_non_positive_size():
    with pytest.raises(ValueError):
        MemoryCacheBackend(max_size=0)


@pytest.mark.asyncio
async def test_memory_backend_get_and_set():
    cache = MemoryCacheBackend(max_size=10)

    missing = await cache.get("missing")
    stored = await cache.set("k", {"content": "v"}, ttl=60)
    found = await cache.get("k")

    assert not missing.success and not missing.hit
    assert stored.success
    assert found.success and found.hit
    assert found.value == {"content": "v"}
    assert 0 < found.ttl <= 60


@pytest.mark.asyncio
async def test_memory_backend_evicts_least_recently_used():
    cache = MemoryCacheBackend(max_size=2)
    await cache.set("a", 1)
    await cache.set("b", 2)
    await cache.get("a")

    await cache.set("c", 3)

    assert (await cache.get("a")).value == 1
    assert not (await cache.get("b")).success
    assert (await cache.get("c")).value == 3
    assert (await cache.get_stats())["evictions"] == 1


@pytest.mark.asyncio
async def test_memory_backend_expires_entries():
    cache = MemoryCacheBackend(max_size=10, default_ttl=60)
    await cache.set("k", "v")
    cache._cache["k"].expires_at = time.time() - 1

    result = await cache.get("k")

    assert not result.success
    assert result.error == "Entry expired"
    assert len(cache) == 0
    stats = await cache.get_stats()
    assert stats["expirations"] == 1
    assert stats["misses"] == 1


@pytest.mark.asyncio
async def test_memory_backend_delete_clear_and_stats():
    cache = MemoryCacheBackend(max_size=10, name="llm")
    await cache.set("a", 1)
    await cache.set("b", 2)
    await cache.get("a")
    await cache.get("zzz")

    assert await cache.delete("a") is True
    assert await cache.delete("a") is False
    assert await cache.clear() is True
    stats = await cache.get_stats()
    assert stats["backend"] == "llm"
    assert stats["size"] == 0
    assert stats["hit_rate"] == 0.5


def make_redis_client():
    client = MagicMock()
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock(return_value=True)
    client.ttl = AsyncMock(return_value=-1)
    client.delete = AsyncMock(return_value=1)
    client.aclose = AsyncMock()
    return client


@pytest.mark.asyncio
async def test_redis_backend_set_prefixes_keys_and_applies_ttl():
    client = make_redis_client()
    cache = RedisCacheBackend(redis_client=client, key_prefix="test:", default_ttl=30)

    result = await cache.set("k", {"content": "v"})

    assert result.success
    client.set.assert_awaited_once_with("test:k", json.dumps({"content": "v"}).encode("utf-8"), ex=30)


@pytest.mark.asyncio
async def test_redis_backend_get_hit_and_miss():
    client = make_redis_client()
    client.get = AsyncMock(side_effect=[None, b'{"content": "v"}'])
    client.ttl = AsyncMock(return_value=25)
    cache = RedisCacheBackend(redis_client=client)

    miss = await cache.get("k")
    hit = await cache.get("k")

    assert not miss.success
    assert hit.success and hit.hit
    assert hit.value == {"content": "v"}
    assert hit.ttl == 25
    client.get.assert_awaited_with("learnhub:k")


@pytest.mark.asyncio
async def test_redis_backend_swallows_connection_errors():
    client = make_redis_client()
    client.get = AsyncMock(side_effect=RedisConnectionError("refused"))
    client.set = AsyncMock(side_effect=RedisConnectionError("refused"))
    cache = RedisCacheBackend(redis_client=client)

    assert not (await cache.get("k")).success
    assert not (await cache.set("k", "v")).success
    assert (await cache.get_stats())["errors"] == 2


@pytest.mark.asyncio
async def test_redis_backend_discards_undecodable_values():
    client = make_redis_client()
    client.get = AsyncMock(return_value=b"not json")
    cache = RedisCacheBackend(redis_client=client)

    result = await cache.get("k")

    assert not result.success
    assert result.error == "Deserialization failed"


@pytest.mark.asyncio
async def test_redis_backend_clear_deletes_prefixed_keys():
    client = make_redis_client()

    async def scan_iter(match):
        assert match == "learnhub:*"
        for key in (b"learnhub:a", b"learnhub:b"):
            yield key

    client.scan_iter = scan_iter
    cache = RedisCacheBackend(redis_client=client)

    assert await cache.clear() is True
    client.delete.assert_awaited_once_with(b"learnhub:a", b"learnhub:b")

    await cache.close()
    client.aclose.assert_awaited_once()
