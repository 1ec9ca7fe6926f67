"""
Unit tests for the Redis cache client.
Covers best-effort semantics, disabled mode and background reconnection.
"""
import asyncio

import pytest
from unittest.mock import AsyncMock
from redis.exceptions import ConnectionError as RedisConnectionError, ResponseError

from src.shared.caching import CacheConfig, CacheKeyspace, RedisCache, create_cache
from src.shared.config import RedisSettings
from src.shared.errors import CacheUnavailableError
from src.shared.metrics_collector import get_metrics_collector


class TestCacheKeyspace:

    def test_keys(self):
        keyspace = CacheKeyspace("books")

        assert keyspace.collection == "books:all"
        assert keyspace.item(7) == "books:7"
        assert keyspace.pattern == "books:*"


class TestCacheConfig:

    def test_from_settings(self):
        settings = RedisSettings(redis_host="cache", redis_port=6380, cache_ttl=60, redis_timeout=1.5)

        config = CacheConfig.from_settings(settings)

        assert config.redis_url == "redis://cache:6380/0"
        assert config.ttl == 60
        assert config.timeout == 1.5
        assert config.namespace == "books"


class TestRedisCache:
    """Test RedisCache functionality."""

    @pytest.mark.asyncio
    async def test_connect(self, cache):
        assert cache.available is True

    @pytest.mark.asyncio
    async def test_set_and_get(self, cache, fake_redis):
        assert await cache.set("books:1", {"id": 1, "title": "Dune"}, ttl=30) is True

        assert await cache.get("books:1") == {"id": 1, "title": "Dune"}
        assert fake_redis.ttl_of("books:1") == 30
        assert cache.stats["hits"] == 1
        assert get_metrics_collector().get_counter("cache_hits_total").get_value() == 1

    @pytest.mark.asyncio
    async def test_default_ttl(self, cache, fake_redis):
        await cache.set("books:1", {"id": 1})

        assert fake_redis.ttl_of("books:1") == cache.config.ttl

    @pytest.mark.asyncio
    async def test_get_missing(self, cache):
        assert await cache.get("books:404") is None
        assert cache.stats["misses"] == 1

    @pytest.mark.asyncio
    async def test_delete(self, cache):
        await cache.set("books:1", {"id": 1})

        assert await cache.delete("books:1") is True
        assert await cache.delete("books:1") is False

    @pytest.mark.asyncio
    async def test_clear_pattern_only_matches_namespace(self, cache, fake_redis):
        await cache.set("books:all", [])
        await cache.set("books:1", {"id": 1})
        await cache.set("authors:1", {"id": 1})

        removed = await cache.clear_pattern("books:*")

        assert removed == 2
        assert list(fake_redis.data) == ["authors:1"]

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self, cache, fake_redis):
        fake_redis.fail = True

        assert await cache.get("books:1") is None
        assert await cache.set("books:1", {"id": 1}) is False
        assert await cache.delete("books:1") is False
        assert await cache.clear_pattern("books:*") == 0
        assert cache.available is False
        assert cache.stats["errors"] >= 1

    @pytest.mark.asyncio
    async def test_lost_connection_raises_cache_unavailable(self, cache, fake_redis):
        fake_redis.fail = True

        with pytest.raises(CacheUnavailableError) as exc_info:
            await cache._execute("get", "books:1", lambda: fake_redis.get("books:1"))

        assert exc_info.value.details["key"] == "books:1"
        assert isinstance(exc_info.value.__cause__, RedisConnectionError)
        assert cache.available is False

    @pytest.mark.asyncio
    async def test_command_error_keeps_cache_enabled(self, cache, fake_redis):
        async def wrong_type(key):
            raise ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")

        fake_redis.get = wrong_type

        assert await cache.get("books:all") is None
        assert cache.stats["errors"] == 1
        assert cache.available is True

    @pytest.mark.asyncio
    async def test_slow_call_times_out(self, fake_redis):
        cache = RedisCache(CacheConfig(timeout=0.05, reconnect_interval=0.01), client=fake_redis)
        await cache.connect()

        async def hang(key):
            await asyncio.sleep(5)

        fake_redis.get = hang

        assert await cache.get("books:1") is None
        assert cache.available is False
        await cache.disconnect()

    @pytest.mark.asyncio
    async def test_unavailable_skips_redis(self, cache, fake_redis):
        fake_redis.fail = True
        await cache.get("books:1")
        calls_before = len(fake_redis.calls)

        await cache.set("books:1", {"id": 1})

        set_calls = [call for call in fake_redis.calls[calls_before:] if call[0] == "setex"]
        assert set_calls == []

    @pytest.mark.asyncio
    async def test_reconnects_in_background(self, cache, fake_redis):
        fake_redis.fail = True
        await cache.get("books:1")
        assert cache.available is False

        fake_redis.fail = False
        for _ in range(50):
            if cache.available:
                break
            await asyncio.sleep(0.01)

        assert cache.available is True
        assert await cache.set("books:1", {"id": 1}) is True

    @pytest.mark.asyncio
    async def test_connect_failure_disables(self, fake_redis, cache_config):
        fake_redis.fail = True
        cache = RedisCache(cache_config, client=fake_redis)

        assert await cache.connect() is False
        assert cache.available is False
        await cache.disconnect()

    @pytest.mark.asyncio
    async def test_disabled_by_configuration(self):
        client = AsyncMock()
        cache = RedisCache(CacheConfig(enabled=False), client=client)

        assert await cache.connect() is False
        assert await cache.get("books:1") is None
        assert await cache.set("books:1", {"id": 1}) is False
        client.get.assert_not_called()
        client.setex.assert_not_called()

    @pytest.mark.asyncio
    async def test_ping(self, cache, fake_redis):
        assert await cache.ping() is True

        fake_redis.fail = True
        assert await cache.ping() is False

    @pytest.mark.asyncio
    async def test_disconnect_closes_client(self, cache, fake_redis):
        await cache.disconnect()

        assert fake_redis.closed is True
        assert cache.available is False

    @pytest.mark.asyncio
    async def test_stats(self, cache):
        await cache.set("books:1", {"id": 1})
        await cache.get("books:1")
        await cache.get("books:2")

        stats = cache.get_stats()

        assert stats["hit_rate"] == 0.5
        assert stats["total_requests"] == 2
        assert stats["available"] is True


@pytest.mark.asyncio
async def test_create_cache_unreachable_redis():
    settings = RedisSettings(redis_url="redis://127.0.0.1:1/0", redis_timeout=0.2)

    cache = await create_cache(settings)

    try:
        assert cache.available is False
        assert await cache.get("books:all") is None
    finally:
        await cache.disconnect()
