"""
Redis cache client for the Bookstore inventory service.

Every operation is best effort: errors and timeouts are logged, counted and
turned into a miss (reads) or a no-op (writes). When Redis cannot be reached
the client runs in disabled mode and a background task keeps trying to
reconnect.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError

from ..config import RedisSettings
from ..errors import CacheUnavailableError
from ..logging_config import get_logger
from ..metrics_collector import get_metrics_collector

T = TypeVar('T')

# Failures that mean the connection itself is gone
CONNECTION_FAILURES = (RedisConnectionError, RedisTimeoutError, OSError, asyncio.TimeoutError)


@dataclass
class CacheConfig:
    """Cache configuration settings."""
    redis_url: str = "redis://localhost:6379/0"
    ttl: int = 300  # 5 minutes
    timeout: float = 2.0
    namespace: str = "books"
    enabled: bool = True
    max_connections: int = 10
    reconnect_interval: float = 5.0

    @classmethod
    def from_settings(cls, settings: RedisSettings) -> 'CacheConfig':
        return cls(
            redis_url=settings.get_redis_url(),
            ttl=settings.cache_ttl,
            timeout=settings.redis_timeout,
            namespace=settings.cache_namespace,
            enabled=settings.cache_enabled,
            max_connections=settings.redis_pool_size,
        )


@dataclass(frozen=True)
class CacheKeyspace:
    """Key layout for one record type: ``<ns>:all`` plus ``<ns>:<id>``."""
    namespace: str = "books"

    @property
    def collection(self) -> str:
        return f"{self.namespace}:all"

    def item(self, record_id: Any) -> str:
        return f"{self.namespace}:{record_id}"

    @property
    def pattern(self) -> str:
        return f"{self.namespace}:*"


class RedisCache:
    """Redis-based cache implementation."""

    def __init__(self, config: Optional[CacheConfig] = None, client: Optional[Redis] = None):
        self.config = config or CacheConfig()
        self.redis_client: Optional[Redis] = client
        self.logger = get_logger(__name__, 'redis_cache')
        self.metrics = get_metrics_collector()

        self._available = False
        self._reconnect_task: Optional[asyncio.Task] = None

        self.stats = {
            'hits': 0,
            'misses': 0,
            'sets': 0,
            'deletes': 0,
            'errors': 0
        }

    @property
    def available(self) -> bool:
        """Whether cache calls are currently sent to Redis."""
        return self._available and self.redis_client is not None

    async def connect(self) -> bool:
        """
        Connect to Redis.

        Returns:
            True if Redis answered a ping; False leaves the cache disabled
        """
        if not self.config.enabled:
            self.logger.info("Cache disabled by configuration", operation="connect")
            return False

        if self.redis_client is None:
            self.redis_client = redis.from_url(
                self.config.redis_url,
                max_connections=self.config.max_connections,
                socket_timeout=self.config.timeout,
                socket_connect_timeout=self.config.timeout,
                decode_responses=True
            )

        try:
            await asyncio.wait_for(self.redis_client.ping(), timeout=self.config.timeout)
        except Exception as e:
            self.logger.warning(
                f"Redis connection failed (caching disabled): {e}",
                operation="connect"
            )
            self.stats['errors'] += 1
            self._mark_unavailable()
            return False

        self._available = True
        self.logger.info("Connected to Redis successfully", operation="connect")
        return True

    async def disconnect(self) -> None:
        """Disconnect from Redis and stop reconnect attempts."""
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
            self._reconnect_task = None

        if self.redis_client is not None:
            try:
                await self.redis_client.aclose()
            except Exception as e:
                self.logger.warning(f"Error closing Redis client: {e}", operation="disconnect")
            self.redis_client = None
            self.logger.info("Disconnected from Redis", operation="disconnect")
        self._available = False

    def _mark_unavailable(self) -> None:
        """Switch to disabled mode and reconnect in the background."""
        self._available = False
        if self.redis_client is None or not self.config.enabled:
            return
        if self._reconnect_task is None or self._reconnect_task.done():
            try:
                self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_loop())
            except RuntimeError:
                # No running loop (synchronous shutdown path)
                self._reconnect_task = None

    async def _reconnect_loop(self) -> None:
        while not self._available and self.redis_client is not None:
            await asyncio.sleep(self.config.reconnect_interval)
            try:
                await asyncio.wait_for(self.redis_client.ping(), timeout=self.config.timeout)
            except Exception as e:
                self.logger.debug(f"Redis still unreachable: {e}", operation="reconnect")
                continue
            self._available = True
            self.logger.info("Reconnected to Redis", operation="reconnect")

    async def _execute(self, operation: str, key: str, call: Callable[[], Awaitable[T]]) -> T:
        """
        Run one Redis call under the timeout.

        Raises:
            CacheUnavailableError: On any failure; lost connections also
                switch the client to disabled mode
        """
        try:
            return await asyncio.wait_for(call(), timeout=self.config.timeout)
        except Exception as e:
            if isinstance(e, CONNECTION_FAILURES):
                self._mark_unavailable()
            raise CacheUnavailableError(
                f"Redis {operation} failed",
                details={"operation": operation, "key": key, "error": repr(e)}
            ) from e

    async def _call(self, operation: str, key: str, call: Callable[[], Awaitable[T]], default: T) -> T:
        """Like ``_execute`` but absorbs the failure and yields ``default``."""
        if not self.available:
            return default

        try:
            return await self._execute(operation, key, call)
        except CacheUnavailableError as e:
            self.stats['errors'] += 1
            self.metrics.get_counter('cache_errors_total', 'Cache call failures').increment(1, operation=operation)
            self.logger.error(f"Redis {operation} error for key {key}: {e.details['error']}", operation=operation)
            return default

    def _serialize(self, value: Any) -> str:
        return json.dumps(value, default=str)

    def _deserialize(self, data: str) -> Any:
        return json.loads(data)

    async def get(self, key: str) -> Optional[Any]:
        """Get value from Redis cache; None on miss or failure."""
        data = await self._call('get', key, lambda: self.redis_client.get(key), None)
        if data is None:
            self.stats['misses'] += 1
            self.metrics.get_counter('cache_misses_total', 'Cache misses').increment(1)
            return None

        try:
            value = self._deserialize(data)
        except (TypeError, ValueError) as e:
            self.stats['errors'] += 1
            self.stats['misses'] += 1
            self.logger.error(f"Deserialization error for key {key}: {e}", operation='get')
            return None

        self.stats['hits'] += 1
        self.metrics.get_counter('cache_hits_total', 'Cache hits').increment(1)
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set value in Redis cache with an expiry."""
        try:
            data = self._serialize(value)
        except (TypeError, ValueError) as e:
            self.stats['errors'] += 1
            self.logger.error(f"Serialization error for key {key}: {e}", operation='set')
            return False

        ttl = ttl or self.config.ttl
        result = await self._call('set', key, lambda: self.redis_client.setex(key, ttl, data), None)
        if result is None:
            return False

        self.stats['sets'] += 1
        self.metrics.get_counter('cache_sets_total', 'Cache populates').increment(1)
        return True

    async def delete(self, key: str) -> bool:
        """Delete key from Redis cache."""
        result = await self._call('delete', key, lambda: self.redis_client.delete(key), 0)
        if result:
            self.stats['deletes'] += 1
        return bool(result)

    async def clear_pattern(self, pattern: str) -> int:
        """Clear keys matching pattern."""
        async def sweep() -> int:
            keys = await self.redis_client.keys(pattern)
            if keys:
                return await self.redis_client.delete(*keys)
            return 0

        deleted = await self._call('clear_pattern', pattern, sweep, 0)
        self.stats['deletes'] += deleted
        return deleted

    async def ping(self) -> bool:
        """Check whether Redis currently answers."""
        if self.redis_client is None or not self.config.enabled:
            return False
        try:
            await asyncio.wait_for(self.redis_client.ping(), timeout=self.config.timeout)
            return True
        except Exception as e:
            self.logger.debug(f"Redis ping failed: {e}", operation="ping")
            return False

    def get_stats(self) -> Dict[str, Any]:
        """Get Redis cache statistics."""
        total_requests = self.stats['hits'] + self.stats['misses']
        hit_rate = self.stats['hits'] / total_requests if total_requests > 0 else 0

        return {
            **self.stats,
            'available': self.available,
            'hit_rate': hit_rate,
            'total_requests': total_requests
        }


async def create_cache(settings: RedisSettings) -> RedisCache:
    """Build the process-wide cache client and try to connect it."""
    cache = RedisCache(CacheConfig.from_settings(settings))
    await cache.connect()
    return cache
