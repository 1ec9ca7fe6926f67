"""
Shared fixtures for the Bookstore inventory tests.

The store runs on in-memory SQLite (aiosqlite); Redis is replaced by an
in-process fake with a controllable clock so TTL expiry can be tested
without sleeping.
"""
import fnmatch
import os

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

os.environ.setdefault("ENVIRONMENT", "testing")

from src.shared.caching import CacheConfig, RedisCache
from src.shared.config import DatabaseSettings, RedisSettings, Settings
from src.shared.metrics_collector import get_metrics_collector
from src.stockroom.database import DatabaseManager
from src.stockroom.repositories import BookRepository
from src.storefront.app import create_app


class FakeRedis:
    """
    Minimal stand-in for ``redis.asyncio.Redis``.

    Supports the calls the cache client makes. ``fail`` makes every call
    raise a connection error; ``advance`` moves the expiry clock.
    """

    def __init__(self):
        self.data = {}
        self.expiry = {}
        self.now = 0.0
        self.fail = False
        self.closed = False
        self.calls = []

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if self.fail:
            raise RedisConnectionError("Connection refused")

    def _purge(self):
        for key in [k for k, at in self.expiry.items() if at <= self.now]:
            self.data.pop(key, None)
            self.expiry.pop(key, None)

    def ttl_of(self, key):
        return self.expiry[key] - self.now

    async def ping(self):
        self._record("ping")
        return True

    async def get(self, key):
        self._record("get", key)
        self._purge()
        return self.data.get(key)

    async def setex(self, key, ttl, value):
        self._record("setex", key, ttl)
        self.data[key] = value
        self.expiry[key] = self.now + ttl
        return True

    async def delete(self, *keys):
        self._record("delete", *keys)
        self._purge()
        removed = 0
        for key in keys:
            if key in self.data:
                del self.data[key]
                self.expiry.pop(key, None)
                removed += 1
        return removed

    async def keys(self, pattern):
        self._record("keys", pattern)
        self._purge()
        return [key for key in self.data if fnmatch.fnmatchcase(key, pattern)]

    async def aclose(self):
        self.closed = True


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with zeroed counters."""
    get_metrics_collector().reset()
    yield


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache_config():
    return CacheConfig(
        redis_url="redis://fake:6379/0",
        ttl=300,
        timeout=0.5,
        namespace="books",
        reconnect_interval=0.01
    )


@pytest.fixture
def db_settings():
    """In-memory SQLite store with a single, immediate connection attempt."""
    return DatabaseSettings(
        database_url="sqlite+aiosqlite:///:memory:",
        db_retry_attempts=1,
        db_retry_delay=0,
        db_create_schema=True
    )


@pytest.fixture
def settings(db_settings):
    return Settings(
        database=db_settings,
        redis=RedisSettings(cache_ttl=300, cache_namespace="books")
    )


@pytest_asyncio.fixture
async def cache(fake_redis, cache_config):
    """Connected cache client backed by the fake."""
    redis_cache = RedisCache(cache_config, client=fake_redis)
    await redis_cache.connect()
    yield redis_cache
    await redis_cache.disconnect()


@pytest_asyncio.fixture
async def db_manager(db_settings):
    manager = DatabaseManager(db_settings)
    await manager.connect_with_retry()
    await manager.create_schema()
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def session(db_manager):
    async with db_manager.get_session() as db_session:
        yield db_session


@pytest.fixture
def repository(session):
    return BookRepository(session, statement_timeout=5.0)


@pytest.fixture
def app(settings, db_settings, fake_redis, cache_config):
    """Application wired to SQLite and the fake Redis."""
    return create_app(
        settings,
        db_manager=DatabaseManager(db_settings),
        cache=RedisCache(cache_config, client=fake_redis)
    )


@pytest.fixture
def client(app):
    """Test client with the lifespan (startup and shutdown) running."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def book_payload():
    return {
        "title": "The Pragmatic Programmer",
        "author": "Andrew Hunt, David Thomas",
        "isbn": "978-0201616224",
        "price": 39.99,
        "stock": 12
    }
