"""
Caching layer for the Bookstore inventory service.

- Redis client with best-effort, timeout-bounded operations
- Broad namespace invalidation after writes
- Cache-aside coordination of book reads and writes
"""

from .cache_manager import (
    CacheConfig,
    CacheKeyspace,
    RedisCache,
    create_cache
)

from .invalidation import (
    CacheInvalidator,
    InvalidationEvent
)

from .coordinator import (
    BookCacheCoordinator,
    CachedResult
)

__all__ = [
    # Core classes
    'CacheConfig',
    'CacheKeyspace',
    'RedisCache',

    # Cache invalidation
    'CacheInvalidator',
    'InvalidationEvent',

    # Coordination
    'BookCacheCoordinator',
    'CachedResult',

    # Factory functions
    'create_cache'
]
