"""
Cache invalidation for the Bookstore inventory service.

Mutations invalidate broadly: the whole record namespace is swept, then the
collection key is deleted once more in case a concurrent read repopulated it
during the sweep.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..logging_config import get_logger
from ..metrics_collector import get_metrics_collector
from .cache_manager import CacheKeyspace, RedisCache


@dataclass
class InvalidationEvent:
    """Record of one invalidation pass."""
    namespace: str
    reason: str
    keys_removed: int = 0
    duration: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class CacheInvalidator:
    """Removes cached projections after the store has changed."""

    def __init__(self, cache: RedisCache, keyspace: Optional[CacheKeyspace] = None):
        self.cache = cache
        self.keyspace = keyspace or CacheKeyspace(cache.config.namespace)
        self.logger = get_logger(__name__, 'cache_invalidator')
        self.metrics = get_metrics_collector()

        self.last_event: Optional[InvalidationEvent] = None
        self.stats = {
            'invalidations_executed': 0,
            'keys_invalidated': 0,
            'total_processing_time': 0.0
        }

    async def invalidate_key(self, key: str) -> bool:
        """Invalidate a specific cache key."""
        removed = await self.cache.delete(key)
        if removed:
            self.stats['keys_invalidated'] += 1
        self.logger.debug(f"Invalidated cache key: {key}", operation="invalidate_key")
        return removed

    async def invalidate_namespace(self, reason: str = "mutation") -> InvalidationEvent:
        """
        Sweep every key of the namespace, then delete the collection key again.

        Never raises: cache failures leave entries to expire by TTL.
        """
        start_time = time.perf_counter()

        removed = await self.cache.clear_pattern(self.keyspace.pattern)
        # Idempotent second delete; covers a read that repopulated during the sweep
        if await self.cache.delete(self.keyspace.collection):
            removed += 1

        duration = time.perf_counter() - start_time
        event = InvalidationEvent(
            namespace=self.keyspace.namespace,
            reason=reason,
            keys_removed=removed,
            duration=duration
        )
        self.last_event = event

        self.stats['invalidations_executed'] += 1
        self.stats['keys_invalidated'] += removed
        self.stats['total_processing_time'] += duration
        self.metrics.get_counter('cache_invalidations_total', 'Namespace invalidations').increment(
            1, namespace=self.keyspace.namespace, reason=reason
        )

        self.logger.info(
            f"Invalidated {removed} keys in namespace: {self.keyspace.namespace}",
            operation="invalidate_namespace",
            reason=reason
        )
        return event

    def get_stats(self) -> Dict[str, Any]:
        return dict(self.stats)
