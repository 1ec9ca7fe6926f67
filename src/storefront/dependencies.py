"""
Storefront - Dependencies
HTTP layer

This module provides dependency injection for FastAPI endpoints.
Process-scoped resources live on ``app.state`` (created by the lifespan);
sessions, repositories and coordinators are built per request.
"""
import logging
from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..shared.caching import BookCacheCoordinator, CacheInvalidator, RedisCache
from ..shared.config import Settings
from ..stockroom.database import DatabaseManager
from ..stockroom.repositories import BookRepository

logger = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


def get_database_manager(request: Request) -> DatabaseManager:
    """
    Get database manager instance.

    Returns:
        DatabaseManager created at startup
    """
    return request.app.state.db_manager


def get_cache(request: Request) -> RedisCache:
    """Shared Redis cache client."""
    return request.app.state.cache


def get_invalidator(request: Request) -> CacheInvalidator:
    """Shared cache invalidator."""
    return request.app.state.invalidator


async def get_db_session_dependency(
    db_manager: DatabaseManager = Depends(get_database_manager)
) -> AsyncGenerator[AsyncSession, None]:
    """
    Database session dependency for FastAPI endpoints.

    Yields:
        Database session
    """
    async with db_manager.get_session() as session:
        yield session


def get_book_repository(
    session: AsyncSession = Depends(get_db_session_dependency),
    db_manager: DatabaseManager = Depends(get_database_manager)
) -> BookRepository:
    """
    Book repository dependency.

    Args:
        session: Database session
        db_manager: Supplies the per-statement timeout

    Returns:
        BookRepository bound to the request session
    """
    return BookRepository(session, statement_timeout=db_manager.statement_timeout)


def get_book_coordinator(
    repository: BookRepository = Depends(get_book_repository),
    cache: RedisCache = Depends(get_cache),
    invalidator: CacheInvalidator = Depends(get_invalidator),
    settings: Settings = Depends(get_app_settings)
) -> BookCacheCoordinator:
    """Cache-aside coordinator for the current request."""
    return BookCacheCoordinator(
        repository,
        cache,
        invalidator=invalidator,
        ttl=settings.redis.cache_ttl
    )
