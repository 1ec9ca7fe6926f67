"""
Tests for database connection management.
"""
from decimal import Decimal

import pytest
from unittest.mock import AsyncMock, patch

from src.shared.config import DatabaseSettings
from src.shared.errors import StoreUnavailableError
from src.shared.retry import RetryPolicy
from src.stockroom.database import SAMPLE_BOOKS, DatabaseManager
from src.stockroom.repositories import BookRepository


class TestDatabaseManager:
    """Test DatabaseManager functionality."""

    @pytest.mark.asyncio
    async def test_connect_and_health(self, db_manager):
        assert db_manager.is_connected is True
        assert await db_manager.health_check() is True

    @pytest.mark.asyncio
    async def test_retry_exhausted(self, db_settings):
        manager = DatabaseManager(db_settings)

        with patch.object(manager, "_verify_connection", AsyncMock(side_effect=OSError("refused"))) as verify:
            with pytest.raises(StoreUnavailableError) as exc_info:
                await manager.connect_with_retry(RetryPolicy(max_attempts=3, interval=0))

        assert verify.await_count == 3
        assert exc_info.value.details["attempts"] == 3
        assert manager.is_connected is False
        await manager.close()

    @pytest.mark.asyncio
    async def test_retry_recovers(self, db_settings):
        manager = DatabaseManager(db_settings)
        verify = AsyncMock(side_effect=[OSError("refused"), None])

        with patch.object(manager, "_verify_connection", verify):
            await manager.connect_with_retry(RetryPolicy(max_attempts=3, interval=0))

        assert manager.is_connected is True
        await manager.close()

    @pytest.mark.asyncio
    async def test_policy_from_settings(self):
        manager = DatabaseManager(DatabaseSettings(
            database_url="sqlite+aiosqlite:///:memory:",
            db_retry_attempts=4,
            db_retry_delay=0
        ))

        with patch.object(manager, "_verify_connection", AsyncMock(side_effect=OSError("refused"))) as verify:
            with pytest.raises(StoreUnavailableError):
                await manager.connect_with_retry()

        assert verify.await_count == 4
        await manager.close()

    @pytest.mark.asyncio
    async def test_health_check_uninitialized(self):
        manager = DatabaseManager(DatabaseSettings(database_url="sqlite+aiosqlite:///:memory:"))

        assert await manager.health_check() is False

    @pytest.mark.asyncio
    async def test_session_requires_initialize(self):
        manager = DatabaseManager(DatabaseSettings(database_url="sqlite+aiosqlite:///:memory:"))

        with pytest.raises(RuntimeError):
            async with manager.get_session():
                pass

    @pytest.mark.asyncio
    async def test_close(self, db_settings):
        manager = DatabaseManager(db_settings)
        await manager.connect_with_retry()

        await manager.close()

        assert manager.engine is None
        assert manager.is_connected is False
        assert await manager.health_check() is False

    def test_pool_options_for_server_databases(self):
        manager = DatabaseManager(DatabaseSettings(db_pool_size=7, db_max_overflow=0, db_pool_timeout=3))

        options = manager._engine_options(manager.settings.get_database_url())

        assert options["pool_size"] == 7
        assert options["max_overflow"] == 0
        assert options["pool_timeout"] == 3
        assert options["pool_pre_ping"] is True

    def test_statement_timeout(self):
        manager = DatabaseManager(DatabaseSettings(db_statement_timeout=2.5))

        assert manager.statement_timeout == 2.5

    @pytest.mark.asyncio
    async def test_seed_sample_books_into_empty_table(self, db_manager):
        inserted = await db_manager.seed_sample_books()

        async with db_manager.get_session() as session:
            books = await BookRepository(session).get_all()

        assert inserted == len(SAMPLE_BOOKS) == 8
        assert len(books) == 8
        clean_code = next(book for book in books if book.isbn == "978-0132350884")
        assert clean_code.price == Decimal("39.99")
        assert clean_code.stock == 30

    @pytest.mark.asyncio
    async def test_seed_skips_populated_table(self, db_manager):
        await db_manager.seed_sample_books()

        assert await db_manager.seed_sample_books() == 0
