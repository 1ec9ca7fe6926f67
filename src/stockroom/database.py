"""
Stockroom - Database Connection and Session Management
Store layer

This module handles database connectivity, session management, health checks
and the bounded startup retry.
"""
import asyncio
from decimal import Decimal
from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy import func, select, text
import structlog

from .models import Base, Book
from ..shared.config import DatabaseSettings
from ..shared.errors import StoreUnavailableError
from ..shared.retry import RetryPolicy, retry_async

logger = structlog.get_logger(__name__)

# Failures that mean "the store is not reachable yet"
CONNECTION_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError, StoreUnavailableError)

# (title, author, isbn, price, stock), loaded by seed_sample_books()
SAMPLE_BOOKS = (
    ("The Pragmatic Programmer", "David Thomas, Andrew Hunt", "978-0135957059", "49.99", 25),
    ("Clean Code", "Robert C. Martin", "978-0132350884", "39.99", 30),
    ("Design Patterns", "Gang of Four", "978-0201633610", "54.99", 15),
    ("Kubernetes in Action", "Marko Luksa", "978-1617293726", "59.99", 20),
    ("Docker Deep Dive", "Nigel Poulton", "978-1521822807", "29.99", 35),
    ("OpenShift for Developers", "Grant Shipley", "978-1491961438", "44.99", 18),
    ("Site Reliability Engineering", "Google SRE Team", "978-1491929124", "49.99", 22),
    ("The DevOps Handbook", "Gene Kim et al.", "978-1942788003", "34.99", 28),
)


class DatabaseManager:
    """
    Manages database connections and sessions for the inventory store.
    Owns the bounded connection pool shared by every request handler.
    """

    def __init__(self, settings: Optional[DatabaseSettings] = None):
        self.settings = settings or DatabaseSettings()
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._is_connected = False

    @property
    def statement_timeout(self) -> float:
        """Per-statement timeout in seconds."""
        return self.settings.db_statement_timeout

    def _engine_options(self, database_url: str) -> dict:
        if database_url.startswith("sqlite"):
            # One shared in-process connection; pool sizing does not apply
            return {
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False},
            }
        return {
            "pool_size": self.settings.db_pool_size,
            "max_overflow": self.settings.db_max_overflow,
            "pool_timeout": self.settings.db_pool_timeout,
            "pool_pre_ping": True,  # Validate connections before use
            "pool_recycle": 3600,   # Recycle connections every hour
        }

    def initialize(self) -> None:
        """Create the async engine and session factory (no I/O)."""
        if self.engine is not None:
            return

        database_url = self.settings.get_database_url()
        self.engine = create_async_engine(
            database_url,
            echo=self.settings.db_echo,
            **self._engine_options(database_url)
        )
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

    async def _verify_connection(self) -> None:
        async def ping():
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))

        await asyncio.wait_for(ping(), timeout=self.statement_timeout)

    async def connect_with_retry(self, policy: Optional[RetryPolicy] = None) -> None:
        """
        Verify the store is reachable, retrying with a fixed interval.

        Raises:
            StoreUnavailableError: If every attempt fails
        """
        self.initialize()
        policy = policy or RetryPolicy(
            max_attempts=self.settings.db_retry_attempts,
            interval=self.settings.db_retry_delay
        )

        try:
            await retry_async(
                self._verify_connection,
                policy,
                retry_on=CONNECTION_ERRORS,
                operation="Database connection"
            )
        except CONNECTION_ERRORS as e:
            self._is_connected = False
            raise StoreUnavailableError(
                "Could not connect to database",
                details={"attempts": policy.max_attempts, "error": str(e)}
            ) from e

        self._is_connected = True
        logger.info(
            "Database connection initialized successfully",
            host=self.settings.db_host,
            database=self.settings.db_name
        )

    async def create_schema(self) -> None:
        """Create the books table if it does not exist."""
        self.initialize()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured")

    async def seed_sample_books(self) -> int:
        """
        Insert the sample catalogue into an empty books table.

        Returns:
            Number of books inserted; 0 when the table already has rows
        """
        self.initialize()
        async with self.get_session() as session:
            existing = await session.scalar(select(func.count()).select_from(Book))
            if existing:
                logger.info("Sample books skipped, table not empty", existing=existing)
                return 0

            session.add_all(
                Book(title=title, author=author, isbn=isbn, price=Decimal(price), stock=stock)
                for title, author, isbn, price, stock in SAMPLE_BOOKS
            )
            await session.commit()

        logger.info("Sample books inserted", count=len(SAMPLE_BOOKS))
        return len(SAMPLE_BOOKS)

    async def health_check(self) -> bool:
        """
        Perform database health check.
        Returns True if database is accessible, False otherwise.
        """
        if not self.engine:
            return False

        try:
            await self._verify_connection()
            return True
        except CONNECTION_ERRORS as e:
            logger.error("Database health check failed", error=str(e) or type(e).__name__)
            return False

    async def close(self) -> None:
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None
            self._is_connected = False
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get database session with automatic cleanup.

        Usage:
            async with db_manager.get_session() as session:
                # Use session here
                pass
        """
        if not self.session_factory:
            raise RuntimeError("Database not initialized. Call initialize() first.")

        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    @property
    def is_connected(self) -> bool:
        """Check if database is connected."""
        return self._is_connected
