"""
Stockroom - Repository Pattern for Data Access
Store layer

This module implements the inventory store adapter: CRUD operations against
the source of truth. Each mutation is a single statement followed by a
commit; failures roll the session back.
"""
import asyncio
from typing import Optional, List, Awaitable, TypeVar
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import structlog

from .models import Book
from ..shared.errors import (
    BookConflictError, BookNotFoundError, BookValidationError, StoreUnavailableError
)
from ..shared.metrics_collector import get_metrics_collector
from ..shared.schemas import BookCreate, BookUpdate

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_STATEMENT_TIMEOUT = 10.0


def _is_duplicate_key(error: IntegrityError) -> bool:
    """Tell unique-constraint violations apart from other integrity errors."""
    message = str(getattr(error, "orig", error)).lower()
    return "unique" in message or "duplicate" in message


class BookRepository:
    """
    Repository for book records.
    Signals NotFound/Conflict through the shared error taxonomy; any other
    store failure surfaces as StoreUnavailableError.
    """

    def __init__(self, session: AsyncSession, statement_timeout: Optional[float] = None):
        self.session = session
        self.statement_timeout = statement_timeout or DEFAULT_STATEMENT_TIMEOUT
        self.metrics = get_metrics_collector()
        # Successful commits on this session; a write may commit and still fail afterwards
        self.commits = 0

    async def _timed(self, awaitable: Awaitable[T]) -> T:
        """Await a store call under the per-statement timeout."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.statement_timeout)
        except asyncio.TimeoutError as e:
            raise StoreUnavailableError(
                "Store call timed out",
                details={"timeout": self.statement_timeout}
            ) from e

    def _count(self, operation: str, status: str) -> None:
        self.metrics.get_counter(
            "store_operations_total", "Store operations by outcome"
        ).increment(1, operation=operation, status=status)

    async def _commit(self) -> None:
        await self._timed(self.session.commit())
        self.commits += 1

    async def _rollback(self) -> None:
        try:
            await self.session.rollback()
        except SQLAlchemyError as e:
            logger.warning("Rollback failed", error=str(e))

    async def create(self, obj_in: BookCreate) -> Book:
        """
        Insert a new book.

        Raises:
            BookConflictError: If the ISBN already exists
        """
        db_obj = Book(**obj_in.model_dump())

        try:
            with self.metrics.get_timer("store_create_duration").time():
                self.session.add(db_obj)
                await self._commit()
                await self._timed(self.session.refresh(db_obj))
        except IntegrityError as e:
            await self._rollback()
            self._count("create", "conflict")
            if _is_duplicate_key(e):
                logger.info("Duplicate ISBN rejected", isbn=obj_in.isbn)
                raise BookConflictError(obj_in.isbn) from e
            logger.error("Integrity error creating book", error=str(e))
            raise BookValidationError("Invalid book data") from e
        except SQLAlchemyError as e:
            await self._rollback()
            self._count("create", "error")
            logger.error("Error creating book", error=str(e))
            raise StoreUnavailableError(details={"error": str(e)}) from e
        except StoreUnavailableError:
            await self._rollback()
            self._count("create", "error")
            raise

        self._count("create", "success")
        logger.info("Created book", book_id=db_obj.id, isbn=db_obj.isbn)
        return db_obj

    async def get(self, book_id: int) -> Optional[Book]:
        """Get a book by ID, or None if absent."""
        try:
            result = await self._timed(self.session.execute(
                select(Book)
                .where(Book.id == book_id)
                .execution_options(populate_existing=True)
            ))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Error getting book", book_id=book_id, error=str(e))
            raise StoreUnavailableError(details={"error": str(e)}) from e

    async def get_or_raise(self, book_id: int) -> Book:
        """
        Get a book by ID.

        Raises:
            BookNotFoundError: If no book has this ID
        """
        book = await self.get(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        return book

    async def get_all(self) -> List[Book]:
        """
        Scan every book, most recently created first.
        Creation time may repeat, so ties fall back to the newer ID.
        """
        try:
            with self.metrics.get_timer("store_scan_duration").time():
                result = await self._timed(self.session.execute(
                    select(Book)
                    .order_by(Book.created_at.desc(), Book.id.desc())
                    .execution_options(populate_existing=True)
                ))
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Error scanning books", error=str(e))
            raise StoreUnavailableError(details={"error": str(e)}) from e

    async def update(self, book_id: int, obj_in: BookUpdate) -> Book:
        """
        Replace every mutable field of a book and refresh its updated timestamp.

        Raises:
            BookNotFoundError: If no book has this ID
            BookConflictError: If the new ISBN belongs to another book
        """
        try:
            result = await self._timed(self.session.execute(
                update(Book)
                .where(Book.id == book_id)
                .values(**obj_in.model_dump(), updated_at=func.now())
                .execution_options(synchronize_session=False)
            ))
            if result.rowcount == 0:
                await self._rollback()
                self._count("update", "not_found")
                raise BookNotFoundError(book_id)
            await self._commit()
        except IntegrityError as e:
            await self._rollback()
            self._count("update", "conflict")
            if _is_duplicate_key(e):
                raise BookConflictError(obj_in.isbn) from e
            logger.error("Integrity error updating book", book_id=book_id, error=str(e))
            raise BookValidationError("Invalid book data") from e
        except SQLAlchemyError as e:
            await self._rollback()
            self._count("update", "error")
            logger.error("Error updating book", book_id=book_id, error=str(e))
            raise StoreUnavailableError(details={"error": str(e)}) from e
        except StoreUnavailableError:
            await self._rollback()
            self._count("update", "error")
            raise

        self._count("update", "success")
        logger.info("Updated book", book_id=book_id)
        return await self.get_or_raise(book_id)

    async def delete(self, book_id: int) -> None:
        """
        Permanently remove a book.

        Raises:
            BookNotFoundError: If no book has this ID
        """
        try:
            result = await self._timed(self.session.execute(
                delete(Book)
                .where(Book.id == book_id)
                .execution_options(synchronize_session=False)
            ))
            if result.rowcount == 0:
                await self._rollback()
                self._count("delete", "not_found")
                raise BookNotFoundError(book_id)
            await self._commit()
        except SQLAlchemyError as e:
            await self._rollback()
            self._count("delete", "error")
            logger.error("Error deleting book", book_id=book_id, error=str(e))
            raise StoreUnavailableError(details={"error": str(e)}) from e
        except StoreUnavailableError:
            await self._rollback()
            self._count("delete", "error")
            raise

        self._count("delete", "success")
        logger.info("Deleted book", book_id=book_id)

