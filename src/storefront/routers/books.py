"""
Storefront - Books Router
HTTP layer

This module implements the book inventory CRUD endpoints. Reads go through
the cache-aside coordinator; writes go to the store and then invalidate the
cached book namespace before responding.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Path, Response, status

from ..dependencies import get_book_coordinator
from ...shared.caching import BookCacheCoordinator
from ...shared.schemas import (
    BookCreate, BookUpdate, BookResponse, BookMutationResponse,
    DeleteResponse, ErrorResponse
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Largest value the store's INTEGER primary key can hold
MAX_BOOK_ID = 2_147_483_647

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def _cache_header(response: Response, from_cache: bool) -> None:
    response.headers["X-Cache"] = "HIT" if from_cache else "MISS"


@router.get(
    "/books",
    response_model=List[BookResponse],
    response_model_exclude_none=True,
    responses={500: {"model": ErrorResponse}}
)
async def list_books(
    response: Response,
    coordinator: BookCacheCoordinator = Depends(get_book_coordinator)
) -> List[BookResponse]:
    """
    Get all books, newest first.

    Records served from the cache carry ``from_cache: true``.
    """
    result = await coordinator.read_collection()
    _cache_header(response, result.from_cache)
    return result.value


@router.get(
    "/books/{book_id}",
    response_model=BookResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES
)
async def get_book(
    response: Response,
    book_id: int = Path(..., ge=1, le=MAX_BOOK_ID),
    coordinator: BookCacheCoordinator = Depends(get_book_coordinator)
) -> BookResponse:
    """
    Get a book by ID.

    Args:
        book_id: Book ID

    Returns:
        Book details
    """
    result = await coordinator.read_item(book_id)
    _cache_header(response, result.from_cache)
    return result.value


@router.post(
    "/books",
    response_model=BookMutationResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES
)
async def create_book(
    book_in: BookCreate,
    coordinator: BookCacheCoordinator = Depends(get_book_coordinator)
) -> BookMutationResponse:
    """Create a book. Duplicate ISBNs are rejected with 409."""
    book = await coordinator.create_book(book_in)
    logger.info(f"Created book {book.id}", extra={"book_id": book.id, "isbn": book.isbn})
    return BookMutationResponse(**book.model_dump(), message="Book created successfully")


@router.put(
    "/books/{book_id}",
    response_model=BookMutationResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES
)
async def update_book(
    book_in: BookUpdate,
    book_id: int = Path(..., ge=1, le=MAX_BOOK_ID),
    coordinator: BookCacheCoordinator = Depends(get_book_coordinator)
) -> BookMutationResponse:
    """Replace every mutable field of a book."""
    book = await coordinator.update_book(book_id, book_in)
    logger.info(f"Updated book {book_id}", extra={"book_id": book_id})
    return BookMutationResponse(**book.model_dump(), message="Book updated successfully")


@router.delete(
    "/books/{book_id}",
    response_model=DeleteResponse,
    responses=ERROR_RESPONSES
)
async def delete_book(
    book_id: int = Path(..., ge=1, le=MAX_BOOK_ID),
    coordinator: BookCacheCoordinator = Depends(get_book_coordinator)
) -> DeleteResponse:
    """Delete a book by ID."""
    await coordinator.delete_book(book_id)
    logger.info(f"Deleted book {book_id}", extra={"book_id": book_id})
    return DeleteResponse(id=book_id)
