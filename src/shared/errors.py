"""
Inventory service exceptions.

Exception hierarchy shared by the store layer, the caching layer and the HTTP
layer. Each error carries the HTTP status it maps to and a client-safe
message; internal details stay in ``details`` and are only logged.
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class InventoryError(Exception):
    """
    Base exception for all inventory errors.

    Attributes:
        message: Human-readable error message (safe to return to clients)
        error_code: Machine-readable error code
        status_code: HTTP status the error maps to
        details: Additional error context for logging
    """

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to the JSON body returned by the API."""
        return {"error": self.message}


class BookValidationError(InventoryError):
    """Missing or malformed required field."""

    status_code = 400
    default_message = "Title, author, and ISBN are required"


class BookConflictError(InventoryError):
    """Uniqueness violation (duplicate ISBN)."""

    status_code = 409
    default_message = "Book with this ISBN already exists"

    def __init__(self, isbn: Optional[str] = None, message: Optional[str] = None):
        super().__init__(message, "BOOK_CONFLICT", {"isbn": isbn} if isbn else None)
        self.isbn = isbn


class BookNotFoundError(InventoryError):
    """No book exists with the requested identifier."""

    status_code = 404
    default_message = "Book not found"

    def __init__(self, book_id: Optional[int] = None, message: Optional[str] = None):
        super().__init__(message, "BOOK_NOT_FOUND", {"book_id": book_id} if book_id is not None else None)
        self.book_id = book_id


class StoreUnavailableError(InventoryError):
    """
    The persistent store could not be reached or timed out.

    Retried at startup; surfaces as a server error during a request.
    """

    status_code = 500
    default_message = "Internal server error"


class CacheUnavailableError(InventoryError):
    """
    The cache could not be reached or timed out.

    Never leaves the caching layer: callers treat it as a miss or a no-op.
    """

    status_code = 500
    default_message = "Cache unavailable"


class InternalError(InventoryError):
    """Unexpected failure; the message returned to clients stays generic."""

    status_code = 500
    default_message = "Internal server error"
