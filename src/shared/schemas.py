"""
Shared Schemas - Pydantic Models for Validation and Serialization
Data models used across the store, cache and HTTP layers.

These schemas provide:
- Request validation at the API boundary
- The serialized shape of cached records
- Response models for the OpenAPI documentation
"""
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional, List

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator


# Prices are stored as DECIMAL(10, 2) and rendered as JSON numbers
Price = Annotated[
    Decimal,
    Field(ge=0, max_digits=10, decimal_places=2),
    PlainSerializer(float, return_type=float, when_used="json"),
]

REQUIRED_BOOK_FIELDS = ("title", "author", "isbn")


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        validate_assignment=True,
    )


class TimestampMixin(BaseModel):
    """Mixin for models with timestamps."""
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")


# Book schemas
class BookBase(BaseSchema):
    """Fields shared by book create and update payloads."""
    title: str = Field(..., min_length=1, max_length=255, description="Book title")
    author: str = Field(..., min_length=1, max_length=255, description="Book author(s)")
    isbn: str = Field(..., min_length=1, max_length=20, description="Globally unique ISBN")
    price: Price = Field(Decimal("0"), description="Unit price")
    stock: int = Field(0, ge=0, description="Units in stock")

    @field_validator("title", "author", "isbn", mode="before")
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("price", "stock", mode="before")
    @classmethod
    def default_when_null(cls, v, info):
        if v is None:
            return Decimal("0") if info.field_name == "price" else 0
        return v


class BookCreate(BookBase):
    """Schema for creating books. Price and stock default to zero."""
    pass


class BookUpdate(BookBase):
    """Schema for replacing every mutable field of a book."""
    pass


class BookResponse(BookBase, TimestampMixin):
    """Schema for book responses and for cached record snapshots."""
    id: int = Field(..., description="Store-assigned identifier")
    from_cache: Optional[bool] = Field(None, description="Set when the record was served from the cache")


class BookMutationResponse(BookResponse):
    """Book returned after a create or update, with a confirmation message."""
    message: str


class DeleteResponse(BaseModel):
    """Confirmation returned after a delete."""
    message: str = "Book deleted successfully"
    id: int


class ErrorResponse(BaseModel):
    """Error body returned for every failed request."""
    error: str


# Health schemas
class HealthResponse(BaseModel):
    """Liveness payload."""
    status: str = "ok"
    timestamp: datetime
    uptime_seconds: float


class ReadinessResponse(BaseModel):
    """Readiness payload."""
    status: str
    database: str
    cache: str
    timestamp: datetime
    error: Optional[str] = None


BookList = List[BookResponse]
