"""
Stockroom - Database Models
Store layer

This module contains the database model for the book inventory.
The store is the source of truth; cache entries are derived from these rows.
"""
from sqlalchemy import (
    Column, String, Integer, DateTime, Numeric, Index, CheckConstraint
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class Book(Base):
    """
    Books table.
    One row per catalogue entry; ISBN is globally unique.
    """
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    author = Column(String(255), nullable=False)
    isbn = Column(String(20), unique=True, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0, server_default="0")
    stock = Column(Integer, nullable=False, default=0, server_default="0")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint('price >= 0', name='non_negative_price'),
        CheckConstraint('stock >= 0', name='non_negative_stock'),
        Index('ix_books_title', 'title'),
        Index('ix_books_author', 'author'),
        Index('ix_books_isbn', 'isbn'),
        Index('ix_books_created_at', 'created_at'),
    )

    def __repr__(self):
        return f"<Book(id={self.id}, title='{self.title[:50]}', isbn='{self.isbn}')>"
