"""
Cache-aside coordination for book reads and writes.

Reads check Redis first and fall back to the store on a miss, populating the
cache with the result. Writes go to the store only; once the store has
accepted the change, the book namespace is invalidated before the caller is
acknowledged. The cache is never the only copy of any data.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

from pydantic import ValidationError

from ..errors import BookNotFoundError
from ..logging_config import get_logger
from ..schemas import BookCreate, BookResponse, BookUpdate
from .cache_manager import CacheKeyspace, RedisCache
from .invalidation import CacheInvalidator

T = TypeVar('T')


@dataclass
class CachedResult(Generic[T]):
    """A read result and whether it came from the cache."""
    value: T
    from_cache: bool = False


class BookCacheCoordinator:
    """
    Wraps a book repository with cache-aside reads and invalidate-on-write.

    The repository is request scoped; the cache client and invalidator are
    shared by the whole process.
    """

    def __init__(
        self,
        repository,
        cache: RedisCache,
        invalidator: Optional[CacheInvalidator] = None,
        ttl: Optional[int] = None,
    ):
        self.repository = repository
        self.cache = cache
        self.keyspace = invalidator.keyspace if invalidator else CacheKeyspace(cache.config.namespace)
        self.invalidator = invalidator or CacheInvalidator(cache, self.keyspace)
        self.ttl = ttl or cache.config.ttl
        self.logger = get_logger(__name__, 'cache_coordinator')

    @staticmethod
    def _snapshot(book: BookResponse) -> dict:
        return book.model_dump(mode="json", exclude={"from_cache"})

    def _decode_collection(self, cached: Any) -> Optional[List[BookResponse]]:
        if not isinstance(cached, list):
            return None
        try:
            return [BookResponse.model_validate(item) for item in cached]
        except ValidationError as e:
            self.logger.warning(f"Discarding malformed collection entry: {e}", operation="read_collection")
            return None

    def _decode_item(self, cached: Any) -> Optional[BookResponse]:
        if not isinstance(cached, dict):
            return None
        try:
            return BookResponse.model_validate(cached)
        except ValidationError as e:
            self.logger.warning(f"Discarding malformed item entry: {e}", operation="read_item")
            return None

    async def read_collection(self) -> CachedResult[List[BookResponse]]:
        """All books, most recently created first."""
        key = self.keyspace.collection
        books = self._decode_collection(await self.cache.get(key))
        if books is not None:
            self.logger.debug(f"Cache hit: {key}", operation="read_collection")
            return CachedResult(
                [book.model_copy(update={"from_cache": True}) for book in books],
                from_cache=True
            )

        rows = await self.repository.get_all()
        books = [BookResponse.model_validate(row) for row in rows]
        await self.cache.set(key, [self._snapshot(book) for book in books], self.ttl)
        self.logger.debug(f"Cache miss: {key}", operation="read_collection", count=len(books))
        return CachedResult(books)

    async def read_item(self, book_id: int) -> CachedResult[BookResponse]:
        """
        One book by ID.

        Raises:
            BookNotFoundError: If the store has no such book (absence is never cached)
        """
        key = self.keyspace.item(book_id)
        book = self._decode_item(await self.cache.get(key))
        if book is not None:
            self.logger.debug(f"Cache hit: {key}", operation="read_item")
            return CachedResult(book.model_copy(update={"from_cache": True}), from_cache=True)

        row = await self.repository.get(book_id)
        if row is None:
            raise BookNotFoundError(book_id)

        book = BookResponse.model_validate(row)
        await self.cache.set(key, self._snapshot(book), self.ttl)
        self.logger.debug(f"Cache miss: {key}", operation="read_item")
        return CachedResult(book)

    async def write_through(self, mutation: Callable[[Any], Awaitable[T]], reason: str = "mutation") -> T:
        """
        Apply ``mutation`` to the repository, then invalidate the namespace.

        Invalidation runs whenever the mutation committed, including when a
        step after the commit (reloading the row) raised. A mutation that
        fails before committing leaves the cache alone. Errors propagate
        unchanged either way.
        """
        committed = self.repository.commits
        try:
            return await mutation(self.repository)
        finally:
            if self.repository.commits != committed:
                await self.invalidator.invalidate_namespace(reason)

    async def create_book(self, book_in: BookCreate) -> BookResponse:
        row = await self.write_through(lambda repo: repo.create(book_in), reason="create")
        return BookResponse.model_validate(row)

    async def update_book(self, book_id: int, book_in: BookUpdate) -> BookResponse:
        row = await self.write_through(lambda repo: repo.update(book_id, book_in), reason="update")
        return BookResponse.model_validate(row)

    async def delete_book(self, book_id: int) -> None:
        await self.write_through(lambda repo: repo.delete(book_id), reason="delete")
