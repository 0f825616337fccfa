"""
Database service layer for the FastAPI application.

Every method issues exactly one MongoDB operation against one of the
three catalog collections.
"""

from datetime import date, datetime
from typing import Any, Awaitable, Dict, List, Optional

import structlog
from bson import Decimal128, ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import (
    ConnectionFailure,
    NetworkTimeout,
    PyMongoError,
    ServerSelectionTimeoutError,
)

from catalog_api.errors import InvalidIdentifierError, StoreError, StoreUnavailableError
from catalog_api.models import DeleteResponse, InsertResponse, UpdateResponse

logger = structlog.get_logger(__name__)

BOOKS_COLLECTION = "books"
CATEGORIES_COLLECTION = "bookCategories"
BORROWED_BOOKS_COLLECTION = "borrowedBooks"

UNAVAILABLE_ERRORS = (ConnectionFailure, ServerSelectionTimeoutError, NetworkTimeout)


def to_object_id(value: str, operation: str) -> ObjectId:
    """Convert a path identifier to an ObjectId."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        logger.warning("Invalid identifier", operation=operation, identifier=value)
        raise InvalidIdentifierError(operation, value)


def _to_json_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal128):
        return float(value.to_decimal())
    if isinstance(value, dict):
        return {key: _to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json_value(item) for item in value]
    return value


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Make a stored document JSON friendly, including nested values."""
    if doc is None:
        return None
    return _to_json_value(doc)


class CollectionStore:
    """Catalog collections behind a single long-lived database handle."""

    def __init__(self, database: AsyncIOMotorDatabase):
        self.database = database
        self.books = database[BOOKS_COLLECTION]
        self.categories = database[CATEGORIES_COLLECTION]
        self.borrowed_books = database[BORROWED_BOOKS_COLLECTION]

    async def _run(self, operation: str, call: Awaitable) -> Any:
        """Await a driver call, converting driver errors into store errors."""
        try:
            return await call
        except UNAVAILABLE_ERRORS as e:
            logger.error("Database unavailable", operation=operation, error=str(e))
            raise StoreUnavailableError(operation, str(e))
        except PyMongoError as e:
            logger.error("Database operation failed", operation=operation, error=str(e))
            raise StoreError(operation, str(e))

    async def _find(self, collection, operation: str, filter_query: Dict[str, Any]) -> List[Dict[str, Any]]:
        docs = await self._run(operation, collection.find(filter_query).to_list(length=None))
        return [serialize(doc) for doc in docs]

    async def _insert(self, collection, operation: str, document: Dict[str, Any]) -> InsertResponse:
        # The store always generates the identifier.
        document = {k: v for k, v in document.items() if k != "_id"}
        result = await self._run(operation, collection.insert_one(document))
        logger.info("Document inserted", operation=operation, inserted_id=str(result.inserted_id))
        return InsertResponse(acknowledged=result.acknowledged, inserted_id=str(result.inserted_id))

    # Books

    async def find_all_books(self) -> List[Dict[str, Any]]:
        return await self._find(self.books, "find_all_books", {})

    async def find_book_by_id(self, book_id: str) -> Optional[Dict[str, Any]]:
        """
        Get a single book by ID.

        Returns:
            The book document, or None when no document has that ID
        """
        object_id = to_object_id(book_id, "find_book_by_id")
        doc = await self._run("find_book_by_id", self.books.find_one({"_id": object_id}))
        return serialize(doc)

    async def find_books_by_category(self, category: str) -> List[Dict[str, Any]]:
        """Books whose category equals `category` exactly (case-sensitive)."""
        return await self._find(self.books, "find_books_by_category", {"category": category})

    async def insert_book(self, document: Dict[str, Any]) -> InsertResponse:
        return await self._insert(self.books, "insert_book", document)

    async def upsert_book(self, book_id: str, fields: Dict[str, Any]) -> UpdateResponse:
        """
        Replace a book with the given fields, creating it when the ID is unknown.

        Fields not in `fields`, including ones stored at insert time, are
        removed from the document.

        Args:
            book_id: Book identifier
            fields: The complete set of book fields

        Returns:
            UpdateResponse with matched, modified and upserted counts
        """
        object_id = to_object_id(book_id, "upsert_book")
        result = await self._run(
            "upsert_book",
            self.books.replace_one({"_id": object_id}, fields, upsert=True),
        )
        upserted_id = str(result.upserted_id) if result.upserted_id is not None else None
        logger.info(
            "Book updated",
            book_id=book_id,
            matched=result.matched_count,
            modified=result.modified_count,
            upserted=upserted_id is not None,
        )
        return UpdateResponse(
            acknowledged=result.acknowledged,
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            upserted_count=1 if upserted_id is not None else 0,
            upserted_id=upserted_id,
        )

    # Categories

    async def find_categories(self, filter_query: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self._find(self.categories, "find_categories", filter_query)

    # Borrowed books

    async def find_borrowed_books(self, filter_query: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self._find(self.borrowed_books, "find_borrowed_books", filter_query)

    async def find_borrowed_books_by_email(self, email: str) -> List[Dict[str, Any]]:
        return await self._find(
            self.borrowed_books, "find_borrowed_books_by_email", {"user_email": email}
        )

    async def insert_borrowed_book(self, document: Dict[str, Any]) -> InsertResponse:
        return await self._insert(self.borrowed_books, "insert_borrowed_book", document)

    async def delete_borrowed_book(self, record_id: str) -> DeleteResponse:
        """Delete a borrowed book record; an unknown ID deletes nothing."""
        object_id = to_object_id(record_id, "delete_borrowed_book")
        result = await self._run(
            "delete_borrowed_book", self.borrowed_books.delete_one({"_id": object_id})
        )
        logger.info("Borrowed book deleted", record_id=record_id, deleted=result.deleted_count)
        return DeleteResponse(acknowledged=result.acknowledged, deleted_count=result.deleted_count)

    # Health

    async def ping(self) -> None:
        await self._run("ping", self.database.command("ping"))

    async def health_check(self) -> Dict:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.ping()
            return {"status": "healthy"}
        except StoreError as e:
            logger.error("Database health check failed", error=str(e))
            return {"status": "unhealthy", "error": str(e)}
