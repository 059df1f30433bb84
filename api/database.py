"""
Database service layer for the FastAPI application.
"""

import random
import re
from typing import Any, Dict, List, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from api.models import (
    BookCreate, BookUpdate, BookResponse, BookQueryParams,
    UserCreate, UserUpdate, UserResponse
)

logger = structlog.get_logger(__name__)

ID_MIN = 10000
ID_MAX = 99999

# MongoDB's _id never leaves the service
PROJECTION = {"_id": 0}


class IdentifierAllocationError(Exception):
    """Raised when no free identifier could be stored within the retry budget."""


def generate_random_id() -> int:
    """Draw a uniform random 5-digit identifier."""
    return random.randint(ID_MIN, ID_MAX)


class APIDatabaseService:
    """Database service for API operations."""

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        books_collection: str = "books",
        users_collection: str = "users",
        id_allocation_attempts: int = 5
    ):
        self.database = database
        self.books_collection = database[books_collection]
        self.users_collection = database[users_collection]
        self.id_allocation_attempts = id_allocation_attempts

    async def create_indexes(self) -> None:
        """Create the unique identifier indexes and the book filter indexes."""
        try:
            await self.books_collection.create_index("id", unique=True)
            await self.users_collection.create_index("id", unique=True)

            await self.books_collection.create_index("title")
            await self.books_collection.create_index("author")
            await self.books_collection.create_index("category")

            logger.info("Successfully created MongoDB indexes")

        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    async def allocate_id(
        self,
        collection: AsyncIOMotorCollection,
        candidate: Optional[int] = None,
        current_id: Optional[int] = None
    ) -> int:
        """
        Pick an identifier for a new or updated document.

        The candidate is kept when it is set and either free or equal to
        ``current_id`` (the document being updated). Otherwise random
        identifiers are drawn until one is free.

        Args:
            collection: Collection the identifier must be unique in
            candidate: Identifier requested by the client
            current_id: Identifier of the document being updated, if any

        Returns:
            An identifier with no owner other than ``current_id``
        """
        if candidate:
            if candidate == current_id:
                return candidate
            if not await collection.find_one({"id": candidate}, PROJECTION):
                return candidate
            logger.debug("Requested id already taken", id=candidate, collection=collection.name)

        new_id = generate_random_id()
        while await collection.find_one({"id": new_id}, PROJECTION):
            new_id = generate_random_id()
        return new_id

    async def _insert_with_id(
        self,
        collection: AsyncIOMotorCollection,
        document: Dict[str, Any],
        candidate: Optional[int]
    ) -> Dict[str, Any]:
        """Insert a document under a freshly allocated id, retrying on id conflicts."""
        for attempt in range(1, self.id_allocation_attempts + 1):
            document["id"] = await self.allocate_id(collection, candidate)
            try:
                # insert_one adds _id to the dict it is given
                await collection.insert_one(dict(document))
                return document
            except DuplicateKeyError:
                logger.warning(
                    "Identifier collision on insert, retrying",
                    collection=collection.name,
                    id=document["id"],
                    attempt=attempt
                )
                candidate = None

        raise IdentifierAllocationError(
            f"No free id in '{collection.name}' after {self.id_allocation_attempts} attempts"
        )

    async def _update_with_id(
        self,
        collection: AsyncIOMotorCollection,
        current_id: int,
        changes: Dict[str, Any],
        candidate: Optional[int]
    ) -> Optional[Dict[str, Any]]:
        """Merge changes into the document with ``current_id``, re-allocating its id."""
        for attempt in range(1, self.id_allocation_attempts + 1):
            changes["id"] = await self.allocate_id(collection, candidate, current_id)
            try:
                return await collection.find_one_and_update(
                    {"id": current_id},
                    {"$set": changes},
                    projection=PROJECTION,
                    return_document=ReturnDocument.AFTER
                )
            except DuplicateKeyError:
                logger.warning(
                    "Identifier collision on update, retrying",
                    collection=collection.name,
                    id=changes["id"],
                    attempt=attempt
                )
                candidate = None

        raise IdentifierAllocationError(
            f"No free id in '{collection.name}' after {self.id_allocation_attempts} attempts"
        )

    # Books

    async def create_book(self, book: BookCreate) -> BookResponse:
        """
        Store a new book.

        Args:
            book: Validated request body

        Returns:
            The stored book
        """
        try:
            document = await self._insert_with_id(
                self.books_collection, book.to_document(), book.id
            )
            logger.info("Book created", book_id=document["id"], title=document["title"])
            return BookResponse(**document)

        except Exception as e:
            logger.error("Failed to create book", title=book.title, error=str(e))
            raise

    async def get_books(self, query_params: BookQueryParams) -> List[BookResponse]:
        """
        Get books matching every supplied filter.

        Each filter is a case-insensitive substring match on its field.

        Args:
            query_params: Optional title, author and category filters

        Returns:
            Matching books, possibly none
        """
        try:
            filter_query = {}

            for field in ("title", "author", "category"):
                value = getattr(query_params, field)
                if value:
                    filter_query[field] = {"$regex": re.escape(value), "$options": "i"}

            cursor = self.books_collection.find(filter_query, PROJECTION)
            books_docs = await cursor.to_list(length=None)

            return [BookResponse(**book_doc) for book_doc in books_docs]

        except Exception as e:
            logger.error("Failed to get books", error=str(e), query_params=query_params.dict())
            raise

    async def get_book_by_id(self, book_id: int) -> Optional[BookResponse]:
        """
        Get a single book by ID.

        Args:
            book_id: Book identifier

        Returns:
            BookResponse if found, None otherwise
        """
        try:
            book_doc = await self.books_collection.find_one({"id": book_id}, PROJECTION)
            if book_doc:
                return BookResponse(**book_doc)
            return None

        except Exception as e:
            logger.error("Failed to get book by ID", book_id=book_id, error=str(e))
            raise

    async def update_book(self, book_id: int, book: BookUpdate) -> Optional[BookResponse]:
        """
        Merge the supplied fields into a book.

        Args:
            book_id: Identifier of the book to update
            book: Validated request body

        Returns:
            The updated book, or None if no book has ``book_id``
        """
        try:
            book_doc = await self._update_with_id(
                self.books_collection, book_id, book.to_document(partial=True), book.id
            )
            if book_doc:
                logger.info("Book updated", book_id=book_id, new_id=book_doc["id"])
                return BookResponse(**book_doc)

            logger.warning("Book not found for update", book_id=book_id)
            return None

        except Exception as e:
            logger.error("Failed to update book", book_id=book_id, error=str(e))
            raise

    # Users

    async def create_user(self, user: UserCreate) -> UserResponse:
        """Store a new user."""
        try:
            document = await self._insert_with_id(
                self.users_collection, user.to_document(), user.id
            )
            logger.info("User created", user_id=document["id"])
            return UserResponse(**document)

        except Exception as e:
            logger.error("Failed to create user", error=str(e))
            raise

    async def get_users(self) -> List[UserResponse]:
        """Get every user."""
        try:
            cursor = self.users_collection.find({}, PROJECTION)
            users_docs = await cursor.to_list(length=None)
            return [UserResponse(**user_doc) for user_doc in users_docs]

        except Exception as e:
            logger.error("Failed to get users", error=str(e))
            raise

    async def get_user_by_id(self, user_id: int) -> Optional[UserResponse]:
        """Get a single user by ID, or None."""
        try:
            user_doc = await self.users_collection.find_one({"id": user_id}, PROJECTION)
            if user_doc:
                return UserResponse(**user_doc)
            return None

        except Exception as e:
            logger.error("Failed to get user by ID", user_id=user_id, error=str(e))
            raise

    async def update_user(self, user_id: int, user: UserUpdate) -> Optional[UserResponse]:
        """Merge the supplied fields into a user, or return None if there is no such user."""
        try:
            user_doc = await self._update_with_id(
                self.users_collection, user_id, user.to_document(partial=True), user.id
            )
            if user_doc:
                logger.info("User updated", user_id=user_id, new_id=user_doc["id"])
                return UserResponse(**user_doc)

            logger.warning("User not found for update", user_id=user_id)
            return None

        except Exception as e:
            logger.error("Failed to update user", user_id=user_id, error=str(e))
            raise

    async def delete_user(self, user_id: int) -> bool:
        """
        Delete a user by ID.

        Returns:
            bool: True if deleted, False if not found
        """
        try:
            deleted = await self.users_collection.find_one_and_delete({"id": user_id}, projection=PROJECTION)
            if deleted:
                logger.info("User deleted", user_id=user_id)
                return True

            logger.warning("User not found for deletion", user_id=user_id)
            return False

        except Exception as e:
            logger.error("Failed to delete user", user_id=user_id, error=str(e))
            raise

    async def health_check(self) -> Dict:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")

            books_count = await self.books_collection.count_documents({})
            users_count = await self.users_collection.count_documents({})

            return {
                "status": "healthy",
                "books_count": books_count,
                "users_count": users_count
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }
