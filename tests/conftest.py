"""
Pytest configuration and shared fixtures.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from api.database import APIDatabaseService


def make_collection(name: str) -> AsyncMock:
    """Create a mock motor collection; find() returns a cursor synchronously."""
    collection = AsyncMock()
    collection.name = name
    collection.find_one.return_value = None
    collection.find_one_and_update.return_value = None
    collection.find = MagicMock()
    collection.find.return_value.to_list = AsyncMock(return_value=[])
    return collection


@pytest.fixture
def books_collection():
    """Mock books collection."""
    return make_collection("books")


@pytest.fixture
def users_collection():
    """Mock users collection."""
    return make_collection("users")


@pytest.fixture
def mock_database(books_collection, users_collection):
    """Create a mock motor database holding the books and users collections."""
    database = MagicMock()
    collections = {"books": books_collection, "users": users_collection}
    database.__getitem__.side_effect = collections.__getitem__
    database.command = AsyncMock(return_value={"ok": 1.0})
    return database


@pytest.fixture
def db_service(mock_database):
    """Create a database service over the mock database."""
    return APIDatabaseService(mock_database, id_allocation_attempts=3)


@pytest.fixture
def sample_book_doc():
    """Sample stored book document."""
    return {
        "id": 12345,
        "title": "The Great Gatsby",
        "author": "F. Scott Fitzgerald",
        "year": 1925,
        "category": "Fiction",
        "status": "available",
        "tags": [{"id": 1, "name": "Classic"}]
    }


@pytest.fixture
def sample_user_doc():
    """Sample stored user document."""
    return {
        "id": 54321,
        "firstName": "John",
        "lastName": "Doe",
        "address": "123 Main St",
        "borrowedBooks": [{"id": 12345, "title": "The Great Gatsby"}]
    }
