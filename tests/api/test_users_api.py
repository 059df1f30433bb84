"""
Tests for the user endpoints.
"""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

from api.database import APIDatabaseService
from api.main import app
from api.models import UserResponse


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def mock_db_service():
    """Mock database service."""
    mock = AsyncMock(spec=APIDatabaseService)
    with patch('api.main.db_service', mock):
        yield mock


def test_create_user(client, mock_db_service):
    """Creating a user returns 201 with camelCase fields."""
    mock_db_service.create_user.return_value = UserResponse(
        id=45678, firstName="Jane", lastName="Roe", address="1 Elm St"
    )

    response = client.post(
        "/users", json={"firstName": "Jane", "lastName": "Roe", "address": "1 Elm St"}
    )

    assert response.status_code == 201
    assert response.json() == {
        "id": 45678,
        "firstName": "Jane",
        "lastName": "Roe",
        "address": "1 Elm St",
        "borrowedBooks": []
    }
    sent = mock_db_service.create_user.await_args.args[0]
    assert sent.first_name == "Jane"
    assert sent.borrowed_books == []


@pytest.mark.parametrize("missing", ["firstName", "lastName", "address"])
def test_create_user_missing_field(client, mock_db_service, missing):
    """Each of the three required fields is enforced."""
    body = {"firstName": "Jane", "lastName": "Roe", "address": "1 Elm St"}
    del body[missing]

    response = client.post("/users", json=body)

    assert response.status_code == 400
    assert missing in response.json()["detail"]
    mock_db_service.create_user.assert_not_awaited()


def test_create_user_with_borrowed_books(client, mock_db_service, sample_user_doc):
    """borrowedBooks is accepted as opaque client data."""
    mock_db_service.create_user.return_value = UserResponse(**sample_user_doc)

    response = client.post("/users", json=sample_user_doc)

    assert response.status_code == 201
    assert response.json()["borrowedBooks"] == [{"id": 12345, "title": "The Great Gatsby"}]
    sent = mock_db_service.create_user.await_args.args[0]
    assert sent.id == 54321
    assert sent.borrowed_books[0].title == "The Great Gatsby"


def test_get_users(client, mock_db_service, sample_user_doc):
    """All users are listed."""
    mock_db_service.get_users.return_value = [UserResponse(**sample_user_doc)]

    response = client.get("/users")

    assert response.status_code == 200
    assert response.json()[0]["lastName"] == "Doe"


def test_get_users_database_error(client, mock_db_service):
    """Database failures are a 500."""
    mock_db_service.get_users.side_effect = Exception("timeout")

    response = client.get("/users")

    assert response.status_code == 500
    assert response.json()["error"] == "Internal Server Error"


def test_get_user_by_id(client, mock_db_service, sample_user_doc):
    """An existing user is returned."""
    mock_db_service.get_user_by_id.return_value = UserResponse(**sample_user_doc)

    response = client.get("/users/54321")

    assert response.status_code == 200
    assert response.json()["firstName"] == "John"
    mock_db_service.get_user_by_id.assert_awaited_once_with(54321)


def test_get_user_not_found(client, mock_db_service):
    """A missing user is a 404."""
    mock_db_service.get_user_by_id.return_value = None

    response = client.get("/users/1")

    assert response.status_code == 404
    assert response.json()["error"] == "User not found"


def test_update_user_uses_path_id(client, mock_db_service, sample_user_doc):
    """The user matched is the one named in the path."""
    mock_db_service.update_user.return_value = UserResponse(**sample_user_doc)

    response = client.put(
        "/users/54321",
        json={"id": 54321, "firstName": "John", "lastName": "Doe", "address": "9 Oak Ave"}
    )

    assert response.status_code == 200
    user_id, body = mock_db_service.update_user.await_args.args
    assert user_id == 54321
    assert body.address == "9 Oak Ave"


def test_update_user_missing_field(client, mock_db_service):
    """A partial body is rejected and nothing is written."""
    response = client.put("/users/54321", json={"firstName": "John"})

    assert response.status_code == 400
    mock_db_service.update_user.assert_not_awaited()


def test_update_user_not_found(client, mock_db_service):
    """Updating a missing user is a 404."""
    mock_db_service.update_user.return_value = None

    response = client.put(
        "/users/1", json={"firstName": "John", "lastName": "Doe", "address": "9 Oak Ave"}
    )

    assert response.status_code == 404


def test_delete_user_then_get(client, mock_db_service):
    """Deleting returns 204; the user is then gone."""
    mock_db_service.delete_user.return_value = True
    mock_db_service.get_user_by_id.return_value = None

    response = client.delete("/users/54321")
    assert response.status_code == 204
    assert response.content == b""

    response = client.get("/users/54321")
    assert response.status_code == 404


def test_delete_missing_user(client, mock_db_service):
    """Deleting a nonexistent user is a 404."""
    mock_db_service.delete_user.return_value = False

    response = client.delete("/users/1")

    assert response.status_code == 404
    assert response.json()["error"] == "User not found"


def test_create_user_null_borrowed_books(client, mock_db_service):
    """A null borrowedBooks list is stored as empty."""
    mock_db_service.create_user.return_value = UserResponse(
        id=45678, firstName="Jane", lastName="Roe", address="1 Elm St"
    )

    response = client.post(
        "/users",
        json={"firstName": "Jane", "lastName": "Roe", "address": "1 Elm St", "borrowedBooks": None}
    )

    assert response.status_code == 201
    sent = mock_db_service.create_user.await_args.args[0]
    assert sent.borrowed_books == []
