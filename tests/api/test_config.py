"""
Unit tests for API configuration.
"""

import pytest
from pydantic import ValidationError

from api.config import APIConfig


def test_defaults(monkeypatch):
    """Defaults point at the local bookstore database on port 3000."""
    for name in ("PORT", "MONGODB_URL", "MONGODB_DATABASE", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    settings = APIConfig(_env_file=None)

    assert settings.port == 3000
    assert settings.mongodb_url == "mongodb://localhost:27017"
    assert settings.mongodb_database == "bookstore"
    assert settings.books_collection == "books"
    assert settings.users_collection == "users"
    assert settings.id_allocation_attempts == 5


def test_environment_overrides(monkeypatch):
    """Settings are read from the environment."""
    monkeypatch.setenv("MONGODB_DATABASE", "library_test")
    monkeypatch.setenv("PORT", "8080")

    settings = APIConfig(_env_file=None)

    assert settings.mongodb_database == "library_test"
    assert settings.port == 8080


def test_log_level_normalized():
    """Log levels are upper-cased."""
    assert APIConfig(_env_file=None, log_level="debug").log_level == "DEBUG"


def test_invalid_log_level():
    """Unknown log levels are rejected."""
    with pytest.raises(ValidationError):
        APIConfig(_env_file=None, log_level="verbose")


def test_invalid_log_format():
    """Only json and console formats are allowed."""
    with pytest.raises(ValidationError):
        APIConfig(_env_file=None, log_format="xml")


def test_invalid_id_allocation_attempts():
    """The retry budget must be positive."""
    with pytest.raises(ValidationError):
        APIConfig(_env_file=None, id_allocation_attempts=0)
