"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, validator


class BookStatus(str, Enum):
    """Book status enumeration."""
    AVAILABLE = "available"
    BORROWED = "borrowed"
    IN_MAINTENANCE = "in maintenance"


VALID_STATUSES = [status.value for status in BookStatus]
INVALID_STATUS_MESSAGE = f"Invalid status, valid statuses: {', '.join(VALID_STATUSES)}"


class Tag(BaseModel):
    """Tag embedded in a book document."""
    id: int = Field(..., description="Tag identifier")
    name: str = Field(..., description="Tag name")


class BorrowedBook(BaseModel):
    """Book reference embedded in a user document."""
    id: int = Field(..., description="Book identifier")
    title: str = Field(..., description="Book title")


class BookCreate(BaseModel):
    """Request body for creating a book."""
    id: Optional[int] = Field(None, description="Requested identifier, replaced when missing or taken")
    title: str = Field(..., min_length=1, description="Book title")
    author: str = Field(..., min_length=1, description="Book author")
    year: Optional[int] = Field(None, description="Publication year")
    category: Optional[str] = Field(None, description="Book category")
    status: Optional[BookStatus] = Field(None, description="Book status")
    tags: Optional[List[Tag]] = Field(default_factory=list, description="Book tags")

    @validator('tags', pre=True)
    def default_tags(cls, v):
        """Treat a null tag list as empty."""
        return [] if v is None else v

    @validator('status', pre=True)
    def validate_status(cls, v):
        """Reject statuses outside the allowed set."""
        if v is not None and v not in VALID_STATUSES:
            raise ValueError(INVALID_STATUS_MESSAGE)
        return v

    model_config = {
        "use_enum_values": True,
        "json_schema_extra": {
            "example": {
                "id": 1,
                "title": "The Great Gatsby",
                "author": "F. Scott Fitzgerald",
                "year": 1925,
                "tags": [{"id": 1, "name": "Classic"}],
                "category": "Fiction",
                "status": "available"
            }
        }
    }

    def to_document(self, partial: bool = False) -> dict:
        """
        Convert to a MongoDB document, leaving out the identifier.

        A partial document holds only the non-null fields the client sent;
        a full one drops unset optional fields instead of storing nulls.
        """
        if partial:
            return self.dict(exclude={"id"}, exclude_unset=True, exclude_none=True)
        return self.dict(exclude={"id"}, exclude_none=True)


class BookUpdate(BookCreate):
    """Request body for updating a book; only the supplied fields are merged."""


class BookResponse(BaseModel):
    """Book response model for API."""
    id: int = Field(..., description="Unique book identifier")
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Book author")
    year: Optional[int] = Field(None, description="Publication year")
    category: Optional[str] = Field(None, description="Book category")
    status: Optional[BookStatus] = Field(None, description="Book status")
    tags: List[Tag] = Field(default_factory=list, description="Book tags")

    model_config = {"use_enum_values": True}


class BookQueryParams(BaseModel):
    """Query parameters for book listing."""
    title: Optional[str] = Field(None, description="Book title to filter by")
    author: Optional[str] = Field(None, description="Book author to filter by")
    category: Optional[str] = Field(None, description="Book category to filter by")


class UserCreate(BaseModel):
    """Request body for creating a user."""
    id: Optional[int] = Field(None, description="Requested identifier, replaced when missing or taken")
    first_name: str = Field(..., alias="firstName", min_length=1, description="First name")
    last_name: str = Field(..., alias="lastName", min_length=1, description="Last name")
    address: str = Field(..., min_length=1, description="Postal address")
    borrowed_books: Optional[List[BorrowedBook]] = Field(
        default_factory=list, alias="borrowedBooks", description="Books held by the user"
    )

    @validator('borrowed_books', pre=True)
    def default_borrowed_books(cls, v):
        """Treat a null borrowedBooks list as empty."""
        return [] if v is None else v

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "id": 1,
                "firstName": "John",
                "lastName": "Doe",
                "address": "123 Main St",
                "borrowedBooks": [{"id": 1, "title": "The Great Gatsby"}]
            }
        }
    }

    def to_document(self, partial: bool = False) -> dict:
        """Convert to a MongoDB document keyed by the wire names."""
        if partial:
            return self.dict(exclude={"id"}, exclude_unset=True, exclude_none=True, by_alias=True)
        return self.dict(exclude={"id"}, exclude_none=True, by_alias=True)


class UserUpdate(UserCreate):
    """Request body for updating a user; only the supplied fields are merged."""


class UserResponse(BaseModel):
    """User response model for API."""
    id: int = Field(..., description="Unique user identifier")
    first_name: str = Field(..., alias="firstName", description="First name")
    last_name: str = Field(..., alias="lastName", description="Last name")
    address: str = Field(..., description="Postal address")
    borrowed_books: List[BorrowedBook] = Field(
        default_factory=list, alias="borrowedBooks", description="Books held by the user"
    )

    model_config = {"populate_by_name": True}


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    status_code: int = Field(..., description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
    books_count: Optional[int] = Field(None, description="Number of stored books")
    users_count: Optional[int] = Field(None, description="Number of stored users")
