"""
FastAPI main application for the Library API.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from motor.motor_asyncio import AsyncIOMotorClient

from api.config import config
from api.database import APIDatabaseService
from api.models import (
    BookCreate, BookUpdate, BookResponse, BookQueryParams,
    UserCreate, UserUpdate, UserResponse,
    ErrorResponse, HealthResponse
)
from utilities.logger import get_logger, setup_logging

# Setup logging
logger = get_logger(__name__)

# Global database service
db_service: Optional[APIDatabaseService] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )
    logger.info("Starting Library API", port=config.port)

    global db_service
    client = AsyncIOMotorClient(config.mongodb_url)
    try:
        database = client[config.mongodb_database]

        # Test connection
        await database.command("ping")
        logger.info("Database connection established", database=config.mongodb_database)

        db_service = APIDatabaseService(
            database,
            books_collection=config.books_collection,
            users_collection=config.users_collection,
            id_allocation_attempts=config.id_allocation_attempts
        )
        await db_service.create_indexes()

    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        client.close()
        raise

    yield

    # Shutdown
    logger.info("Shutting down Library API")
    db_service = None
    client.close()


# Create FastAPI application
app = FastAPI(
    title=config.api_title,
    description=config.api_description,
    version=config.api_version,
    docs_url="/api-docs",
    servers=[{"url": config.public_url, "description": "Local server"}],
    openapi_tags=[
        {"name": "Books", "description": "API for managing books"},
        {"name": "Users", "description": "API for managing users"},
    ],
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=config.cors_allow_credentials,
    allow_methods=config.cors_allow_methods,
    allow_headers=config.cors_allow_headers,
)


# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions, including routing errors raised by Starlette."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.detail,
            status_code=exc.status_code
        ).dict(),
        headers=exc.headers
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report request validation failures as 400 rather than 422."""
    errors = exc.errors()
    in_body = any((err.get("loc") or ("",))[0] == "body" for err in errors)
    messages = []
    for err in errors:
        field = ".".join(str(part) for part in err.get("loc", ())[1:])
        messages.append(f"{field}: {err.get('msg')}" if field else err.get("msg", ""))

    logger.info("Rejected invalid request", path=request.url.path, errors=messages)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(
            error="Invalid request body" if in_body else "Invalid request parameters",
            detail="; ".join(messages),
            status_code=status.HTTP_400_BAD_REQUEST
        ).dict()
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal Server Error",
            detail=str(exc) if config.debug else None,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        ).dict()
    )


def get_db_service() -> APIDatabaseService:
    """Provide the process-wide database service to endpoints."""
    if not db_service:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database service not available"
        )
    return db_service


def internal_error(message: str, **context) -> HTTPException:
    """Log an unexpected failure and build the generic 500 response."""
    logger.error(message, **context)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal Server Error"
    )


def book_content(book: BookResponse) -> dict:
    """Serialize a book, leaving out absent optional fields."""
    return book.dict(exclude_none=True)


def user_content(user: UserResponse) -> dict:
    """Serialize a user with camelCase keys."""
    return user.dict(by_alias=True)


# Health check endpoint
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    try:
        db_status = "unavailable"
        health_info = {}
        if db_service:
            health_info = await db_service.health_check()
            db_status = health_info.get("status", "unknown")

        return HealthResponse(
            status="healthy" if db_status == "healthy" else "degraded",
            timestamp=datetime.utcnow(),
            version=config.api_version,
            database_status=db_status,
            books_count=health_info.get("books_count"),
            users_count=health_info.get("users_count")
        )
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return HealthResponse(
            status="unhealthy",
            timestamp=datetime.utcnow(),
            version=config.api_version,
            database_status="unhealthy"
        )


# Books endpoints
@app.post(
    "/books",
    response_model=BookResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    tags=["Books"],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}
)
async def create_book(
    book: BookCreate,
    service: APIDatabaseService = Depends(get_db_service)
):
    """
    Create a new book.

    - **title**, **author**: required
    - **id**: kept when free, otherwise a random 5-digit id is assigned
    - **status**: one of available, borrowed, in maintenance
    """
    try:
        created = await service.create_book(book)
        return JSONResponse(status_code=status.HTTP_201_CREATED, content=book_content(created))
    except Exception as e:
        raise internal_error("Failed to create book", error=str(e))


@app.get(
    "/books",
    response_model=List[BookResponse],
    response_model_exclude_none=True,
    tags=["Books"]
)
async def get_books(
    title: Optional[str] = None,
    author: Optional[str] = None,
    category: Optional[str] = None,
    service: APIDatabaseService = Depends(get_db_service)
):
    """
    Get a list of books with optional query parameters.

    - **title**: Book title to filter by
    - **author**: Book author to filter by
    - **category**: Book category to filter by

    Filters match case-insensitive substrings and combine with AND.
    """
    try:
        query_params = BookQueryParams(title=title, author=author, category=category)
        books = await service.get_books(query_params)
        return JSONResponse(content=[book_content(book) for book in books])
    except Exception as e:
        raise internal_error("Failed to get books", error=str(e))


@app.get(
    "/books/{book_id}",
    response_model=BookResponse,
    response_model_exclude_none=True,
    tags=["Books"],
    responses={404: {"model": ErrorResponse}}
)
async def get_book(
    book_id: int,
    service: APIDatabaseService = Depends(get_db_service)
):
    """Get book by ID."""
    try:
        book = await service.get_book_by_id(book_id)
    except Exception as e:
        raise internal_error("Failed to get book", book_id=book_id, error=str(e))

    if not book:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    return JSONResponse(content=book_content(book))


@app.put(
    "/books/{book_id}",
    response_model=BookResponse,
    response_model_exclude_none=True,
    tags=["Books"],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def update_book(
    book_id: int,
    book: BookUpdate,
    service: APIDatabaseService = Depends(get_db_service)
):
    """
    Update book by ID.

    Only the supplied fields are changed. The book's id is re-allocated the
    same way as on creation unless the body repeats the current id.
    """
    try:
        updated = await service.update_book(book_id, book)
    except Exception as e:
        raise internal_error("Failed to update book", book_id=book_id, error=str(e))

    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    return JSONResponse(content=book_content(updated))


# Users endpoints
@app.post(
    "/users",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Users"],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}
)
async def create_user(
    user: UserCreate,
    service: APIDatabaseService = Depends(get_db_service)
):
    """Create a new user."""
    try:
        created = await service.create_user(user)
        return JSONResponse(status_code=status.HTTP_201_CREATED, content=user_content(created))
    except Exception as e:
        raise internal_error("Failed to create user", error=str(e))


@app.get("/users", response_model=List[UserResponse], tags=["Users"])
async def get_users(service: APIDatabaseService = Depends(get_db_service)):
    """Get a list of users."""
    try:
        users = await service.get_users()
        return JSONResponse(content=[user_content(user) for user in users])
    except Exception as e:
        raise internal_error("Failed to get users", error=str(e))


@app.get(
    "/users/{user_id}",
    response_model=UserResponse,
    tags=["Users"],
    responses={404: {"model": ErrorResponse}}
)
async def get_user(
    user_id: int,
    service: APIDatabaseService = Depends(get_db_service)
):
    """Get user by ID."""
    try:
        user = await service.get_user_by_id(user_id)
    except Exception as e:
        raise internal_error("Failed to get user", user_id=user_id, error=str(e))

    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return JSONResponse(content=user_content(user))


@app.put(
    "/users/{user_id}",
    response_model=UserResponse,
    tags=["Users"],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def update_user(
    user_id: int,
    user: UserUpdate,
    service: APIDatabaseService = Depends(get_db_service)
):
    """Update user by ID."""
    try:
        updated = await service.update_user(user_id, user)
    except Exception as e:
        raise internal_error("Failed to update user", user_id=user_id, error=str(e))

    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return JSONResponse(content=user_content(updated))


@app.delete(
    "/users/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Users"],
    responses={404: {"model": ErrorResponse}}
)
async def delete_user(
    user_id: int,
    service: APIDatabaseService = Depends(get_db_service)
):
    """Delete user by ID."""
    try:
        deleted = await service.delete_user(user_id)
    except Exception as e:
        raise internal_error("Failed to delete user", user_id=user_id, error=str(e))

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
