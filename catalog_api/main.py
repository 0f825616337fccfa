"""
FastAPI main application for the Library Management API.
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from fastapi import Body, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.server_api import ServerApi
from starlette.exceptions import HTTPException as StarletteHTTPException

from catalog_api.auth import (
    SessionTokenService,
    get_token_service,
    require_email_owner,
    require_session,
)
from catalog_api.config import config
from catalog_api.database import CollectionStore
from catalog_api.errors import StoreError, StoreUnavailableError
from catalog_api.models import (
    BookUpdate,
    DeleteResponse,
    ErrorResponse,
    HealthResponse,
    InsertResponse,
    SuccessResponse,
    UpdateResponse,
)
from utilities.logger import bind_request_context, clear_request_context

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Library Management API")

    client = AsyncIOMotorClient(
        config.get_mongodb_url(),
        server_api=ServerApi("1", strict=True, deprecation_errors=True),
    )
    app.state.store = CollectionStore(client[config.mongodb_database])
    try:
        await app.state.store.ping()
        logger.info("Database connection established", database=config.mongodb_database)
    except StoreError as e:
        # Requests answer 503 until the database becomes reachable.
        logger.error("Failed to connect to database", error=str(e))

    yield

    logger.info("Shutting down Library Management API")
    client.close()


app = FastAPI(
    title=config.api_title,
    description="REST API for the library catalog: books, categories and borrowed books.",
    version=config.api_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=config.cors_allow_methods,
    allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = bind_request_context(
        request.method, request.url.path, request.headers.get("x-request-id")
    )
    started = time.perf_counter()
    # Unhandled exceptions escape call_next and end up as 500s.
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-ID"] = request_id
        return response
    finally:
        logger.info(
            "Request handled",
            status_code=status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        clear_request_context()


def get_store(request: Request) -> CollectionStore:
    """Get the collection store opened at startup."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise StoreUnavailableError("get_store", "Database service not available")
    return store


def query_filter(request: Request) -> Dict[str, str]:
    """
    Build an exact-match filter from the query string.

    Raises:
        HTTPException: 400 if a key names a query operator
    """
    filter_query = dict(request.query_params)
    operators = [
        key for key in filter_query
        if any(part.startswith("$") for part in key.split("."))
    ]
    if operators:
        logger.warning("Query operator rejected", keys=operators)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Query operators are not allowed: {', '.join(operators)}",
        )
    return filter_query


# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail), status_code=exc.status_code).model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report invalid request bodies as 400 with the failing fields."""
    errors = [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(
            error="Validation failed",
            status_code=status.HTTP_400_BAD_REQUEST,
            errors=errors,
        ).model_dump(),
    )


@app.exception_handler(StoreError)
async def store_exception_handler(request: Request, exc: StoreError):
    """Translate collection store failures into HTTP responses."""
    logger.error(
        "Store operation failed",
        operation=exc.operation,
        error=str(exc),
        path=request.url.path,
        status_code=exc.status_code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.message,
            detail=exc.detail,
            status_code=exc.status_code,
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal server error",
            detail=str(exc) if config.debug else None,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        ).model_dump(),
    )


@app.get("/", response_class=PlainTextResponse, tags=["Health"])
async def root():
    return "Library Management Server is running"


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint."""
    store = getattr(request.app.state, "store", None)
    db_status = "unavailable"
    if store is not None:
        health_info = await store.health_check()
        db_status = health_info.get("status", "unknown")

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=config.api_version,
        database_status=db_status,
    )


# Books endpoints
@app.get("/all-books", tags=["Books"])
async def get_all_books(store: CollectionStore = Depends(get_store)) -> List[Dict[str, Any]]:
    return await store.find_all_books()


@app.get("/all-books/category/{category}", tags=["Books"])
async def get_books_by_category(
    category: str,
    store: CollectionStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    """
    Get the books of one category.

    - **category**: exact, case-sensitive category name
    """
    return await store.find_books_by_category(category)


@app.get("/all-books/{book_id}", tags=["Books"])
async def get_book(
    book_id: str,
    store: CollectionStore = Depends(get_store),
) -> Optional[Dict[str, Any]]:
    """
    Get a single book by ID.

    Answers `null` when no book has this ID.
    """
    return await store.find_book_by_id(book_id)


@app.post("/all-books", response_model=InsertResponse, tags=["Books"])
async def create_book(
    book: Dict[str, Any] = Body(...),
    user: Dict[str, Any] = Depends(require_session),
    store: CollectionStore = Depends(get_store),
):
    """Store a new book exactly as submitted."""
    return await store.insert_book(book)


@app.put("/all-books/{book_id}", response_model=UpdateResponse, tags=["Books"])
async def update_book(
    book_id: str,
    book: BookUpdate,
    user: Dict[str, Any] = Depends(require_session),
    store: CollectionStore = Depends(get_store),
):
    """
    Replace a book's fields, creating the book if the ID is unknown.

    Only book_name, book_quantity, author_name, category, rating,
    description and photo are stored.
    """
    return await store.upsert_book(book_id, book.to_document())


# Categories endpoints
@app.get("/books-category", tags=["Categories"])
async def get_categories(
    filter_query: Dict[str, str] = Depends(query_filter),
    store: CollectionStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    """Get categories matching every query-string parameter exactly."""
    return await store.find_categories(filter_query)


# Borrowed books endpoints
@app.get("/borrowed-books", tags=["Borrowed Books"])
async def get_borrowed_books(
    user: Dict[str, Any] = Depends(require_session),
    filter_query: Dict[str, str] = Depends(query_filter),
    store: CollectionStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    """
    Get borrowed books matching every query-string parameter exactly.

    A session whose token names an email only sees that email's records.
    """
    token_email = user.get("email")
    if token_email is not None:
        if filter_query.get("user_email", token_email) != token_email:
            logger.warning("Session email mismatch", requested=filter_query["user_email"])
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Forbidden access",
            )
        filter_query["user_email"] = token_email
    return await store.find_borrowed_books(filter_query)


@app.get("/borrowed-books/email/{email}", tags=["Borrowed Books"])
async def get_borrowed_books_by_email(
    email: str,
    user: Dict[str, Any] = Depends(require_email_owner),
    store: CollectionStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    return await store.find_borrowed_books_by_email(email)


@app.post("/borrowed-books", response_model=InsertResponse, tags=["Borrowed Books"])
async def borrow_book(
    record: Dict[str, Any] = Body(...),
    user: Dict[str, Any] = Depends(require_session),
    store: CollectionStore = Depends(get_store),
):
    return await store.insert_borrowed_book(record)


@app.delete("/borrowed-books/{record_id}", response_model=DeleteResponse, tags=["Borrowed Books"])
async def return_book(
    record_id: str,
    user: Dict[str, Any] = Depends(require_session),
    store: CollectionStore = Depends(get_store),
):
    return await store.delete_borrowed_book(record_id)


# Session endpoints
@app.post("/jwt", response_model=SuccessResponse, tags=["Session"])
async def issue_token(
    response: Response,
    payload: Dict[str, Any] = Body(...),
    tokens: SessionTokenService = Depends(get_token_service),
):
    """Sign the submitted claims and set them as the session cookie."""
    token = tokens.issue(payload)
    tokens.set_session_cookie(response, token)
    logger.info("Session token issued", email=payload.get("email"))
    return SuccessResponse(success=True)


@app.post("/logout", response_model=SuccessResponse, tags=["Session"])
async def logout(
    response: Response,
    tokens: SessionTokenService = Depends(get_token_service),
):
    tokens.clear_session_cookie(response)
    logger.info("Session token cleared")
    return SuccessResponse(success=True)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "catalog_api.main:app",
        host=config.host,
        port=config.port,
        reload=True,
        log_level="info"
    )
