"""
FastAPI main application for the Bookworm API.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, Response, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from motor.motor_asyncio import AsyncIOMotorClient

from api.auth import (
    clear_session_cookies, client_key, get_session_authority, refresh_token_from,
    require_admin, require_user, set_session_cookies
)
from api.config import config as api_config
from api.database import CatalogDatabaseService
from api.media import CloudinaryMediaStore
from api.models import (
    AuthResponse, BookCreatedResponse, BookListResponse, BookQueryParams, BookResponse,
    ErrorResponse, GenreCreatedResponse, GenreDeletedResponse, GenreListResponse,
    GenreRequest, GenreUpdatedResponse, HealthResponse, LoggedInResponse,
    LoginRequest, MessageResponse
)
from session.authority import SessionAuthority
from session.directory import UserDirectory
from session.models import UserRecord
from session.passwords import PasswordHasher
from session.throttle import VerificationThrottle
from utilities.config import config
from utilities.exceptions import BookwormError, NotFound, RateLimited, ValidationError
from utilities.logger import setup_logging

# Setup logging
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger.info("Starting Bookworm API")

    try:
        client = AsyncIOMotorClient(config.mongodb_url)
        database = client[config.mongodb_database]

        # Test connection
        await database.command("ping")
        logger.info("Database connection established")

        directory = UserDirectory(database, config.users_collection)
        await directory.create_indexes()

        catalog = CatalogDatabaseService(database, config.genres_collection, config.books_collection)
        await catalog.create_indexes()

    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise

    media_store = CloudinaryMediaStore(
        config.cloudinary_cloud_name,
        config.cloudinary_api_key,
        config.cloudinary_api_secret
    )

    app.state.catalog = catalog
    app.state.media_store = media_store
    app.state.session_authority = SessionAuthority(
        directory=directory,
        passwords=PasswordHasher(rounds=config.bcrypt_rounds),
        media_store=media_store,
        throttle=VerificationThrottle(
            limit=config.failed_verification_limit,
            window_seconds=config.failed_verification_window
        )
    )

    yield

    logger.info("Shutting down Bookworm API")
    client.close()


def get_catalog(request: Request) -> CatalogDatabaseService:
    return request.app.state.catalog


def get_media_store(request: Request) -> CloudinaryMediaStore:
    return request.app.state.media_store


# Create FastAPI application
app = FastAPI(
    title=api_config.api_title,
    description="""
    Book catalog backend with cookie-based sessions.

    ## Sessions

    Registration and login set two HttpOnly cookies:

    * **accessToken**: short-lived, required by every guarded endpoint
    * **refreshToken**: long-lived, accepted only by `/refreshToken`

    Login, refresh and logout rotate the user's signing secrets, which
    invalidates every token issued before.

    ## Administration

    Genre management and book creation require the `admin` role.
    """,
    version=api_config.api_version,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=api_config.cors_origins,
    allow_credentials=api_config.cors_allow_credentials,
    allow_methods=api_config.cors_allow_methods,
    allow_headers=api_config.cors_allow_headers,
)


# Exception handlers
@app.exception_handler(BookwormError)
async def bookworm_exception_handler(request: Request, exc: BookwormError):
    """Render domain errors with their status code."""
    headers = None
    if isinstance(exc, RateLimited) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.message,
            detail=exc.field,
            status_code=exc.status_code
        ).dict(),
        headers=headers
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are reported as 400."""
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or None
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(
            error=first.get("msg", "Invalid request"),
            detail=field,
            status_code=status.HTTP_400_BAD_REQUEST
        ).dict()
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.detail,
            status_code=exc.status_code
        ).dict(),
        headers=exc.headers
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal server error",
            detail=str(exc) if api_config.debug else None,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        ).dict()
    )


@app.get("/", response_class=PlainTextResponse, tags=["Health"])
async def root():
    return "Bookworm server is running"


# Health check endpoint (no authentication required)
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint."""
    catalog = getattr(request.app.state, "catalog", None)
    db_status = "unavailable"
    if catalog:
        health_info = await catalog.health_check()
        db_status = health_info.get("status", "unknown")

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.utcnow(),
        version=api_config.api_version,
        database_status=db_status
    )


# Session endpoints
@app.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED, tags=["Session"])
async def register(
    response: Response,
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(None),
    authority: SessionAuthority = Depends(get_session_authority)
):
    """
    Register a user with role `user` and start a session.

    Multipart fields: **name**, **email**, **password**, **photo** (image file).
    """
    result = await authority.register(name, email, password, photo)
    set_session_cookies(response, result.tokens)
    return AuthResponse(message="Registration successful", user=result.user.profile())


@app.post("/login", response_model=AuthResponse, tags=["Session"])
async def login(
    credentials: LoginRequest,
    response: Response,
    authority: SessionAuthority = Depends(get_session_authority)
):
    """Log in with email and password. Previous sessions of the user stop working."""
    result = await authority.login(credentials.email, credentials.password)
    set_session_cookies(response, result.tokens)
    return AuthResponse(message="Login successful", user=result.user.profile())


@app.get("/logged_in", response_model=LoggedInResponse, tags=["Session"])
async def logged_in(user: UserRecord = Depends(require_user)):
    """Return the identity bound to the access cookie."""
    return LoggedInResponse(user=user.profile())


@app.post("/refreshToken", response_model=MessageResponse, tags=["Session"])
async def refresh_token(
    request: Request,
    response: Response,
    authority: SessionAuthority = Depends(get_session_authority)
):
    """Exchange the refresh cookie for a new token pair."""
    result = await authority.refresh(refresh_token_from(request), client_key(request))
    set_session_cookies(response, result.tokens)
    return MessageResponse(message="Session refreshed")


@app.post("/logout", response_model=MessageResponse, tags=["Session"])
async def logout(
    response: Response,
    user: UserRecord = Depends(require_user),
    authority: SessionAuthority = Depends(get_session_authority)
):
    """Rotate the user's secrets and clear both cookies."""
    await authority.logout(user)
    clear_session_cookies(response)
    return MessageResponse(message="Logged out successfully")


# Genre endpoints
@app.post("/add-genre", response_model=GenreCreatedResponse, status_code=status.HTTP_201_CREATED, tags=["Genres"])
async def add_genre(
    genre: GenreRequest,
    admin: UserRecord = Depends(require_admin),
    catalog: CatalogDatabaseService = Depends(get_catalog)
):
    """Add a genre. Names are unique."""
    return await catalog.add_genre(genre)


@app.get("/genre", response_model=GenreListResponse, tags=["Genres"])
async def list_genres(catalog: CatalogDatabaseService = Depends(get_catalog)):
    return await catalog.list_genres()


@app.put("/update-genre/{genre_id}", response_model=GenreUpdatedResponse, tags=["Genres"])
async def update_genre(
    genre_id: str,
    genre: GenreRequest,
    admin: UserRecord = Depends(require_admin),
    catalog: CatalogDatabaseService = Depends(get_catalog)
):
    """Replace a genre's name and icon."""
    return await catalog.update_genre(genre_id, genre)


@app.delete("/deleteGenre/{genre_id}", response_model=GenreDeletedResponse, tags=["Genres"])
async def delete_genre(
    genre_id: str,
    admin: UserRecord = Depends(require_admin),
    catalog: CatalogDatabaseService = Depends(get_catalog)
):
    return await catalog.delete_genre(genre_id)


# Book endpoints
@app.post("/add-book", response_model=BookCreatedResponse, status_code=status.HTTP_201_CREATED, tags=["Books"])
async def add_book(
    title: Optional[str] = Form(None),
    author: Optional[str] = Form(None),
    genre: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    cover: Optional[UploadFile] = File(None),
    pdf: Optional[UploadFile] = File(None),
    admin: UserRecord = Depends(require_admin),
    catalog: CatalogDatabaseService = Depends(get_catalog),
    media_store: CloudinaryMediaStore = Depends(get_media_store)
):
    """
    Add a book with its cover image and PDF.

    Multipart fields: **title**, **author**, **genre**, **description**,
    **cover** (image file), **pdf** (PDF file).
    """
    for field, value in (
        ("title", title), ("author", author), ("genre", genre),
        ("description", description), ("cover", cover), ("pdf", pdf),
    ):
        if not value:
            raise ValidationError(f"{field.capitalize()} required", field=field)

    cover_url, pdf_url = await media_store.upload_book_files(cover, pdf)

    return await catalog.add_book(title, author, genre, description, cover_url, pdf_url)


@app.get("/books", response_model=BookListResponse, tags=["Books"])
async def get_books(
    genre: str = None,
    page: int = 1,
    per_page: int = 20,
    catalog: CatalogDatabaseService = Depends(get_catalog)
):
    """
    Get books, newest first.

    - **genre**: Filter by genre name
    - **page**: Page number (starts from 1)
    - **per_page**: Items per page (1-100)
    """
    try:
        query_params = BookQueryParams(genre=genre, page=page, per_page=per_page)
    except ValueError as e:
        raise ValidationError(str(e))

    return await catalog.get_books(query_params)


@app.get("/books/{book_id}", response_model=BookResponse, tags=["Books"])
async def get_book(book_id: str, catalog: CatalogDatabaseService = Depends(get_catalog)):
    """
    Get a single book by ID.

    - **book_id**: MongoDB ObjectId
    """
    book = await catalog.get_book_by_id(book_id)
    if not book:
        raise NotFound(f"Book with ID '{book_id}' not found")
    return book


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=True,
        log_level="info"
    )
