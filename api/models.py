"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, validator

from session.models import UserProfile


class LoginRequest(BaseModel):
    """Login request body."""
    email: Optional[str] = Field(None, description="Registered email address")
    password: Optional[str] = Field(None, description="Plaintext password")


class AuthResponse(BaseModel):
    """Response for registration and login."""
    message: str = Field(..., description="Outcome message")
    user: UserProfile = Field(..., description="Sanitized identity")


class LoggedInResponse(BaseModel):
    user: UserProfile


class MessageResponse(BaseModel):
    message: str


class GenreRequest(BaseModel):
    """Genre create/update body."""
    genre: str = Field(..., min_length=1, description="Genre name")
    icon: Optional[str] = Field(None, description="Icon reference")

    @validator('genre')
    def strip_genre(cls, v):
        """Reject blank genre names."""
        v = v.strip()
        if not v:
            raise ValueError('genre must not be blank')
        return v


class GenreResponse(BaseModel):
    """Genre response model for API."""
    id: Optional[str] = Field(None, description="Genre identifier")
    genre: str = Field(..., description="Genre name")
    icon: Optional[str] = Field(None, description="Icon reference")
    created_at: Optional[str] = Field(None, description="Creation timestamp")


class GenreListResponse(BaseModel):
    genres: List[GenreResponse] = Field(..., description="All genres")


class GenreCreatedResponse(BaseModel):
    message: str = Field("Genre added successfully")
    inserted_id: str = Field(..., description="Identifier of the new genre")
    genre: GenreResponse


class GenreUpdatedResponse(BaseModel):
    message: str = Field("Genre edited successfully")
    matched_count: int = Field(..., description="Genres matching the id")
    modified_count: int = Field(..., description="Genres actually changed")
    genre: GenreResponse


class GenreDeletedResponse(BaseModel):
    message: str = Field("Genre deleted successfully")
    deleted_count: int = Field(..., description="Genres removed")


class BookResponse(BaseModel):
    """Book response model for API."""
    id: str = Field(..., description="Unique book identifier")
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Book author")
    genre: str = Field(..., description="Genre name (not enforced as a reference)")
    description: str = Field(..., description="Book description")
    cover: str = Field(..., description="Cover image URL")
    pdf: str = Field(..., description="PDF URL")
    rating: float = Field(0, description="Average rating")
    rating_count: int = Field(0, description="Number of ratings")
    shelved_count: int = Field(0, description="Number of shelves holding the book")
    created_at: Optional[str] = Field(None, description="Creation timestamp")


class BookCreatedResponse(BaseModel):
    message: str = Field("Book added successfully")
    inserted_id: str
    book: BookResponse


class BookListResponse(BaseModel):
    """Response model for book list with pagination."""
    books: List[BookResponse] = Field(..., description="List of books")
    total: int = Field(..., description="Total number of books")
    page: int = Field(..., description="Current page number")
    per_page: int = Field(..., description="Number of books per page")
    total_pages: int = Field(..., description="Total number of pages")
    has_next: bool = Field(..., description="Whether there is a next page")
    has_prev: bool = Field(..., description="Whether there is a previous page")


class BookQueryParams(BaseModel):
    """Query parameters for book listing."""
    genre: Optional[str] = Field(None, description="Filter by genre")
    page: int = Field(1, ge=1, description="Page number")
    per_page: int = Field(20, ge=1, le=100, description="Items per page")


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
