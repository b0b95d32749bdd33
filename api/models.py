"""
API models and schemas for the FastAPI application.

Request models carry the field rules declaratively; FastAPI rejects a body
that breaks them before any handler runs.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationInfo, field_validator

from api.access import Role

USERNAME_PATTERN = r"^[a-zA-Z0-9_]+$"
MIN_BOOK_YEAR = 1000


def _validate_year(v: Optional[int]) -> Optional[int]:
    if v is None:
        return v
    current_year = datetime.now(timezone.utc).year
    if v < MIN_BOOK_YEAR or v > current_year:
        raise ValueError(f"Year must be between {MIN_BOOK_YEAR} and {current_year}")
    return v


def _lower_email(v):
    return v.lower() if isinstance(v, str) else v


# Users

class RegisterRequest(BaseModel):
    """Body of POST /api/auth/register."""
    username: str = Field(..., min_length=3, max_length=30, pattern=USERNAME_PATTERN,
                          description="Username (letters, numbers, underscores only)")
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=6, description="User password (minimum 6 characters)")

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return _lower_email(v)


class LoginRequest(BaseModel):
    """Body of POST /api/auth/login."""
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=1, description="User password")

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return _lower_email(v)


class ProfileUpdateRequest(BaseModel):
    """Body of PUT /api/auth/profile. Only username and email can change."""
    model_config = ConfigDict(str_strip_whitespace=True)

    username: Optional[str] = Field(None, min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    email: Optional[EmailStr] = None

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return _lower_email(v)


class UserResponse(BaseModel):
    """Public view of a user. The password digest is never part of it."""
    id: str = Field(..., description="Unique user identifier")
    username: str = Field(..., description="Username")
    email: str = Field(..., description="Email address")
    role: Role = Field(Role.USER, description="User role")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")


class AuthResponse(BaseModel):
    message: str
    user: UserResponse
    token: str = Field(..., description="JWT authentication token")


class ProfileResponse(BaseModel):
    user: UserResponse


class ProfileUpdateResponse(BaseModel):
    message: str
    user: UserResponse


# Books

class BookCreate(BaseModel):
    """Body of POST /api/books."""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=200, description="Book title")
    author: str = Field(..., min_length=1, max_length=100, description="Book author")
    description: Optional[str] = Field(None, max_length=1000, description="Book description")
    genre: Optional[str] = Field(None, max_length=50, description="Book genre")
    year: Optional[int] = Field(None, description="Publication year")
    price: Optional[float] = Field(None, ge=0, description="Price")
    available: bool = Field(True, description="Availability flag")

    @field_validator("year")
    @classmethod
    def check_year(cls, v):
        return _validate_year(v)


class BookUpdate(BaseModel):
    """Body of PUT /api/books/{id}. The owner reference cannot be changed."""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    author: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    genre: Optional[str] = Field(None, max_length=50)
    year: Optional[int] = None
    price: Optional[float] = Field(None, ge=0)
    available: Optional[bool] = None

    @field_validator("title", "author", "available")
    @classmethod
    def reject_null(cls, v, info: ValidationInfo):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator("year")
    @classmethod
    def check_year(cls, v):
        return _validate_year(v)


class OwnerSummary(BaseModel):
    id: str
    username: str
    email: str


class BookResponse(BaseModel):
    """Book response model for API."""
    id: str = Field(..., description="Unique book identifier")
    title: str
    author: str
    description: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = None
    price: Optional[float] = None
    available: bool = True
    added_by: Optional[OwnerSummary] = Field(None, description="Owning user, if it still exists")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Pagination(BaseModel):
    page: int = Field(..., description="Current page number")
    limit: int = Field(..., description="Number of books per page")
    total: int = Field(..., description="Total number of books")
    pages: int = Field(..., description="Total number of pages")


class BookListResponse(BaseModel):
    """Response model for book list with pagination."""
    books: List[BookResponse]
    pagination: Pagination


class BookEnvelope(BaseModel):
    book: BookResponse


class BookMutationResponse(BaseModel):
    message: str
    book: BookResponse


class GenreListResponse(BaseModel):
    genres: List[str]


class MessageResponse(BaseModel):
    message: str


class BookFilter(BaseModel):
    """Store-level filter for book listings."""
    search: Optional[str] = None
    genre: Optional[str] = None
    available: Optional[bool] = None
    added_by: Optional[str] = None


class BookQueryParams(BaseModel):
    """Query parameters for book listing."""
    page: int = Field(1, ge=1, description="Page number")
    limit: int = Field(10, ge=1, le=100, description="Items per page")
    search: Optional[str] = Field(None, description="Free-text search over title, author and description")
    genre: Optional[str] = Field(None, description="Filter by genre")
    available: Optional[bool] = Field(None, description="Filter by availability")

    def to_filter(self) -> BookFilter:
        return BookFilter(
            search=self.search or None,
            genre=self.genre or None,
            available=self.available,
        )


# Shared

class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Stable error category")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[List[FieldError]] = Field(None, description="Per-field problems")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    message: str = Field(..., description="Human-readable status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
