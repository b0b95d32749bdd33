"""
Book catalog endpoints.

Reads are public. Creating a book requires a bearer token; updating or
deleting one requires being its owner or an admin.
"""

import math
from typing import Annotated, Dict, List

import structlog
from fastapi import APIRouter, Depends, Query, status

from api.access import can_delete, can_write
from api.auth import get_current_user, identity_of
from api.database import BookStore, CredentialStore
from api.deps import get_book_store, get_credential_store
from api.errors import APIError, Forbidden, InternalFailure, NotFound
from api.models import (
    BookCreate, BookEnvelope, BookFilter, BookListResponse, BookMutationResponse,
    BookQueryParams, BookResponse, BookUpdate, ErrorResponse, GenreListResponse,
    MessageResponse, OwnerSummary, Pagination
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/books", tags=["Books"])

_error_responses = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    401: {"model": ErrorResponse, "description": "Unauthorized"},
    403: {"model": ErrorResponse, "description": "Not the owner and not an admin"},
    404: {"model": ErrorResponse, "description": "Book not found"},
    500: {"model": ErrorResponse, "description": "Server error"},
}


async def _present(books: List[Dict], users: CredentialStore) -> List[BookResponse]:
    """Attach owner summaries (id, username, email) to book documents."""
    owner_ids = [b["added_by"] for b in books if b.get("added_by")]
    owners = await users.find_by_ids(owner_ids) if owner_ids else {}

    result = []
    for book in books:
        owner = owners.get(book.get("added_by"))
        data = {**book, "added_by": None}
        if owner:
            data["added_by"] = OwnerSummary(id=owner["id"], username=owner["username"], email=owner["email"])
        result.append(BookResponse(**data))
    return result


def _pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit))


async def _load_book(book_id: str, books: BookStore) -> Dict:
    book = await books.find_by_id(book_id)
    if book is None:
        raise NotFound("Book not found")
    return book


@router.get("", response_model=BookListResponse, responses={500: _error_responses[500]})
async def list_books(
    query: Annotated[BookQueryParams, Query()],
    books: BookStore = Depends(get_book_store),
    users: CredentialStore = Depends(get_credential_store),
):
    """
    Get books with search, filtering and pagination.

    - **page**: Page number (starts from 1)
    - **limit**: Items per page (1-100)
    - **search**: Text search over title, author and description
    - **genre**: Exact genre filter
    - **available**: Availability filter (true/false)
    """
    try:
        items, total = await books.find(query.to_filter(), page=query.page, limit=query.limit)
        return BookListResponse(
            books=await _present(items, users),
            pagination=_pagination(query.page, query.limit, total),
        )
    except APIError:
        raise
    except Exception as e:
        logger.error("Failed to fetch books", error=str(e), exc_info=True)
        raise InternalFailure("Failed to fetch books")


@router.get("/genres/list", response_model=GenreListResponse, responses={500: _error_responses[500]})
async def list_genres(books: BookStore = Depends(get_book_store)):
    """Get the distinct, non-empty genres in the catalog."""
    try:
        genres = await books.distinct_values("genre")
        return GenreListResponse(genres=sorted(g for g in genres if g))
    except Exception as e:
        logger.error("Failed to fetch genres", error=str(e), exc_info=True)
        raise InternalFailure("Failed to fetch genres")


@router.get(
    "/user/my-books",
    response_model=BookListResponse,
    responses={k: _error_responses[k] for k in (401, 500)},
)
async def list_my_books(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    user: Dict = Depends(get_current_user),
    books: BookStore = Depends(get_book_store),
    users: CredentialStore = Depends(get_credential_store),
):
    """Get the books added by the authenticated user."""
    try:
        items, total = await books.find(BookFilter(added_by=user["id"]), page=page, limit=limit)
        return BookListResponse(
            books=await _present(items, users),
            pagination=_pagination(page, limit, total),
        )
    except APIError:
        raise
    except Exception as e:
        logger.error("Failed to fetch user books", user_id=user["id"], error=str(e), exc_info=True)
        raise InternalFailure("Failed to fetch user books")


@router.get(
    "/{book_id}",
    response_model=BookEnvelope,
    responses={k: _error_responses[k] for k in (404, 500)},
)
async def get_book(
    book_id: str,
    books: BookStore = Depends(get_book_store),
    users: CredentialStore = Depends(get_credential_store),
):
    """Get a single book by ID."""
    try:
        book = await _load_book(book_id, books)
        presented = await _present([book], users)
        return BookEnvelope(book=presented[0])
    except APIError:
        raise
    except Exception as e:
        logger.error("Failed to fetch book", book_id=book_id, error=str(e), exc_info=True)
        raise InternalFailure("Failed to fetch book")


@router.post(
    "",
    response_model=BookMutationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={k: _error_responses[k] for k in (400, 401, 500)},
)
async def create_book(
    payload: BookCreate,
    user: Dict = Depends(get_current_user),
    books: BookStore = Depends(get_book_store),
    users: CredentialStore = Depends(get_credential_store),
):
    """Create a book owned by the authenticated user."""
    try:
        book = await books.create(payload.model_dump(), owner_id=user["id"])
        logger.info("Book created", book_id=book["id"], user_id=user["id"])
        presented = await _present([book], users)
        return BookMutationResponse(message="Book created successfully", book=presented[0])
    except APIError:
        raise
    except Exception as e:
        logger.error("Failed to create book", user_id=user["id"], error=str(e), exc_info=True)
        raise InternalFailure("Failed to create book")


@router.put("/{book_id}", response_model=BookMutationResponse, responses=_error_responses)
async def update_book(
    book_id: str,
    payload: BookUpdate,
    user: Dict = Depends(get_current_user),
    books: BookStore = Depends(get_book_store),
    users: CredentialStore = Depends(get_credential_store),
):
    """Update a book. Only the owner or an admin may do this."""
    try:
        book = await _load_book(book_id, books)

        decision = can_write(identity_of(user), book.get("added_by"))
        if not decision:
            logger.info("Book update denied", book_id=book_id, user_id=user["id"])
            raise Forbidden(decision.reason)

        updated = await books.update_by_id(book_id, payload.model_dump(exclude_unset=True))
        if updated is None:
            raise NotFound("Book not found")

        logger.info("Book updated", book_id=book_id, user_id=user["id"])
        presented = await _present([updated], users)
        return BookMutationResponse(message="Book updated successfully", book=presented[0])
    except APIError:
        raise
    except Exception as e:
        logger.error("Failed to update book", book_id=book_id, error=str(e), exc_info=True)
        raise InternalFailure("Failed to update book")


@router.delete(
    "/{book_id}",
    response_model=MessageResponse,
    responses={k: _error_responses[k] for k in (401, 403, 404, 500)},
)
async def delete_book(
    book_id: str,
    user: Dict = Depends(get_current_user),
    books: BookStore = Depends(get_book_store),
):
    """Delete a book. Only the owner or an admin may do this."""
    try:
        book = await _load_book(book_id, books)

        decision = can_delete(identity_of(user), book.get("added_by"))
        if not decision:
            logger.info("Book delete denied", book_id=book_id, user_id=user["id"])
            raise Forbidden(decision.reason)

        if not await books.delete_by_id(book_id):
            raise NotFound("Book not found")

        logger.info("Book deleted", book_id=book_id, user_id=user["id"])
        return MessageResponse(message="Book deleted successfully")
    except APIError:
        raise
    except Exception as e:
        logger.error("Failed to delete book", book_id=book_id, error=str(e), exc_info=True)
        raise InternalFailure("Failed to delete book")
