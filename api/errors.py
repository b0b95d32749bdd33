"""
Error taxonomy for the Classroom Books API.

Every error raised by the service derives from ``APIError`` and carries the
HTTP status and a stable category string. The handlers registered in
``api.main`` turn them into ``ErrorResponse`` bodies.
"""

from typing import Dict, List, Optional

from fastapi import status


class APIError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    category: str = "internal_error"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[List[Dict]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None


class ValidationFailure(APIError):
    """Malformed or out-of-range input field."""

    status_code = status.HTTP_400_BAD_REQUEST
    category = "validation_error"
    default_message = "Validation failed"


class Conflict(APIError):
    """Duplicate username or email."""

    status_code = status.HTTP_409_CONFLICT
    category = "conflict"
    default_message = "User with this email or username already exists"


class UnauthorizedAccess(APIError):
    """Missing, invalid or expired token, or a token for a vanished user."""

    status_code = status.HTTP_401_UNAUTHORIZED
    category = "unauthorized"
    default_message = "Access denied. Invalid token."

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class MissingCredentials(UnauthorizedAccess):
    category = "missing_credentials"
    default_message = "Access denied. No token provided."


class InvalidToken(UnauthorizedAccess):
    category = "invalid_token"
    default_message = "Access denied. Invalid token."


class ExpiredToken(UnauthorizedAccess):
    category = "token_expired"
    default_message = "Access denied. Token expired."


class Forbidden(APIError):
    """Authenticated, but ownership or role is insufficient."""

    status_code = status.HTTP_403_FORBIDDEN
    category = "forbidden"
    default_message = "Access denied."


class NotFound(APIError):
    status_code = status.HTTP_404_NOT_FOUND
    category = "not_found"
    default_message = "Resource not found"


class CorruptCredential(APIError):
    """
    Stored password digest could not be read.

    Reported to the client as a plain internal error; the account id is kept
    for server-side diagnostics only.
    """

    default_message = "Internal server error"


class InternalFailure(APIError):
    default_message = "Internal server error"
