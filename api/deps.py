"""
Request-scoped accessors for the services built at startup.

The lifespan handler in ``api.main`` stores the stores and the token service
on ``app.state``; routes reach them through these dependencies so tests can
swap them with ``app.dependency_overrides``.
"""

from fastapi import Request

from api.database import BookStore, CredentialStore
from api.errors import InternalFailure
from api.security import TokenService


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise InternalFailure(f"{name} is not available")
    return value


def get_token_service(request: Request) -> TokenService:
    return _state(request, "token_service")


def get_credential_store(request: Request) -> CredentialStore:
    return _state(request, "credential_store")


def get_book_store(request: Request) -> BookStore:
    return _state(request, "book_store")
