"""
Pytest configuration and shared fixtures.

API tests run against in-memory stand-ins for the MongoDB repositories,
wired in through FastAPI dependency overrides.
"""

import asyncio
import itertools
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from api.access import Role
from api.config import APIConfig
from api.database import DuplicateUserError
from api.deps import get_book_store, get_credential_store, get_token_service
from api.main import create_app
from api.models import BookFilter
from api.security import TokenService, hash_password

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"


class InMemoryCredentialStore:
    """Dict-backed stand-in for CredentialStore with the same unique rules."""

    def __init__(self):
        self.users: Dict[str, Dict] = {}

    def _clash(self, email: Optional[str], username: Optional[str], exclude_id: Optional[str] = None):
        for user in self.users.values():
            if user["id"] == exclude_id:
                continue
            if (email and user["email"] == email) or (username and user["username"] == username):
                return user
        return None

    async def find_by_email_or_username(self, email, username):
        user = self._clash(email, username)
        return dict(user) if user else None

    async def find_by_email(self, email):
        for user in self.users.values():
            if user["email"] == email:
                return dict(user)
        return None

    async def find_by_id(self, user_id):
        user = self.users.get(str(user_id))
        return dict(user) if user else None

    async def find_by_ids(self, user_ids):
        found = {}
        for user_id in set(user_ids):
            user = self.users.get(str(user_id))
            if user:
                found[user_id] = {k: v for k, v in user.items() if k != "password"}
        return found

    async def list_users(self, limit=100):
        return [{k: v for k, v in u.items() if k != "password"} for u in list(self.users.values())[:limit]]

    async def create(self, user):
        if self._clash(user.get("email"), user.get("username")):
            raise DuplicateUserError({"username": user.get("username")})
        now = datetime.now(timezone.utc)
        doc = {**user, "id": str(ObjectId()), "created_at": now, "updated_at": now}
        doc.setdefault("role", Role.USER.value)
        self.users[doc["id"]] = doc
        return dict(doc)

    async def update_fields(self, user_id, fields):
        user = self.users.get(str(user_id))
        if user is None:
            return None
        if self._clash(fields.get("email"), fields.get("username"), exclude_id=user["id"]):
            raise DuplicateUserError(fields)
        user.update(fields)
        user["updated_at"] = datetime.now(timezone.utc)
        return dict(user)

    def delete(self, user_id):
        self.users.pop(str(user_id), None)


class InMemoryBookStore:
    """List-backed stand-in for BookStore."""

    def __init__(self):
        self.books: Dict[str, Dict] = {}
        self._clock = itertools.count()
        self._epoch = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _matches(self, book: Dict, book_filter: BookFilter) -> bool:
        if book_filter.search:
            haystack = " ".join(str(book.get(f) or "") for f in ("title", "author", "description")).lower()
            if not any(word in haystack for word in book_filter.search.lower().split()):
                return False
        if book_filter.genre and book.get("genre") != book_filter.genre:
            return False
        if book_filter.available is not None and book.get("available") != book_filter.available:
            return False
        if book_filter.added_by and book.get("added_by") != book_filter.added_by:
            return False
        return True

    async def create(self, book, owner_id):
        # Strictly increasing timestamps keep "newest first" ordering deterministic.
        now = self._epoch + timedelta(seconds=next(self._clock))
        doc = {**book, "id": str(ObjectId()), "added_by": str(owner_id), "created_at": now, "updated_at": now}
        self.books[doc["id"]] = doc
        return dict(doc)

    async def find_by_id(self, book_id):
        book = self.books.get(str(book_id))
        return dict(book) if book else None

    async def find(self, book_filter, page=1, limit=10, sort=None):
        matched = [b for b in self.books.values() if self._matches(b, book_filter)]
        matched.sort(key=lambda b: b["created_at"], reverse=True)
        start = (page - 1) * limit
        return [dict(b) for b in matched[start:start + limit]], len(matched)

    async def update_by_id(self, book_id, fields):
        book = self.books.get(str(book_id))
        if book is None:
            return None
        book.update({k: v for k, v in fields.items() if k not in ("added_by", "id")})
        return dict(book)

    async def delete_by_id(self, book_id):
        return self.books.pop(str(book_id), None) is not None

    async def distinct_values(self, field):
        values: List = []
        for book in self.books.values():
            value = book.get(field)
            if value not in values:
                values.append(value)
        return values

    async def exists_with_title(self, title):
        return any(b["title"] == title for b in self.books.values())


@pytest.fixture
def token_service():
    """Token service signed with the test secret."""
    return TokenService(secret=TEST_SECRET)


@pytest.fixture
def credential_store():
    return InMemoryCredentialStore()


@pytest.fixture
def book_store():
    return InMemoryBookStore()


@pytest.fixture
def app(token_service, credential_store, book_store):
    """Application wired to the in-memory stores."""
    application = create_app(APIConfig(jwt_secret=TEST_SECRET, log_format="console"))
    application.dependency_overrides[get_token_service] = lambda: token_service
    application.dependency_overrides[get_credential_store] = lambda: credential_store
    application.dependency_overrides[get_book_store] = lambda: book_store
    return application


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def register_user(client):
    """Register a user through the API and return (user, token)."""

    def _register(username: str, email: str, password: str = "secret1"):
        response = client.post(
            "/api/auth/register",
            json={"username": username, "email": email, "password": password},
        )
        assert response.status_code == 201, response.text
        body = response.json()
        return body["user"], body["token"]

    return _register


@pytest.fixture
def admin_token(credential_store, token_service):
    """Create an admin directly in the store and return a token for it."""
    admin = asyncio.run(credential_store.create({
        "username": "admin",
        "email": "admin@example.com",
        "password": hash_password("adminpass"),
        "role": Role.ADMIN.value,
    }))
    return token_service.issue(admin["id"])


@pytest.fixture
def sample_book_payload():
    return {
        "title": "Dune",
        "author": "Frank Herbert",
        "description": "Desert planet, spice and politics.",
        "genre": "Science Fiction",
        "year": 1965,
        "price": 9.99,
    }
