"""
Tests for the book catalog endpoints.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from bson import ObjectId


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def alice(register_user):
    return register_user("alice", "alice@x.com")


@pytest.fixture
def bob(register_user):
    return register_user("bob", "bob@x.com")


def create_book(client, token, **fields):
    payload = {"title": "Untitled", "author": "Anonymous", **fields}
    response = client.post("/api/books", json=payload, headers=bearer(token))
    assert response.status_code == 201, response.text
    return response.json()["book"]


class TestCreateBook:
    """Test cases for POST /api/books."""

    def test_create_book(self, client, alice, sample_book_payload):
        user, token = alice

        response = client.post("/api/books", json=sample_book_payload, headers=bearer(token))

        assert response.status_code == 201
        data = response.json()
        assert data["message"] == "Book created successfully"
        book = data["book"]
        assert book["title"] == "Dune"
        assert book["available"] is True
        assert book["added_by"] == {"id": user["id"], "username": "alice", "email": "alice@x.com"}

    def test_requires_token(self, client, book_store, sample_book_payload):
        response = client.post("/api/books", json=sample_book_payload)

        assert response.status_code == 401
        assert book_store.books == {}

    def test_owner_comes_from_token_not_body(self, client, alice, bob, book_store, sample_book_payload):
        user, token = alice
        other, _ = bob

        response = client.post(
            "/api/books",
            json={**sample_book_payload, "added_by": other["id"]},
            headers=bearer(token),
        )

        assert response.status_code == 201
        assert response.json()["book"]["added_by"]["id"] == user["id"]

    @pytest.mark.parametrize("override, field", [
        ({"title": ""}, "title"),
        ({"title": "x" * 201}, "title"),
        ({"author": "x" * 101}, "author"),
        ({"description": "x" * 1001}, "description"),
        ({"genre": "x" * 51}, "genre"),
        ({"year": 999}, "year"),
        ({"year": datetime.now(timezone.utc).year + 1}, "year"),
        ({"price": -1}, "price"),
    ])
    def test_validation(self, client, alice, book_store, sample_book_payload, override, field):
        _, token = alice

        response = client.post("/api/books", json={**sample_book_payload, **override}, headers=bearer(token))

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "validation_error"
        assert field in [d["field"] for d in data["details"]]
        assert book_store.books == {}

    def test_missing_required_fields(self, client, alice):
        _, token = alice

        response = client.post("/api/books", json={"genre": "Poetry"}, headers=bearer(token))

        assert response.status_code == 400
        fields = {d["field"] for d in response.json()["details"]}
        assert {"title", "author"} <= fields

    def test_year_boundaries_are_accepted(self, client, alice):
        _, token = alice
        this_year = datetime.now(timezone.utc).year

        assert create_book(client, token, year=1000)["year"] == 1000
        assert create_book(client, token, year=this_year)["year"] == this_year


class TestReadBooks:
    """Test cases for the public read endpoints."""

    def test_get_book(self, client, alice, sample_book_payload):
        _, token = alice
        created = create_book(client, token, **sample_book_payload)

        response = client.get(f"/api/books/{created['id']}")

        assert response.status_code == 200
        assert response.json()["book"]["title"] == "Dune"
        assert response.json()["book"]["added_by"]["username"] == "alice"

    @pytest.mark.parametrize("book_id", [str(ObjectId()), "not-an-object-id"])
    def test_missing_book_is_not_found(self, client, book_id):
        response = client.get(f"/api/books/{book_id}")

        assert response.status_code == 404
        assert response.json() == {"error": "not_found", "message": "Book not found"}

    def test_owner_that_no_longer_exists(self, client, credential_store, alice):
        user, token = alice
        created = create_book(client, token, title="Orphan")
        credential_store.delete(user["id"])

        response = client.get(f"/api/books/{created['id']}")

        assert response.status_code == 200
        assert response.json()["book"]["added_by"] is None

    def test_list_is_newest_first_with_pagination(self, client, alice):
        _, token = alice
        for i in range(12):
            create_book(client, token, title=f"Book {i}")

        first = client.get("/api/books", params={"limit": 5}).json()
        last = client.get("/api/books", params={"limit": 5, "page": 3}).json()

        assert [b["title"] for b in first["books"]] == [f"Book {i}" for i in (11, 10, 9, 8, 7)]
        assert first["pagination"] == {"page": 1, "limit": 5, "total": 12, "pages": 3}
        assert [b["title"] for b in last["books"]] == ["Book 1", "Book 0"]

    def test_default_page_size(self, client, alice):
        _, token = alice
        for i in range(11):
            create_book(client, token, title=f"Book {i}")

        data = client.get("/api/books").json()

        assert len(data["books"]) == 10
        assert data["pagination"]["pages"] == 2

    def test_empty_catalog(self, client):
        data = client.get("/api/books").json()

        assert data["books"] == []
        assert data["pagination"]["total"] == 0

    @pytest.mark.parametrize("params", [{"page": 0}, {"limit": 0}, {"limit": 101}, {"page": "x"}])
    def test_bad_paging_is_rejected(self, client, params):
        response = client.get("/api/books", params=params)

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_search(self, client, alice):
        _, token = alice
        create_book(client, token, title="Dune", author="Frank Herbert")
        create_book(client, token, title="Emma", author="Jane Austen")

        data = client.get("/api/books", params={"search": "herbert"}).json()

        assert [b["title"] for b in data["books"]] == ["Dune"]

    def test_genre_and_availability_filters(self, client, alice):
        _, token = alice
        create_book(client, token, title="Dune", genre="Science Fiction")
        create_book(client, token, title="Foundation", genre="Science Fiction", available=False)
        create_book(client, token, title="Emma", genre="Romance")

        by_genre = client.get("/api/books", params={"genre": "Science Fiction"}).json()
        on_shelf = client.get("/api/books", params={"genre": "Science Fiction", "available": "true"}).json()

        assert {b["title"] for b in by_genre["books"]} == {"Dune", "Foundation"}
        assert [b["title"] for b in on_shelf["books"]] == ["Dune"]

    def test_genres_list(self, client, alice):
        _, token = alice
        create_book(client, token, title="A", genre="Romance")
        create_book(client, token, title="B", genre="Fantasy")
        create_book(client, token, title="C", genre="Romance")
        create_book(client, token, title="D")

        response = client.get("/api/books/genres/list")

        assert response.status_code == 200
        assert response.json() == {"genres": ["Fantasy", "Romance"]}

    def test_my_books(self, client, alice, bob):
        _, alice_token = alice
        _, bob_token = bob
        create_book(client, alice_token, title="Alice's")
        create_book(client, bob_token, title="Bob's")

        response = client.get("/api/books/user/my-books", headers=bearer(alice_token))

        assert response.status_code == 200
        data = response.json()
        assert [b["title"] for b in data["books"]] == ["Alice's"]
        assert data["pagination"]["total"] == 1

    def test_my_books_requires_token(self, client):
        assert client.get("/api/books/user/my-books").status_code == 401

    def test_store_failure_is_reported_generically(self, client, book_store):
        book_store.find = AsyncMock(side_effect=RuntimeError("cursor died"))

        response = client.get("/api/books")

        assert response.status_code == 500
        assert response.json()["message"] == "Failed to fetch books"
        assert "cursor died" not in response.text


class TestUpdateBook:
    """Test cases for PUT /api/books/{id}."""

    def test_owner_stranger_and_admin(self, client, alice, bob, admin_token, sample_book_payload):
        """Only the owner or an admin may update; a stranger is refused."""
        _, alice_token = alice
        _, bob_token = bob
        book = create_book(client, alice_token, **sample_book_payload)

        refused = client.put(f"/api/books/{book['id']}", json={"price": 1.0}, headers=bearer(bob_token))
        assert refused.status_code == 403
        assert refused.json()["message"] == "Access denied. You can only update your own books."

        allowed = client.put(f"/api/books/{book['id']}", json={"price": 1.0}, headers=bearer(admin_token))
        assert allowed.status_code == 200
        assert allowed.json()["message"] == "Book updated successfully"
        assert allowed.json()["book"]["price"] == 1.0

    def test_owner_can_update(self, client, alice, sample_book_payload):
        _, token = alice
        book = create_book(client, token, **sample_book_payload)

        response = client.put(
            f"/api/books/{book['id']}",
            json={"available": False, "genre": "Classic"},
            headers=bearer(token),
        )

        assert response.status_code == 200
        updated = response.json()["book"]
        assert updated["available"] is False
        assert updated["genre"] == "Classic"
        assert updated["title"] == "Dune"

    def test_refused_update_changes_nothing(self, client, book_store, alice, bob, sample_book_payload):
        _, alice_token = alice
        _, bob_token = bob
        book = create_book(client, alice_token, **sample_book_payload)

        client.put(f"/api/books/{book['id']}", json={"title": "Mine now"}, headers=bearer(bob_token))

        assert book_store.books[book["id"]]["title"] == "Dune"

    def test_owner_cannot_be_reassigned(self, client, book_store, alice, bob, sample_book_payload):
        user, token = alice
        other, _ = bob
        book = create_book(client, token, **sample_book_payload)

        response = client.put(
            f"/api/books/{book['id']}",
            json={"added_by": other["id"], "title": "Dune Messiah"},
            headers=bearer(token),
        )

        assert response.status_code == 200
        assert book_store.books[book["id"]]["added_by"] == user["id"]
        assert response.json()["book"]["title"] == "Dune Messiah"

    @pytest.mark.parametrize("body, field", [
        ({"title": None}, "title"),
        ({"author": None}, "author"),
        ({"title": ""}, "title"),
        ({"price": -5}, "price"),
        ({"year": 42}, "year"),
    ])
    def test_invalid_update(self, client, alice, sample_book_payload, body, field):
        _, token = alice
        book = create_book(client, token, **sample_book_payload)

        response = client.put(f"/api/books/{book['id']}", json=body, headers=bearer(token))

        assert response.status_code == 400
        assert field in [d["field"] for d in response.json()["details"]]

    def test_missing_book_is_not_found_before_ownership(self, client, alice):
        _, token = alice

        response = client.put(f"/api/books/{ObjectId()}", json={"price": 1}, headers=bearer(token))

        assert response.status_code == 404

    def test_requires_token(self, client, alice, sample_book_payload):
        _, token = alice
        book = create_book(client, token, **sample_book_payload)

        assert client.put(f"/api/books/{book['id']}", json={"price": 1}).status_code == 401


class TestDeleteBook:
    """Test cases for DELETE /api/books/{id}."""

    def test_owner_can_delete(self, client, book_store, alice, sample_book_payload):
        _, token = alice
        book = create_book(client, token, **sample_book_payload)

        response = client.delete(f"/api/books/{book['id']}", headers=bearer(token))

        assert response.status_code == 200
        assert response.json() == {"message": "Book deleted successfully"}
        assert book_store.books == {}
        assert client.get(f"/api/books/{book['id']}").status_code == 404

    def test_stranger_cannot_delete(self, client, book_store, alice, bob, sample_book_payload):
        _, alice_token = alice
        _, bob_token = bob
        book = create_book(client, alice_token, **sample_book_payload)

        response = client.delete(f"/api/books/{book['id']}", headers=bearer(bob_token))

        assert response.status_code == 403
        assert response.json()["message"] == "Access denied. You can only delete your own books."
        assert book["id"] in book_store.books

    def test_admin_can_delete(self, client, book_store, alice, admin_token, sample_book_payload):
        _, token = alice
        book = create_book(client, token, **sample_book_payload)

        response = client.delete(f"/api/books/{book['id']}", headers=bearer(admin_token))

        assert response.status_code == 200
        assert book_store.books == {}

    def test_delete_missing_book(self, client, alice):
        _, token = alice

        response = client.delete(f"/api/books/{ObjectId()}", headers=bearer(token))

        assert response.status_code == 404


class TestApplication:
    """Health, docs and fallback routing."""

    def test_health_without_database(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert data["database_status"] == "unavailable"
        assert data["version"] == "1.0.0"

    def test_health_with_database(self, app, client):
        db_manager = AsyncMock()
        db_manager.health_check.return_value = {"status": "healthy"}
        app.state.db_manager = db_manager

        data = client.get("/health").json()

        assert data["status"] == "OK"
        assert data["database_status"] == "healthy"

    def test_unknown_route(self, client):
        response = client.get("/api/nowhere")

        assert response.status_code == 404
        assert response.json() == {"error": "not_found", "message": "Route not found"}

    def test_request_id_header(self, client):
        response = client.get("/health")
        assert response.headers.get("X-Request-ID")

    def test_docs_are_served(self, client):
        assert client.get("/api-docs").status_code == 200
        assert "/api/books" in client.get("/api-docs/openapi.json").json()["paths"]
