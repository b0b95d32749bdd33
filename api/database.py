"""
Database service layer for the FastAPI application.

Two repositories sit on top of one MongoDB database:

* ``CredentialStore`` over the ``users`` collection
* ``BookStore`` over the ``books`` collection

Documents leave the repositories as plain dicts with ``_id`` replaced by a
string ``id``. Ids that are not valid ObjectIds never match anything.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument, TEXT
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from api.models import BookFilter

logger = structlog.get_logger(__name__)


class DuplicateUserError(Exception):
    """A user write collided with the unique username or email index."""

    def __init__(self, key_value: Optional[Dict[str, Any]] = None):
        self.key_value = key_value or {}
        super().__init__(f"duplicate user key: {self.key_value}")


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Convert a string id to an ObjectId, or None if it is not one."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _public_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


class DatabaseManager:
    """
    Async MongoDB manager.
    Handles connection, indexing and health checks for both collections.
    """

    def __init__(self, connection_url: str, database_name: str,
                 users_collection: str = "users", books_collection: str = "books"):
        self.connection_url = connection_url
        self.database_name = database_name
        self.users_collection_name = users_collection
        self.books_collection_name = books_collection
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None

    async def connect(self) -> None:
        """Establish connection to MongoDB and make sure indexes exist."""
        try:
            self.client = AsyncIOMotorClient(self.connection_url, tz_aware=True)
            self.database = self.client[self.database_name]

            await self.client.admin.command("ping")
            logger.info("Successfully connected to MongoDB", database=self.database_name)

            await self._create_indexes()

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    @property
    def users(self) -> AsyncIOMotorCollection:
        return self.database[self.users_collection_name]

    @property
    def books(self) -> AsyncIOMotorCollection:
        return self.database[self.books_collection_name]

    def credential_store(self) -> "CredentialStore":
        return CredentialStore(self.users)

    def book_store(self) -> "BookStore":
        return BookStore(self.books)

    async def _create_indexes(self) -> None:
        """
        Create the unique user indexes and the book text index.
        Uniqueness of username and email is enforced here, not in handlers.
        """
        try:
            await self.users.create_index("email", unique=True)
            await self.users.create_index("username", unique=True)

            # Text index backing the ``search`` query parameter
            await self.books.create_index(
                [("title", TEXT), ("author", TEXT), ("description", TEXT)],
                name="books_text",
            )
            await self.books.create_index("added_by")
            await self.books.create_index("genre")
            await self.books.create_index("available")
            await self.books.create_index([("created_at", DESCENDING)])

            logger.info("Successfully created MongoDB indexes")

        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    async def health_check(self) -> Dict:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")
            users_count = await self.users.count_documents({})
            books_count = await self.books.count_documents({})
            return {
                "status": "healthy",
                "users_count": users_count,
                "books_count": books_count,
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e),
            }


class CredentialStore:
    """Repository for user records."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def find_by_email_or_username(self, email: Optional[str], username: Optional[str]) -> Optional[Dict]:
        clauses = []
        if email:
            clauses.append({"email": email})
        if username:
            clauses.append({"username": username})
        if not clauses:
            return None
        return _public_doc(await self.collection.find_one({"$or": clauses}))

    async def find_by_email(self, email: str) -> Optional[Dict]:
        return _public_doc(await self.collection.find_one({"email": email}))

    async def find_by_id(self, user_id: str) -> Optional[Dict]:
        object_id = to_object_id(user_id)
        if object_id is None:
            return None
        return _public_doc(await self.collection.find_one({"_id": object_id}))

    async def find_by_ids(self, user_ids: Sequence[str]) -> Dict[str, Dict]:
        """Fetch several users at once, keyed by id."""
        object_ids = [oid for oid in (to_object_id(u) for u in set(user_ids)) if oid is not None]
        if not object_ids:
            return {}
        cursor = self.collection.find({"_id": {"$in": object_ids}}, {"password": 0})
        docs = await cursor.to_list(length=len(object_ids))
        return {doc["id"]: doc for doc in map(_public_doc, docs)}

    async def list_users(self, limit: int = 100) -> List[Dict]:
        cursor = self.collection.find({}, {"password": 0}).sort("created_at", ASCENDING).limit(limit)
        return [_public_doc(doc) for doc in await cursor.to_list(length=limit)]

    async def create(self, user: Dict[str, Any]) -> Dict:
        """
        Insert a user document.

        Raises:
            DuplicateUserError: username or email already taken
        """
        now = _utcnow()
        doc = {**user, "created_at": now, "updated_at": now}
        try:
            result = await self.collection.insert_one(doc)
        except DuplicateKeyError as e:
            raise DuplicateUserError((e.details or {}).get("keyValue")) from e
        doc["_id"] = result.inserted_id
        logger.debug("Inserted user", user_id=str(result.inserted_id))
        return _public_doc(doc)

    async def update_fields(self, user_id: str, fields: Dict[str, Any]) -> Optional[Dict]:
        """
        Update the given fields and return the updated user, or None if absent.

        Raises:
            DuplicateUserError: the new username or email is already taken
        """
        object_id = to_object_id(user_id)
        if object_id is None:
            return None
        update = {**fields, "updated_at": _utcnow()}
        try:
            doc = await self.collection.find_one_and_update(
                {"_id": object_id},
                {"$set": update},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise DuplicateUserError((e.details or {}).get("keyValue")) from e
        return _public_doc(doc)


class BookStore:
    """Repository for book records."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    @staticmethod
    def build_query(book_filter: BookFilter) -> Dict[str, Any]:
        """Translate a BookFilter into a MongoDB query document."""
        query: Dict[str, Any] = {}
        if book_filter.search:
            query["$text"] = {"$search": book_filter.search}
        if book_filter.genre:
            query["genre"] = book_filter.genre
        if book_filter.available is not None:
            query["available"] = book_filter.available
        if book_filter.added_by:
            query["added_by"] = to_object_id(book_filter.added_by)
        return query

    @staticmethod
    def _book_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        doc = _public_doc(doc)
        if doc is not None and doc.get("added_by") is not None:
            doc["added_by"] = str(doc["added_by"])
        return doc

    async def create(self, book: Dict[str, Any], owner_id: str) -> Dict:
        now = _utcnow()
        doc = {**book, "added_by": to_object_id(owner_id), "created_at": now, "updated_at": now}
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.debug("Inserted book", book_id=str(result.inserted_id), owner_id=owner_id)
        return self._book_doc(doc)

    async def find_by_id(self, book_id: str) -> Optional[Dict]:
        object_id = to_object_id(book_id)
        if object_id is None:
            return None
        return self._book_doc(await self.collection.find_one({"_id": object_id}))

    async def find(self, book_filter: BookFilter, page: int = 1, limit: int = 10,
                   sort: Optional[List[Tuple[str, int]]] = None) -> Tuple[List[Dict], int]:
        """
        Get books with filtering, sorting and pagination.

        Returns:
            Tuple of (books on the requested page, total matching books)
        """
        query = self.build_query(book_filter)
        sort_query = sort or [("created_at", DESCENDING)]
        skip = (page - 1) * limit

        total = await self.collection.count_documents(query)
        cursor = self.collection.find(query).sort(sort_query).skip(skip).limit(limit)
        docs = await cursor.to_list(length=limit)
        return [self._book_doc(doc) for doc in docs], total

    async def update_by_id(self, book_id: str, fields: Dict[str, Any]) -> Optional[Dict]:
        object_id = to_object_id(book_id)
        if object_id is None:
            return None
        # The owner reference is immutable.
        update = {k: v for k, v in fields.items() if k not in ("added_by", "_id", "id")}
        update["updated_at"] = _utcnow()
        doc = await self.collection.find_one_and_update(
            {"_id": object_id},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        return self._book_doc(doc)

    async def delete_by_id(self, book_id: str) -> bool:
        object_id = to_object_id(book_id)
        if object_id is None:
            return False
        result = await self.collection.delete_one({"_id": object_id})
        return result.deleted_count == 1

    async def distinct_values(self, field: str) -> List[Any]:
        return await self.collection.distinct(field)

    async def exists_with_title(self, title: str) -> bool:
        return await self.collection.count_documents({"title": title}, limit=1) > 0
