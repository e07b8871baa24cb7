"""
Stores — repository adapters that own blog-post persistence.

Every backend exposes the same small async interface (``insert_many``,
``find_one``, ``find_by_id``, ``drop_all``, ``count`` and friends) so that the
service and the integration harness never touch a driver directly.  The
backend is picked from the database URL scheme.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import urlsplit

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from blog_api.models import BlogPost, StoreType

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION = "blogposts"
DEFAULT_DATABASE = "blog-app"


def _parse_object_id(post_id: str) -> ObjectId | None:
    """Return the ObjectId for *post_id*, or None when it is malformed."""
    try:
        return ObjectId(post_id)
    except (InvalidId, TypeError):
        return None


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class BaseStore(ABC):
    """All stores share this interface."""

    backend: StoreType

    def __init__(self, url: str, collection: str = DEFAULT_COLLECTION):
        self.url = url
        self.collection = collection
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    @abstractmethod
    def database_name(self) -> str:
        ...

    async def connect(self):
        """Open connection / initialise client."""
        self._connected = True

    async def disconnect(self):
        """Tear down connection."""
        self._connected = False

    def _require_connection(self):
        if not self._connected:
            raise RuntimeError(f"Store '{self.database_name}' is not connected.")

    @abstractmethod
    async def insert_many(self, posts: list[BlogPost]) -> list[BlogPost]:
        """Insert *posts* in one bulk operation and return them with ids."""
        ...

    async def insert_one(self, post: BlogPost) -> BlogPost:
        inserted = await self.insert_many([post])
        return inserted[0]

    @abstractmethod
    async def find_one(self) -> BlogPost | None:
        """Return any single stored post, or None when the store is empty."""
        ...

    @abstractmethod
    async def find_by_id(self, post_id: str) -> BlogPost | None:
        ...

    @abstractmethod
    async def find_all(self) -> list[BlogPost]:
        ...

    @abstractmethod
    async def update(self, post_id: str, changes: dict[str, Any]) -> bool:
        """Replace the given fields.  Returns False when no post matched."""
        ...

    @abstractmethod
    async def delete(self, post_id: str) -> bool:
        """Remove one post.  Returns False when no post matched."""
        ...

    @abstractmethod
    async def drop_all(self):
        """Drop the whole database this store points at."""
        ...

    @abstractmethod
    async def count(self) -> int:
        ...


# ---------------------------------------------------------------------------
# MongoDB store
# ---------------------------------------------------------------------------

class MongoStore(BaseStore):
    backend = StoreType.MONGODB

    def __init__(
        self,
        url: str,
        collection: str = DEFAULT_COLLECTION,
        server_selection_timeout_ms: int = 5000,
    ):
        super().__init__(url, collection)
        self._server_selection_timeout_ms = server_selection_timeout_ms
        self._client: Any = None
        self._db: Any = None

    @property
    def database_name(self) -> str:
        if self._db is not None:
            return self._db.name
        return urlsplit(self.url).path.lstrip("/") or DEFAULT_DATABASE

    @property
    def _col(self) -> Any:
        self._require_connection()
        return self._db[self.collection]

    async def connect(self):
        self._client = AsyncIOMotorClient(
            self.url,
            tz_aware=True,
            serverSelectionTimeoutMS=self._server_selection_timeout_ms,
        )
        self._db = self._client.get_default_database(DEFAULT_DATABASE)
        # Fail here rather than on the first query
        try:
            await self._db.command("ping")
        except PyMongoError:
            self._client.close()
            self._client = None
            self._db = None
            raise
        await super().connect()
        logger.info("MongoDB store '%s' connected.", self._db.name)

    async def disconnect(self):
        if self._client:
            self._client.close()
        await super().disconnect()

    async def insert_many(self, posts: list[BlogPost]) -> list[BlogPost]:
        if not posts:
            return []
        result = await self._col.insert_many([p.to_document() for p in posts])
        return [
            p.model_copy(update={"id": str(oid)})
            for p, oid in zip(posts, result.inserted_ids)
        ]

    async def find_one(self) -> BlogPost | None:
        doc = await self._col.find_one({})
        return BlogPost.from_document(doc) if doc else None

    async def find_by_id(self, post_id: str) -> BlogPost | None:
        oid = _parse_object_id(post_id)
        if oid is None:
            return None
        doc = await self._col.find_one({"_id": oid})
        return BlogPost.from_document(doc) if doc else None

    async def find_all(self) -> list[BlogPost]:
        docs = await self._col.find({}).to_list(length=None)
        return [BlogPost.from_document(d) for d in docs]

    async def update(self, post_id: str, changes: dict[str, Any]) -> bool:
        oid = _parse_object_id(post_id)
        if oid is None:
            return False
        result = await self._col.update_one({"_id": oid}, {"$set": changes})
        return result.matched_count == 1

    async def delete(self, post_id: str) -> bool:
        oid = _parse_object_id(post_id)
        if oid is None:
            return False
        result = await self._col.delete_one({"_id": oid})
        return result.deleted_count == 1

    async def drop_all(self):
        self._require_connection()
        await self._client.drop_database(self._db.name)

    async def count(self) -> int:
        return await self._col.count_documents({})


# ---------------------------------------------------------------------------
# Memory store — in-process backend for hermetic runs
# ---------------------------------------------------------------------------

class MemoryStore(BaseStore):
    """
    Dict-backed store holding documents in their persisted shape.

    Ids are minted as ObjectIds so records look the same as MongoDB ones.
    Documents are deep-copied on the way in and out; callers never share
    state with the store.
    """

    backend = StoreType.MEMORY

    def __init__(self, url: str, collection: str = DEFAULT_COLLECTION):
        super().__init__(url, collection)
        self._docs: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    @property
    def database_name(self) -> str:
        parts = urlsplit(self.url)
        return parts.netloc or parts.path.lstrip("/") or DEFAULT_DATABASE

    async def connect(self):
        await super().connect()
        logger.info("Memory store '%s' connected.", self.database_name)

    def _load(self, doc: dict[str, Any]) -> BlogPost:
        return BlogPost.from_document(copy.deepcopy(doc))

    async def insert_many(self, posts: list[BlogPost]) -> list[BlogPost]:
        self._require_connection()
        inserted: list[BlogPost] = []
        async with self._lock:
            for post in posts:
                post_id = str(ObjectId())
                self._docs[post_id] = {"_id": post_id, **copy.deepcopy(post.to_document())}
                inserted.append(post.model_copy(update={"id": post_id}))
        return inserted

    async def find_one(self) -> BlogPost | None:
        self._require_connection()
        async with self._lock:
            doc = next(iter(self._docs.values()), None)
            return self._load(doc) if doc else None

    async def find_by_id(self, post_id: str) -> BlogPost | None:
        self._require_connection()
        async with self._lock:
            doc = self._docs.get(post_id)
            return self._load(doc) if doc else None

    async def find_all(self) -> list[BlogPost]:
        self._require_connection()
        async with self._lock:
            return [self._load(d) for d in self._docs.values()]

    async def update(self, post_id: str, changes: dict[str, Any]) -> bool:
        self._require_connection()
        async with self._lock:
            doc = self._docs.get(post_id)
            if doc is None:
                return False
            doc.update(copy.deepcopy(changes))
            return True

    async def delete(self, post_id: str) -> bool:
        self._require_connection()
        async with self._lock:
            return self._docs.pop(post_id, None) is not None

    async def drop_all(self):
        self._require_connection()
        async with self._lock:
            self._docs.clear()

    async def count(self) -> int:
        self._require_connection()
        async with self._lock:
            return len(self._docs)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_SCHEME_MAP: dict[str, StoreType] = {
    "mongodb": StoreType.MONGODB,
    "mongodb+srv": StoreType.MONGODB,
    "memory": StoreType.MEMORY,
}

_STORE_MAP: dict[StoreType, type[BaseStore]] = {
    StoreType.MONGODB: MongoStore,
    StoreType.MEMORY: MemoryStore,
}


def store_type_for(url: str) -> StoreType:
    """Map a database URL to the backend that serves it."""
    scheme = urlsplit(url).scheme.lower()
    store_type = _SCHEME_MAP.get(scheme)
    if store_type is None:
        raise ValueError(f"Unsupported database URL scheme: {scheme or url!r}")
    return store_type


def create_store(url: str, collection: str = DEFAULT_COLLECTION) -> BaseStore:
    """Instantiate the right store subclass for *url* (not yet connected)."""
    cls = _STORE_MAP[store_type_for(url)]
    return cls(url, collection=collection)
