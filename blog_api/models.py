"""
Core data models for the Blog API.

Defines the stored blog-post record, the payloads accepted by the write
endpoints, and the application / harness configuration.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


# Keys of the API read representation, in response order
POST_FIELDS = ("id", "title", "content", "author", "created")

# Fields a PUT request is allowed to replace
UPDATABLE_FIELDS = ("title", "content", "author")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class StoreType(str, enum.Enum):
    """Supported storage backends, keyed by URL scheme."""
    MONGODB = "mongodb"
    MEMORY = "memory"


# ---------------------------------------------------------------------------
# Blog post records
# ---------------------------------------------------------------------------

class Author(BaseModel):
    """Structured author name, persisted as ``{firstName, lastName}``."""
    first_name: str = Field(..., alias="firstName", min_length=1)
    last_name: str = Field(..., alias="lastName", min_length=1)

    model_config = {"populate_by_name": True, "str_strip_whitespace": True}


class BlogPost(BaseModel):
    """
    A blog post as the store holds it.

    ``id`` is ``None`` until the store assigns one on insert.  The author stays
    structured here; only :meth:`serialize` flattens it for API consumers.
    """
    id: str | None = None
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    author: Author
    created: datetime = Field(default_factory=_utcnow)

    model_config = {"populate_by_name": True, "str_strip_whitespace": True}

    @property
    def author_name(self) -> str:
        return f"{self.author.first_name} {self.author.last_name}".strip()

    def serialize(self) -> dict[str, Any]:
        """Return the API read representation."""
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "author": self.author_name,
            "created": self.created.isoformat(),
        }

    def to_document(self) -> dict[str, Any]:
        """Return the persisted shape, without the store-owned id."""
        return self.model_dump(by_alias=True, exclude={"id"})

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> BlogPost:
        """Build a record from a stored document (``_id`` → ``id``)."""
        data = {k: v for k, v in doc.items() if k != "_id"}
        data["id"] = str(doc["_id"])
        return cls.model_validate(data)


class PostUpdate(BaseModel):
    """Body of a PUT request.  Unknown fields are ignored."""
    id: str | None = None
    title: str | None = Field(None, min_length=1)
    content: str | None = Field(None, min_length=1)
    author: Author | None = None

    model_config = {"extra": "ignore", "str_strip_whitespace": True}

    def changes(self) -> dict[str, Any]:
        """Return the updatable fields that were sent, in persisted shape."""
        return self.model_dump(
            include=set(UPDATABLE_FIELDS),
            exclude_none=True,
            by_alias=True,
        )


# ---------------------------------------------------------------------------
# App-level configuration
# ---------------------------------------------------------------------------

class HarnessConfig(BaseModel):
    """Integration-harness settings."""
    scenario_timeout: float = 0  # seconds per request, 0 = wait indefinitely
    seed_count: int = 10


class AppConfig(BaseModel):
    """Top-level application configuration."""
    app_name: str = "Blog API"
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False
    database_url: str = "mongodb://localhost/blog-app"
    test_database_url: str = "memory://test-blog-app"
    harness: HarnessConfig = Field(default_factory=HarnessConfig)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
