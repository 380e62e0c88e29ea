"""Pydantic schemas for request/response validation and change events.

Schema Hierarchy
=================
::
    BookmarkCreate (Input)
    └─ url: str

    BookmarkCreated (Output)
    ├─ id: str
    └─ short_url: str (computed)

    BookmarkResponse (Output)
    ├─ id, url
    └─ title, description, image_url, type (optional)

    BookmarkImage (Change feed / cache)
    └─ Same fields as BookmarkResponse

    ChangeEvent (Change feed)
    ├─ event_id: str
    ├─ kind: ChangeEventKind
    ├─ bookmark_id: str
    └─ new_image: dict | None  (row snapshot after the change)

Key Behaviours
===============
- BookmarkCreate does not validate the url; validation is the resolver's job
  so that invalid input surfaces as a resolve result rather than a 422.
- ChangeEvent.new_image is kept as a raw mapping: a malformed snapshot must
  reach the consumer and fail inside the enrichment task that owns it.
"""

import uuid
from typing import Any

from pydantic import BaseModel, Field

from bookmarker.enums import ChangeEventKind, HealthStatus

__all__ = [
    "BookmarkCreate",
    "BookmarkCreated",
    "BookmarkImage",
    "BookmarkListResponse",
    "BookmarkResponse",
    "BookmarkTypesResponse",
    "ChangeEvent",
    "DeleteBookmarkResponse",
    "HealthResponse",
]


class BookmarkCreate(BaseModel):
    url: str


class BookmarkCreated(BaseModel):
    id: str
    short_url: str


class BookmarkResponse(BaseModel):
    id: str
    url: str
    title: str | None = None
    description: str | None = None
    image_url: str | None = None
    type: str | None = None

    model_config = {"from_attributes": True}


class BookmarkListResponse(BaseModel):
    bookmarks: list[BookmarkResponse]


class BookmarkTypesResponse(BaseModel):
    types: list[str]


class DeleteBookmarkResponse(BaseModel):
    deleted: bool


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus


class BookmarkImage(BaseModel):
    """Snapshot of a bookmark row, shared by the change feed and the redis cache."""

    id: str
    url: str
    title: str | None = None
    description: str | None = None
    image_url: str | None = None
    type: str | None = None

    model_config = {"from_attributes": True}


class ChangeEvent(BaseModel):
    """Change feed payload, keyed by bookmark_id for partition affinity."""

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    kind: ChangeEventKind = Field(..., description="INSERT, MODIFY or REMOVE")
    bookmark_id: str = Field(..., description="Primary key of the changed row, e.g. 'Lc4'")
    new_image: dict[str, Any] | None = Field(
        None,
        description="Row attributes after the change; absent for REMOVE.",
        examples=[{"id": "Lc4", "url": "https://example.com/a"}],
    )
