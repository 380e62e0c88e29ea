"""SQLAlchemy ORM models for the bookmarker service.

Data Model Layout
=================
::
    bookmarks table
    ├─ id (VARCHAR(32) PRIMARY KEY)   short key derived from url
    ├─ url (TEXT NOT NULL)
    ├─ title (TEXT NULL)
    ├─ description (TEXT NULL)
    ├─ image_url (TEXT NULL)
    └─ type (VARCHAR(255) NULL)

How to Use
===========
**Step 1 — Import**::
    from bookmarker.models import Bookmark

**Step 2 — Build a record**::
    bookmark = Bookmark(id="Lc4", url="https://example.com/a")

**Step 3 — Persist it through the store**::
    await store.put(bookmark)

Key Behaviours
===============
- id and url are written once by the resolver and never change.
- title, description, image_url and type are only written by enrichment,
  and each enrichment overwrites all four.
- No uniqueness constraint on url; the resolver keeps urls unique.

Classes:
    Bookmark:  A stored URL with its optional page metadata.
"""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bookmarker.database import Base

__all__ = ["BOOKMARK_FIELDS", "Bookmark"]

BOOKMARK_FIELDS = ("id", "url", "title", "description", "image_url", "type")


class Bookmark(Base):
    __tablename__ = "bookmarks"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Bookmark(id='{self.id}', url='{self.url}')>"
