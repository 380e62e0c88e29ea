"""Bookmark storage: a thin key-value wrapper over the bookmarks table.

The store owns no business rules. It exposes point and batch reads, an
unconditional upsert, delete and a paginated full scan, and after every
committed write it publishes a change event (INSERT, MODIFY or REMOVE) for
the enrichment worker.

Read Flow — get_by_key()
========================
::
    ┌─────────────┐
    │ get_by_key  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check redis │
    │ (replica)   │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Query   │  │ Return  │
│PostgreSQL│  │ cached  │
└────┬────┘  └─────────┘
     ▼
┌─────────┐
│ Cache   │
│ result  │
└─────────┘

Write Flow — put() / delete_by_key()
====================================
::
    put():           commit row ──► write new image to cache ──► publish
    delete_by_key(): commit row ──► invalidate cache ──► publish

Key Behaviours
===============
- Each operation opens its own short session, so one store instance can be
  shared by concurrent enrichment tasks.
- batch_get_by_keys() always reads the database in a single round trip.
- put() overwrites every attribute; last write wins. Read-through fills use
  SET NX so a slow reader cannot replace the image a put() just cached.
- A failed cache read or change publish never fails the operation.
"""

import logging
from collections.abc import AsyncIterator, Iterable

import redis.asyncio as redis
from prometheus_client import Counter
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookmarker.config import Settings
from bookmarker.enums import ChangeEventKind
from bookmarker.kafka import ChangeEventPublisher
from bookmarker.models import Bookmark
from bookmarker.schemas import BookmarkImage, ChangeEvent

__all__ = ["BookmarkStore"]

DATABASE_READS_TOTAL = Counter(
    "bookmarker_database_reads_total",
    "Total database read operations",
)
DATABASE_WRITES_TOTAL = Counter(
    "bookmarker_database_writes_total",
    "Total database write operations",
)
CACHE_LOOKUPS_TOTAL = Counter(
    "bookmarker_cache_lookups_total",
    "Bookmark cache lookups",
    ["result"],
)


class BookmarkStore:
    """Key-value access to bookmarks keyed by id."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter,
        publisher: ChangeEventPublisher | None = None,
        cache_writer: redis.Redis | None = None,
        cache_reader: redis.Redis | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings
        self._logger = logger
        self._publisher = publisher
        self._cache_write = cache_writer
        self._cache_read = cache_reader or cache_writer

    # ========================================================================
    # READS
    # ========================================================================

    async def get_by_key(self, bookmark_id: str) -> Bookmark | None:
        cached = await self._lookup_from_cache(bookmark_id)
        if cached is not None:
            return cached

        async with self._session_factory() as session:
            bookmark = await session.get(Bookmark, bookmark_id)
        DATABASE_READS_TOTAL.inc()

        if bookmark is not None:
            await self._cache_bookmark(bookmark)
        return bookmark

    async def batch_get_by_keys(self, bookmark_ids: Iterable[str]) -> dict[str, Bookmark]:
        """Fetch every existing bookmark among ``bookmark_ids`` in one query."""
        keys = set(bookmark_ids)
        if not keys:
            return {}

        async with self._session_factory() as session:
            result = await session.execute(select(Bookmark).where(Bookmark.id.in_(keys)))
            bookmarks = result.scalars().all()
        DATABASE_READS_TOTAL.inc()
        return {bookmark.id: bookmark for bookmark in bookmarks}

    async def scan_all(self) -> AsyncIterator[Bookmark]:
        """Yield every bookmark, paging through the table in id order."""
        page_size = self._settings.SCAN_PAGE_SIZE
        last_id: str | None = None

        while True:
            stmt = select(Bookmark).order_by(Bookmark.id).limit(page_size)
            if last_id is not None:
                stmt = stmt.where(Bookmark.id > last_id)

            async with self._session_factory() as session:
                result = await session.execute(stmt)
                page = result.scalars().all()
            DATABASE_READS_TOTAL.inc()

            for bookmark in page:
                yield bookmark

            if len(page) < page_size:
                return
            last_id = page[-1].id

    # ========================================================================
    # WRITES
    # ========================================================================

    async def put(self, bookmark: Bookmark) -> bool:
        """Insert or fully overwrite ``bookmark``.

        Returns:
            bool: True if a new row was inserted, False if one was overwritten.
        """
        image = BookmarkImage.model_validate(bookmark)

        async with self._session_factory() as session:
            created = await self._upsert(session, image)
        DATABASE_WRITES_TOTAL.inc()

        await self._write_cache(image)
        await self._publish(
            ChangeEvent(
                kind=ChangeEventKind.INSERT if created else ChangeEventKind.MODIFY,
                bookmark_id=image.id,
                new_image=image.model_dump(),
            )
        )
        return created

    async def delete_by_key(self, bookmark_id: str) -> bool:
        async with self._session_factory() as session:
            bookmark = await session.get(Bookmark, bookmark_id)
            if bookmark is None:
                return False
            await session.delete(bookmark)
            await session.commit()
        DATABASE_WRITES_TOTAL.inc()

        await self._invalidate_cache(bookmark_id)
        await self._publish(ChangeEvent(kind=ChangeEventKind.REMOVE, bookmark_id=bookmark_id))
        return True

    async def _upsert(self, session: AsyncSession, image: BookmarkImage) -> bool:
        values = image.model_dump()

        existing = await session.get(Bookmark, image.id)
        if existing is None:
            session.add(Bookmark(**values))
            try:
                await session.commit()
                return True
            except IntegrityError:
                # another writer inserted the same id first; overwrite it
                await session.rollback()
                self._logger.warning(f"Concurrent insert for bookmark {image.id}, overwriting")
                existing = await session.get(Bookmark, image.id)
                if existing is None:
                    raise

        for field, value in values.items():
            setattr(existing, field, value)
        await session.commit()
        return False

    async def _publish(self, event: ChangeEvent) -> None:
        if self._publisher is None:
            return
        published = await self._publisher.publish(event)
        if not published:
            self._logger.error(f"{event.kind} event for {event.bookmark_id} was not published")

    # ========================================================================
    # CACHE HELPERS
    # ========================================================================

    def _cache_key(self, bookmark_id: str) -> str:
        return f"{self._settings.BOOKMARK_CACHE_KEY_PREFIX}:{bookmark_id}"

    async def _lookup_from_cache(self, bookmark_id: str) -> Bookmark | None:
        if self._cache_read is None:
            return None

        try:
            cached_data = await self._cache_read.get(self._cache_key(bookmark_id))
        except Exception as exc:
            self._logger.warning(f"Cache read failed for {bookmark_id}: {exc}")
            return None

        if not cached_data:
            CACHE_LOOKUPS_TOTAL.labels(result="miss").inc()
            return None

        try:
            payload = BookmarkImage.model_validate_json(cached_data)
        except Exception as exc:
            self._logger.error(f"Cache deserialization error for {bookmark_id}: {exc}")
            return None

        CACHE_LOOKUPS_TOTAL.labels(result="hit").inc()
        return Bookmark(**payload.model_dump())

    async def _cache_bookmark(self, bookmark: Bookmark) -> None:
        # only fill an empty slot; a concurrent put() may already hold a newer image
        await self._write_cache(BookmarkImage.model_validate(bookmark), only_if_absent=True)

    async def _write_cache(self, image: BookmarkImage, only_if_absent: bool = False) -> None:
        if self._cache_write is None:
            return

        try:
            await self._cache_write.set(
                self._cache_key(image.id),
                image.model_dump_json(),
                ex=self._settings.BOOKMARK_CACHE_TTL_SECONDS,
                nx=only_if_absent,
            )
        except Exception as exc:
            self._logger.warning(f"Cache write failed for {image.id}: {exc}")

    async def _invalidate_cache(self, bookmark_id: str) -> None:
        if self._cache_write is None:
            return

        try:
            await self._cache_write.delete(self._cache_key(bookmark_id))
        except Exception as exc:
            self._logger.warning(f"Cache invalidation failed for {bookmark_id}: {exc}")
