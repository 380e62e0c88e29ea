"""Shared pytest fixtures: settings, an in-memory store and an API client."""

import logging
from collections.abc import AsyncIterator, Iterable
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from bookmarker.config import Settings
from bookmarker.dependencies import get_bookmark_store, get_resolver, get_service_context
from bookmarker.main import app
from bookmarker.models import BOOKMARK_FIELDS, Bookmark
from bookmarker.resolver import BookmarkResolver


def copy_bookmark(bookmark: Bookmark) -> Bookmark:
    return Bookmark(**{name: getattr(bookmark, name) for name in BOOKMARK_FIELDS})


class InMemoryBookmarkStore:
    """Dict-backed stand-in for BookmarkStore with the same contract."""

    def __init__(self) -> None:
        self.rows: dict[str, Bookmark] = {}
        self.batch_calls: list[set[str]] = []
        self.puts: list[Bookmark] = []

    def seed(self, *bookmarks: Bookmark) -> None:
        for bookmark in bookmarks:
            self.rows[bookmark.id] = copy_bookmark(bookmark)

    async def get_by_key(self, bookmark_id: str) -> Bookmark | None:
        bookmark = self.rows.get(bookmark_id)
        return copy_bookmark(bookmark) if bookmark else None

    async def batch_get_by_keys(self, bookmark_ids: Iterable[str]) -> dict[str, Bookmark]:
        keys = set(bookmark_ids)
        self.batch_calls.append(keys)
        return {key: copy_bookmark(self.rows[key]) for key in keys if key in self.rows}

    async def put(self, bookmark: Bookmark) -> bool:
        created = bookmark.id not in self.rows
        self.rows[bookmark.id] = copy_bookmark(bookmark)
        self.puts.append(copy_bookmark(bookmark))
        return created

    async def delete_by_key(self, bookmark_id: str) -> bool:
        return self.rows.pop(bookmark_id, None) is not None

    async def scan_all(self) -> AsyncIterator[Bookmark]:
        for key in sorted(self.rows):
            yield copy_bookmark(self.rows[key])


@pytest.fixture
def settings() -> Settings:
    return Settings(KEY_MIN_LENGTH=3, KEY_CANDIDATE_COUNT=12, BASE_URL="http://bm.test")


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("bookmarker.tests")


@pytest.fixture
def store() -> InMemoryBookmarkStore:
    return InMemoryBookmarkStore()


@pytest.fixture
def resolver(store: InMemoryBookmarkStore, settings: Settings, logger: logging.Logger) -> BookmarkResolver:
    return BookmarkResolver(store, settings, logger)


@pytest.fixture
def services(settings: Settings, logger: logging.Logger) -> MagicMock:
    """Service context double for routes that touch it directly (health)."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session_factory = MagicMock()
    session_factory.return_value.__aenter__.return_value = session
    session_factory.return_value.__aexit__.return_value = False

    services = MagicMock()
    services.settings = settings
    services.logger = logger
    services.session_factory = session_factory
    services.cache_writer = AsyncMock()
    services.cache_writer.ping = AsyncMock(return_value=True)
    return services


@pytest_asyncio.fixture(scope="function")
async def client(
    store: InMemoryBookmarkStore,
    resolver: BookmarkResolver,
    services: MagicMock,
) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_service_context] = lambda: services
    app.dependency_overrides[get_bookmark_store] = lambda: store
    app.dependency_overrides[get_resolver] = lambda: resolver

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
