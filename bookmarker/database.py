"""Database engine and session factory construction for bookmarker.

This module builds the SQLAlchemy async engine and session factory from the
settings object. Nothing is created at import time; the service context owns
the engine for the lifetime of the process.

How to Use
===========
**Step 1 — Build the engine on startup**::
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    await init_db(engine)  # Creates tables

**Step 2 — Open short sessions**::
    async with session_factory() as session:
        bookmark = await session.get(Bookmark, "Lc4")

**Step 3 — Cleanup on shutdown**::
    await engine.dispose()

Key Behaviours
===============
- Connection pooling is configured from settings.
- Sessions do not expire attributes on commit, so returned rows stay readable.
- Tables are created automatically on application startup.

Classes:
    Base:  SQLAlchemy declarative base for all models.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from bookmarker.config import Settings

__all__ = ["Base", "create_engine", "create_session_factory", "init_db"]


class Base(DeclarativeBase):
    pass


def create_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
