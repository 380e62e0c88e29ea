"""Service context and FastAPI dependency injection.

A ServiceContext is constructed once at startup (by the FastAPI lifespan or
by the enrichment worker) and passed by reference to everything that needs
process-wide clients. There is no module-level instance; routes reach the
context through ``request.app.state.services``.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from bookmarker import models  # noqa: F401  registers tables on Base.metadata
from bookmarker.config import Settings
from bookmarker.database import create_engine, create_session_factory, init_db
from bookmarker.kafka import ChangeEventPublisher
from bookmarker.resolver import BookmarkResolver
from bookmarker.store import BookmarkStore

__all__ = [
    "RequestContext",
    "ServiceContext",
    "get_bookmark_store",
    "get_request_context",
    "get_resolver",
    "get_service_context",
]


# ============================================================================
# SERVICE CONTEXT
# ============================================================================


class ServiceContext:
    """Process-wide resources: database engine, redis clients, change publisher.

    The context is explicit: build one at startup, call initialize(), hand
    it to whoever needs it and call cleanup() at shutdown.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.logger = self._setup_logger()
        self.engine: AsyncEngine | None = None
        self.session_factory: async_sessionmaker[AsyncSession] | None = None
        self.cache_writer: redis.Redis | None = None
        self.cache_reader: redis.Redis | None = None
        self.publisher: ChangeEventPublisher | None = None
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize shared resources once at startup."""
        if self._initialized:
            return
        self.engine = create_engine(self.settings)
        self.session_factory = create_session_factory(self.engine)
        await init_db(self.engine)
        self.cache_writer = redis.from_url(self.settings.REDIS_URL, encoding="utf-8", decode_responses=True)
        # Use replica URL if available, otherwise fall back to main Redis
        replica_url = self.settings.REDIS_REPLICA_URL or self.settings.REDIS_URL
        self.cache_reader = redis.from_url(replica_url, encoding="utf-8", decode_responses=True)
        self.publisher = ChangeEventPublisher(self.settings, self.cache_writer, self.logger)
        await self.publisher.start()
        self._initialized = True
        self.logger.info(f"{self.settings.APP_NAME} service context initialized")

    async def cleanup(self) -> None:
        """Cleanup shared resources at shutdown."""
        if self.publisher is not None:
            await self.publisher.stop()
        if self.cache_writer is not None:
            await self.cache_writer.aclose()
        if self.cache_reader is not None:
            await self.cache_reader.aclose()
        if self.engine is not None:
            await self.engine.dispose()
        self._initialized = False

    def _setup_logger(self) -> logging.Logger:
        logger = logging.getLogger("bookmarker")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(self.settings.LOG_LEVEL)
        return logger

    def bookmark_store(self, logger: logging.Logger | logging.LoggerAdapter | None = None) -> BookmarkStore:
        if self.session_factory is None:
            raise RuntimeError("ServiceContext.initialize() has not been awaited")
        return BookmarkStore(
            self.session_factory,
            self.settings,
            logger or self.logger,
            publisher=self.publisher,
            cache_writer=self.cache_writer,
            cache_reader=self.cache_reader,
        )

    def resolver(self, logger: logging.Logger | logging.LoggerAdapter | None = None) -> BookmarkResolver:
        return BookmarkResolver(self.bookmark_store(logger), self.settings, logger or self.logger)


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request tracking on top of the shared service context.

    Attributes:
        services: Process-wide service context
        request_id: Unique identifier for this request
        trace_id: Correlation ID for distributed tracing
        client_ip: Client IP address
        start_time: Request start timestamp
    """

    services: ServiceContext
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())

    @property
    def settings(self) -> Settings:
        return self.services.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger carrying the request ids on every record."""
        return logging.LoggerAdapter(
            self.services.logger,
            {
                "request_id": self.request_id,
                "trace_id": self.trace_id or self.request_id,
                "client_ip": self.client_ip,
            },
        )

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def get_service_context(request: Request) -> ServiceContext:
    return request.app.state.services


def get_request_context(
    request: Request,
    services: ServiceContext = Depends(get_service_context),
) -> RequestContext:
    return RequestContext(
        services=services,
        trace_id=request.headers.get("x-trace-id"),
        client_ip=request.client.host if request.client else None,
    )


def get_bookmark_store(ctx: RequestContext = Depends(get_request_context)) -> BookmarkStore:
    return ctx.services.bookmark_store(ctx.logger)


def get_resolver(ctx: RequestContext = Depends(get_request_context)) -> BookmarkResolver:
    return ctx.services.resolver(ctx.logger)
