"""FastAPI application entry point for the bookmarker service.

How to Use
===========
**Run with uvicorn**::
    uvicorn bookmarker.main:app --host 0.0.0.0 --port 8080

**Add a bookmark**::
    curl -X POST http://localhost:8080/api/bookmarks \
         -H "Content-Type: application/json" \
         -d '{"url": "https://example.com"}'

Key Behaviours
===============
- The lifespan builds one ServiceContext and stores it on app.state.
- Database tables are created automatically on startup.
- Change events are published from this process; enrichment runs in the
  separate worker (``python -m bookmarker.worker``).
- Prometheus metrics are exposed at /metrics.
"""

__all__ = ["app", "create_app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from bookmarker.config import Settings, get_settings
from bookmarker.dependencies import ServiceContext
from bookmarker.routes import router


def create_app(settings: Settings) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        services = ServiceContext(settings)
        await services.initialize()
        app.state.services = services
        yield
        await services.cleanup()

    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Bookmarks with short ids and Open Graph previews",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=False,
        should_respect_env_var=False,
    ).instrument(app).expose(app)

    app.include_router(router)
    return app


app = create_app(get_settings())
