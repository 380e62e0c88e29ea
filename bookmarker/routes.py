"""FastAPI route definitions for the bookmarker REST API.

API Endpoint Overview
=====================
::
    GET    /health
        └─ HealthResponse (200)

    POST   /api/bookmarks
        ├─ BookmarkCreate (request body)
        └─ BookmarkCreated (201 new / 200 existing) or 400/500

    GET    /api/bookmarks[?type=]
        └─ BookmarkListResponse (200)

    GET    /api/bookmarks/types
        └─ BookmarkTypesResponse (200)

    GET    /api/bookmarks/:id
        └─ BookmarkResponse (200) or 404

    DELETE /api/bookmarks/:id
        └─ DeleteBookmarkResponse (200)

    GET    /preview/:id
        └─ text/html (200) or 404

    GET    /:id
        └─ 302 Redirect or 404

Key Behaviours
===============
- Only POST /api/bookmarks goes through the resolver; every other route
  talks straight to the store.
- Resolve results are translated to HTTP status codes here and nowhere else.
"""

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy import text

from bookmarker.dependencies import (
    RequestContext,
    ServiceContext,
    get_bookmark_store,
    get_request_context,
    get_resolver,
    get_service_context,
)
from bookmarker.enums import HealthStatus, ResolveStatus
from bookmarker.models import Bookmark
from bookmarker.preview import render_preview
from bookmarker.resolver import BookmarkResolver
from bookmarker.schemas import (
    BookmarkCreate,
    BookmarkCreated,
    BookmarkListResponse,
    BookmarkResponse,
    BookmarkTypesResponse,
    DeleteBookmarkResponse,
    HealthResponse,
)
from bookmarker.store import BookmarkStore

__all__ = ["router"]

router = APIRouter()

NOT_FOUND_DETAIL = "Bookmark not found"


async def _require_bookmark(store: BookmarkStore, bookmark_id: str, ctx: RequestContext) -> Bookmark:
    bookmark = await store.get_by_key(bookmark_id)
    if bookmark is None:
        ctx.logger.warning(f"Bookmark not found: {bookmark_id}")
        raise HTTPException(status_code=404, detail=NOT_FOUND_DETAIL)
    return bookmark


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(
    ctx: RequestContext = Depends(get_request_context),
    services: ServiceContext = Depends(get_service_context),
) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        async with services.session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    try:
        await services.cache_writer.ping()
    except Exception as e:
        ctx.logger.error(f"Cache health check failed: {e}")
        cache_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post("/api/bookmarks", response_model=BookmarkCreated, status_code=201, tags=["bookmarks"])
async def add_bookmark(
    payload: BookmarkCreate,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    resolver: BookmarkResolver = Depends(get_resolver),
) -> BookmarkCreated:
    ctx.logger.info(f"Add bookmark requested: {payload.url}")
    result = await resolver.resolve(payload.url)

    if result.status is ResolveStatus.INVALID_INPUT:
        raise HTTPException(status_code=400, detail="Url not valid")
    if result.status is ResolveStatus.RESOURCE_EXHAUSTED:
        raise HTTPException(status_code=500, detail="No free bookmark id for this url")
    if result.status is ResolveStatus.EXISTING:
        response.status_code = 200

    ctx.logger.info(f"Bookmark {result.status}: {result.bookmark_id} in {ctx.get_duration():.1f}ms")
    return BookmarkCreated(
        id=result.bookmark_id,
        short_url=f"{ctx.settings.BASE_URL}/{result.bookmark_id}",
    )


@router.get("/api/bookmarks", response_model=BookmarkListResponse, tags=["bookmarks"])
async def list_bookmarks(
    type: str | None = None,
    store: BookmarkStore = Depends(get_bookmark_store),
) -> BookmarkListResponse:
    bookmarks = [
        BookmarkResponse.model_validate(bookmark)
        async for bookmark in store.scan_all()
        if type is None or bookmark.type == type
    ]
    return BookmarkListResponse(bookmarks=bookmarks)


@router.get("/api/bookmarks/types", response_model=BookmarkTypesResponse, tags=["bookmarks"])
async def list_bookmark_types(store: BookmarkStore = Depends(get_bookmark_store)) -> BookmarkTypesResponse:
    types = {bookmark.type async for bookmark in store.scan_all() if bookmark.type}
    return BookmarkTypesResponse(types=sorted(types))


@router.get("/api/bookmarks/{bookmark_id}", response_model=BookmarkResponse, tags=["bookmarks"])
async def get_bookmark(
    bookmark_id: str,
    ctx: RequestContext = Depends(get_request_context),
    store: BookmarkStore = Depends(get_bookmark_store),
) -> BookmarkResponse:
    bookmark = await _require_bookmark(store, bookmark_id, ctx)
    return BookmarkResponse.model_validate(bookmark)


@router.delete("/api/bookmarks/{bookmark_id}", response_model=DeleteBookmarkResponse, tags=["bookmarks"])
async def delete_bookmark(
    bookmark_id: str,
    ctx: RequestContext = Depends(get_request_context),
    store: BookmarkStore = Depends(get_bookmark_store),
) -> DeleteBookmarkResponse:
    ctx.logger.info(f"Delete bookmark requested: {bookmark_id}")
    return DeleteBookmarkResponse(deleted=await store.delete_by_key(bookmark_id))


@router.get("/preview/{bookmark_id}", response_class=HTMLResponse, tags=["preview"])
async def preview_bookmark(
    bookmark_id: str,
    ctx: RequestContext = Depends(get_request_context),
    store: BookmarkStore = Depends(get_bookmark_store),
) -> HTMLResponse:
    bookmark = await _require_bookmark(store, bookmark_id, ctx)
    return HTMLResponse(content=render_preview(bookmark))


@router.get("/{bookmark_id}", tags=["redirect"])
async def redirect_to_url(
    bookmark_id: str,
    ctx: RequestContext = Depends(get_request_context),
    store: BookmarkStore = Depends(get_bookmark_store),
) -> RedirectResponse:
    bookmark = await _require_bookmark(store, bookmark_id, ctx)
    ctx.logger.info(f"Redirect: {bookmark_id} -> {bookmark.url}")
    return RedirectResponse(url=bookmark.url, status_code=302)
