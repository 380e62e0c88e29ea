"""Get-or-create resolution of submitted URLs to bookmark ids.

Resolution Flow
===============
::
    ┌─────────────┐
    │ resolve(url)│
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Validate URL │──── invalid ───► INVALID_INPUT
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Derive key   │
    │ candidates   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Batch get    │
    │ all keys     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Same url     │──── yes ───────► EXISTING (no write)
    │ stored?      │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ First free   │──── none ──────► RESOURCE_EXHAUSTED
    │ candidate    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ put {id,url} │──────────────► CREATED
    └─────────────┘

Key Behaviours
===============
- All candidates are read in one batch, never one by one.
- A resubmitted URL finds its record even when it sits on a longer rung
  because a shorter one belonged to a different URL.
- Two concurrent resolves of the same new URL can both miss and both write.
  This check-then-act race is accepted; duplicates are not repaired.
"""

import logging
import time
from dataclasses import dataclass

import validators
from prometheus_client import Counter, Histogram

from bookmarker.config import Settings
from bookmarker.enums import ResolveStatus
from bookmarker.keys import generate_key_candidates
from bookmarker.models import Bookmark
from bookmarker.store import BookmarkStore

__all__ = ["BookmarkResolver", "ResolveResult"]

RESOLVE_REQUESTS_TOTAL = Counter(
    "bookmarker_resolve_requests_total",
    "Total URL resolve requests",
    ["status"],
)
RESOLVE_DURATION = Histogram(
    "bookmarker_resolve_duration_seconds",
    "Time taken to resolve a URL to a bookmark id",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)


@dataclass(frozen=True)
class ResolveResult:
    status: ResolveStatus
    bookmark_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in (ResolveStatus.CREATED, ResolveStatus.EXISTING)


def is_absolute_url(url: str) -> bool:
    return bool(url) and validators.url(url, simple_host=True) is True


class BookmarkResolver:
    """Maps a URL to its bookmark id, creating the bookmark if needed."""

    def __init__(self, store: BookmarkStore, settings: Settings, logger: logging.Logger | logging.LoggerAdapter):
        self._store = store
        self._settings = settings
        self._logger = logger

    async def resolve(self, url: str) -> ResolveResult:
        start_time = time.perf_counter()
        result = await self._resolve(url)
        RESOLVE_DURATION.observe(time.perf_counter() - start_time)
        RESOLVE_REQUESTS_TOTAL.labels(status=result.status).inc()
        return result

    async def _resolve(self, url: str) -> ResolveResult:
        if not is_absolute_url(url):
            self._logger.warning(f"Rejected invalid url: {url!r}")
            return ResolveResult(ResolveStatus.INVALID_INPUT)

        candidates = generate_key_candidates(
            url,
            min_length=self._settings.KEY_MIN_LENGTH,
            count=self._settings.KEY_CANDIDATE_COUNT,
        )
        found = await self._store.batch_get_by_keys(candidates)

        for bookmark in found.values():
            if bookmark.url == url:
                self._logger.info(f"Url already bookmarked: {url} -> {bookmark.id}")
                return ResolveResult(ResolveStatus.EXISTING, bookmark.id)

        new_id = next((candidate for candidate in candidates if candidate not in found), None)
        if new_id is None:
            self._logger.error(f"All {len(candidates)} key candidates taken for {url}")
            return ResolveResult(ResolveStatus.RESOURCE_EXHAUSTED)

        await self._store.put(Bookmark(id=new_id, url=url))
        self._logger.info(f"Bookmark created: {new_id} -> {url}")
        return ResolveResult(ResolveStatus.CREATED, new_id)
