"""Metadata enrichment of stored bookmarks.

The enricher fetches a page's Open Graph metadata and overwrites the
bookmark with it. Any failure is logged and reported as a FAILED result; the
stored record is left as it was and nothing is retried here. A retry only
happens if the change feed redelivers the insert event.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from prometheus_client import Counter

from bookmarker.enums import EnrichmentStatus
from bookmarker.metadata import PageMetadata
from bookmarker.models import Bookmark
from bookmarker.store import BookmarkStore

__all__ = ["EnrichmentResult", "MetadataEnricher", "MetadataFetcher"]

MetadataFetcher = Callable[[str], Awaitable[PageMetadata]]

ENRICHMENTS_TOTAL = Counter(
    "bookmarker_enrichments_total",
    "Bookmark enrichment attempts",
    ["status"],
)


@dataclass(frozen=True)
class EnrichmentResult:
    bookmark_id: str | None
    status: EnrichmentStatus
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is EnrichmentStatus.ENRICHED


class MetadataEnricher:
    def __init__(
        self,
        store: BookmarkStore,
        fetch_metadata: MetadataFetcher,
        logger: logging.Logger | logging.LoggerAdapter,
    ):
        self._store = store
        self._fetch_metadata = fetch_metadata
        self._logger = logger

    async def enrich(self, bookmark_id: str, url: str) -> EnrichmentResult:
        try:
            metadata = await self._fetch_metadata(url)
            bookmark = Bookmark(
                id=bookmark_id,
                url=url,
                title=metadata.title,
                description=metadata.description,
                image_url=metadata.image_url,
                type=metadata.type,
            )
            await self._store.put(bookmark)
        except Exception as exc:
            ENRICHMENTS_TOTAL.labels(status=EnrichmentStatus.FAILED).inc()
            self._logger.error(f"Enrichment failed for {bookmark_id} ({url}): {exc}", exc_info=True)
            return EnrichmentResult(bookmark_id, EnrichmentStatus.FAILED, str(exc))

        ENRICHMENTS_TOTAL.labels(status=EnrichmentStatus.ENRICHED).inc()
        self._logger.info(f"Bookmark enriched: {bookmark_id} title={metadata.title!r} type={metadata.type!r}")
        return EnrichmentResult(bookmark_id, EnrichmentStatus.ENRICHED)
