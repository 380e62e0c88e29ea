"""Change feed batch handling.

Flow Diagram — handle_batch()
=============================
::
    ┌──────────────┐
    │ batch of     │
    │ ChangeEvents │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ keep INSERT  │
    │ events only  │
    └──────┬───────┘
           ▼
    ┌──────────────┐     ┌──────────┐
    │ one task per │────►│ enrich() │  (concurrently)
    │ insert       │     └──────────┘
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ await all,   │
    │ tag results  │
    └──────────────┘

A failure in one task is caught at that task's boundary and recorded in its
result. The batch as a whole always succeeds: reporting failure would make
the feed redeliver every event in it, including the ones already handled.
"""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from prometheus_client import Counter

from bookmarker.enricher import EnrichmentResult, MetadataEnricher
from bookmarker.enums import ChangeEventKind, EnrichmentStatus
from bookmarker.schemas import ChangeEvent

__all__ = ["BatchResult", "ChangeStreamConsumer"]

CHANGE_EVENTS_CONSUMED_TOTAL = Counter(
    "bookmarker_change_events_consumed_total",
    "Change events handed to the consumer",
    ["kind"],
)


@dataclass
class BatchResult:
    """Per-task outcomes of one handled batch."""

    total_events: int = 0
    results: list[EnrichmentResult] = field(default_factory=list)

    @property
    def inserts(self) -> int:
        return len(self.results)

    @property
    def enriched(self) -> int:
        return sum(1 for result in self.results if result.ok)

    @property
    def failed(self) -> int:
        return self.inserts - self.enriched


class ChangeStreamConsumer:
    def __init__(
        self,
        enricher: MetadataEnricher,
        logger: logging.Logger | logging.LoggerAdapter,
        max_concurrency: int = 0,
    ):
        self._enricher = enricher
        self._logger = logger
        self._max_concurrency = max_concurrency

    async def handle_batch(self, events: Sequence[ChangeEvent]) -> BatchResult:
        self._logger.info(f"Change batch received: {len(events)} events")

        inserts = []
        for event in events:
            CHANGE_EVENTS_CONSUMED_TOTAL.labels(kind=event.kind).inc()
            if event.kind is ChangeEventKind.INSERT:
                inserts.append(event)

        semaphore = asyncio.Semaphore(self._max_concurrency) if self._max_concurrency > 0 else None
        results = await asyncio.gather(*(self._run_task(event, semaphore) for event in inserts))

        batch = BatchResult(total_events=len(events), results=list(results))
        self._logger.info(
            f"Change batch handled: {batch.inserts} inserts, {batch.enriched} enriched, {batch.failed} failed"
        )
        return batch

    async def _run_task(self, event: ChangeEvent, semaphore: asyncio.Semaphore | None) -> EnrichmentResult:
        try:
            if semaphore is None:
                return await self._enrich(event)
            async with semaphore:
                return await self._enrich(event)
        except Exception as exc:
            self._logger.error(f"Enrichment task failed for event {event.event_id}: {exc}", exc_info=True)
            return EnrichmentResult(event.bookmark_id, EnrichmentStatus.FAILED, str(exc))

    async def _enrich(self, event: ChangeEvent) -> EnrichmentResult:
        self._logger.debug(f"Enriching event {event.event_id}")
        image = event.new_image
        if not image:
            raise ValueError(f"INSERT event {event.event_id} has no new image")
        return await self._enricher.enrich(image["id"], image["url"])
