"""Kafka producer management for bookmark change events.

The store hands every committed row change to a ChangeEventPublisher. Events
go to the Kafka change topic; when Kafka is unavailable they are appended to
a redis stream instead, which the enrichment worker drains as well.

Publish Flow
============
::
    ┌─────────────┐
    │ publish()   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Kafka send  │
    └──────┬──────┘
    SUCCESS?     │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Redis   │  │ Done    │
│ Stream  │  │         │
│Fallback │  │         │
└─────────┘  └─────────┘
"""

import json
import logging

import redis.asyncio as redis
from aiokafka import AIOKafkaProducer
from prometheus_client import Counter

from bookmarker.config import Settings
from bookmarker.schemas import ChangeEvent

__all__ = ["ChangeEventPublisher"]

CHANGE_EVENTS_PUBLISHED_TOTAL = Counter(
    "bookmarker_change_events_published_total",
    "Change events published",
    ["transport"],
)
CHANGE_EVENTS_FAILED_TOTAL = Counter(
    "bookmarker_change_events_failed_total",
    "Change events that could not be published on any transport",
)


class ChangeEventPublisher:
    """Publishes ChangeEvents to Kafka with a redis stream fallback."""

    def __init__(self, settings: Settings, cache: redis.Redis | None, logger: logging.Logger | logging.LoggerAdapter):
        self._settings = settings
        self._cache = cache
        self._logger = logger
        self._producer: AIOKafkaProducer | None = None

    async def start(self) -> None:
        if self._producer is not None:
            return

        producer = AIOKafkaProducer(
            bootstrap_servers=self._settings.KAFKA_BOOTSTRAP_SERVERS,
            value_serializer=lambda payload: json.dumps(payload).encode("utf-8"),
        )
        try:
            await producer.start()
            self._producer = producer
        except Exception as exc:
            self._logger.warning(f"Kafka unavailable, change events will use the redis stream: {exc}")
            await producer.stop()
            self._producer = None

    async def stop(self) -> None:
        if self._producer is None:
            return
        await self._producer.stop()
        self._producer = None

    async def publish(self, event: ChangeEvent) -> bool:
        """Publish ``event``; returns False only if every transport failed."""
        if self._producer is not None:
            try:
                await self._producer.send_and_wait(
                    self._settings.KAFKA_CHANGE_TOPIC,
                    event.model_dump(mode="json"),
                    key=event.bookmark_id.encode("utf-8"),
                )
                CHANGE_EVENTS_PUBLISHED_TOTAL.labels(transport="kafka").inc()
                return True
            except Exception as exc:
                self._logger.error(f"Kafka publish error for {event.bookmark_id}: {exc}")

        return await self._publish_to_stream(event)

    async def _publish_to_stream(self, event: ChangeEvent) -> bool:
        if self._cache is None:
            CHANGE_EVENTS_FAILED_TOTAL.inc()
            self._logger.error(f"Change event dropped for {event.bookmark_id}: no transport available")
            return False

        try:
            await self._cache.xadd(
                self._settings.CHANGE_STREAM_KEY,
                {"payload": event.model_dump_json()},
            )
            CHANGE_EVENTS_PUBLISHED_TOTAL.labels(transport="redis").inc()
            self._logger.debug(f"Change event stored in redis stream for {event.bookmark_id}")
            return True
        except Exception as exc:
            CHANGE_EVENTS_FAILED_TOTAL.inc()
            self._logger.error(f"Redis stream fallback failed for {event.bookmark_id}: {exc}")
            return False
