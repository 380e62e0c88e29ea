"""Enrichment worker: consumes the bookmark change feed.

Reads batches of change events from Kafka (and from the redis fallback
stream), hands each batch to the ChangeStreamConsumer and only then commits
or acknowledges it, so delivery is at-least-once.
"""

import asyncio
import logging
from collections.abc import Awaitable
from functools import partial

from aiokafka import AIOKafkaConsumer
from prometheus_client import Counter, start_http_server
from redis.asyncio.client import Redis as AsyncRedis

from bookmarker.config import Settings, get_settings
from bookmarker.consumer import ChangeStreamConsumer
from bookmarker.dependencies import ServiceContext
from bookmarker.enricher import MetadataEnricher
from bookmarker.metadata import fetch_page_metadata
from bookmarker.schemas import ChangeEvent

__all__ = ["build_consumer", "decode_kafka_records", "decode_stream_messages", "run"]

logger = logging.getLogger(__name__)

WORKER_EVENTS_RECEIVED_TOTAL = Counter(
    "enrichment_worker_events_received_total",
    "Change events received by the enrichment worker",
    ["transport"],
)
WORKER_INVALID_EVENTS_TOTAL = Counter(
    "enrichment_worker_invalid_events_total",
    "Change feed payloads that could not be decoded",
)


def build_consumer(services: ServiceContext) -> ChangeStreamConsumer:
    settings = services.settings
    fetch = partial(
        fetch_page_metadata,
        timeout=settings.METADATA_FETCH_TIMEOUT_SECONDS,
        user_agent=settings.METADATA_USER_AGENT,
        block_private_hosts=settings.METADATA_BLOCK_PRIVATE_HOSTS,
    )
    enricher = MetadataEnricher(services.bookmark_store(), fetch, services.logger)
    return ChangeStreamConsumer(enricher, services.logger, settings.ENRICHMENT_MAX_CONCURRENCY)


def decode_kafka_records(records: dict) -> list[ChangeEvent]:
    """Flatten a getmany() result into ChangeEvents, skipping bad payloads."""
    batch: list[ChangeEvent] = []
    for topic_partition_records in records.values():
        for record in topic_partition_records:
            try:
                batch.append(ChangeEvent.model_validate_json(record.value))
            except Exception:
                WORKER_INVALID_EVENTS_TOTAL.inc()
                logger.warning("invalid kafka change payload", exc_info=True)
    return batch


def decode_stream_messages(messages: list) -> list[ChangeEvent]:
    batch: list[ChangeEvent] = []
    for _, payload in messages:
        try:
            batch.append(ChangeEvent.model_validate_json(payload["payload"]))
        except Exception:
            WORKER_INVALID_EVENTS_TOTAL.inc()
            logger.warning("invalid fallback change payload", exc_info=True)
    return batch


async def _process_kafka_batch(kafka_consumer: AIOKafkaConsumer, consumer: ChangeStreamConsumer, settings: Settings) -> None:
    records = await kafka_consumer.getmany(
        timeout_ms=settings.ENRICHMENT_BLOCK_MS, max_records=settings.ENRICHMENT_BATCH_SIZE
    )
    if not records:
        return

    batch = decode_kafka_records(records)
    if batch:
        WORKER_EVENTS_RECEIVED_TOTAL.labels(transport="kafka").inc(len(batch))
        await consumer.handle_batch(batch)
    await kafka_consumer.commit()


async def _process_redis_fallback_stream(client: AsyncRedis, consumer: ChangeStreamConsumer, settings: Settings) -> None:
    streams = await client.xreadgroup(
        groupname=settings.ENRICHMENT_CONSUMER_GROUP,
        consumername=settings.ENRICHMENT_CONSUMER_NAME,
        streams={settings.CHANGE_STREAM_KEY: ">"},
        count=settings.ENRICHMENT_BATCH_SIZE,
        block=settings.ENRICHMENT_BLOCK_MS,
    )
    if not streams:
        return

    for _, messages in streams:
        batch = decode_stream_messages(messages)
        if batch:
            WORKER_EVENTS_RECEIVED_TOTAL.labels(transport="redis").inc(len(batch))
            await consumer.handle_batch(batch)
        await client.xack(
            settings.CHANGE_STREAM_KEY,
            settings.ENRICHMENT_CONSUMER_GROUP,
            *(message_id for message_id, _ in messages),
        )


async def _ensure_fallback_group(client: AsyncRedis, settings: Settings) -> None:
    try:
        await client.xgroup_create(
            settings.CHANGE_STREAM_KEY,
            settings.ENRICHMENT_CONSUMER_GROUP,
            id="0",
            mkstream=True,
        )
    except Exception as exc:
        if "BUSYGROUP" not in str(exc):
            raise


async def _poll_safely(transport: str, poll: Awaitable[None]) -> bool:
    """Run one poll of a transport; a failure is logged so the other transport keeps flowing."""
    try:
        await poll
    except Exception:
        logger.warning(f"enrichment poll of {transport} failed", exc_info=True)
        return False
    return True


async def run(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    start_http_server(settings.ENRICHMENT_METRICS_PORT)

    services = ServiceContext(settings)
    await services.initialize()
    consumer = build_consumer(services)

    kafka_consumer = AIOKafkaConsumer(
        settings.KAFKA_CHANGE_TOPIC,
        bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
        group_id=settings.ENRICHMENT_CONSUMER_GROUP,
        client_id=settings.ENRICHMENT_CONSUMER_NAME,
        enable_auto_commit=False,
    )

    await _ensure_fallback_group(services.cache_writer, settings)
    await kafka_consumer.start()
    logger.info(f"Enrichment worker consuming {settings.KAFKA_CHANGE_TOPIC}")

    try:
        while True:
            kafka_ok = await _poll_safely("kafka", _process_kafka_batch(kafka_consumer, consumer, settings))
            stream_ok = await _poll_safely(
                "fallback stream", _process_redis_fallback_stream(services.cache_writer, consumer, settings)
            )
            if not (kafka_ok and stream_ok):
                await asyncio.sleep(1)
    finally:
        await kafka_consumer.stop()
        await services.cleanup()


if __name__ == "__main__":
    asyncio.run(run())
