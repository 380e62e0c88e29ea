"""Tests for the enrichment worker's batch plumbing."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from bookmarker.consumer import BatchResult, ChangeStreamConsumer
from bookmarker.enums import ChangeEventKind
from bookmarker.schemas import ChangeEvent
from bookmarker.worker import (
    _poll_safely,
    _process_kafka_batch,
    _process_redis_fallback_stream,
    build_consumer,
    decode_kafka_records,
    decode_stream_messages,
)

INSERT_PAYLOAD = {
    "event_id": "e1",
    "kind": "INSERT",
    "bookmark_id": "Lc4",
    "new_image": {"id": "Lc4", "url": "https://example.com/a"},
}


def kafka_record(payload: dict | bytes) -> SimpleNamespace:
    value = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    return SimpleNamespace(value=value)


@pytest.fixture
def batch_consumer() -> AsyncMock:
    consumer = AsyncMock(spec=ChangeStreamConsumer)
    consumer.handle_batch = AsyncMock(return_value=BatchResult())
    return consumer


def test_decode_kafka_records_skips_invalid_payloads() -> None:
    records = {
        "tp0": [kafka_record(INSERT_PAYLOAD), kafka_record({"kind": "UPSERT"})],
        "tp1": [kafka_record({**INSERT_PAYLOAD, "event_id": "e2", "kind": "REMOVE", "new_image": None})],
    }

    events = decode_kafka_records(records)

    assert [(e.event_id, e.kind) for e in events] == [("e1", ChangeEventKind.INSERT), ("e2", ChangeEventKind.REMOVE)]


def test_decode_kafka_records_skips_non_json_bytes() -> None:
    records = {"tp0": [kafka_record(b"not json"), kafka_record(b"\xff\xfe"), kafka_record(INSERT_PAYLOAD)]}

    events = decode_kafka_records(records)

    assert [e.event_id for e in events] == ["e1"]


def test_decode_stream_messages() -> None:
    event = ChangeEvent.model_validate(INSERT_PAYLOAD)
    messages = [("1-0", {"payload": event.model_dump_json()}), ("2-0", {"payload": "garbage"})]

    events = decode_stream_messages(messages)

    assert events == [event]


@pytest.mark.asyncio
async def test_kafka_batch_is_committed_after_handling(batch_consumer, settings) -> None:
    kafka_consumer = AsyncMock()
    kafka_consumer.getmany = AsyncMock(return_value={"tp0": [kafka_record(INSERT_PAYLOAD)]})
    calls = []
    batch_consumer.handle_batch.side_effect = lambda batch: calls.append("handle") or BatchResult()
    kafka_consumer.commit = AsyncMock(side_effect=lambda: calls.append("commit"))

    await _process_kafka_batch(kafka_consumer, batch_consumer, settings)

    assert calls == ["handle", "commit"]
    kafka_consumer.getmany.assert_awaited_once_with(
        timeout_ms=settings.ENRICHMENT_BLOCK_MS, max_records=settings.ENRICHMENT_BATCH_SIZE
    )


@pytest.mark.asyncio
async def test_empty_kafka_poll_does_nothing(batch_consumer, settings) -> None:
    kafka_consumer = AsyncMock()
    kafka_consumer.getmany = AsyncMock(return_value={})

    await _process_kafka_batch(kafka_consumer, batch_consumer, settings)

    batch_consumer.handle_batch.assert_not_awaited()
    kafka_consumer.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_fallback_stream_batch_is_acknowledged(batch_consumer, settings) -> None:
    payload = ChangeEvent.model_validate(INSERT_PAYLOAD).model_dump_json()
    redis_client = AsyncMock()
    redis_client.xreadgroup = AsyncMock(return_value=[(settings.CHANGE_STREAM_KEY, [("1-0", {"payload": payload})])])
    redis_client.xack = AsyncMock(return_value=1)

    await _process_redis_fallback_stream(redis_client, batch_consumer, settings)

    batch_consumer.handle_batch.assert_awaited_once()
    redis_client.xack.assert_awaited_once_with(
        settings.CHANGE_STREAM_KEY, settings.ENRICHMENT_CONSUMER_GROUP, "1-0"
    )


def test_build_consumer_wires_settings(settings, logger) -> None:
    services = MagicMock()
    services.settings = settings.model_copy(update={"ENRICHMENT_MAX_CONCURRENCY": 4})
    services.logger = logger

    consumer = build_consumer(services)

    assert isinstance(consumer, ChangeStreamConsumer)
    services.bookmark_store.assert_called_once_with()


@pytest.mark.asyncio
async def test_kafka_batch_of_only_bad_records_is_still_committed(batch_consumer, settings) -> None:
    kafka_consumer = AsyncMock()
    kafka_consumer.getmany = AsyncMock(return_value={"tp0": [kafka_record(b"not json")]})

    await _process_kafka_batch(kafka_consumer, batch_consumer, settings)

    batch_consumer.handle_batch.assert_not_awaited()
    kafka_consumer.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_poll_safely_contains_transport_failure() -> None:
    failing = AsyncMock(side_effect=ConnectionError("broker down"))

    assert await _poll_safely("kafka", failing()) is False
    assert await _poll_safely("kafka", AsyncMock()()) is True
