import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import update

from pattern_lab.exceptions import EventAlreadyProcessedError, OutboxEventNotFoundError
from pattern_lab.outbox import commands, outbox_store
from pattern_lab.outbox.publisher import CHANNEL, MessagePublisher, OutboxPublisher, seconds_until
from pattern_lab.schema import outbox_events


async def _create_order(session_factory):
    async with session_factory() as session:
        return await commands.create_order(
            session, "Lee", "lee@example.com", "Mouse", 1, Decimal("2500.00")
        )


async def _events(session_factory):
    async with session_factory() as session:
        return await outbox_store.load_all(session)


class FlakyPublisher(MessagePublisher):
    def __init__(self, failures: int) -> None:
        super().__init__(latency=0)
        self.failures = failures
        self.sent: list[int] = []

    async def publish(self, event: dict) -> None:
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("broker down")
        self.sent.append(event["id"])


@pytest.mark.asyncio
async def test_publishes_and_marks_processed(session_factory, publisher, fake_redis):
    order = await _create_order(session_factory)

    assert await publisher.process_outbox_events() == 1

    [event] = await _events(session_factory)
    assert event["processed"] is True
    assert event["processed_at"] is not None
    assert event["error_message"] is None

    [(channel, message)] = fake_redis.published
    assert channel == CHANNEL
    payload = json.loads(message)
    assert payload["event_type"] == "ORDER_CREATED"
    assert payload["data"]["order_number"] == order["order_number"]

    # nothing left to send
    assert await publisher.process_outbox_events() == 0
    assert len(fake_redis.published) == 1


@pytest.mark.asyncio
async def test_failed_publish_records_error_and_retries(session_factory):
    await _create_order(session_factory)
    sink = FlakyPublisher(failures=1)
    publisher = OutboxPublisher(session_factory, sink)

    assert await publisher.process_outbox_events() == 0
    [event] = await _events(session_factory)
    assert event["processed"] is False
    assert event["error_message"] == "broker down"

    assert await publisher.process_outbox_events() == 1
    [event] = await _events(session_factory)
    assert event["processed"] is True
    assert sink.sent == [event["id"]]


@pytest.mark.asyncio
async def test_events_are_published_oldest_first(session_factory):
    first = await _create_order(session_factory)
    async with session_factory() as session:
        await commands.confirm_order(session, first["id"])
    await _create_order(session_factory)

    sink = FlakyPublisher(failures=0)
    await OutboxPublisher(session_factory, sink).process_outbox_events()

    ids = [e["id"] for e in await _events(session_factory)]
    assert sink.sent == ids


@pytest.mark.asyncio
async def test_processed_flag_is_never_reverted(session_factory, publisher):
    await _create_order(session_factory)
    await publisher.process_outbox_events()
    [event] = await _events(session_factory)

    async with session_factory() as session:
        await outbox_store.record_error(session, event["id"], "late failure")
        assert await outbox_store.mark_processed(session, event["id"]) is False
        await session.commit()

    [event] = await _events(session_factory)
    assert event["processed"] is True
    assert event["error_message"] is None


@pytest.mark.asyncio
async def test_publish_event_immediately(session_factory, publisher):
    await _create_order(session_factory)
    [event] = await _events(session_factory)

    processed = await publisher.publish_event_immediately(event["id"])
    assert processed["processed"] is True

    with pytest.raises(EventAlreadyProcessedError):
        await publisher.publish_event_immediately(event["id"])
    with pytest.raises(OutboxEventNotFoundError):
        await publisher.publish_event_immediately(12345)


@pytest.mark.asyncio
async def test_cleanup_removes_only_old_processed_events(session_factory, publisher):
    await _create_order(session_factory)
    await _create_order(session_factory)
    await _create_order(session_factory)
    old_processed, recent_processed, old_pending = await _events(session_factory)

    async with session_factory() as session:
        await outbox_store.mark_processed(session, old_processed["id"])
        await outbox_store.mark_processed(session, recent_processed["id"])
        await session.execute(
            update(outbox_events)
            .where(outbox_events.c.id.in_([old_processed["id"], old_pending["id"]]))
            .values(created_at=datetime.now(timezone.utc) - timedelta(days=10))
        )
        await session.commit()

    assert await publisher.cleanup_processed_events() == 1

    remaining = {e["id"] for e in await _events(session_factory)}
    assert remaining == {recent_processed["id"], old_pending["id"]}


@pytest.mark.asyncio
async def test_stats(session_factory, publisher):
    assert await publisher.get_stats() == {
        "total_events": 0,
        "processed_events": 0,
        "unprocessed_events": 0,
        "processed_percentage": 0.0,
    }

    await _create_order(session_factory)
    await _create_order(session_factory)
    [first, _] = await _events(session_factory)
    await publisher.publish_event_immediately(first["id"])

    stats = await publisher.get_stats()
    assert stats["total_events"] == 2
    assert stats["processed_events"] == 1
    assert stats["processed_percentage"] == 50.0
    assert await publisher.get_unprocessed_count() == 1


def test_seconds_until_next_cleanup_hour():
    assert seconds_until(2, datetime(2024, 5, 1, 1, 30)) == 30 * 60
    assert seconds_until(2, datetime(2024, 5, 1, 2, 0)) == 24 * 3600
    assert seconds_until(2, datetime(2024, 5, 1, 23, 0)) == 3 * 3600
