"""
CQRS — イベントストア

コマンドハンドラが状態変更と同じトランザクションでイベントを追記する。
投影ループは processed = false の行を時系列順に読み出し、
リードモデルを更新したら processed = true にする。
"""

import json

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..schema import cqrs_event_store
from .events import EVENT_TYPES, DomainEvent


class UnknownEventTypeError(ValueError):
    pass


async def append_event(session: AsyncSession, event: DomainEvent) -> None:
    """イベントを JSON テキストにシリアライズして追記する (commit は呼び出し側)。"""
    await session.execute(
        insert(cqrs_event_store).values(
            event_id=str(event.event_id),
            aggregate_id=str(event.aggregate_id),
            aggregate_type=event.aggregate_type,
            event_type=event.event_type(),
            event_data=event.model_dump_json(),
            timestamp=event.timestamp,
            processed=False,
        )
    )


async def load_unprocessed(session: AsyncSession) -> list[dict]:
    result = await session.execute(
        select(cqrs_event_store)
        .where(cqrs_event_store.c.processed.is_(False))
        .order_by(cqrs_event_store.c.timestamp.asc())
    )
    return [_to_dict(row) for row in result.fetchall()]


async def mark_processed(session: AsyncSession, event_id: str) -> None:
    await session.execute(
        update(cqrs_event_store)
        .where(cqrs_event_store.c.event_id == event_id)
        .where(cqrs_event_store.c.processed.is_(False))
        .values(processed=True)
    )


async def load_all_events(session: AsyncSession) -> list[dict]:
    """すべてのイベントを時系列順に返す（デバッグ・学習用）。"""
    result = await session.execute(
        select(cqrs_event_store).order_by(cqrs_event_store.c.timestamp.asc())
    )
    return [
        {**_to_dict(row), "event_data": json.loads(row.event_data)}
        for row in result.fetchall()
    ]


def deserialize(record: dict) -> DomainEvent:
    """保存された行をイベントモデルに戻す。"""
    event_cls = EVENT_TYPES.get(record["event_type"])
    if event_cls is None:
        raise UnknownEventTypeError(f"Unknown event type: {record['event_type']}")
    return event_cls.model_validate_json(record["event_data"])


def _to_dict(row) -> dict:
    return {
        "event_id": row.event_id,
        "aggregate_id": row.aggregate_id,
        "aggregate_type": row.aggregate_type,
        "event_type": row.event_type,
        "event_data": row.event_data,
        "timestamp": row.timestamp.isoformat() if row.timestamp else None,
        "processed": row.processed,
    }
