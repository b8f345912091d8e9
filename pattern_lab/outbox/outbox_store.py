"""
Outbox — アウトボックステーブル

Transactional Outbox パターンの中核。
集約の変更と同じトランザクションでイベント行を追記し、
後からパブリッシャーが未処理行を読み出して外部へ送る。

processed は false → true の一方向にしか変化しない。
更新系の SQL はすべて processed = false を条件に含める。
"""

import json
from datetime import datetime, timezone

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..schema import outbox_events


async def append_event(
    session: AsyncSession,
    aggregate_id: str,
    aggregate_type: str,
    event_type: str,
    event_data: dict,
) -> int:
    """
    イベント行を追記する (commit は呼び出し側)。

    集約の更新と同じセッションで呼ぶことで、
    両方が一緒にコミットされるか、一緒にロールバックされる。
    """
    result = await session.execute(
        insert(outbox_events)
        .values(
            aggregate_id=aggregate_id,
            aggregate_type=aggregate_type,
            event_type=event_type,
            event_data=json.dumps(event_data, default=str),
            created_at=datetime.now(timezone.utc),
            processed=False,
        )
        .returning(outbox_events.c.id)
    )
    return result.scalar_one()


async def get_event(session: AsyncSession, event_id: int) -> dict | None:
    result = await session.execute(
        select(outbox_events).where(outbox_events.c.id == event_id)
    )
    row = result.fetchone()
    return _to_dict(row) if row else None


async def load_unprocessed(session: AsyncSession) -> list[dict]:
    """未処理のイベントを古い順に返す。"""
    result = await session.execute(
        select(outbox_events)
        .where(outbox_events.c.processed.is_(False))
        .order_by(outbox_events.c.created_at.asc(), outbox_events.c.id.asc())
    )
    return [_to_dict(row) for row in result.fetchall()]


async def load_all(session: AsyncSession) -> list[dict]:
    """すべてのイベントを返す（学習・デバッグ用）。"""
    result = await session.execute(
        select(outbox_events).order_by(outbox_events.c.id.asc())
    )
    return [_to_dict(row) for row in result.fetchall()]


async def mark_processed(session: AsyncSession, event_id: int) -> bool:
    result = await session.execute(
        update(outbox_events)
        .where(outbox_events.c.id == event_id)
        .where(outbox_events.c.processed.is_(False))
        .values(processed=True, processed_at=datetime.now(timezone.utc))
    )
    return result.rowcount == 1


async def record_error(session: AsyncSession, event_id: int, message: str) -> None:
    """失敗理由を記録する。processed は false のまま次のサイクルで再送される。"""
    await session.execute(
        update(outbox_events)
        .where(outbox_events.c.id == event_id)
        .where(outbox_events.c.processed.is_(False))
        .values(error_message=message)
    )


async def count_events(session: AsyncSession) -> tuple[int, int]:
    """(全件数, 未処理件数) を返す。"""
    total = await session.scalar(select(func.count()).select_from(outbox_events))
    unprocessed = await session.scalar(
        select(func.count())
        .select_from(outbox_events)
        .where(outbox_events.c.processed.is_(False))
    )
    return total or 0, unprocessed or 0


async def delete_processed_before(session: AsyncSession, cutoff: datetime) -> int:
    result = await session.execute(
        delete(outbox_events)
        .where(outbox_events.c.processed.is_(True))
        .where(outbox_events.c.created_at < cutoff)
    )
    return result.rowcount


def _to_dict(row) -> dict:
    return {
        "id": row.id,
        "aggregate_id": row.aggregate_id,
        "aggregate_type": row.aggregate_type,
        "event_type": row.event_type,
        "event_data": row.event_data,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "processed": row.processed,
        "processed_at": row.processed_at.isoformat() if row.processed_at else None,
        "error_message": row.error_message,
    }
