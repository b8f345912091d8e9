"""
CQRS — 投影ループ

固定間隔でイベントストアの未処理行を古い順に読み出し、
1件ずつ別トランザクションでリードモデルに投影する。

投影に失敗したイベントはログに残すだけで、呼び出し元には伝えない。
失敗したイベントも処理済みにする (再試行はしない)。
"""

import asyncio
import logging

from sqlalchemy.orm import sessionmaker

from . import event_store, projections

logger = logging.getLogger(__name__)


async def process_events(session_factory: sessionmaker) -> int:
    """1 サイクル分の投影。処理したイベント数を返す。"""
    async with session_factory() as session:
        records = await event_store.load_unprocessed(session)

    for record in records:
        async with session_factory() as session:
            try:
                await projections.handle_event(session, record)
            except Exception:
                await session.rollback()
                logger.exception(
                    "Failed to project event %s (%s)",
                    record["event_id"],
                    record["event_type"],
                )
            else:
                logger.info("Projected event: %s", record["event_type"])

            # 投影結果と processed フラグは同じトランザクションでコミットする
            await event_store.mark_processed(session, record["event_id"])
            await session.commit()

    return len(records)


async def run_projection_loop(
    session_factory: sessionmaker,
    interval: float,
    shutdown_event: asyncio.Event,
) -> None:
    """shutdown_event がセットされるまで interval 秒ごとに投影する。"""
    logger.info("Projection loop started (interval=%ss)", interval)
    while not shutdown_event.is_set():
        try:
            await process_events(session_factory)
        except Exception:
            logger.exception("Projection cycle failed")
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
    logger.info("Projection loop stopped")
