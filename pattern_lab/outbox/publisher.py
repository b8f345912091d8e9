"""
Outbox — ポーリングパブリッシャー

固定間隔でアウトボックスの未処理行を古い順に読み出し、
1件ずつ別トランザクションで外部シンクへ送る。

  成功 → processed = true, processed_at を記録
  失敗 → error_message を記録し processed = false のまま
         (次のサイクルで再送。バックオフも上限もない)

注意: 複数インスタンスを同時に動かすと二重送信になる。
排他制御 (SELECT ... FOR UPDATE SKIP LOCKED 等) はこのサンプルの範囲外。
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone

import redis.asyncio as aioredis
from sqlalchemy.orm import sessionmaker

from ..exceptions import EventAlreadyProcessedError, OutboxEventNotFoundError
from . import outbox_store

logger = logging.getLogger(__name__)

CHANNEL = "outbox_events"


class MessagePublisher:
    """
    外部メッセージシステムへの送信 (シミュレーション)

    本番では Kafka / RabbitMQ / SQS などに送る。ここではログに出力し、
    Redis が設定されていれば outbox_events チャネルにも流す。
    """

    def __init__(self, redis: aioredis.Redis | None = None, latency: float = 0.1) -> None:
        self.redis = redis
        self.latency = latency

    async def publish(self, event: dict) -> None:
        logger.info(
            "Publishing %s for %s %s: %s",
            event["event_type"],
            event["aggregate_type"],
            event["aggregate_id"],
            event["event_data"],
        )
        self._simulate_side_effects(event["event_type"])

        # ネットワーク遅延シミュレーション
        if self.latency > 0:
            await asyncio.sleep(self.latency)

        if self.redis is not None:
            await self.redis.publish(CHANNEL, json.dumps({
                "event_id": event["id"],
                "event_type": event["event_type"],
                "aggregate_id": event["aggregate_id"],
                "aggregate_type": event["aggregate_type"],
                "data": json.loads(event["event_data"]),
                "created_at": event["created_at"],
            }, default=str))

        logger.info("Message published for outbox event %s", event["id"])

    @staticmethod
    def _simulate_side_effects(event_type: str) -> None:
        actions = {
            "ORDER_CREATED": ("sending order confirmation email", "notifying inventory service"),
            "ORDER_CONFIRMED": ("sending confirmation notification", "starting shipping process"),
            "ORDER_CANCELLED": ("sending cancellation notification", "restoring inventory"),
        }.get(event_type, (f"processing {event_type}",))
        for action in actions:
            logger.info("  -> %s", action)


class OutboxPublisher:
    """アウトボックスの未処理行を送信し、処理済みにする。"""

    def __init__(
        self,
        session_factory: sessionmaker,
        message_publisher: MessagePublisher,
        retention_days: int = 7,
    ) -> None:
        self.session_factory = session_factory
        self.message_publisher = message_publisher
        self.retention_days = retention_days

    async def process_outbox_events(self) -> int:
        """1 サイクル分の処理。送信に成功した件数を返す。"""
        async with self.session_factory() as session:
            events = await outbox_store.load_unprocessed(session)

        if not events:
            return 0

        logger.info("Processing %d unprocessed outbox events", len(events))
        published = 0
        for event in events:
            if await self.process_event(event):
                published += 1
        return published

    async def process_event(self, event: dict) -> bool:
        """1 件を送信する。イベントごとに独立したトランザクション。"""
        try:
            await self.message_publisher.publish(event)
            async with self.session_factory() as session:
                await outbox_store.mark_processed(session, event["id"])
                await session.commit()
        except Exception as e:
            logger.exception(
                "Failed to process outbox event %s for aggregate %s",
                event["event_type"],
                event["aggregate_id"],
            )
            async with self.session_factory() as session:
                await outbox_store.record_error(session, event["id"], str(e) or type(e).__name__)
                await session.commit()
            return False

        logger.info(
            "Processed outbox event %s for aggregate %s",
            event["event_type"],
            event["aggregate_id"],
        )
        return True

    async def publish_event_immediately(self, event_id: int) -> dict:
        """ポーリングを待たずに指定イベントを送信する（手動実行用）。"""
        async with self.session_factory() as session:
            event = await outbox_store.get_event(session, event_id)
        if event is None:
            raise OutboxEventNotFoundError(f"Event not found: {event_id}")
        if event["processed"]:
            raise EventAlreadyProcessedError(f"Event already processed: {event_id}")

        await self.process_event(event)

        async with self.session_factory() as session:
            return await outbox_store.get_event(session, event_id)

    async def cleanup_processed_events(self) -> int:
        """保持期間を過ぎた処理済みイベントを削除する。"""
        cutoff = datetime.now(timezone.utc) - timedelta(days=self.retention_days)
        async with self.session_factory() as session:
            deleted = await outbox_store.delete_processed_before(session, cutoff)
            await session.commit()
        logger.info("Cleaned up %d processed outbox events older than %s", deleted, cutoff)
        return deleted

    async def get_unprocessed_count(self) -> int:
        async with self.session_factory() as session:
            _, unprocessed = await outbox_store.count_events(session)
        return unprocessed

    async def get_stats(self) -> dict:
        async with self.session_factory() as session:
            total, unprocessed = await outbox_store.count_events(session)
        processed = total - unprocessed
        return {
            "total_events": total,
            "processed_events": processed,
            "unprocessed_events": unprocessed,
            "processed_percentage": processed * 100.0 / total if total > 0 else 0.0,
        }


# ── バックグラウンドループ ───────────────────────


async def run_publisher_loop(
    publisher: OutboxPublisher,
    interval: float,
    shutdown_event: asyncio.Event,
) -> None:
    """shutdown_event がセットされるまで interval 秒ごとに送信処理を行う。"""
    logger.info("Outbox publisher started (interval=%ss)", interval)
    while not shutdown_event.is_set():
        try:
            await publisher.process_outbox_events()
        except Exception:
            logger.exception("Outbox publisher cycle failed")
        await _sleep(interval, shutdown_event)
    logger.info("Outbox publisher stopped")


async def run_cleanup_loop(
    publisher: OutboxPublisher,
    hour: int,
    shutdown_event: asyncio.Event,
) -> None:
    """毎日 hour 時に処理済みイベントを掃除する。"""
    while not shutdown_event.is_set():
        await _sleep(seconds_until(hour), shutdown_event)
        if shutdown_event.is_set():
            break
        try:
            await publisher.cleanup_processed_events()
        except Exception:
            logger.exception("Failed to clean up processed outbox events")


def seconds_until(hour: int, now: datetime | None = None) -> float:
    """次に hour:00 (ローカル時刻) になるまでの秒数"""
    now = now or datetime.now()
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


async def _sleep(seconds: float, shutdown_event: asyncio.Event) -> None:
    try:
        await asyncio.wait_for(shutdown_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass
