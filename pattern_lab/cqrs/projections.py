"""
CQRS — イベント投影 (Projection)

イベントストアの行を集約タイプ → イベントタイプの順で振り分け、
非正規化されたリードモデルを読み取り→書き込みで差分更新する。
リードモデルを全件再計算することはない。

  Product → cqrs_product_read_model (在庫状態は文字列で保持)
  Order   → cqrs_order_read_model   (明細と履歴を JSON で埋め込む)
"""

import json
import logging
from datetime import datetime

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..schema import (
    cqrs_order_items,
    cqrs_order_read_model,
    cqrs_product_read_model,
    cqrs_products,
)
from . import event_store
from .events import (
    OrderCancelled,
    OrderCreated,
    OrderStatusChanged,
    ProductCreated,
    ProductUpdated,
)

logger = logging.getLogger(__name__)


async def handle_event(session: AsyncSession, record: dict) -> None:
    """
    イベントストアの1行を投影する (commit は呼び出し側)。

    未知の集約タイプやイベントタイプは何もしない。
    """
    handlers = {
        "Product": {
            ProductCreated.event_type(): _project_product_created,
            ProductUpdated.event_type(): _project_product_updated,
        },
        "Order": {
            OrderCreated.event_type(): _project_order_created,
            OrderStatusChanged.event_type(): _project_order_status_changed,
            OrderCancelled.event_type(): _project_order_cancelled,
        },
    }.get(record["aggregate_type"], {})

    handler = handlers.get(record["event_type"])
    if handler:
        await handler(session, event_store.deserialize(record))


def stock_status(stock_quantity: int) -> str:
    return "IN_STOCK" if stock_quantity > 0 else "OUT_OF_STOCK"


# ── 商品カタログ ─────────────────────────────────


async def _project_product_created(session: AsyncSession, event: ProductCreated) -> None:
    await session.execute(
        insert(cqrs_product_read_model).values(
            id=str(event.aggregate_id),
            name=event.name,
            description=event.description,
            price=event.price,
            category=event.category_id,
            stock_status=stock_status(event.stock_quantity),
            avg_rating=0.0,
        )
    )


async def _project_product_updated(session: AsyncSession, event: ProductUpdated) -> None:
    # カテゴリと評価は変更しない
    await session.execute(
        update(cqrs_product_read_model)
        .where(cqrs_product_read_model.c.id == str(event.aggregate_id))
        .values(
            name=event.name,
            description=event.description,
            price=event.price,
            stock_status=stock_status(event.stock_quantity),
        )
    )


# ── 注文履歴 ─────────────────────────────────────


async def _project_order_created(session: AsyncSession, event: OrderCreated) -> None:
    """
    OrderCreated の投影:
    明細に商品名と単価を埋め込み、履歴の最初のエントリを作る。
    """
    result = await session.execute(
        select(
            cqrs_order_items.c.product_id,
            cqrs_order_items.c.quantity,
            cqrs_order_items.c.unit_price,
            cqrs_products.c.name,
        )
        .select_from(
            cqrs_order_items.outerjoin(
                cqrs_products, cqrs_order_items.c.product_id == cqrs_products.c.id
            )
        )
        .where(cqrs_order_items.c.order_id == str(event.aggregate_id))
    )
    items = [
        {
            "product_id": row.product_id,
            "product_name": row.name,
            "quantity": row.quantity,
            "unit_price": row.unit_price,
        }
        for row in result.fetchall()
    ]
    timeline = [_timeline_entry(event.status, "Order created", event.timestamp)]

    await session.execute(
        insert(cqrs_order_read_model).values(
            id=str(event.aggregate_id),
            customer_info=event.customer_id,
            items=json.dumps(items),
            total_amount=event.total_amount,
            status=event.status,
            timeline=json.dumps(timeline),
            created_at=event.timestamp,
        )
    )


async def _project_order_status_changed(session: AsyncSession, event: OrderStatusChanged) -> None:
    await _append_timeline(session, event.aggregate_id, event.new_status, event.reason, event.timestamp)


async def _project_order_cancelled(session: AsyncSession, event: OrderCancelled) -> None:
    await _append_timeline(session, event.aggregate_id, "CANCELLED", event.reason, event.timestamp)


async def _append_timeline(
    session: AsyncSession,
    order_id,
    status: str,
    notes: str | None,
    timestamp: datetime,
) -> None:
    """ステータスを更新し、JSON の履歴を読み出して1件追加して書き戻す。"""
    result = await session.execute(
        select(cqrs_order_read_model.c.timeline)
        .where(cqrs_order_read_model.c.id == str(order_id))
    )
    row = result.fetchone()
    if not row:
        logger.warning("Order read model %s not found, skipping %s", order_id, status)
        return

    timeline = json.loads(row.timeline)
    timeline.append(_timeline_entry(status, notes, timestamp))

    await session.execute(
        update(cqrs_order_read_model)
        .where(cqrs_order_read_model.c.id == str(order_id))
        .values(status=status, timeline=json.dumps(timeline))
    )


def _timeline_entry(status: str, notes: str | None, timestamp: datetime) -> dict:
    return {"status": status, "notes": notes, "timestamp": timestamp.isoformat()}
