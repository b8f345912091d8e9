"""
Outbox — コマンドハンドラ (注文の状態変更)

状態変更ごとにアウトボックス行をちょうど1つ追記し、
注文の更新と同じトランザクションでコミットする。

    ┌──────────── 1 トランザクション ────────────┐
    │ INSERT/UPDATE outbox_orders                 │
    │ INSERT outbox_events (processed = false)    │
    └─────────────────── COMMIT ─────────────────┘

コミット前にクラッシュすれば両方とも残らず、
コミット後なら両方とも永続化されている。
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import InvalidOrderStateError, OrderNotFoundError
from ..schema import outbox_orders
from . import outbox_store

logger = logging.getLogger(__name__)

AGGREGATE_TYPE = "Order"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


def generate_order_number() -> str:
    return "ORDER-" + uuid.uuid4().hex[:8].upper()


async def create_order(
    session: AsyncSession,
    customer_name: str,
    customer_email: str,
    product_name: str,
    quantity: int,
    price: Decimal,
) -> dict:
    """
    注文作成コマンド

    1. PENDING の注文を保存 (total_amount = price × quantity)
    2. ORDER_CREATED をアウトボックスに追記
    3. まとめてコミット
    """
    now = datetime.now(timezone.utc)
    result = await session.execute(
        insert(outbox_orders)
        .values(
            order_number=generate_order_number(),
            customer_name=customer_name,
            customer_email=customer_email,
            product_name=product_name,
            quantity=quantity,
            price=price,
            total_amount=price * quantity,
            status=OrderStatus.PENDING.value,
            created_at=now,
        )
        .returning(outbox_orders.c.id)
    )
    order_id = result.scalar_one()
    order = await _load(session, order_id)

    await outbox_store.append_event(
        session, str(order_id), AGGREGATE_TYPE, "ORDER_CREATED", order
    )
    await session.commit()

    logger.info("Order created: %s", order["order_number"])
    return order


async def confirm_order(session: AsyncSession, order_id: int) -> dict:
    """注文確定コマンド — PENDING の注文だけが確定できる。"""
    order = await _load(session, order_id)
    if order["status"] != OrderStatus.PENDING.value:
        raise InvalidOrderStateError(
            f"Order cannot be confirmed. Current status: {order['status']}"
        )

    order = await _change_status(session, order, OrderStatus.CONFIRMED, "ORDER_CONFIRMED")
    logger.info("Order confirmed: %s", order["order_number"])
    return order


async def cancel_order(session: AsyncSession, order_id: int) -> dict:
    """注文キャンセルコマンド — 配達済みと取消済みは対象外。"""
    order = await _load(session, order_id)
    if order["status"] == OrderStatus.DELIVERED.value:
        raise InvalidOrderStateError("Cannot cancel delivered order")
    if order["status"] == OrderStatus.CANCELLED.value:
        raise InvalidOrderStateError("Order is already cancelled")

    order = await _change_status(session, order, OrderStatus.CANCELLED, "ORDER_CANCELLED")
    logger.info("Order cancelled: %s", order["order_number"])
    return order


async def _change_status(
    session: AsyncSession,
    order: dict,
    status: OrderStatus,
    event_type: str,
) -> dict:
    # total_amount は保存のたびに再計算する
    await session.execute(
        update(outbox_orders)
        .where(outbox_orders.c.id == order["id"])
        .values(
            status=status.value,
            total_amount=outbox_orders.c.price * outbox_orders.c.quantity,
            updated_at=datetime.now(timezone.utc),
        )
    )
    updated = await _load(session, order["id"])

    await outbox_store.append_event(
        session, str(updated["id"]), AGGREGATE_TYPE, event_type, updated
    )
    await session.commit()
    return updated


async def _load(session: AsyncSession, order_id: int) -> dict:
    result = await session.execute(
        select(outbox_orders).where(outbox_orders.c.id == order_id)
    )
    row = result.fetchone()
    if not row:
        raise OrderNotFoundError(f"Order not found: {order_id}")
    return order_to_dict(row)


def order_to_dict(row) -> dict:
    return {
        "id": row.id,
        "order_number": row.order_number,
        "customer_name": row.customer_name,
        "customer_email": row.customer_email,
        "product_name": row.product_name,
        "quantity": row.quantity,
        "price": float(row.price),
        "total_amount": float(row.total_amount),
        "status": row.status,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }
