"""
Outbox — 注文の照会
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import OrderNotFoundError
from ..schema import outbox_orders
from .commands import order_to_dict


async def list_orders(session: AsyncSession) -> list[dict]:
    result = await session.execute(
        select(outbox_orders).order_by(outbox_orders.c.id.asc())
    )
    return [order_to_dict(row) for row in result.fetchall()]


async def get_order(session: AsyncSession, order_id: int) -> dict:
    result = await session.execute(
        select(outbox_orders).where(outbox_orders.c.id == order_id)
    )
    row = result.fetchone()
    if not row:
        raise OrderNotFoundError(f"Order not found: {order_id}")
    return order_to_dict(row)


async def get_order_by_number(session: AsyncSession, order_number: str) -> dict:
    result = await session.execute(
        select(outbox_orders).where(outbox_orders.c.order_number == order_number)
    )
    row = result.fetchone()
    if not row:
        raise OrderNotFoundError(f"Order not found: {order_number}")
    return order_to_dict(row)


async def list_orders_by_status(session: AsyncSession, status: str) -> list[dict]:
    result = await session.execute(
        select(outbox_orders)
        .where(outbox_orders.c.status == status)
        .order_by(outbox_orders.c.id.asc())
    )
    return [order_to_dict(row) for row in result.fetchall()]
