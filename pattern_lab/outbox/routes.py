"""
Outbox — HTTP エンドポイント (/api/outbox)
"""

from decimal import Decimal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from . import commands, outbox_store, queries
from .commands import OrderStatus
from .publisher import OutboxPublisher

router = APIRouter(prefix="/api/outbox", tags=["outbox"])


def get_publisher(request: Request) -> OutboxPublisher:
    return request.app.state.outbox_publisher


# ── Request Models ───────────────────────────────


class OrderCreateRequest(BaseModel):
    customer_name: str = Field(min_length=1)
    customer_email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    product_name: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    price: Decimal = Field(gt=0, max_digits=19, decimal_places=2)


# ── 注文コマンド ─────────────────────────────────


@router.post("/orders")
async def create_order(req: OrderCreateRequest, session: AsyncSession = Depends(get_session)):
    """注文を作成し、同じトランザクションで ORDER_CREATED を記録する"""
    return await commands.create_order(
        session,
        req.customer_name,
        req.customer_email,
        req.product_name,
        req.quantity,
        req.price,
    )


@router.put("/orders/{order_id}/confirm")
async def confirm_order(order_id: int, session: AsyncSession = Depends(get_session)):
    return await commands.confirm_order(session, order_id)


@router.put("/orders/{order_id}/cancel")
async def cancel_order(order_id: int, session: AsyncSession = Depends(get_session)):
    return await commands.cancel_order(session, order_id)


# ── 注文照会 ─────────────────────────────────────


@router.get("/orders")
async def list_orders(session: AsyncSession = Depends(get_session)):
    return await queries.list_orders(session)


@router.get("/orders/number/{order_number}")
async def get_order_by_number(order_number: str, session: AsyncSession = Depends(get_session)):
    return await queries.get_order_by_number(session, order_number)


@router.get("/orders/status/{status}")
async def list_orders_by_status(status: OrderStatus, session: AsyncSession = Depends(get_session)):
    return await queries.list_orders_by_status(session, status.value)


@router.get("/orders/{order_id}")
async def get_order(order_id: int, session: AsyncSession = Depends(get_session)):
    return await queries.get_order(session, order_id)


# ── アウトボックス (学習・デバッグ用) ────────────


@router.get("/events")
async def list_events(session: AsyncSession = Depends(get_session)):
    return await outbox_store.load_all(session)


@router.get("/events/unprocessed")
async def list_unprocessed_events(session: AsyncSession = Depends(get_session)):
    return await outbox_store.load_unprocessed(session)


@router.post("/events/{event_id}/process")
async def process_event(event_id: int, publisher: OutboxPublisher = Depends(get_publisher)):
    """ポーリングを待たずに1件送信する"""
    event = await publisher.publish_event_immediately(event_id)
    return {"processed": event["processed"], "event": event}


@router.get("/stats")
async def outbox_stats(publisher: OutboxPublisher = Depends(get_publisher)):
    return await publisher.get_stats()
