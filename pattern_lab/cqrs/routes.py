"""
CQRS — HTTP エンドポイント

Command (書き込み) と Query (読み取り) でルーターを分ける。
"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from . import commands, event_store, queries
from .events import ProductItem

product_commands = APIRouter(prefix="/api/cqrs/products/commands", tags=["cqrs"])
order_commands = APIRouter(prefix="/api/cqrs/orders/commands", tags=["cqrs"])
product_queries = APIRouter(prefix="/api/cqrs/products/queries", tags=["cqrs"])
order_queries = APIRouter(prefix="/api/cqrs/orders/queries", tags=["cqrs"])
events = APIRouter(prefix="/api/cqrs/events", tags=["cqrs"])

routers = [product_commands, order_commands, product_queries, order_queries, events]


# ── Request Models ───────────────────────────────


class CreateProductCommand(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    price: float = Field(ge=0)
    category_id: str | None = None
    stock_quantity: int = Field(ge=0)


class UpdateProductCommand(BaseModel):
    product_id: UUID
    name: str = Field(min_length=1)
    description: str | None = None
    price: float = Field(ge=0)
    stock_quantity: int = Field(ge=0)


class CreateOrderCommand(BaseModel):
    customer_id: str = Field(min_length=1)
    product_items: list[ProductItem] = Field(min_length=1)
    shipping_address: str | None = None


class UpdateOrderStatusCommand(BaseModel):
    order_id: UUID
    new_status: str = Field(min_length=1)
    reason: str | None = None


class CancelOrderCommand(BaseModel):
    order_id: UUID
    reason: str | None = None


# ── Command Endpoints (Write 側) ─────────────────


@product_commands.post("", status_code=201)
async def create_product(cmd: CreateProductCommand, session: AsyncSession = Depends(get_session)):
    product_id = await commands.create_product(
        session, cmd.name, cmd.description, cmd.price, cmd.category_id, cmd.stock_quantity
    )
    return {"id": str(product_id)}


@product_commands.put("")
async def update_product(cmd: UpdateProductCommand, session: AsyncSession = Depends(get_session)):
    await commands.update_product(
        session, cmd.product_id, cmd.name, cmd.description, cmd.price, cmd.stock_quantity
    )
    return {"id": str(cmd.product_id)}


@order_commands.post("", status_code=201)
async def create_order(cmd: CreateOrderCommand, session: AsyncSession = Depends(get_session)):
    order_id = await commands.create_order(
        session, cmd.customer_id, cmd.product_items, cmd.shipping_address
    )
    return {"id": str(order_id)}


@order_commands.put("/status")
async def update_order_status(cmd: UpdateOrderStatusCommand, session: AsyncSession = Depends(get_session)):
    await commands.update_order_status(session, cmd.order_id, cmd.new_status, cmd.reason)
    return {"id": str(cmd.order_id), "status": cmd.new_status}


@order_commands.post("/cancel")
async def cancel_order(cmd: CancelOrderCommand, session: AsyncSession = Depends(get_session)):
    await commands.cancel_order(session, cmd.order_id, cmd.reason)
    return {"id": str(cmd.order_id), "status": "CANCELLED"}


# ── Query Endpoints (Read 側) ────────────────────


@product_queries.get("/catalog")
async def product_catalog(
    category: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    in_stock: bool | None = None,
    session: AsyncSession = Depends(get_session),
):
    return await queries.get_product_catalog(session, category, min_price, max_price, in_stock)


@product_queries.get("/{product_id}")
async def get_product(product_id: UUID, session: AsyncSession = Depends(get_session)):
    product = await queries.get_product(session, product_id)
    if not product:
        raise HTTPException(404, "Product not found")
    return product


@order_queries.get("/history")
async def order_history(
    customer_id: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    status: str | None = None,
    session: AsyncSession = Depends(get_session),
):
    return await queries.get_order_history(session, customer_id, start_date, end_date, status)


@order_queries.get("/{order_id}")
async def get_order(order_id: UUID, session: AsyncSession = Depends(get_session)):
    order = await queries.get_order(session, order_id)
    if not order:
        raise HTTPException(404, "Order not found")
    return order


# ── Event Store (学習・デバッグ用) ───────────────


@events.get("")
async def list_events(session: AsyncSession = Depends(get_session)):
    return await event_store.load_all_events(session)
