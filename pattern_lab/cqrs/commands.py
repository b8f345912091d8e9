"""
CQRS — コマンドハンドラ (Write 側)

コマンドは集約を変更し、同じトランザクションでイベントストアに
イベントを1件追記する。リードモデルはここでは更新しない
(投影ループが後から非同期に反映する)。
"""

import logging
from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import OrderNotFoundError, ProductNotFoundError
from ..schema import cqrs_order_items, cqrs_orders, cqrs_products
from . import event_store
from .aggregate import Order, OrderItem, Product
from .events import (
    OrderCancelled,
    OrderCreated,
    OrderStatusChanged,
    ProductCreated,
    ProductItem,
    ProductUpdated,
)

logger = logging.getLogger(__name__)


# ── 商品 ────────────────────────────────────────


async def create_product(
    session: AsyncSession,
    name: str,
    description: str | None,
    price: float,
    category_id: str | None,
    stock_quantity: int,
) -> UUID:
    """商品登録コマンド"""
    now = datetime.now(timezone.utc)
    product = Product(uuid4(), name, description, price, category_id, stock_quantity)

    await session.execute(
        insert(cqrs_products).values(
            id=str(product.id),
            name=product.name,
            description=product.description,
            price=product.price,
            category_id=product.category_id,
            stock_quantity=product.stock_quantity,
            created_at=now,
            updated_at=now,
        )
    )
    await event_store.append_event(session, ProductCreated(
        aggregate_id=product.id,
        name=product.name,
        description=product.description,
        price=product.price,
        category_id=product.category_id,
        stock_quantity=product.stock_quantity,
    ))
    await session.commit()

    logger.info("Product created: %s", product.id)
    return product.id


async def update_product(
    session: AsyncSession,
    product_id: UUID,
    name: str,
    description: str | None,
    price: float,
    stock_quantity: int,
) -> None:
    """商品更新コマンド"""
    product = await _load_product(session, product_id)
    product.update(name, description, price, stock_quantity)
    await _save_product(session, product)

    await event_store.append_event(session, ProductUpdated(
        aggregate_id=product.id,
        name=product.name,
        description=product.description,
        price=product.price,
        stock_quantity=product.stock_quantity,
    ))
    await session.commit()

    logger.info("Product updated: %s", product.id)


# ── 注文 ────────────────────────────────────────


async def create_order(
    session: AsyncSession,
    customer_id: str,
    product_items: list[ProductItem],
    shipping_address: str | None,
) -> UUID:
    """
    注文作成コマンド

    1. 各商品の在庫を減らす (1つでも不足すれば全体をロールバック)
    2. 単価は商品の現在価格、合計は Σ 単価 × 数量
    3. OrderCreated を追記
    """
    items: list[OrderItem] = []
    for item in product_items:
        product = await _load_product(session, item.product_id)
        product.decrease_stock(item.quantity)
        await _save_product(session, product)
        items.append(OrderItem(product.id, item.quantity, product.price))

    now = datetime.now(timezone.utc)
    order = Order(uuid4(), customer_id, items, shipping_address)

    await session.execute(
        insert(cqrs_orders).values(
            id=str(order.id),
            customer_id=order.customer_id,
            total_amount=order.total_amount,
            status=order.status,
            shipping_address=order.shipping_address,
            created_at=now,
            updated_at=now,
        )
    )
    if items:
        await session.execute(
            insert(cqrs_order_items),
            [
                {
                    "id": str(i.id),
                    "order_id": str(order.id),
                    "product_id": str(i.product_id),
                    "quantity": i.quantity,
                    "unit_price": i.unit_price,
                }
                for i in items
            ],
        )

    await event_store.append_event(session, OrderCreated(
        aggregate_id=order.id,
        customer_id=order.customer_id,
        product_items=product_items,
        total_amount=order.total_amount,
        shipping_address=order.shipping_address,
        status=order.status,
    ))
    await session.commit()

    logger.info("Order created: %s (total=%s)", order.id, order.total_amount)
    return order.id


async def update_order_status(
    session: AsyncSession,
    order_id: UUID,
    new_status: str,
    reason: str | None,
) -> None:
    """注文ステータス変更コマンド"""
    order = await _load_order(session, order_id)
    order.update_status(new_status)
    await _save_order_status(session, order)

    await event_store.append_event(session, OrderStatusChanged(
        aggregate_id=order.id,
        new_status=new_status,
        reason=reason,
    ))
    await session.commit()

    logger.info("Order %s status changed to %s", order.id, new_status)


async def cancel_order(session: AsyncSession, order_id: UUID, reason: str | None) -> None:
    """注文キャンセルコマンド"""
    order = await _load_order(session, order_id)
    order.update_status("CANCELLED")
    await _save_order_status(session, order)

    await event_store.append_event(session, OrderCancelled(
        aggregate_id=order.id,
        reason=reason,
    ))
    await session.commit()

    logger.info("Order cancelled: %s", order.id)


# ── 読み込み / 保存 ──────────────────────────────


async def _load_product(session: AsyncSession, product_id: UUID) -> Product:
    result = await session.execute(
        select(cqrs_products).where(cqrs_products.c.id == str(product_id))
    )
    row = result.fetchone()
    if not row:
        raise ProductNotFoundError(f"Product not found: {product_id}")
    return Product.from_row(row)


async def _save_product(session: AsyncSession, product: Product) -> None:
    await session.execute(
        update(cqrs_products)
        .where(cqrs_products.c.id == str(product.id))
        .values(
            name=product.name,
            description=product.description,
            price=product.price,
            stock_quantity=product.stock_quantity,
            updated_at=datetime.now(timezone.utc),
        )
    )


async def _load_order(session: AsyncSession, order_id: UUID) -> Order:
    result = await session.execute(
        select(cqrs_orders).where(cqrs_orders.c.id == str(order_id))
    )
    row = result.fetchone()
    if not row:
        raise OrderNotFoundError(f"Order not found: {order_id}")

    item_rows = await session.execute(
        select(cqrs_order_items).where(cqrs_order_items.c.order_id == row.id)
    )
    items = []
    for r in item_rows.fetchall():
        item = OrderItem(UUID(r.product_id), r.quantity, r.unit_price)
        item.id = UUID(r.id)
        items.append(item)
    return Order(UUID(row.id), row.customer_id, items, row.shipping_address, row.status)


async def _save_order_status(session: AsyncSession, order: Order) -> None:
    await session.execute(
        update(cqrs_orders)
        .where(cqrs_orders.c.id == str(order.id))
        .values(status=order.status, updated_at=datetime.now(timezone.utc))
    )
