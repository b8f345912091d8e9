"""
CQRS — クエリハンドラ (Read 側)

読み取りはリードモデルからのみ行う。
リードモデルは投影ループが更新するため、コマンド直後は
まだ反映されていないことがある (結果整合性)。
"""

import json
from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..schema import cqrs_order_read_model, cqrs_product_read_model


async def get_product(session: AsyncSession, product_id: UUID) -> dict | None:
    result = await session.execute(
        select(cqrs_product_read_model)
        .where(cqrs_product_read_model.c.id == str(product_id))
    )
    row = result.fetchone()
    return _product_to_dict(row) if row else None


async def get_product_catalog(
    session: AsyncSession,
    category: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    in_stock: bool | None = None,
) -> list[dict]:
    """指定された条件だけで絞り込む。条件なしなら全件。"""
    t = cqrs_product_read_model
    stmt = select(t).order_by(t.c.name.asc())
    if category is not None:
        stmt = stmt.where(t.c.category == category)
    if min_price is not None:
        stmt = stmt.where(t.c.price >= min_price)
    if max_price is not None:
        stmt = stmt.where(t.c.price <= max_price)
    if in_stock:
        stmt = stmt.where(t.c.stock_status != "OUT_OF_STOCK")

    result = await session.execute(stmt)
    return [_product_to_dict(row) for row in result.fetchall()]


async def get_order(session: AsyncSession, order_id: UUID) -> dict | None:
    result = await session.execute(
        select(cqrs_order_read_model)
        .where(cqrs_order_read_model.c.id == str(order_id))
    )
    row = result.fetchone()
    return _order_to_dict(row) if row else None


async def get_order_history(
    session: AsyncSession,
    customer_id: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    status: str | None = None,
) -> list[dict]:
    """顧客・期間 (両端を含む)・ステータスで注文履歴を絞り込む。新しい順。"""
    t = cqrs_order_read_model
    stmt = select(t).order_by(t.c.created_at.desc())
    if customer_id is not None:
        stmt = stmt.where(t.c.customer_info == customer_id)
    if start_date is not None:
        stmt = stmt.where(t.c.created_at >= datetime.combine(start_date, time.min, timezone.utc))
    if end_date is not None:
        next_day = datetime.combine(end_date + timedelta(days=1), time.min, timezone.utc)
        stmt = stmt.where(t.c.created_at < next_day)
    if status is not None:
        stmt = stmt.where(t.c.status == status)

    result = await session.execute(stmt)
    return [_order_to_dict(row) for row in result.fetchall()]


def _product_to_dict(row) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "description": row.description,
        "price": row.price,
        "category": row.category,
        "stock_status": row.stock_status,
        "avg_rating": row.avg_rating,
    }


def _order_to_dict(row) -> dict:
    return {
        "id": row.id,
        "customer_info": row.customer_info,
        "items": json.loads(row.items),
        "total_amount": row.total_amount,
        "status": row.status,
        "timeline": json.loads(row.timeline),
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }
