"""
CQRS — イベント定義

ドメインで発生した事実(イベント)を定義する。
イベントは過去形で命名し、不変(immutable)として扱う。
イベントタイプ文字列はクラス名そのもの。
"""

from datetime import datetime, timezone
from typing import ClassVar
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class ProductItem(BaseModel):
    product_id: UUID
    quantity: int = Field(gt=0)


class DomainEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    aggregate_type: ClassVar[str]

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    aggregate_id: UUID

    @classmethod
    def event_type(cls) -> str:
        return cls.__name__


# ── 商品 ────────────────────────────────────────


class ProductCreated(DomainEvent):
    """商品が登録された"""
    aggregate_type: ClassVar[str] = "Product"

    name: str
    description: str | None = None
    price: float
    category_id: str | None = None
    stock_quantity: int


class ProductUpdated(DomainEvent):
    """商品情報が更新された"""
    aggregate_type: ClassVar[str] = "Product"

    name: str
    description: str | None = None
    price: float
    stock_quantity: int


# ── 注文 ────────────────────────────────────────


class OrderCreated(DomainEvent):
    """注文が作成された"""
    aggregate_type: ClassVar[str] = "Order"

    customer_id: str
    product_items: list[ProductItem]
    total_amount: float
    shipping_address: str | None = None
    status: str


class OrderStatusChanged(DomainEvent):
    """注文ステータスが変更された"""
    aggregate_type: ClassVar[str] = "Order"

    new_status: str
    reason: str | None = None


class OrderCancelled(DomainEvent):
    """注文がキャンセルされた"""
    aggregate_type: ClassVar[str] = "Order"

    reason: str | None = None


EVENT_TYPES: dict[str, type[DomainEvent]] = {
    cls.event_type(): cls
    for cls in (ProductCreated, ProductUpdated, OrderCreated, OrderStatusChanged, OrderCancelled)
}
