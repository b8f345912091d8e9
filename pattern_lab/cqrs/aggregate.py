"""
CQRS — Write 側の集約 (Product / Order)

集約は整合性の境界。コマンドハンドラは集約を読み込み、
メソッド経由で状態を変更してから保存する。
"""

from uuid import UUID, uuid4

from ..exceptions import InsufficientStockError


class Product:
    def __init__(
        self,
        id: UUID,
        name: str,
        description: str | None,
        price: float,
        category_id: str | None,
        stock_quantity: int,
    ) -> None:
        self.id = id
        self.name = name
        self.description = description
        self.price = price
        self.category_id = category_id
        self.stock_quantity = stock_quantity

    @classmethod
    def from_row(cls, row) -> "Product":
        return cls(
            id=UUID(row.id),
            name=row.name,
            description=row.description,
            price=row.price,
            category_id=row.category_id,
            stock_quantity=row.stock_quantity,
        )

    def update(self, name: str, description: str | None, price: float, stock_quantity: int) -> None:
        self.name = name
        self.description = description
        self.price = price
        self.stock_quantity = stock_quantity

    def decrease_stock(self, quantity: int) -> None:
        if self.stock_quantity < quantity:
            raise InsufficientStockError(
                f"Not enough stock for product {self.id}: "
                f"requested={quantity}, available={self.stock_quantity}"
            )
        self.stock_quantity -= quantity


class OrderItem:
    def __init__(self, product_id: UUID, quantity: int, unit_price: float) -> None:
        self.id = uuid4()
        self.product_id = product_id
        self.quantity = quantity
        self.unit_price = unit_price

    @property
    def subtotal(self) -> float:
        return self.unit_price * self.quantity


class Order:
    """
    注文集約

    status は自由形式の文字列。作成時は CREATED、
    キャンセルで CANCELLED になる。
    """

    def __init__(
        self,
        id: UUID,
        customer_id: str,
        items: list[OrderItem],
        shipping_address: str | None,
        status: str = "CREATED",
    ) -> None:
        self.id = id
        self.customer_id = customer_id
        self.items = items
        self.shipping_address = shipping_address
        self.status = status

    @property
    def total_amount(self) -> float:
        return sum(item.subtotal for item in self.items)

    def update_status(self, new_status: str) -> None:
        self.status = new_status
