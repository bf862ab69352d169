"""Order model type definitions for database operations."""

from typing import Any, Literal, TypedDict

# Order status values matching the orders.status column
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]


class OrderItem(TypedDict, total=False):
    """Structure for a single cart line stored in the items JSONB array."""

    product_id: str
    title: str
    unit_price: str
    quantity: int
    size: str | None
    color: str | None
    cover_image_url: str | None


class Order(TypedDict):
    """Order table row representation.

    Monetary values are stored as decimal strings. Timestamps are ISO-8601.
    """

    id: str
    order_number: int
    user_id: str
    items: list[OrderItem]
    shipping_option: dict[str, Any] | None
    shipping_address: dict[str, Any] | None
    total: str
    payment_id: str | None
    payment_status: str | None
    payment_method: str | None
    status: OrderStatus
    created_at: str
    updated_at: str


class OrderUpdate(TypedDict, total=False):
    """Data that can be updated on an order."""

    status: OrderStatus
    updated_at: str


class OrderCounter(TypedDict):
    """Singleton counter row handing out order numbers.

    Stored in the order_counters table under id ``orders``.
    """

    last_order_number: int
