"""Order Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from src.schemas.checkout import CartLine, ShippingAddress, ShippingOption

# Order status literal type for validation
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]

ORDER_STATUSES: tuple[str, ...] = ("pending", "processing", "shipped", "delivered", "cancelled")


class OrderCreate(BaseModel):
    """Data required to persist a new order."""

    user_id: str = Field(min_length=1, description="Buyer user id")
    items: list[CartLine] = Field(min_length=1, description="Ordered cart lines")
    total: Decimal = Field(ge=0, allow_inf_nan=False, description="Amount charged")
    shipping_option: ShippingOption | None = Field(default=None, description="Selected shipping option")
    shipping_address: ShippingAddress | None = Field(default=None, description="Shipping address")
    payment_id: str | None = Field(default=None, description="Gateway payment id")
    payment_status: str | None = Field(default=None, description="Gateway payment status")
    payment_method: str | None = Field(default=None, description="Gateway payment method id")


class OrderCreated(BaseModel):
    """Result of an order creation."""

    order_id: str = Field(description="Order identifier")
    order_number: int = Field(description="Sequential human-facing order number")
    created: bool = Field(default=True, description="False when an order already existed for the payment")


class OrderStatusUpdate(BaseModel):
    """Schema for PATCH /orders/{order_id}/status."""

    status: OrderStatus = Field(description="New order status")


class OrderResponse(BaseModel):
    """Schema for order API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Order unique identifier")
    order_number: int = Field(description="Sequential order number")
    user_id: str = Field(description="Buyer user id")
    items: list[CartLine] = Field(description="Ordered cart lines")
    shipping_option: ShippingOption | None = Field(default=None, description="Shipping option")
    shipping_address: ShippingAddress | None = Field(default=None, description="Shipping address")
    total: Decimal = Field(description="Amount charged")
    payment_id: str | None = Field(default=None, description="Gateway payment id")
    payment_status: str | None = Field(default=None, description="Gateway payment status")
    payment_method: str | None = Field(default=None, description="Gateway payment method")
    status: OrderStatus = Field(description="Order status")
    created_at: datetime = Field(description="Creation timestamp")
    updated_at: datetime = Field(description="Last update timestamp")


class OrderListResponse(BaseModel):
    """Schema for order list API responses."""

    model_config = ConfigDict(from_attributes=True)

    items: list[OrderResponse] = Field(description="List of orders")


class LastShippingAddressResponse(BaseModel):
    """Address of the user's most recent order, used to pre-fill checkout."""

    shipping_address: ShippingAddress | None = Field(default=None, description="Most recent shipping address")
