"""Database model type definitions."""

from src.models.order import Order, OrderCounter, OrderItem, OrderStatus, OrderUpdate

__all__ = [
    "Order",
    "OrderCounter",
    "OrderItem",
    "OrderStatus",
    "OrderUpdate",
]
