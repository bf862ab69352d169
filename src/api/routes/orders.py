"""Order API routes: order history, admin listing and status updates."""

from fastapi import APIRouter, Query, status

from src.api.deps import Ledger
from src.api.middleware.error_handler import NotFoundError
from src.schemas.order import (
    LastShippingAddressResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatus,
    OrderStatusUpdate,
)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List orders",
    description="Returns orders newest first. Filter by user for order history, or by status for the admin view.",
)
async def list_orders(
    ledger: Ledger,
    user_id: str | None = Query(default=None, description="Only orders of this user"),
    order_status: OrderStatus | None = Query(default=None, alias="status", description="Only orders in this status"),
) -> OrderListResponse:
    """List orders for a user, or every order.

    Args:
        ledger: Order ledger.
        user_id: Optional user filter.
        order_status: Optional status filter.

    Returns:
        OrderListResponse: List of orders.
    """
    if user_id:
        orders = await ledger.list_orders_for_user(user_id)
        if order_status:
            orders = [order for order in orders if order["status"] == order_status]
    else:
        orders = await ledger.list_orders(status=order_status)

    return OrderListResponse(items=[OrderResponse(**order) for order in orders])


@router.get(
    "/last-shipping-address",
    response_model=LastShippingAddressResponse,
    summary="Last shipping address",
    description="Returns the shipping address of the user's most recent order, used to pre-fill checkout.",
)
async def last_shipping_address(
    ledger: Ledger,
    user_id: str = Query(description="Buyer user id"),
) -> LastShippingAddressResponse:
    """Get the most recent shipping address of a user."""
    return LastShippingAddressResponse(shipping_address=await ledger.last_shipping_address(user_id))


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order by ID",
    description="Returns a single order by ID.",
)
async def get_order(order_id: str, ledger: Ledger) -> OrderResponse:
    """Get a single order by ID.

    Raises:
        NotFoundError: 404 if order not found.
    """
    order = await ledger.get_order(order_id)
    if not order:
        raise NotFoundError("Order not found")
    return OrderResponse(**order)


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    status_code=status.HTTP_200_OK,
    summary="Update order status",
    description="Sets the order status to pending, processing, shipped, delivered or cancelled.",
)
async def update_order_status(order_id: str, data: OrderStatusUpdate, ledger: Ledger) -> OrderResponse:
    """Update an order's status.

    Raises:
        NotFoundError: 404 if order not found.
    """
    await ledger.update_status(order_id, data.status)
    order = await ledger.get_order(order_id)
    if not order:
        raise NotFoundError("Order not found")
    return OrderResponse(**order)
