"""Order ledger: order numbering, persistence and status updates."""

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.api.middleware.error_handler import DuplicateRecordError, NotFoundError, StoreError, ValidationError
from src.core.store import ChangeCallback, DocumentStore
from src.models.order import Order, OrderCounter, OrderUpdate
from src.schemas.checkout import ShippingAddress
from src.schemas.order import ORDER_STATUSES, OrderCreate, OrderCreated

logger = logging.getLogger(__name__)

ORDERS_COLLECTION = "orders"
COUNTERS_COLLECTION = "order_counters"
ORDER_COUNTER_ID = "orders"

FIRST_ORDER_NUMBER = 100

# Retry configuration for the counter transaction
MAX_COUNTER_ATTEMPTS = 5
COUNTER_MIN_WAIT_SECONDS = 0.05
COUNTER_MAX_WAIT_SECONDS = 1


def advance_counter(current: dict[str, Any] | None) -> OrderCounter:
    """Compute the next counter state. The first number handed out is 100."""
    if not current or current.get("last_order_number") is None:
        return {"last_order_number": FIRST_ORDER_NUMBER}
    return {"last_order_number": int(current["last_order_number"]) + 1}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class OrderLedger:
    """Sole writer of order numbers and order status.

    Order numbers come from a single counter document updated inside a
    store transaction, so concurrent requests never share a number.
    """

    def __init__(self, store: DocumentStore) -> None:
        """Initialize the ledger with its persistent store."""
        self.store = store

    @retry(
        retry=retry_if_exception_type(StoreError),
        stop=stop_after_attempt(MAX_COUNTER_ATTEMPTS),
        wait=wait_exponential(multiplier=COUNTER_MIN_WAIT_SECONDS, min=COUNTER_MIN_WAIT_SECONDS, max=COUNTER_MAX_WAIT_SECONDS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _increment_counter(self) -> int:
        counter = await self.store.transaction(COUNTERS_COLLECTION, ORDER_COUNTER_ID, advance_counter)
        return int(counter["last_order_number"])

    async def next_order_number(self) -> int:
        """Hand out the next order number.

        Returns:
            int: 100 for the first order, then strictly increasing by one.

        Raises:
            StoreError: If the counter transaction keeps failing after retries.
        """
        try:
            return await self._increment_counter()
        except StoreError as e:
            logger.error(
                "Order counter transaction failed after %d attempts: %s",
                MAX_COUNTER_ATTEMPTS,
                e.message,
            )
            raise StoreError("Unable to assign an order number") from e

    async def create_order(self, order: OrderCreate) -> OrderCreated:
        """Persist a new pending order.

        Orders are unique per payment id: if one already exists for the
        payment, it is returned with ``created=False`` and no number is minted.

        Args:
            order: Order data.

        Returns:
            OrderCreated: Order id and number.

        Raises:
            StoreError: If the order cannot be numbered or persisted.
        """
        if order.payment_id:
            existing = await self.find_order_by_payment_id(order.payment_id)
            if existing:
                logger.info("Order %s already exists for payment %s", existing["order_number"], order.payment_id)
                return OrderCreated(order_id=existing["id"], order_number=existing["order_number"], created=False)

        order_number = await self.next_order_number()
        now = _now()
        document = {
            "order_number": order_number,
            "user_id": order.user_id,
            "items": [line.model_dump(mode="json") for line in order.items],
            "shipping_option": order.shipping_option.model_dump(mode="json") if order.shipping_option else None,
            "shipping_address": order.shipping_address.model_dump(mode="json") if order.shipping_address else None,
            "total": str(order.total),
            "payment_id": order.payment_id,
            "payment_status": order.payment_status,
            "payment_method": order.payment_method,
            "status": "pending",
            "created_at": now,
            "updated_at": now,
        }

        try:
            order_id = await self.store.create(ORDERS_COLLECTION, document)
        except DuplicateRecordError:
            # A concurrent delivery for the same payment inserted first
            existing = await self.find_order_by_payment_id(order.payment_id) if order.payment_id else None
            if existing is None:
                raise
            logger.warning(
                "Order number %d discarded, payment %s was recorded concurrently as order %s",
                order_number,
                order.payment_id,
                existing["order_number"],
            )
            return OrderCreated(order_id=existing["id"], order_number=existing["order_number"], created=False)

        logger.info("Created order %d (%s) for user %s", order_number, order_id, order.user_id)
        return OrderCreated(order_id=order_id, order_number=order_number)

    async def update_status(self, order_id: str, status: str) -> None:
        """Set an order's status.

        Any of the five statuses may follow any other.

        Raises:
            ValidationError: If the status is not a known order status.
            NotFoundError: If the order does not exist.
        """
        if status not in ORDER_STATUSES:
            raise ValidationError(
                "Invalid order status",
                details=[{"loc": ["status"], "msg": f"must be one of {', '.join(ORDER_STATUSES)}", "type": "enum"}],
            )

        patch: OrderUpdate = {"status": status, "updated_at": _now()}
        updated = await self.store.update(ORDERS_COLLECTION, order_id, patch)
        if not updated:
            raise NotFoundError("Order not found")

        logger.info("Order %s status set to %s", order_id, status)

    async def get_order(self, order_id: str) -> Order | None:
        """Get an order by id."""
        return await self.store.get(ORDERS_COLLECTION, order_id)

    async def find_order_by_payment_id(self, payment_id: str) -> Order | None:
        """Get the order recorded for a gateway payment, if any."""
        orders = await self.store.list(ORDERS_COLLECTION, filters={"payment_id": payment_id}, limit=1)
        return orders[0] if orders else None

    async def list_orders(self, status: str | None = None) -> list[Order]:
        """List all orders, newest first, optionally filtered by status."""
        filters = {"status": status} if status else None
        return await self.store.list(ORDERS_COLLECTION, filters=filters, order_by="created_at", descending=True)

    async def list_orders_for_user(self, user_id: str) -> list[Order]:
        """List a user's orders, newest first."""
        return await self.store.list(
            ORDERS_COLLECTION,
            filters={"user_id": user_id},
            order_by="created_at",
            descending=True,
        )

    async def last_shipping_address(self, user_id: str) -> ShippingAddress | None:
        """Shipping address of the user's most recent order that has one."""
        for order in await self.list_orders_for_user(user_id):
            if order.get("shipping_address"):
                return ShippingAddress.model_validate(order["shipping_address"])
        return None

    def subscribe_orders(self, on_change: ChangeCallback, user_id: str | None = None) -> Callable[[], None]:
        """Follow order changes (all orders, or one user's) through the store's change feed."""
        return self.store.subscribe(
            ORDERS_COLLECTION,
            on_change,
            filters={"user_id": user_id} if user_id else None,
            order_by="created_at",
            descending=True,
        )
