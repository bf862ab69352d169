"""Unit tests for OrderLedger."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.api.middleware.error_handler import (
    DuplicateRecordError,
    NotFoundError,
    StoreError,
    TransactionConflictError,
    ValidationError,
)
from src.core.memory_store import InMemoryDocumentStore
from src.schemas.checkout import CartLine, ShippingAddress, ShippingOption
from src.schemas.order import OrderCreate
from src.services.order_ledger import (
    COUNTERS_COLLECTION,
    MAX_COUNTER_ATTEMPTS,
    ORDER_COUNTER_ID,
    OrderLedger,
    advance_counter,
)


@pytest.fixture
def order_create(
    sample_items: list[CartLine],
    pac_option: ShippingOption,
    sample_address: ShippingAddress,
) -> OrderCreate:
    return OrderCreate(
        user_id="u1",
        items=sample_items,
        total=Decimal("204.80"),
        shipping_option=pac_option,
        shipping_address=sample_address,
        payment_id="pay_1",
        payment_status="approved",
        payment_method="pix",
    )


class TestOrderNumbers:
    """Tests for order number assignment."""

    def test_advance_counter_starts_at_100(self) -> None:
        assert advance_counter(None) == {"last_order_number": 100}
        assert advance_counter({}) == {"last_order_number": 100}

    def test_advance_counter_increments(self) -> None:
        assert advance_counter({"last_order_number": 107}) == {"last_order_number": 108}

    @pytest.mark.asyncio
    async def test_first_number_is_100(self, ledger: OrderLedger) -> None:
        assert await ledger.next_order_number() == 100
        assert await ledger.next_order_number() == 101

    @pytest.mark.asyncio
    async def test_concurrent_numbers_are_distinct_and_contiguous(self, ledger: OrderLedger) -> None:
        """Test that 50 concurrent requests get 100..149 with no repeats."""
        numbers = await asyncio.gather(*(ledger.next_order_number() for _ in range(50)))

        assert sorted(numbers) == list(range(100, 150))

    @pytest.mark.asyncio
    async def test_counter_is_stored_under_single_document(
        self, ledger: OrderLedger, memory_store: InMemoryDocumentStore
    ) -> None:
        await ledger.next_order_number()

        counter = await memory_store.get(COUNTERS_COLLECTION, ORDER_COUNTER_ID)
        assert counter["last_order_number"] == 100

    @pytest.mark.asyncio
    async def test_transient_conflict_is_retried(self) -> None:
        store = MagicMock()
        store.transaction = AsyncMock(
            side_effect=[TransactionConflictError(), {"last_order_number": 142}]
        )

        assert await OrderLedger(store).next_order_number() == 142
        assert store.transaction.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_store_error(self) -> None:
        """Test that a persistently failing counter raises instead of inventing a number."""
        store = MagicMock()
        store.transaction = AsyncMock(side_effect=TransactionConflictError())

        with pytest.raises(StoreError) as exc_info:
            await OrderLedger(store).next_order_number()

        assert exc_info.value.message == "Unable to assign an order number"
        assert store.transaction.await_count == MAX_COUNTER_ATTEMPTS


class TestCreateOrder:
    """Tests for create_order."""

    @pytest.mark.asyncio
    async def test_creates_pending_order(self, ledger: OrderLedger, order_create: OrderCreate) -> None:
        result = await ledger.create_order(order_create)

        assert result.created is True
        assert result.order_number == 100

        order = await ledger.get_order(result.order_id)
        assert order is not None
        assert order["status"] == "pending"
        assert order["user_id"] == "u1"
        assert order["payment_id"] == "pay_1"
        assert Decimal(order["total"]) == Decimal("204.80")
        assert order["shipping_option"]["name"] == "PAC"
        assert order["shipping_address"]["postal_code"] == "01304001"
        assert len(order["items"]) == 2
        assert order["created_at"] == order["updated_at"]

    @pytest.mark.asyncio
    async def test_same_payment_is_recorded_once(self, ledger: OrderLedger, order_create: OrderCreate) -> None:
        """Test that a redelivered payment returns the existing order."""
        first = await ledger.create_order(order_create)
        second = await ledger.create_order(order_create)

        assert second.created is False
        assert second.order_id == first.order_id
        assert second.order_number == first.order_number
        assert len(await ledger.list_orders()) == 1
        # No number was minted for the duplicate
        assert await ledger.next_order_number() == 101

    @pytest.mark.asyncio
    async def test_concurrent_deliveries_create_one_order(
        self, ledger: OrderLedger, order_create: OrderCreate
    ) -> None:
        results = await asyncio.gather(*(ledger.create_order(order_create) for _ in range(5)))

        assert sum(result.created for result in results) == 1
        assert len({result.order_id for result in results}) == 1
        assert len(await ledger.list_orders()) == 1

    @pytest.mark.asyncio
    async def test_duplicate_insert_race_returns_existing(self, order_create: OrderCreate) -> None:
        existing = {"id": "order-existing", "order_number": 120, "payment_id": "pay_1"}
        store = MagicMock()
        store.list = AsyncMock(side_effect=[[], [existing]])
        store.transaction = AsyncMock(return_value={"last_order_number": 121})
        store.create = AsyncMock(side_effect=DuplicateRecordError())

        result = await OrderLedger(store).create_order(order_create)

        assert result.created is False
        assert result.order_id == "order-existing"
        assert result.order_number == 120

    @pytest.mark.asyncio
    async def test_orders_without_payment_are_not_deduplicated(
        self, ledger: OrderLedger, order_create: OrderCreate
    ) -> None:
        manual = order_create.model_copy(update={"payment_id": None})

        first = await ledger.create_order(manual)
        second = await ledger.create_order(manual)

        assert first.order_number == 100
        assert second.order_number == 101


class TestStatusAndQueries:
    """Tests for status updates and order queries."""

    @pytest.mark.asyncio
    async def test_update_status(self, ledger: OrderLedger, order_create: OrderCreate) -> None:
        result = await ledger.create_order(order_create)

        await ledger.update_status(result.order_id, "shipped")

        order = await ledger.get_order(result.order_id)
        assert order["status"] == "shipped"

    @pytest.mark.asyncio
    async def test_any_transition_is_allowed(self, ledger: OrderLedger, order_create: OrderCreate) -> None:
        result = await ledger.create_order(order_create)

        await ledger.update_status(result.order_id, "delivered")
        await ledger.update_status(result.order_id, "pending")

        assert (await ledger.get_order(result.order_id))["status"] == "pending"

    @pytest.mark.asyncio
    async def test_update_status_rejects_unknown_status(
        self, ledger: OrderLedger, order_create: OrderCreate
    ) -> None:
        result = await ledger.create_order(order_create)

        with pytest.raises(ValidationError):
            await ledger.update_status(result.order_id, "lost")

        assert (await ledger.get_order(result.order_id))["status"] == "pending"

    @pytest.mark.asyncio
    async def test_update_status_unknown_order(self, ledger: OrderLedger) -> None:
        with pytest.raises(NotFoundError):
            await ledger.update_status("missing", "shipped")

    @pytest.mark.asyncio
    async def test_list_orders_for_user_newest_first(
        self, ledger: OrderLedger, order_create: OrderCreate
    ) -> None:
        await ledger.create_order(order_create)
        await ledger.create_order(order_create.model_copy(update={"payment_id": "pay_2"}))
        await ledger.create_order(order_create.model_copy(update={"payment_id": "pay_3", "user_id": "u2"}))

        orders = await ledger.list_orders_for_user("u1")

        assert [order["payment_id"] for order in orders] == ["pay_2", "pay_1"]

    @pytest.mark.asyncio
    async def test_list_orders_by_status(self, ledger: OrderLedger, order_create: OrderCreate) -> None:
        first = await ledger.create_order(order_create)
        await ledger.create_order(order_create.model_copy(update={"payment_id": "pay_2"}))
        await ledger.update_status(first.order_id, "cancelled")

        cancelled = await ledger.list_orders(status="cancelled")

        assert [order["id"] for order in cancelled] == [first.order_id]

    @pytest.mark.asyncio
    async def test_find_order_by_payment_id(self, ledger: OrderLedger, order_create: OrderCreate) -> None:
        result = await ledger.create_order(order_create)

        assert (await ledger.find_order_by_payment_id("pay_1"))["id"] == result.order_id
        assert await ledger.find_order_by_payment_id("pay_unknown") is None

    @pytest.mark.asyncio
    async def test_last_shipping_address(self, ledger: OrderLedger, order_create: OrderCreate) -> None:
        await ledger.create_order(order_create)

        address = await ledger.last_shipping_address("u1")

        assert address is not None
        assert address.city == "São Paulo"
        assert await ledger.last_shipping_address("nobody") is None

    @pytest.mark.asyncio
    async def test_subscribe_orders_delivers_snapshots(
        self, ledger: OrderLedger, order_create: OrderCreate
    ) -> None:
        """Test that the change feed reports the user's orders and stops on unsubscribe."""
        snapshots: list[list[dict]] = []
        unsubscribe = ledger.store.subscribe(
            "orders",
            snapshots.append,
            filters={"user_id": "u1"},
            interval=0.01,
        )
        try:
            await asyncio.sleep(0.03)
            await ledger.create_order(order_create)
            await asyncio.sleep(0.05)
        finally:
            unsubscribe()

        assert snapshots[0] == []
        assert len(snapshots[-1]) == 1
        assert snapshots[-1][0]["payment_id"] == "pay_1"

    @pytest.mark.asyncio
    async def test_subscribe_orders_filters_by_user(self, order_create: OrderCreate) -> None:
        store = MagicMock()
        store.subscribe = MagicMock(return_value=lambda: None)
        callback = MagicMock()

        OrderLedger(store).subscribe_orders(callback, user_id="u1")

        store.subscribe.assert_called_once_with(
            "orders",
            callback,
            filters={"user_id": "u1"},
            order_by="created_at",
            descending=True,
        )
