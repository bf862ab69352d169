"""Unit tests for the document store implementations."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest
from supabase import PostgrestAPIError

from src.api.middleware.error_handler import DuplicateRecordError, StoreError, TransactionConflictError
from src.core.config import Settings
from src.core.memory_store import InMemoryDocumentStore
from src.core.store import SupabaseDocumentStore, create_document_store


def bump(current: dict | None) -> dict:
    return {"value": (current or {}).get("value", 0) + 1}


class TestInMemoryDocumentStore:
    """Tests for InMemoryDocumentStore."""

    @pytest.mark.asyncio
    async def test_create_get_update_delete(self, memory_store: InMemoryDocumentStore) -> None:
        doc_id = await memory_store.create("orders", {"status": "pending"})

        assert (await memory_store.get("orders", doc_id)) == {"id": doc_id, "status": "pending"}
        assert await memory_store.update("orders", doc_id, {"status": "shipped"}) is True
        assert (await memory_store.get("orders", doc_id))["status"] == "shipped"

        await memory_store.delete("orders", doc_id)
        assert await memory_store.get("orders", doc_id) is None

    @pytest.mark.asyncio
    async def test_update_missing_returns_false(self, memory_store: InMemoryDocumentStore) -> None:
        assert await memory_store.update("orders", "missing", {"status": "shipped"}) is False

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, memory_store: InMemoryDocumentStore) -> None:
        doc_id = await memory_store.create("orders", {"items": [{"q": 1}]})

        doc = await memory_store.get("orders", doc_id)
        doc["items"][0]["q"] = 99

        assert (await memory_store.get("orders", doc_id))["items"][0]["q"] == 1

    @pytest.mark.asyncio
    async def test_unique_fields_are_enforced(self, memory_store: InMemoryDocumentStore) -> None:
        await memory_store.create("orders", {"payment_id": "pay_1"})

        with pytest.raises(DuplicateRecordError):
            await memory_store.create("orders", {"payment_id": "pay_1"})

        # None is never a duplicate
        await memory_store.create("orders", {"payment_id": None})
        await memory_store.create("orders", {"payment_id": None})

    @pytest.mark.asyncio
    async def test_list_filters_orders_and_limits(self, memory_store: InMemoryDocumentStore) -> None:
        await memory_store.create("orders", {"user_id": "u1", "n": 2})
        await memory_store.create("orders", {"user_id": "u2", "n": 3})
        await memory_store.create("orders", {"user_id": "u1", "n": 1})

        ascending = await memory_store.list("orders", filters={"user_id": "u1"}, order_by="n")
        descending = await memory_store.list("orders", order_by="n", descending=True, limit=2)

        assert [doc["n"] for doc in ascending] == [1, 2]
        assert [doc["n"] for doc in descending] == [3, 2]

    @pytest.mark.asyncio
    async def test_exists_by_field(self, memory_store: InMemoryDocumentStore) -> None:
        await memory_store.create("orders", {"payment_id": "pay_1"})

        assert await memory_store.exists_by_field("orders", "payment_id", "pay_1") is True
        assert await memory_store.exists_by_field("orders", "payment_id", "pay_2") is False

    @pytest.mark.asyncio
    async def test_transaction_is_atomic_under_concurrency(self, memory_store: InMemoryDocumentStore) -> None:
        results = await asyncio.gather(*(memory_store.transaction("counters", "c", bump) for _ in range(20)))

        assert sorted(result["value"] for result in results) == list(range(1, 21))
        assert (await memory_store.get("counters", "c"))["value"] == 20

    @pytest.mark.asyncio
    async def test_check_connection(self, memory_store: InMemoryDocumentStore) -> None:
        assert await memory_store.check_connection() == {"healthy": True}

    @pytest.mark.asyncio
    async def test_subscribe_survives_failing_callback(self, memory_store: InMemoryDocumentStore) -> None:
        """Test that a callback error is logged and later changes are still delivered."""
        snapshots: list[list[dict]] = []

        def on_change(snapshot: list[dict]) -> None:
            snapshots.append(snapshot)
            if len(snapshots) == 1:
                raise RuntimeError("subscriber bug")

        unsubscribe = memory_store.subscribe("orders", on_change, interval=0.01)
        try:
            await asyncio.sleep(0.03)
            await memory_store.create("orders", {"id": "o1"})
            await asyncio.sleep(0.05)
        finally:
            unsubscribe()

        assert snapshots[0] == []
        assert snapshots[-1] == [{"id": "o1"}]

    @pytest.mark.asyncio
    async def test_subscribe_survives_unexpected_list_error(self, memory_store: InMemoryDocumentStore) -> None:
        snapshots: list[list[dict]] = []
        original_list = memory_store.list
        calls = 0

        async def flaky_list(*args, **kwargs):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise KeyError("decode failure")
            return await original_list(*args, **kwargs)

        memory_store.list = flaky_list
        unsubscribe = memory_store.subscribe("orders", snapshots.append, interval=0.01)
        try:
            await asyncio.sleep(0.05)
        finally:
            unsubscribe()

        assert calls > 1
        assert snapshots == [[]]


@pytest.fixture
def supabase_client() -> MagicMock:
    return MagicMock()


def response(data: object) -> MagicMock:
    result = MagicMock()
    result.data = data
    return result


class TestSupabaseDocumentStore:
    """Tests for SupabaseDocumentStore against a mocked client."""

    @pytest.mark.asyncio
    async def test_list_applies_filters_and_order(self, supabase_client: MagicMock) -> None:
        query = supabase_client.table.return_value.select.return_value
        query.eq.return_value = query
        query.order.return_value = query
        query.limit.return_value = query
        query.execute.return_value = response([{"id": "o1"}])

        docs = await SupabaseDocumentStore(supabase_client).list(
            "orders", filters={"user_id": "u1"}, order_by="created_at", descending=True, limit=5
        )

        assert docs == [{"id": "o1"}]
        supabase_client.table.assert_called_with("orders")
        query.eq.assert_called_once_with("user_id", "u1")
        query.order.assert_called_once_with("created_at", desc=True)
        query.limit.assert_called_once_with(5)

    @pytest.mark.asyncio
    async def test_create_generates_id(self, supabase_client: MagicMock) -> None:
        insert = supabase_client.table.return_value.insert
        insert.return_value.execute.side_effect = lambda: response([insert.call_args.args[0]])

        doc_id = await SupabaseDocumentStore(supabase_client).create("orders", {"status": "pending"})

        row = insert.call_args.args[0]
        assert row["id"] == doc_id
        assert row["status"] == "pending"

    @pytest.mark.asyncio
    async def test_unique_violation_maps_to_duplicate(self, supabase_client: MagicMock) -> None:
        supabase_client.table.return_value.insert.return_value.execute.side_effect = PostgrestAPIError(
            {"message": "duplicate key value", "code": "23505", "hint": None, "details": None}
        )

        with pytest.raises(DuplicateRecordError):
            await SupabaseDocumentStore(supabase_client).create("orders", {"payment_id": "pay_1"})

    @pytest.mark.asyncio
    async def test_other_errors_map_to_store_error(self, supabase_client: MagicMock) -> None:
        query = supabase_client.table.return_value.select.return_value
        query.execute.side_effect = PostgrestAPIError(
            {"message": "relation does not exist", "code": "42P01", "hint": None, "details": None}
        )

        with pytest.raises(StoreError) as exc_info:
            await SupabaseDocumentStore(supabase_client).list("orders")

        assert not isinstance(exc_info.value, DuplicateRecordError)

    @pytest.mark.asyncio
    async def test_transaction_inserts_missing_document(self, supabase_client: MagicMock) -> None:
        table = supabase_client.table.return_value
        table.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = None
        table.insert.return_value.execute.return_value = response([{}])

        data = await SupabaseDocumentStore(supabase_client).transaction("order_counters", "orders", bump)

        assert data == {"value": 1}
        table.insert.assert_called_once_with({"id": "orders", "version": 1, "value": 1})

    @pytest.mark.asyncio
    async def test_transaction_compare_and_swap(self, supabase_client: MagicMock) -> None:
        """Test that the write is conditioned on the version that was read."""
        table = supabase_client.table.return_value
        table.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = response(
            {"id": "orders", "value": 7, "version": 3}
        )
        cas = table.update.return_value.eq.return_value.eq
        cas.return_value.execute.return_value = response([{"id": "orders"}])

        data = await SupabaseDocumentStore(supabase_client).transaction("order_counters", "orders", bump)

        assert data == {"value": 8}
        table.update.assert_called_once_with({"value": 8, "version": 4})
        cas.assert_called_once_with("version", 3)

    @pytest.mark.asyncio
    async def test_transaction_conflict(self, supabase_client: MagicMock) -> None:
        table = supabase_client.table.return_value
        table.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = response(
            {"id": "orders", "value": 7, "version": 3}
        )
        table.update.return_value.eq.return_value.eq.return_value.execute.return_value = response([])

        with pytest.raises(TransactionConflictError):
            await SupabaseDocumentStore(supabase_client).transaction("order_counters", "orders", bump)

    @pytest.mark.asyncio
    async def test_check_connection_reports_failure(self, supabase_client: MagicMock) -> None:
        supabase_client.table.return_value.select.return_value.limit.return_value.execute.side_effect = (
            RuntimeError("connection refused")
        )

        result = await SupabaseDocumentStore(supabase_client).check_connection()

        assert result["healthy"] is False
        assert "connection refused" in result["error"]


class TestCreateDocumentStore:
    """Tests for create_document_store."""

    def test_memory_backend(self) -> None:
        store = create_document_store(Settings(store_backend="memory"))

        assert isinstance(store, InMemoryDocumentStore)

    def test_supabase_backend(self) -> None:
        settings = Settings(
            store_backend="supabase",
            supabase_url="https://test.supabase.co",
            supabase_secret_key="test-secret-key",
        )

        with patch("src.core.store.create_supabase_client") as mock_create:
            store = create_document_store(settings)

        assert isinstance(store, SupabaseDocumentStore)
        mock_create.assert_called_once_with(settings)
