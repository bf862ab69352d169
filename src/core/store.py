"""Document store abstraction and its Supabase implementation.

Services talk to the persistent store only through ``DocumentStore``. The
application lifespan builds one store instance and hands it to services via
FastAPI dependencies, so tests can swap in ``InMemoryDocumentStore``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable
from uuid import uuid4

import httpx
from supabase import Client, PostgrestAPIError

from src.api.middleware.error_handler import DuplicateRecordError, StoreError, TransactionConflictError
from src.core.config import Settings
from src.core.supabase import check_database_connection, create_supabase_client

logger = logging.getLogger(__name__)

Document = dict[str, Any]
TransactionFn = Callable[[Document | None], Document]
ChangeCallback = Callable[[list[Document]], Awaitable[None] | None]

# Postgres error code for unique constraint violations
UNIQUE_VIOLATION = "23505"

DEFAULT_POLL_INTERVAL_SECONDS = 2.0


class DocumentStore(ABC):
    """Abstract persistent store organised in named collections.

    Every document carries a string ``id``. All operations may raise
    ``StoreError`` when the backend is unavailable.
    """

    @abstractmethod
    async def list(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        """List documents matching equality filters."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Document | None:
        """Get a document by id, or None."""

    @abstractmethod
    async def create(self, collection: str, doc: Document) -> str:
        """Insert a document and return its id.

        Raises:
            DuplicateRecordError: If a unique field already holds the value.
        """

    @abstractmethod
    async def update(self, collection: str, doc_id: str, patch: Document) -> bool:
        """Apply a partial update. Returns False when the document does not exist."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document if it exists."""

    @abstractmethod
    async def exists_by_field(self, collection: str, field: str, value: Any) -> bool:
        """Check whether any document has ``field == value``."""

    @abstractmethod
    async def transaction(self, collection: str, doc_id: str, fn: TransactionFn) -> Document:
        """Atomically read-modify-write a single document.

        ``fn`` receives the current document data (None when absent) and
        returns the data to write. The written data is returned.

        Raises:
            TransactionConflictError: If a concurrent writer won the race.
        """

    @abstractmethod
    async def check_connection(self) -> dict[str, Any]:
        """Report backend connectivity as ``{"healthy": bool, "error"?: str}``."""

    def subscribe(
        self,
        collection: str,
        on_change: ChangeCallback,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> Callable[[], None]:
        """Poll a collection and call ``on_change`` with the snapshot whenever it changes.

        Must be called from a running event loop.

        Returns:
            Callable: Unsubscribe function that stops the polling task.
        """

        async def poll() -> None:
            last_snapshot: list[Document] | None = None
            while True:
                try:
                    snapshot = await self.list(collection, filters, order_by, descending)
                except StoreError as e:
                    logger.warning("Change feed poll failed for %s: %s", collection, e.message)
                except Exception:
                    logger.exception("Unexpected error polling %s", collection)
                else:
                    if snapshot != last_snapshot:
                        last_snapshot = snapshot
                        try:
                            result = on_change(snapshot)
                            if inspect.isawaitable(result):
                                await result
                        except Exception:
                            logger.exception("Change feed callback for %s failed", collection)
                await asyncio.sleep(interval)

        task = asyncio.create_task(poll())
        logger.debug("Subscribed to %s changes", collection)

        def unsubscribe() -> None:
            task.cancel()

        return unsubscribe


class SupabaseDocumentStore(DocumentStore):
    """Document store backed by Supabase tables.

    Collections map to tables with a text ``id`` primary key. Tables used
    with ``transaction`` need an integer ``version`` column for
    compare-and-swap updates.
    """

    def __init__(self, client: Client) -> None:
        self.client = client

    def _execute(self, query: Any, operation: str, collection: str) -> Any:
        try:
            return query.execute()
        except PostgrestAPIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateRecordError(f"Duplicate record in {collection}") from e
            logger.error("Supabase %s on %s failed: %s", operation, collection, e.message)
            raise StoreError(f"Store {operation} failed on {collection}") from e
        except httpx.HTTPError as e:
            logger.error("Supabase %s on %s unreachable: %s", operation, collection, str(e))
            raise StoreError(f"Store {operation} failed on {collection}") from e

    async def list(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        query = self.client.table(collection).select("*")
        for field, value in (filters or {}).items():
            query = query.eq(field, value)
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit:
            query = query.limit(limit)

        response = self._execute(query, "list", collection)
        return response.data or []

    async def get(self, collection: str, doc_id: str) -> Document | None:
        response = self._execute(
            self.client.table(collection).select("*").eq("id", doc_id).maybe_single(),
            "get",
            collection,
        )
        return response.data if response and response.data else None

    async def create(self, collection: str, doc: Document) -> str:
        row = {"id": str(uuid4()), **doc}
        response = self._execute(self.client.table(collection).insert(row), "create", collection)
        return response.data[0]["id"]

    async def update(self, collection: str, doc_id: str, patch: Document) -> bool:
        response = self._execute(
            self.client.table(collection).update(patch).eq("id", doc_id),
            "update",
            collection,
        )
        return bool(response.data)

    async def delete(self, collection: str, doc_id: str) -> None:
        self._execute(self.client.table(collection).delete().eq("id", doc_id), "delete", collection)

    async def exists_by_field(self, collection: str, field: str, value: Any) -> bool:
        response = self._execute(
            self.client.table(collection).select("id").eq(field, value).limit(1),
            "exists",
            collection,
        )
        return bool(response.data)

    async def transaction(self, collection: str, doc_id: str, fn: TransactionFn) -> Document:
        response = self._execute(
            self.client.table(collection).select("*").eq("id", doc_id).maybe_single(),
            "transaction read",
            collection,
        )
        row = response.data if response and response.data else None

        if row is None:
            data = fn(None)
            try:
                self._execute(
                    self.client.table(collection).insert({"id": doc_id, "version": 1, **data}),
                    "transaction insert",
                    collection,
                )
            except DuplicateRecordError as e:
                raise TransactionConflictError(f"{collection}/{doc_id} was created concurrently") from e
            return data

        version = row.pop("version", 0) or 0
        row.pop("id", None)
        data = fn(row)

        # Compare-and-swap on version: zero rows updated means another writer won
        response = self._execute(
            self.client.table(collection)
            .update({**data, "version": version + 1})
            .eq("id", doc_id)
            .eq("version", version),
            "transaction write",
            collection,
        )
        if not response.data:
            raise TransactionConflictError(f"{collection}/{doc_id} changed during transaction")
        return data

    async def check_connection(self) -> dict[str, Any]:
        return await check_database_connection(self.client)


def create_document_store(settings: Settings) -> DocumentStore:
    """Build the document store selected by ``STORE_BACKEND``.

    Args:
        settings: Application settings.

    Returns:
        DocumentStore: Store instance owned by the caller.
    """
    if settings.store_backend == "memory":
        from src.core.memory_store import InMemoryDocumentStore

        logger.warning("Using in-memory document store. Data will not survive restarts.")
        return InMemoryDocumentStore(unique_fields={"orders": ("payment_id",)})

    return SupabaseDocumentStore(create_supabase_client(settings))
