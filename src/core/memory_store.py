"""In-memory document store for local development and tests."""

from __future__ import annotations

import asyncio
import copy
from typing import Any
from uuid import uuid4

from src.api.middleware.error_handler import DuplicateRecordError
from src.core.store import Document, DocumentStore, TransactionFn


class InMemoryDocumentStore(DocumentStore):
    """Process-local store. Every operation is serialised by one asyncio lock.

    Documents are deep-copied on the way in and out so callers never share
    state with the store.
    """

    def __init__(self, unique_fields: dict[str, tuple[str, ...]] | None = None) -> None:
        self._collections: dict[str, dict[str, Document]] = {}
        self._unique_fields = unique_fields or {}
        self._lock = asyncio.Lock()

    def _collection(self, name: str) -> dict[str, Document]:
        return self._collections.setdefault(name, {})

    async def list(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        async with self._lock:
            docs = [
                doc
                for doc in self._collection(collection).values()
                if all(doc.get(field) == value for field, value in (filters or {}).items())
            ]
            if order_by:
                # Ties keep insertion order, newest first when descending
                if descending:
                    docs.reverse()
                docs.sort(
                    key=lambda doc: (doc.get(order_by) is not None, doc.get(order_by)),
                    reverse=descending,
                )
            if limit:
                docs = docs[:limit]
            return copy.deepcopy(docs)

    async def get(self, collection: str, doc_id: str) -> Document | None:
        async with self._lock:
            doc = self._collection(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    async def create(self, collection: str, doc: Document) -> str:
        async with self._lock:
            docs = self._collection(collection)
            for field in self._unique_fields.get(collection, ()):
                value = doc.get(field)
                if value is not None and any(existing.get(field) == value for existing in docs.values()):
                    raise DuplicateRecordError(f"Duplicate {field} in {collection}")

            doc_id = str(doc.get("id") or uuid4())
            docs[doc_id] = {**copy.deepcopy(doc), "id": doc_id}
            return doc_id

    async def update(self, collection: str, doc_id: str, patch: Document) -> bool:
        async with self._lock:
            doc = self._collection(collection).get(doc_id)
            if doc is None:
                return False
            doc.update(copy.deepcopy(patch))
            return True

    async def delete(self, collection: str, doc_id: str) -> None:
        async with self._lock:
            self._collection(collection).pop(doc_id, None)

    async def exists_by_field(self, collection: str, field: str, value: Any) -> bool:
        async with self._lock:
            return any(doc.get(field) == value for doc in self._collection(collection).values())

    async def transaction(self, collection: str, doc_id: str, fn: TransactionFn) -> Document:
        async with self._lock:
            docs = self._collection(collection)
            current = docs.get(doc_id)
            data = fn(copy.deepcopy({k: v for k, v in current.items() if k != "id"}) if current else None)
            docs[doc_id] = {**copy.deepcopy(data), "id": doc_id}
            return data

    async def check_connection(self) -> dict[str, Any]:
        return {"healthy": True}
