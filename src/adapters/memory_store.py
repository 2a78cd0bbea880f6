"""
In-memory document store (dev/tests).

A single re-entrant lock serializes every operation, which gives the
atomicity guarantees of DocumentStorePort without a database.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Mapping
from typing import Any

from src.core.ports.db import (
    Document,
    DocumentNotFoundError,
    Mutator,
    in_collection_group,
)


class InMemoryDocumentStore:
    """DocumentStorePort backed by nested dicts."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Document]] = {}
        self._lock = threading.RLock()

    def _collection(self, collection: str) -> dict[str, Document]:
        return self._collections.setdefault(collection, {})

    def get(self, collection: str, doc_id: str) -> Document | None:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def set(
        self, collection: str, doc_id: str, data: Document, *, merge: bool = False
    ) -> None:
        with self._lock:
            docs = self._collection(collection)
            if merge and doc_id in docs:
                docs[doc_id] = {**docs[doc_id], **copy.deepcopy(data)}
            else:
                docs[doc_id] = copy.deepcopy(data)

    def create(self, collection: str, doc_id: str, data: Document) -> bool:
        with self._lock:
            docs = self._collection(collection)
            if doc_id in docs:
                return False
            docs[doc_id] = copy.deepcopy(data)
            return True

    def update(self, collection: str, doc_id: str, mutator: Mutator) -> Document:
        with self._lock:
            docs = self._collection(collection)
            if doc_id not in docs:
                raise DocumentNotFoundError(collection, doc_id)
            updated = mutator(copy.deepcopy(docs[doc_id]))
            docs[doc_id] = copy.deepcopy(updated)
            return updated

    def increment(
        self, collection: str, doc_id: str, deltas: Mapping[str, int | float]
    ) -> None:
        with self._lock:
            doc = self._collection(collection).setdefault(doc_id, {})
            for key, delta in deltas.items():
                current = doc.get(key)
                if isinstance(current, bool) or not isinstance(current, (int, float)):
                    current = 0
                doc[key] = current + delta

    def query(
        self, collection: str, field: str, value: Any, *, limit: int | None = None
    ) -> list[tuple[str, Document]]:
        results = [
            (doc_id, doc)
            for doc_id, doc in self.list_documents(collection)
            if doc.get(field) == value
        ]
        return results[:limit] if limit is not None else results

    def list_documents(self, collection: str) -> list[tuple[str, Document]]:
        with self._lock:
            docs = self._collections.get(collection, {})
            return [(doc_id, copy.deepcopy(docs[doc_id])) for doc_id in sorted(docs)]

    def collection_group(
        self, name: str, *, parent: str | None = None
    ) -> list[tuple[str, str, Document]]:
        with self._lock:
            paths = sorted(
                path
                for path in self._collections
                if in_collection_group(path, name, parent)
            )
        return [
            (path, doc_id, doc)
            for path in paths
            for doc_id, doc in self.list_documents(path)
        ]
