"""
Document store port.

Stores are document-oriented collections keyed by id. Collections are
addressed by slash-separated paths so per-user subcollections
(``users/{uid}/purchases``) work the same way as top-level ones.

Implementations: InMemoryDocumentStore (tests/dev), SQLiteDocumentStore.

Guarantees every implementation must provide:
- ``update`` is an atomic single-document read-modify-write
- ``create`` is an atomic insert-if-absent
- ``increment`` never reads-then-writes the counter from the caller side
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol

Document = dict[str, Any]
Mutator = Callable[[Document], Document]


class DocumentStorePort(Protocol):
    """Port for document collections."""

    def get(self, collection: str, doc_id: str) -> Document | None:
        """Get a document, or None if it does not exist."""
        ...

    def set(
        self, collection: str, doc_id: str, data: Document, *, merge: bool = False
    ) -> None:
        """Write a document. With ``merge`` top-level keys are merged into the existing one."""
        ...

    def create(self, collection: str, doc_id: str, data: Document) -> bool:
        """
        Insert a document only if absent.

        Returns:
            True if this call created the document, False if it already existed.
        """
        ...

    def update(self, collection: str, doc_id: str, mutator: Mutator) -> Document:
        """
        Atomically replace a document with ``mutator(current)``.

        The mutator runs while the document is locked and may raise to
        abort the update; the exception propagates unchanged.

        Raises:
            DocumentNotFoundError: if the document does not exist
        """
        ...

    def increment(
        self, collection: str, doc_id: str, deltas: Mapping[str, int | float]
    ) -> None:
        """Atomically add ``deltas`` to numeric fields, creating missing fields/documents."""
        ...

    def query(
        self, collection: str, field: str, value: Any, *, limit: int | None = None
    ) -> list[tuple[str, Document]]:
        """Return ``(doc_id, document)`` pairs where ``document[field] == value``."""
        ...

    def list_documents(self, collection: str) -> list[tuple[str, Document]]:
        """Return every ``(doc_id, document)`` pair in a collection, ordered by id."""
        ...

    def collection_group(
        self, name: str, *, parent: str | None = None
    ) -> list[tuple[str, str, Document]]:
        """
        Scan every subcollection called ``name``.

        Args:
            name: Last path segment of the subcollections to scan
            parent: Optional top-level collection the subcollections hang off

        Returns:
            ``(collection_path, doc_id, document)`` triples
        """
        ...


class DocumentStoreError(Exception):
    """Base class for store errors."""


class DocumentNotFoundError(DocumentStoreError):
    """Raised when an update targets a missing document."""

    def __init__(self, collection: str, doc_id: str) -> None:
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document not found: {collection}/{doc_id}")


def subcollection(collection: str, doc_id: str, name: str) -> str:
    """Path of a subcollection, e.g. ``users/u1/purchases``."""
    return f"{collection}/{doc_id}/{name}"


def in_collection_group(path: str, name: str, parent: str | None = None) -> bool:
    """True if ``path`` is a subcollection called ``name`` (optionally under ``parent``)."""
    segments = path.split("/")
    # parent/doc/name/doc/name ... always has an odd segment count
    if len(segments) < 3 or len(segments) % 2 == 0:
        return False
    if segments[-1] != name:
        return False
    return parent is None or segments[0] == parent
