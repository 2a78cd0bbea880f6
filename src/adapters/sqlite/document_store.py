"""
SQLite document store.

Documents are JSON text in a single ``documents`` table keyed by
(collection, doc_id); the schema comes from ``migrations/``.
Read-modify-write operations run inside ``BEGIN IMMEDIATE`` so concurrent
writers on the same database file serialize on the write lock.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, TypeVar

from src.core.ports.db import (
    Document,
    DocumentNotFoundError,
    DocumentStoreError,
    Mutator,
    in_collection_group,
)

T = TypeVar("T")


class SQLiteDocumentStore:
    """DocumentStorePort backed by one SQLite file."""

    def __init__(self, db_path: str, timeout: float = 10.0):
        self.db_path = db_path
        self.timeout = timeout

    def _get_conn(self) -> sqlite3.Connection:
        # Autocommit mode; transactions are opened explicitly
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._get_conn()
        try:
            yield conn
        except sqlite3.Error as e:
            raise DocumentStoreError(str(e)) from e
        finally:
            conn.close()

    def _write_txn(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                result = fn(conn)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
            return result

    @staticmethod
    def _load(conn: sqlite3.Connection, collection: str, doc_id: str) -> Document | None:
        row = conn.execute(
            "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        ).fetchone()
        return json.loads(row[0]) if row else None

    @staticmethod
    def _store(conn: sqlite3.Connection, collection: str, doc_id: str, data: Document) -> None:
        conn.execute(
            """
            INSERT INTO documents (collection, doc_id, data, updated_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(collection, doc_id) DO UPDATE SET
                data=excluded.data,
                updated_at=excluded.updated_at
            """,
            (collection, doc_id, json.dumps(data, default=str)),
        )

    def get(self, collection: str, doc_id: str) -> Document | None:
        with self._connection() as conn:
            return self._load(conn, collection, doc_id)

    def set(
        self, collection: str, doc_id: str, data: Document, *, merge: bool = False
    ) -> None:
        def write(conn: sqlite3.Connection) -> None:
            current = self._load(conn, collection, doc_id) if merge else None
            self._store(conn, collection, doc_id, {**(current or {}), **data})

        self._write_txn(write)

    def create(self, collection: str, doc_id: str, data: Document) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO documents (collection, doc_id, data) VALUES (?, ?, ?)",
                (collection, doc_id, json.dumps(data, default=str)),
            )
            return cursor.rowcount == 1

    def update(self, collection: str, doc_id: str, mutator: Mutator) -> Document:
        def write(conn: sqlite3.Connection) -> Document:
            current = self._load(conn, collection, doc_id)
            if current is None:
                raise DocumentNotFoundError(collection, doc_id)
            updated = mutator(current)
            self._store(conn, collection, doc_id, updated)
            return updated

        return self._write_txn(write)

    def increment(
        self, collection: str, doc_id: str, deltas: Mapping[str, int | float]
    ) -> None:
        def write(conn: sqlite3.Connection) -> None:
            doc = self._load(conn, collection, doc_id) or {}
            for key, delta in deltas.items():
                current = doc.get(key)
                if isinstance(current, bool) or not isinstance(current, (int, float)):
                    current = 0
                doc[key] = current + delta
            self._store(conn, collection, doc_id, doc)

        self._write_txn(write)

    def query(
        self, collection: str, field: str, value: Any, *, limit: int | None = None
    ) -> list[tuple[str, Document]]:
        sql = (
            "SELECT doc_id, data FROM documents "
            "WHERE collection = ? AND json_extract(data, ?) = ? ORDER BY doc_id"
        )
        params: list[Any] = [collection, f'$."{field}"', value]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self._connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [(doc_id, json.loads(data)) for doc_id, data in rows]

    def list_documents(self, collection: str) -> list[tuple[str, Document]]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT doc_id, data FROM documents WHERE collection = ? ORDER BY doc_id",
                (collection,),
            ).fetchall()
        return [(doc_id, json.loads(data)) for doc_id, data in rows]

    def collection_group(
        self, name: str, *, parent: str | None = None
    ) -> list[tuple[str, str, Document]]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT collection, doc_id, data FROM documents "
                "WHERE collection LIKE ? ORDER BY collection, doc_id",
                (f"%/{name}",),
            ).fetchall()
        return [
            (path, doc_id, json.loads(data))
            for path, doc_id, data in rows
            if in_collection_group(path, name, parent)
        ]
