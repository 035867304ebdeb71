"""SQLite-backed document store."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

from shared.dal.document_store import (
    ABORT,
    Document,
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
    Query,
    StoreError,
    Subscription,
    TransactionConflictError,
    check_patch,
)
from shared.db.subscriptions import SubscriptionHub

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from shared.dal.document_store import Abort, FieldFilter
    from shared.db.connection import Database

logger = structlog.get_logger()

DEFAULT_MAX_ATTEMPTS = 5

# Columns stored outside the JSON blob; everything else goes through json_extract.
_COLUMN_FIELDS = {"id": "id", "version": "version", "created_at": "created_at"}


def _sql_value(value: object) -> object:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.astimezone(UTC).isoformat(timespec="microseconds")
    return value


def _field_sql(field: str) -> tuple[str, list[object]]:
    column = _COLUMN_FIELDS.get(field)
    if column is not None:
        return column, []
    return "json_extract(data, ?)", [f"$.{field}"]


def _filter_sql(flt: FieldFilter) -> tuple[str, list[object]]:
    expr, params = _field_sql(flt.field)
    if flt.op == "in":
        values = [_sql_value(v) for v in flt.value]
        if not values:
            return "0", []
        placeholders = ", ".join("?" for _ in values)
        return f"{expr} IN ({placeholders})", [*params, *values]
    return f"{expr} {flt.op} ?", [*params, _sql_value(flt.value)]


class SqliteDocumentStore(DocumentStore):
    """SQLite implementation of DocumentStore.

    Documents are stored as JSON with the version and creation time in indexed
    columns. Writes within this instance are serialized by an asyncio lock;
    writers in other instances or processes sharing the database are detected
    through the version column and the losing transaction is re-run.
    """

    def __init__(
        self,
        db: Database,
        *,
        hub: SubscriptionHub | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._db = db
        self._hub = hub or SubscriptionHub()
        self._max_attempts = max_attempts
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = asyncio.Lock()

    @property
    def hub(self) -> SubscriptionHub:
        return self._hub

    def _now(self) -> str:
        return self._clock().astimezone(UTC).isoformat(timespec="microseconds")

    def _read(self, collection: str, doc_id: str) -> Document | None:
        row = self._db.connection.execute(
            "SELECT id, version, created_at, data FROM documents WHERE collection = ? AND id = ?",
            (collection, doc_id),
        ).fetchone()
        return None if row is None else _to_document(row)

    async def create(self, collection: str, document: Mapping[str, Any], doc_id: str | None = None) -> str:
        data = check_patch(document)
        doc_id = doc_id or uuid4().hex
        async with self._lock:
            try:
                with self._db.transaction() as conn:
                    conn.execute(
                        "INSERT INTO documents (collection, id, version, created_at, data) VALUES (?, ?, 1, ?, ?)",
                        (collection, doc_id, self._now(), json.dumps(data)),
                    )
            except sqlite3.IntegrityError:
                raise DocumentExistsError(collection, doc_id) from None
            except sqlite3.Error as exc:
                raise StoreError(f"create failed for {collection}: {exc}") from exc
        self._hub.notify(collection, doc_id)
        return doc_id

    async def get(self, collection: str, doc_id: str) -> Document | None:
        return self._read(collection, doc_id)

    async def transactional_update(
        self,
        collection: str,
        doc_id: str,
        fn: Callable[[Document | None], Mapping[str, Any] | Abort],
        *,
        upsert: bool = False,
    ) -> Document | None:
        async with self._lock:
            committed = self._run_transaction(collection, doc_id, fn, upsert=upsert)
        if committed is not None:
            self._hub.notify(collection, doc_id)
            return committed
        return self._read(collection, doc_id)

    def _run_transaction(
        self,
        collection: str,
        doc_id: str,
        fn: Callable[[Document | None], Mapping[str, Any] | Abort],
        *,
        upsert: bool,
    ) -> Document | None:
        """Run the read/compute/compare-and-swap cycle. Returns None when fn aborted."""
        conn = self._db.connection
        for attempt in range(1, self._max_attempts + 1):
            current = self._read(collection, doc_id)
            if current is None and not upsert:
                raise DocumentNotFoundError(collection, doc_id)

            result = fn(current)
            if result is ABORT:
                return None
            patch = check_patch(result)

            try:
                if current is None:
                    cursor = conn.execute(
                        "INSERT OR IGNORE INTO documents (collection, id, version, created_at, data) "
                        "VALUES (?, ?, 1, ?, ?)",
                        (collection, doc_id, self._now(), json.dumps(patch)),
                    )
                else:
                    data = {k: v for k, v in current.items() if k not in _COLUMN_FIELDS}
                    data.update(patch)
                    cursor = conn.execute(
                        "UPDATE documents SET data = ?, version = version + 1 "
                        "WHERE collection = ? AND id = ? AND version = ?",
                        (json.dumps(data), collection, doc_id, current["version"]),
                    )
                if cursor.rowcount == 1:
                    conn.commit()
                    return self._read(collection, doc_id)
                conn.rollback()
            except sqlite3.Error as exc:
                conn.rollback()
                raise StoreError(f"transaction failed for {collection}/{doc_id}: {exc}") from exc

            logger.info("transaction conflict, retrying", collection=collection, doc_id=doc_id, attempt=attempt)

        raise TransactionConflictError(collection, doc_id, self._max_attempts)

    async def query(self, collection: str, query: Query) -> list[Document]:
        return self._run_query(collection, query)

    def _run_query(self, collection: str, query: Query) -> list[Document]:
        clauses = ["collection = ?"]
        params: list[object] = [collection]
        for flt in query.filters:
            clause, clause_params = _filter_sql(flt)
            clauses.append(clause)
            params.extend(clause_params)
        order_expr, order_params = _field_sql(query.order_by)
        params.extend(order_params)
        params.append(query.limit)
        direction = "DESC" if query.descending else "ASC"
        sql = (
            "SELECT id, version, created_at, data FROM documents "
            f"WHERE {' AND '.join(clauses)} ORDER BY {order_expr} {direction}, id {direction} LIMIT ?"
        )
        try:
            rows = self._db.connection.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"query failed for {collection}: {exc}") from exc
        return [_to_document(row) for row in rows]

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self._lock:
            try:
                with self._db.transaction() as conn:
                    cursor = conn.execute("DELETE FROM documents WHERE collection = ? AND id = ?", (collection, doc_id))
            except sqlite3.Error as exc:
                raise StoreError(f"delete failed for {collection}/{doc_id}: {exc}") from exc
        deleted = cursor.rowcount > 0
        if deleted:
            self._hub.notify(collection, doc_id)
        return deleted

    def subscribe(
        self,
        collection: str,
        doc_id: str,
        callback: Callable[[Document | None], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        subscription = Subscription(f"{collection}/{doc_id}", on_error=on_error, on_close=self._hub.unwatch)
        self._hub.watch_document(collection, doc_id, subscription, lambda: callback(self._read(collection, doc_id)))
        return subscription

    def subscribe_query(
        self,
        collection: str,
        query: Query,
        callback: Callable[[list[Document]], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        subscription = Subscription(f"{collection}?{query.order_by}", on_error=on_error, on_close=self._hub.unwatch)
        self._hub.watch_query(collection, subscription, lambda: callback(self._run_query(collection, query)))
        return subscription


def _to_document(row: tuple[str, int, str, str]) -> Document:
    doc_id, version, created_at, data = row
    document: Document = json.loads(data)
    document.update(id=doc_id, version=version, created_at=created_at)
    return document
