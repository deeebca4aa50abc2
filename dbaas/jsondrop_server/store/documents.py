"""
Document storage for JSONDrop collections.

Documents live in the tenant's SQLite file, one table per collection,
stored as an opaque JSON blob next to their id, timestamps and size.
The serialized blob's byte length is what the tenant's quota is charged.

Invariants:
    - Every document conforms to its collection schema
    - quota_used changes in the same per-tenant critical section as the
      row it accounts for; a rejected or failed write leaves both untouched
    - Query results are ordered newest first (created_at DESC)
    - Change events are published only after the write is committed

How to change safely:
    - Keep the order reserve quota -> write row -> commit, and release the
      reservation if anything after the reservation fails
    - Filters are evaluated in Python against the schema types; push them
      into SQL only if the semantics stay identical
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from collections.abc import Iterable, Mapping
from typing import Any

from ..errors import (
    DocumentNotFoundError,
    GenerationFailureError,
    ValidationFailedError,
)
from ..events.types import DeleteEvent, EventPublisher, InsertEvent, UpdateEvent
from .catalog import TenantCatalog, compensate, now_ms, storage_errors
from .identifiers import safe_identifier
from .keygen import generate_document_id
from .models import (
    Document,
    Schema,
    data_size,
    matches_filter_value,
    serialize_data,
    validate_document,
)

logger = logging.getLogger(__name__)

DEFAULT_QUERY_LIMIT = 100


def _row_to_document(row: sqlite3.Row, collection: str) -> Document:
    return Document(
        doc_id=row["id"],
        collection=collection,
        data=json.loads(row["data"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _serialize(data: dict[str, Any]) -> tuple[str, int]:
    try:
        serialized = serialize_data(data)
    except (TypeError, ValueError) as e:
        raise ValidationFailedError(f"document data is not serializable: {e}") from e
    return serialized, data_size(serialized)


def _normalize_filters(
    schema: Schema, filters: Mapping[str, Iterable[Any]] | None
) -> dict[str, list[Any]]:
    normalized: dict[str, list[Any]] = {}
    for name, values in (filters or {}).items():
        if name not in schema.fields:
            continue
        if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
            values = [values]
        values = list(values)
        if values:
            normalized[name] = values
    return normalized


def matches_filters(
    data: dict[str, Any], schema: Schema, filters: dict[str, list[Any]]
) -> bool:
    """Check a document against normalized filters.

    Values for one field are OR'ed; fields are AND'ed. A document that
    lacks a filtered field never matches.
    """
    for name, wanted in filters.items():
        if name not in data:
            return False
        kind = schema.fields[name]
        if not any(matches_filter_value(kind, data[name], w) for w in wanted):
            return False
    return True


class DocumentStore:
    """Schema-validated, quota-accounted CRUD over tenant collections.

    Thread safety:
        Writes for one tenant hold catalog.locks for that tenant across
        validation, quota reservation and the row write. SQLite work runs
        in worker threads with a fresh connection per operation.

    Example:
        >>> store = DocumentStore(catalog, publisher=broadcaster)
        >>> doc = await store.insert(tenant_id, "users", {"name": "Alice", "age": 25})
        >>> await store.get(tenant_id, "users", doc.doc_id)
    """

    def __init__(
        self,
        catalog: TenantCatalog,
        publisher: EventPublisher | None = None,
    ) -> None:
        self.catalog = catalog
        self.locks = catalog.locks
        self.publisher = publisher

    def _publish(self, event: Any) -> None:
        if self.publisher is not None:
            self.publisher.publish(event)

    async def insert(
        self,
        tenant_id: str,
        collection: str,
        data: dict[str, Any],
    ) -> Document:
        """Insert a new document.

        Args:
            tenant_id: Tenant identifier
            collection: Collection name
            data: Field values; must contain exactly the schema's fields

        Returns:
            The stored document

        Raises:
            InvalidIdentifierError: If collection is not a safe identifier
            SchemaNotFoundError: If the collection has no schema
            ValidationFailedError: If data does not match the schema
            QuotaExceededError: If the document does not fit the quota
            StorageFailureError: If the write fails
        """
        table = safe_identifier(collection)

        async with self.locks.hold(tenant_id):
            doc = await asyncio.to_thread(
                self._insert_sync, tenant_id, collection, table, data
            )
            self._publish(
                InsertEvent(
                    tenant_id,
                    doc.collection,
                    doc.doc_id,
                    snapshot=doc.data,
                    timestamp=doc.created_at,
                )
            )

        logger.debug(
            "Inserted document",
            extra={"tenant_id": tenant_id, "collection": collection, "doc_id": doc.doc_id},
        )
        return doc

    def _insert_sync(
        self,
        tenant_id: str,
        collection: str,
        table: str,
        data: dict[str, Any],
    ) -> Document:
        schema = self.catalog.load_schema(tenant_id, collection)
        collection = schema.name
        validate_document(data, schema)
        serialized, size = _serialize(data)

        doc_id = generate_document_id()
        now = now_ms()

        self.catalog.adjust_quota(tenant_id, size)
        try:
            with storage_errors("insert document"), self.catalog.tenant_connection(tenant_id) as conn:
                try:
                    conn.execute(
                        f"""
                        INSERT INTO {table} (id, created_at, updated_at, size, data)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (doc_id, now, now, size, serialized),
                    )
                except sqlite3.IntegrityError as e:
                    raise GenerationFailureError(
                        "generated document id collided, retry"
                    ) from e
        except Exception:
            compensate(
                "release quota reserved for failed insert",
                lambda: self.catalog.adjust_quota(tenant_id, -size),
                tenant_id=tenant_id,
                collection=collection,
                size=size,
            )
            raise

        return Document(
            doc_id=doc_id,
            collection=collection,
            data=json.loads(serialized),
            created_at=now,
            updated_at=now,
        )

    async def get(self, tenant_id: str, collection: str, doc_id: str) -> Document:
        """Get a document by id.

        Raises:
            SchemaNotFoundError: If the collection has no schema
            DocumentNotFoundError: If the document does not exist
        """
        table = safe_identifier(collection)
        return await asyncio.to_thread(self._get_sync, tenant_id, collection, table, doc_id)

    def _get_sync(
        self, tenant_id: str, collection: str, table: str, doc_id: str
    ) -> Document:
        collection = self.catalog.load_schema(tenant_id, collection).name
        with storage_errors("get document"), self.catalog.tenant_connection(tenant_id) as conn:
            row = conn.execute(
                f"SELECT id, created_at, updated_at, data FROM {table} WHERE id = ?",
                (doc_id,),
            ).fetchone()
        if row is None:
            raise DocumentNotFoundError(collection, doc_id)
        return _row_to_document(row, collection)

    async def query(
        self,
        tenant_id: str,
        collection: str,
        limit: int = DEFAULT_QUERY_LIMIT,
        offset: int = 0,
        filters: Mapping[str, Iterable[Any]] | None = None,
    ) -> list[Document]:
        """Query a collection, newest first.

        Args:
            tenant_id: Tenant identifier
            collection: Collection name
            limit: Maximum documents to return (<= 0 means no limit)
            offset: Matching documents to skip
            filters: Field name -> acceptable values. Values for one field
                are OR'ed, fields are AND'ed. Fields not in the schema
                are ignored.

        Returns:
            Matching documents ordered by creation time, descending
        """
        table = safe_identifier(collection)
        return await asyncio.to_thread(
            self._query_sync, tenant_id, collection, table, limit, offset, filters
        )

    def _query_sync(
        self,
        tenant_id: str,
        collection: str,
        table: str,
        limit: int,
        offset: int,
        filters: Mapping[str, Iterable[Any]] | None,
    ) -> list[Document]:
        schema = self.catalog.load_schema(tenant_id, collection)
        collection = schema.name
        active = _normalize_filters(schema, filters)
        offset = max(offset, 0)

        results: list[Document] = []
        skipped = 0
        with storage_errors("query documents"), self.catalog.tenant_connection(tenant_id) as conn:
            cursor = conn.execute(
                f"""
                SELECT id, created_at, updated_at, data FROM {table}
                ORDER BY created_at DESC, rowid DESC
                """
            )
            for row in cursor:
                doc = _row_to_document(row, collection)
                if active and not matches_filters(doc.data, schema, active):
                    continue
                if skipped < offset:
                    skipped += 1
                    continue
                results.append(doc)
                if 0 < limit <= len(results):
                    break

        return results

    async def update(
        self,
        tenant_id: str,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
    ) -> Document:
        """Replace a document's data.

        The quota is charged the size difference; growth must fit the
        remaining quota or the document is left unchanged.

        Raises:
            SchemaNotFoundError: If the collection has no schema
            DocumentNotFoundError: If the document does not exist
            ValidationFailedError: If data does not match the schema
            QuotaExceededError: If the growth does not fit the quota
        """
        table = safe_identifier(collection)

        async with self.locks.hold(tenant_id):
            doc = await asyncio.to_thread(
                self._update_sync, tenant_id, collection, table, doc_id, data
            )
            self._publish(
                UpdateEvent(
                    tenant_id,
                    doc.collection,
                    doc.doc_id,
                    snapshot=doc.data,
                    timestamp=doc.updated_at,
                )
            )

        return doc

    def _update_sync(
        self,
        tenant_id: str,
        collection: str,
        table: str,
        doc_id: str,
        data: dict[str, Any],
    ) -> Document:
        schema = self.catalog.load_schema(tenant_id, collection)
        collection = schema.name
        validate_document(data, schema)
        serialized, size = _serialize(data)
        now = now_ms()

        with storage_errors("update document"), self.catalog.tenant_connection(tenant_id) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    f"SELECT created_at, size FROM {table} WHERE id = ?", (doc_id,)
                ).fetchone()
                if row is None:
                    raise DocumentNotFoundError(collection, doc_id)

                delta = size - row["size"]
                self.catalog.adjust_quota(tenant_id, delta)
                try:
                    conn.execute(
                        f"UPDATE {table} SET data = ?, size = ?, updated_at = ? WHERE id = ?",
                        (serialized, size, now, doc_id),
                    )
                    conn.execute("COMMIT")
                except Exception:
                    compensate(
                        "revert quota change for failed update",
                        lambda: self.catalog.adjust_quota(
                            tenant_id, -delta, enforce_limit=False
                        ),
                        tenant_id=tenant_id,
                        collection=collection,
                        doc_id=doc_id,
                    )
                    raise
            except Exception:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

        return Document(
            doc_id=doc_id,
            collection=collection,
            data=json.loads(serialized),
            created_at=row["created_at"],
            updated_at=now,
        )

    async def delete(self, tenant_id: str, collection: str, doc_id: str) -> None:
        """Delete a document and release its quota.

        Raises:
            SchemaNotFoundError: If the collection has no schema
            DocumentNotFoundError: If the document does not exist
        """
        table = safe_identifier(collection)

        async with self.locks.hold(tenant_id):
            collection = await asyncio.to_thread(
                self._delete_sync, tenant_id, collection, table, doc_id
            )
            self._publish(DeleteEvent(tenant_id, collection, doc_id))

    def _delete_sync(
        self, tenant_id: str, collection: str, table: str, doc_id: str
    ) -> str:
        collection = self.catalog.load_schema(tenant_id, collection).name

        with storage_errors("delete document"), self.catalog.tenant_connection(tenant_id) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    f"SELECT size FROM {table} WHERE id = ?", (doc_id,)
                ).fetchone()
                if row is None:
                    raise DocumentNotFoundError(collection, doc_id)

                size = row["size"]
                conn.execute(f"DELETE FROM {table} WHERE id = ?", (doc_id,))
                # Floored at zero inside adjust_quota
                self.catalog.adjust_quota(tenant_id, -size)
                try:
                    conn.execute("COMMIT")
                except Exception:
                    compensate(
                        "re-charge quota for failed delete",
                        lambda: self.catalog.adjust_quota(
                            tenant_id, size, enforce_limit=False
                        ),
                        tenant_id=tenant_id,
                        collection=collection,
                        doc_id=doc_id,
                    )
                    raise
            except Exception:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

        return collection
