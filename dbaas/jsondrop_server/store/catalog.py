"""
Tenant catalog for JSONDrop.

The catalog is a single SQLite database that is the system of record for:
- Tenants, their capability keys and quota counters
- Collection schemas per tenant

Each tenant additionally owns one SQLite file under data_dir, named by
its tenant id, holding a `_collections` registry and one table per
collection. The catalog creates and drops those files and tables; the
DocumentStore reads and writes the rows inside them.

Invariants:
    - quota_used <= quota_limit after every committed write
    - write_key and read_key are UNIQUE across all tenants
    - A schema row exists iff its collection table exists
    - Schema names are unique per tenant ignoring case, like the table
      names they map to
    - Multi-step operations compensate the committed step on failure;
      compensation failures are logged, never raised

How to change safely:
    - Every catalog mutation that changes quota must run under
      locks.hold(tenant_id)
    - Add catalog columns with defaults; existing files are reused

Table schema:
    tenants:
        - id TEXT PRIMARY KEY
        - write_key TEXT UNIQUE
        - read_key TEXT UNIQUE
        - created_at INTEGER (Unix ms)
        - last_accessed INTEGER (Unix ms)
        - quota_used INTEGER (bytes)
        - quota_limit INTEGER (bytes)

    schemas:
        - tenant_id TEXT (FK tenants.id, cascade)
        - name TEXT COLLATE NOCASE (SQLite table names ignore case)
        - fields TEXT (JSON object name -> type)
        - created_at INTEGER
        - PRIMARY KEY (tenant_id, name)
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..errors import (
    AlreadyExistsError,
    GenerationFailureError,
    JsonDropError,
    QuotaExceededError,
    SchemaNotFoundError,
    StorageFailureError,
    TenantNotFoundError,
)
from ..events.types import EventPublisher, SchemaCreatedEvent, SchemaDeletedEvent
from .identifiers import quote_identifier, safe_identifier
from .keygen import (
    READ_KEY_PREFIX,
    WRITE_KEY_PREFIX,
    generate_read_key,
    generate_tenant_id,
    generate_write_key,
)
from .locks import TenantLocks
from .models import (
    Capability,
    FieldType,
    ResolvedTenant,
    Schema,
    Tenant,
    TenantCredentials,
    TenantInfo,
    parse_fields,
)

logger = logging.getLogger(__name__)

# Files SQLite may leave next to a tenant database
_SIDECAR_SUFFIXES = ("", "-wal", "-shm", "-journal")


def now_ms() -> int:
    return int(time.time() * 1000)


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """Translate sqlite3/OS errors into StorageFailureError."""
    try:
        yield
    except JsonDropError:
        raise
    except (sqlite3.Error, OSError) as e:
        raise StorageFailureError(f"failed to {action}: {e}") from e


def compensate(description: str, undo: Callable[[], Any], **context: Any) -> None:
    """Run a compensating action, logging instead of raising on failure."""
    try:
        undo()
    except Exception as e:
        logger.error(
            f"Compensation failed: {description}: {e}",
            extra=context,
            exc_info=True,
        )


def _row_to_tenant(row: sqlite3.Row) -> Tenant:
    return Tenant(
        tenant_id=row["id"],
        write_key=row["write_key"],
        read_key=row["read_key"],
        created_at=row["created_at"],
        last_accessed=row["last_accessed"],
        quota_used=row["quota_used"],
        quota_limit=row["quota_limit"],
    )


def _row_to_schema(row: sqlite3.Row) -> Schema:
    return Schema(
        tenant_id=row["tenant_id"],
        name=row["name"],
        fields=parse_fields(json.loads(row["fields"])),
        created_at=row["created_at"],
    )


class TenantCatalog:
    """Catalog of tenants and schemas, plus per-tenant storage provisioning.

    Thread safety:
        Each operation opens its own SQLite connection inside a worker
        thread (asyncio.to_thread). Quota-changing operations are
        serialized per tenant by the shared TenantLocks; reads are not.

    Example:
        >>> catalog = TenantCatalog("./data/catalog.db", "./data", 100 * 1024 * 1024)
        >>> catalog.initialize()
        >>> creds = await catalog.create_tenant()
        >>> resolved = await catalog.resolve(creds.write_key)
        >>> resolved.can_write
        True
    """

    def __init__(
        self,
        catalog_path: str,
        data_dir: str,
        default_quota_bytes: int,
        locks: TenantLocks | None = None,
        publisher: EventPublisher | None = None,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the catalog.

        Args:
            catalog_path: Path of the catalog SQLite file
            data_dir: Directory for per-tenant SQLite files
            default_quota_bytes: quota_limit for new tenants
            locks: Per-tenant locks shared with the DocumentStore
            publisher: Receives schema change events
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.catalog_path = Path(catalog_path)
        self.data_dir = Path(data_dir)
        self.default_quota_bytes = default_quota_bytes
        self.locks = locks or TenantLocks()
        self.publisher = publisher
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def _open(self, path: Path) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA foreign_keys = ON")
        except Exception:
            conn.close()
            raise
        return conn

    @contextmanager
    def _catalog_connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._open(self.catalog_path)
        try:
            yield conn
        finally:
            conn.close()

    def tenant_db_path(self, tenant_id: str) -> Path:
        """Get the database file path for a tenant."""
        # Sanitize tenant_id to prevent path traversal
        safe_id = "".join(c for c in tenant_id if c.isalnum() or c in "-_")
        return self.data_dir / f"{safe_id}.db"

    @contextmanager
    def tenant_connection(
        self, tenant_id: str, create: bool = False
    ) -> Iterator[sqlite3.Connection]:
        """Open a connection to a tenant's storage file.

        Args:
            tenant_id: Tenant identifier
            create: Whether to create the file if it does not exist

        Raises:
            TenantNotFoundError: If the file does not exist and create=False
        """
        db_path = self.tenant_db_path(tenant_id)
        if not create and not db_path.exists():
            raise TenantNotFoundError(f"Tenant database not found: {tenant_id}")

        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._open(db_path)
        try:
            yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create directories and catalog tables if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.catalog_path.parent.mkdir(parents=True, exist_ok=True)

        with storage_errors("initialize catalog"), self._catalog_connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS tenants (
                    id TEXT PRIMARY KEY,
                    write_key TEXT UNIQUE NOT NULL,
                    read_key TEXT UNIQUE NOT NULL,
                    created_at INTEGER NOT NULL,
                    last_accessed INTEGER NOT NULL,
                    quota_used INTEGER NOT NULL DEFAULT 0,
                    quota_limit INTEGER NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_tenants_last_accessed
                    ON tenants(last_accessed);

                CREATE TABLE IF NOT EXISTS schemas (
                    tenant_id TEXT NOT NULL,
                    name TEXT NOT NULL COLLATE NOCASE,
                    fields TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    PRIMARY KEY (tenant_id, name),
                    FOREIGN KEY (tenant_id) REFERENCES tenants(id) ON DELETE CASCADE
                );
            """)
        logger.info(f"Catalog initialized: {self.catalog_path}")

    # ------------------------------------------------------------------
    # Tenants
    # ------------------------------------------------------------------

    async def create_tenant(self) -> TenantCredentials:
        """Create a tenant with fresh keys and an empty storage file.

        Returns:
            The tenant id and both capability keys

        Raises:
            GenerationFailureError: Random source failed or keys collided
            StorageFailureError: Catalog or file provisioning failed
        """
        return await asyncio.to_thread(self._create_tenant_sync)

    def _create_tenant_sync(self) -> TenantCredentials:
        creds = TenantCredentials(
            tenant_id=generate_tenant_id(),
            write_key=generate_write_key(),
            read_key=generate_read_key(),
        )
        now = now_ms()

        with storage_errors("create tenant entry"), self._catalog_connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO tenants (id, write_key, read_key, created_at,
                                         last_accessed, quota_used, quota_limit)
                    VALUES (?, ?, ?, ?, ?, 0, ?)
                    """,
                    (
                        creds.tenant_id,
                        creds.write_key,
                        creds.read_key,
                        now,
                        now,
                        self.default_quota_bytes,
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise GenerationFailureError(
                    "generated identifier collided with an existing tenant, retry"
                ) from e

        try:
            with storage_errors("create tenant database file"):
                with self.tenant_connection(creds.tenant_id, create=True) as conn:
                    conn.executescript("""
                        CREATE TABLE IF NOT EXISTS _collections (
                            name TEXT PRIMARY KEY COLLATE NOCASE,
                            created_at INTEGER NOT NULL
                        );
                    """)
        except StorageFailureError:
            compensate(
                "remove catalog entry for unprovisioned tenant",
                lambda: self._rollback_tenant_sync(creds.tenant_id),
                tenant_id=creds.tenant_id,
            )
            raise

        logger.info("Created tenant", extra={"tenant_id": creds.tenant_id})
        return creds

    async def resolve(self, key: str) -> ResolvedTenant:
        """Resolve a capability key to its tenant and access level.

        Raises:
            TenantNotFoundError: If the key is malformed or unknown
        """
        return await asyncio.to_thread(self._resolve_sync, key)

    def _resolve_sync(self, key: str) -> ResolvedTenant:
        if key.startswith(WRITE_KEY_PREFIX):
            column, capability = "write_key", Capability.WRITE
        elif key.startswith(READ_KEY_PREFIX):
            column, capability = "read_key", Capability.READ
        else:
            raise TenantNotFoundError("Invalid API key format")

        with storage_errors("resolve key"), self._catalog_connection() as conn:
            # column is one of two literals above
            row = conn.execute(
                f"SELECT * FROM tenants WHERE {column} = ?", (key,)
            ).fetchone()

        if row is None:
            raise TenantNotFoundError("Invalid API key")
        return ResolvedTenant(tenant=_row_to_tenant(row), capability=capability)

    async def get_tenant(self, tenant_id: str) -> Tenant:
        """Get a tenant record by id.

        Raises:
            TenantNotFoundError: If the tenant does not exist
        """
        return await asyncio.to_thread(self._get_tenant_sync, tenant_id)

    def _get_tenant_sync(self, tenant_id: str) -> Tenant:
        with storage_errors("get tenant"), self._catalog_connection() as conn:
            row = conn.execute("SELECT * FROM tenants WHERE id = ?", (tenant_id,)).fetchone()
        if row is None:
            raise TenantNotFoundError(f"Tenant not found: {tenant_id}")
        return _row_to_tenant(row)

    async def info(self, tenant_id: str) -> TenantInfo:
        """Get quota and usage information for a tenant."""
        tenant = await self.get_tenant(tenant_id)
        return TenantInfo(
            tenant_id=tenant.tenant_id,
            quota_used=tenant.quota_used,
            quota_limit=tenant.quota_limit,
            created_at=tenant.created_at,
            last_accessed=tenant.last_accessed,
        )

    async def touch(self, tenant_id: str) -> None:
        """Update last_accessed. Best-effort: failures are logged only."""
        try:
            await asyncio.to_thread(self._touch_sync, tenant_id)
        except (JsonDropError, sqlite3.Error, OSError) as e:
            logger.warning(
                f"Failed to update last_accessed: {e}",
                extra={"tenant_id": tenant_id},
            )

    def _touch_sync(self, tenant_id: str) -> None:
        with self._catalog_connection() as conn:
            conn.execute(
                "UPDATE tenants SET last_accessed = ? WHERE id = ?",
                (now_ms(), tenant_id),
            )

    async def expired_tenants(self, max_idle_seconds: float) -> list[str]:
        """Get tenants not accessed within max_idle_seconds.

        Args:
            max_idle_seconds: Idle period after which a tenant expires

        Returns:
            Tenant ids, oldest access first
        """
        cutoff = now_ms() - int(max_idle_seconds * 1000)
        return await asyncio.to_thread(self._expired_tenants_sync, cutoff)

    def _expired_tenants_sync(self, cutoff: int) -> list[str]:
        with storage_errors("list expired tenants"), self._catalog_connection() as conn:
            rows = conn.execute(
                "SELECT id FROM tenants WHERE last_accessed < ? ORDER BY last_accessed",
                (cutoff,),
            ).fetchall()
        return [row["id"] for row in rows]

    async def delete_tenant(self, tenant_id: str) -> None:
        """Delete a tenant's storage file and catalog entry.

        Idempotent: deleting an unknown tenant or one whose file is
        already gone succeeds.
        """
        async with self.locks.hold(tenant_id):
            await asyncio.to_thread(self._delete_tenant_sync, tenant_id)
        self.locks.discard(tenant_id)
        logger.info("Deleted tenant", extra={"tenant_id": tenant_id})

    def _delete_tenant_sync(self, tenant_id: str) -> None:
        with storage_errors("delete tenant database file"):
            self._remove_tenant_files(tenant_id)
        with storage_errors("delete tenant from catalog"):
            self._purge_tenant_sync(tenant_id)

    def _rollback_tenant_sync(self, tenant_id: str) -> None:
        self._remove_tenant_files(tenant_id)
        self._purge_tenant_sync(tenant_id)

    def _remove_tenant_files(self, tenant_id: str) -> None:
        db_path = self.tenant_db_path(tenant_id)
        for suffix in _SIDECAR_SUFFIXES:
            Path(str(db_path) + suffix).unlink(missing_ok=True)

    def _purge_tenant_sync(self, tenant_id: str) -> None:
        with self._catalog_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute("DELETE FROM schemas WHERE tenant_id = ?", (tenant_id,))
                conn.execute("DELETE FROM tenants WHERE id = ?", (tenant_id,))
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

    # ------------------------------------------------------------------
    # Quota
    # ------------------------------------------------------------------

    def adjust_quota(self, tenant_id: str, delta: int, enforce_limit: bool = True) -> None:
        """Apply a quota delta atomically in the catalog.

        Positive deltas are a conditional UPDATE that only succeeds while
        the result stays within quota_limit, so concurrent reservations
        can never overshoot. Negative deltas are floored at zero.

        Call from a worker thread while holding the tenant's lock.

        Args:
            tenant_id: Tenant identifier
            delta: Bytes to add (positive) or release (negative)
            enforce_limit: Skip the limit check (compensation only)

        Raises:
            QuotaExceededError: If the reservation does not fit
            TenantNotFoundError: If the tenant does not exist
        """
        with storage_errors("update quota"), self._catalog_connection() as conn:
            if delta > 0 and enforce_limit:
                cursor = conn.execute(
                    """
                    UPDATE tenants SET quota_used = quota_used + ?
                    WHERE id = ? AND quota_used + ? <= quota_limit
                    """,
                    (delta, tenant_id, delta),
                )
            else:
                cursor = conn.execute(
                    "UPDATE tenants SET quota_used = MAX(0, quota_used + ?) WHERE id = ?",
                    (delta, tenant_id),
                )
            if cursor.rowcount > 0:
                return

            row = conn.execute(
                "SELECT quota_used, quota_limit FROM tenants WHERE id = ?", (tenant_id,)
            ).fetchone()

        if row is None:
            raise TenantNotFoundError(f"Tenant not found: {tenant_id}")
        logger.info(
            "Quota exceeded",
            extra={
                "tenant_id": tenant_id,
                "quota_used": row["quota_used"],
                "quota_limit": row["quota_limit"],
                "requested": delta,
            },
        )
        raise QuotaExceededError(row["quota_used"], row["quota_limit"], delta)

    # ------------------------------------------------------------------
    # Schemas
    # ------------------------------------------------------------------

    async def create_schema(
        self,
        tenant_id: str,
        name: str,
        fields: dict[str, Any],
    ) -> Schema:
        """Define a collection schema and create its table.

        Args:
            tenant_id: Tenant identifier
            name: Collection name (must be a safe identifier)
            fields: Mapping of field name to "string", "number" or "bool"

        Returns:
            The created schema

        Raises:
            InvalidIdentifierError: If name is not a safe identifier
            ValidationFailedError: If fields is empty or has an unknown type
            AlreadyExistsError: If the collection already has a schema
            StorageFailureError: If the collection table cannot be created
        """
        table = safe_identifier(name)
        parsed = parse_fields(fields)

        async with self.locks.hold(tenant_id):
            schema = await asyncio.to_thread(
                self._create_schema_sync, tenant_id, name, table, parsed
            )
            if self.publisher is not None:
                self.publisher.publish(
                    SchemaCreatedEvent(
                        tenant_id,
                        name,
                        fields=schema.fields_to_dict(),
                        timestamp=schema.created_at,
                    )
                )

        logger.info(
            "Created schema",
            extra={"tenant_id": tenant_id, "collection": name, "fields": len(parsed)},
        )
        return schema

    def _create_schema_sync(
        self,
        tenant_id: str,
        name: str,
        table: str,
        fields: dict[str, FieldType],
    ) -> Schema:
        schema = Schema(tenant_id=tenant_id, name=name, fields=fields, created_at=now_ms())
        fields_json = json.dumps(schema.fields_to_dict())

        with storage_errors("create schema"), self._catalog_connection() as conn:
            if conn.execute("SELECT 1 FROM tenants WHERE id = ?", (tenant_id,)).fetchone() is None:
                raise TenantNotFoundError(f"Tenant not found: {tenant_id}")
            taken = conn.execute(
                "SELECT name FROM schemas WHERE tenant_id = ? AND name = ? COLLATE NOCASE",
                (tenant_id, name),
            ).fetchone()
            if taken is not None:
                raise AlreadyExistsError(
                    f"Schema already exists: {taken['name']}",
                    details={"collection": name, "existing": taken["name"]},
                )
            try:
                conn.execute(
                    "INSERT INTO schemas (tenant_id, name, fields, created_at) VALUES (?, ?, ?, ?)",
                    (tenant_id, name, fields_json, schema.created_at),
                )
            except sqlite3.IntegrityError as e:
                raise AlreadyExistsError(
                    f"Schema already exists: {name}", details={"collection": name}
                ) from e

        try:
            with storage_errors("create collection table"):
                self._create_collection_table(tenant_id, name, table, schema.created_at)
        except JsonDropError:
            compensate(
                "remove schema entry for missing collection table",
                lambda: self._delete_schema_row(tenant_id, name),
                tenant_id=tenant_id,
                collection=name,
            )
            raise

        return schema

    def _create_collection_table(
        self, tenant_id: str, name: str, table: str, created_at: int
    ) -> None:
        index = quote_identifier(f"idx_{name}_created_at")
        with self.tenant_connection(tenant_id) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                # No schema owns this table, so its rows carry no quota charge
                leftover = conn.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ? COLLATE NOCASE",
                    (name,),
                ).fetchone()
                if leftover is not None:
                    rows, size = conn.execute(
                        f"SELECT COUNT(*), COALESCE(SUM(size), 0) FROM {table}"
                    ).fetchone()
                    logger.warning(
                        "Replacing orphaned collection table",
                        extra={
                            "tenant_id": tenant_id,
                            "collection": name,
                            "table": leftover[0],
                            "rows": rows,
                            "bytes": size,
                        },
                    )
                    conn.execute(f"DROP TABLE {table}")
                conn.execute(
                    f"""
                    CREATE TABLE {table} (
                        id TEXT PRIMARY KEY,
                        created_at INTEGER NOT NULL,
                        updated_at INTEGER NOT NULL,
                        size INTEGER NOT NULL,
                        data TEXT NOT NULL
                    )
                    """
                )
                conn.execute(f"CREATE INDEX {index} ON {table}(created_at DESC)")
                conn.execute(
                    "INSERT OR REPLACE INTO _collections (name, created_at) VALUES (?, ?)",
                    (name, created_at),
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

    def _delete_schema_row(self, tenant_id: str, name: str) -> None:
        with self._catalog_connection() as conn:
            conn.execute(
                "DELETE FROM schemas WHERE tenant_id = ? AND name = ? COLLATE NOCASE",
                (tenant_id, name),
            )

    def load_schema(self, tenant_id: str, name: str) -> Schema:
        """Load a schema synchronously (for use inside worker threads).

        Raises:
            SchemaNotFoundError: If the collection has no schema
        """
        with storage_errors("get schema"), self._catalog_connection() as conn:
            row = conn.execute(
                "SELECT * FROM schemas WHERE tenant_id = ? AND name = ? COLLATE NOCASE",
                (tenant_id, name),
            ).fetchone()
        if row is None:
            raise SchemaNotFoundError(name)
        return _row_to_schema(row)

    async def get_schema(self, tenant_id: str, name: str) -> Schema:
        """Get a collection schema.

        Raises:
            InvalidIdentifierError: If name is not a safe identifier
            SchemaNotFoundError: If the collection has no schema
        """
        safe_identifier(name)
        return await asyncio.to_thread(self.load_schema, tenant_id, name)

    async def list_schemas(self, tenant_id: str) -> list[Schema]:
        """List a tenant's schemas ordered by name."""
        return await asyncio.to_thread(self._list_schemas_sync, tenant_id)

    def _list_schemas_sync(self, tenant_id: str) -> list[Schema]:
        with storage_errors("list schemas"), self._catalog_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM schemas WHERE tenant_id = ? ORDER BY name", (tenant_id,)
            ).fetchall()
        return [_row_to_schema(row) for row in rows]

    async def delete_schema(self, tenant_id: str, name: str) -> int:
        """Drop a schema, its collection table and all its documents.

        The tenant's quota is reduced by the stored size of every removed
        document.

        Returns:
            Number of bytes released from the quota

        Raises:
            InvalidIdentifierError: If name is not a safe identifier
            SchemaNotFoundError: If the collection has no schema
        """
        table = safe_identifier(name)

        async with self.locks.hold(tenant_id):
            released, name = await asyncio.to_thread(
                self._delete_schema_sync, tenant_id, name, table
            )
            if self.publisher is not None:
                self.publisher.publish(SchemaDeletedEvent(tenant_id, name))

        logger.info(
            "Deleted schema",
            extra={"tenant_id": tenant_id, "collection": name, "released_bytes": released},
        )
        return released

    def _delete_schema_sync(self, tenant_id: str, name: str, table: str) -> tuple[int, str]:
        # Raises SchemaNotFoundError before anything is touched
        name = self.load_schema(tenant_id, name).name

        with storage_errors("drop collection"), self.tenant_connection(tenant_id) as tconn:
            tconn.execute("BEGIN IMMEDIATE")
            try:
                exists = tconn.execute(
                    "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ? COLLATE NOCASE",
                    (name,),
                ).fetchone()
                released = 0
                if exists is not None:
                    released = tconn.execute(
                        f"SELECT COALESCE(SUM(size), 0) FROM {table}"
                    ).fetchone()[0]
                tconn.execute(f"DROP TABLE IF EXISTS {table}")
                tconn.execute("DELETE FROM _collections WHERE name = ? COLLATE NOCASE", (name,))

                with self._catalog_connection() as conn:
                    conn.execute("BEGIN IMMEDIATE")
                    try:
                        conn.execute(
                            "DELETE FROM schemas WHERE tenant_id = ? AND name = ? COLLATE NOCASE",
                            (tenant_id, name),
                        )
                        conn.execute(
                            "UPDATE tenants SET quota_used = MAX(0, quota_used - ?) WHERE id = ?",
                            (released, tenant_id),
                        )
                        conn.execute("COMMIT")
                    except Exception:
                        conn.execute("ROLLBACK")
                        raise

                tconn.execute("COMMIT")
            except Exception:
                if tconn.in_transaction:
                    tconn.execute("ROLLBACK")
                raise

        return released, name
