"""
JSONDrop service facade.

Wires the tenant catalog, the document store and the change broadcaster
together around one shared set of per-tenant locks, and adds the
cross-component operations (authentication, tenant deletion) that the
HTTP adapter calls.

Invariants:
    - Catalog and DocumentStore share the same TenantLocks instance
    - Both publish into the same Broadcaster
    - Deleting a tenant closes every listener of that tenant

How to change safely:
    - Keep transport concerns (status codes, headers) out of this module
    - Start and stop background tasks only through start()/stop()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .config import Settings
from .errors import AuthenticationError, PermissionDeniedError, TenantNotFoundError
from .events import Broadcaster
from .expiry import ExpirySweeper
from .store import DocumentStore, TenantCatalog, TenantLocks
from .store.models import ResolvedTenant

logger = logging.getLogger(__name__)


class JsonDropService:
    """Top-level object owning every JSONDrop component.

    Attributes:
        settings: Server configuration
        locks: Per-tenant locks shared by catalog and store
        broadcaster: Change broadcaster
        catalog: Tenant catalog
        documents: Document store
        expiry: Idle tenant sweeper

    Example:
        >>> service = JsonDropService(Settings())
        >>> await service.start()
        >>> creds = await service.catalog.create_tenant()
        >>> await service.stop()
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()
        self.locks = TenantLocks()
        self.broadcaster = Broadcaster(
            queue_size=self.settings.listener_queue_size,
            heartbeat_interval=self.settings.heartbeat_interval_seconds,
            stale_after=self.settings.stale_listener_seconds,
            sweep_interval=self.settings.sweep_interval_seconds,
        )
        self.catalog = TenantCatalog(
            catalog_path=self.settings.catalog_path,
            data_dir=self.settings.data_dir,
            default_quota_bytes=self.settings.default_quota_bytes,
            locks=self.locks,
            publisher=self.broadcaster,
            wal_mode=self.settings.wal_mode,
            busy_timeout_ms=self.settings.busy_timeout_ms,
        )
        self.documents = DocumentStore(self.catalog, publisher=self.broadcaster)
        self.expiry = ExpirySweeper(
            self,
            max_idle_seconds=self.settings.max_idle_seconds,
            interval_seconds=self.settings.expiry_check_interval_seconds,
        )
        self._running = False

    async def start(self) -> None:
        """Initialize storage and start background sweeps."""
        if self._running:
            logger.warning("Service already running")
            return
        await asyncio.to_thread(self.catalog.initialize)
        self.broadcaster.start()
        self.expiry.start()
        self._running = True
        logger.info("JSONDrop service started")

    async def stop(self) -> None:
        """Stop background sweeps and close all listeners."""
        if not self._running:
            return
        await self.expiry.stop()
        await self.broadcaster.stop()
        self._running = False
        logger.info("JSONDrop service stopped")

    async def authenticate(
        self,
        key: str | None,
        tenant_id: str | None = None,
        require_write: bool = False,
    ) -> ResolvedTenant:
        """Resolve a capability key and check it grants the requested access.

        Successful authentication refreshes the tenant's last_accessed.

        Args:
            key: Capability key from the request
            tenant_id: Tenant addressed by the request, if any
            require_write: Whether the operation mutates data

        Raises:
            AuthenticationError: Key missing, malformed or unknown
            PermissionDeniedError: Wrong tenant, or read key for a write
        """
        if not key:
            raise AuthenticationError("Missing API key")
        try:
            resolved = await self.catalog.resolve(key)
        except TenantNotFoundError as e:
            raise AuthenticationError(e.message) from e

        if tenant_id is not None and resolved.tenant.tenant_id != tenant_id:
            raise PermissionDeniedError("Database ID mismatch")
        if require_write and not resolved.can_write:
            raise PermissionDeniedError("Write key required")

        await self.catalog.touch(resolved.tenant.tenant_id)
        return resolved

    async def delete_tenant(self, tenant_id: str) -> None:
        """Delete a tenant's data and disconnect its listeners."""
        await self.catalog.delete_tenant(tenant_id)
        closed = self.broadcaster.close_tenant(tenant_id)
        if closed:
            logger.info(
                "Closed listeners of deleted tenant",
                extra={"tenant_id": tenant_id, "listeners": closed},
            )

    def health(self) -> dict[str, Any]:
        """Liveness summary for the health endpoint."""
        return {
            "status": "healthy" if self._running else "starting",
            "service": "jsondrop",
            "listeners": self.broadcaster.listener_count(),
        }
