"""
Idle tenant expiry.

Periodically deletes tenants whose last_accessed is older than the
configured idle period. Each tenant is deleted independently; one
failure does not stop the sweep.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from .errors import JsonDropError

if TYPE_CHECKING:
    from .service import JsonDropService

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Background loop deleting idle tenants.

    Attributes:
        max_idle_seconds: Idle period after which a tenant expires
        interval_seconds: Time between sweeps
    """

    def __init__(
        self,
        service: JsonDropService,
        max_idle_seconds: float,
        interval_seconds: float,
    ) -> None:
        self.service = service
        self.max_idle_seconds = max_idle_seconds
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    async def sweep(self) -> list[str]:
        """Delete every expired tenant once.

        Returns:
            Ids of the tenants that were deleted
        """
        expired = await self.service.catalog.expired_tenants(self.max_idle_seconds)
        deleted: list[str] = []
        for tenant_id in expired:
            try:
                await self.service.delete_tenant(tenant_id)
            except JsonDropError as e:
                logger.error(
                    f"Failed to delete expired tenant: {e.message}",
                    extra={"tenant_id": tenant_id},
                )
                continue
            deleted.append(tenant_id)

        if expired:
            logger.info(
                f"Expiry sweep deleted {len(deleted)} of {len(expired)} expired tenant(s)"
            )
        return deleted

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Expiry sweep failed: {e}", exc_info=True)

    def start(self) -> None:
        """Start the periodic sweep."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
            logger.info(
                "Expiry sweeper started",
                extra={
                    "max_idle_seconds": self.max_idle_seconds,
                    "interval_seconds": self.interval_seconds,
                },
            )

    async def stop(self) -> None:
        """Stop the periodic sweep."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
