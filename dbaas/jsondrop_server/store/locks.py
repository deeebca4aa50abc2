"""
Per-tenant mutual exclusion.

Every mutation that touches a tenant's quota holds that tenant's lock
from validation through the quota update and the document write.
Different tenants never contend.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class TenantLocks:
    """Lazily created asyncio.Lock per tenant id.

    Thread safety:
        Intended for use from a single event loop. Lock creation has no
        await between lookup and insert, so it cannot race on that loop.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tenant_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, tenant_id: str) -> AsyncIterator[None]:
        """Hold the tenant's lock for the duration of the block."""
        async with self.get(tenant_id):
            yield

    def discard(self, tenant_id: str) -> None:
        """Forget a tenant's lock once the tenant is gone."""
        self._locks.pop(tenant_id, None)

    def __len__(self) -> int:
        return len(self._locks)
