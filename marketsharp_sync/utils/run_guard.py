"""
In-process guard against overlapping sync runs for one tenant.

Two runs for the same tenant would race on the same mirror and operational
rows. This only covers a single process; multiple instances still need an
external lock.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator


class SyncAlreadyRunning(Exception):
    """A run for this tenant is already in flight"""

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"A sync for tenant {tenant_id} is already running")


class TenantRunGuard:
    """Tracks which tenants have a run in flight"""

    def __init__(self):
        self._running: set[str] = set()

    def is_running(self, tenant_id: str) -> bool:
        return tenant_id in self._running

    @asynccontextmanager
    async def hold(self, tenant_id: str) -> AsyncIterator[None]:
        """
        Mark a tenant as running for the duration of the block.

        Raises:
            SyncAlreadyRunning: If the tenant is already held
        """
        # Check-and-add has no await in between, so it is atomic on the loop
        if tenant_id in self._running:
            raise SyncAlreadyRunning(tenant_id)
        self._running.add(tenant_id)
        try:
            yield
        finally:
            self._running.discard(tenant_id)


# Global guard instance
run_guard = TenantRunGuard()
