"""
Sync run log: one append-only ms_sync_log row per run.
"""

from marketsharp_sync.models import SyncRun
from marketsharp_sync.services.store import SYNC_LOG_TABLE, TableStore


class SyncRunLogger:
    """Writes and reads the sync history of each tenant"""

    def __init__(self, store: TableStore):
        self.store = store

    async def record(self, run: SyncRun) -> None:
        await self.store.insert(SYNC_LOG_TABLE, run.to_row())

    async def history(self, tenant_id: str, limit: int = 20) -> list[SyncRun]:
        """Most recent runs first"""
        rows = await self.store.select(
            SYNC_LOG_TABLE,
            {"tenant_id": tenant_id},
            order_by="started_at",
            descending=True,
            limit=limit,
        )
        return [SyncRun.from_row(row) for row in rows]
