"""
Local Store Client

The sync core only needs select/insert/upsert/update on a handful of tables.
TableStore is that surface; SupabaseStore implements it against the hosted
Postgres through its PostgREST endpoint.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Protocol

import httpx

from marketsharp_sync.error_handler import StoreError

logger = logging.getLogger(__name__)

CONTACTS_MIRROR_TABLE = "ms_contacts"
JOBS_MIRROR_TABLE = "ms_jobs"
OPERATIONAL_JOBS_TABLE = "jobs"
SYNC_LOG_TABLE = "ms_sync_log"
COMPANIES_TABLE = "companies"

MIRROR_CONFLICT_KEY = "tenant_id,remote_id"


class TableStore(Protocol):
    """Row-level access to the local store. Filters are column equality."""

    async def select(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]: ...

    async def insert(self, table: str, row: dict) -> dict: ...

    async def upsert(self, table: str, row: dict, *, on_conflict: str) -> dict: ...

    async def update(
        self, table: str, values: dict, filters: dict[str, Any]
    ) -> list[dict]: ...


def _eq(value: Any) -> str:
    """PostgREST equality operator for a Python value"""
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


class SupabaseStore:
    """TableStore backed by Supabase's REST interface"""

    def __init__(
        self,
        url: str,
        service_key: str,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = f"{url.rstrip('/')}/rest/v1"
        self.service_key = service_key
        self.timeout = timeout
        self._http_client = http_client

    def _headers(self, prefer: str = "return=representation") -> dict:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
            "Prefer": prefer,
        }

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    @staticmethod
    def _check(response: httpx.Response, operation: str, table: str) -> None:
        if not response.is_success:
            raise StoreError(operation, table, response.status_code, response.text)

    async def select(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        params = {"select": "*"}
        for column, value in (filters or {}).items():
            params[column] = _eq(value)
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(limit)

        async with self._session() as client:
            response = await client.get(
                f"{self.base_url}/{table}", headers=self._headers(), params=params
            )
        self._check(response, "select", table)
        return response.json()

    async def insert(self, table: str, row: dict) -> dict:
        async with self._session() as client:
            response = await client.post(
                f"{self.base_url}/{table}", headers=self._headers(), json=row
            )
        self._check(response, "insert", table)
        result = response.json()
        return result[0] if result else {}

    async def upsert(self, table: str, row: dict, *, on_conflict: str) -> dict:
        """Insert or merge into the existing row matching the on_conflict columns"""
        async with self._session() as client:
            response = await client.post(
                f"{self.base_url}/{table}",
                headers=self._headers(
                    "resolution=merge-duplicates,return=representation"
                ),
                params={"on_conflict": on_conflict},
                json=row,
            )
        self._check(response, "upsert", table)
        result = response.json()
        return result[0] if result else {}

    async def update(
        self, table: str, values: dict, filters: dict[str, Any]
    ) -> list[dict]:
        if not filters:
            # PostgREST would patch every row
            raise ValueError(f"Refusing unfiltered update on {table}")

        params = {column: _eq(value) for column, value in filters.items()}

        async with self._session() as client:
            response = await client.patch(
                f"{self.base_url}/{table}",
                headers=self._headers(),
                params=params,
                json=values,
            )
        self._check(response, "update", table)
        return response.json()
