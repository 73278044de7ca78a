"""Shared doubles: in-memory store, scripted MarketSharp reader, credentials."""

from __future__ import annotations

import base64
import copy
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from marketsharp_sync.models import (
    RemoteAddress,
    RemoteContact,
    RemoteContract,
    RemoteJob,
    RemotePhone,
    TenantCredentials,
)
from marketsharp_sync.services.ms_client import RemoteRecords, validate_records

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
SECRET = base64.b64encode(b"super-secret-key").decode("ascii")


class InMemoryStore:
    """TableStore double with upsert-on-conflict semantics."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict]] = defaultdict(list)
        self._next_id = 1
        self._failures: list[tuple[str, str, Callable[[dict], bool]]] = []
        self.calls: list[tuple[str, str]] = []

    def fail_on(
        self, operation: str, table: str, predicate: Callable[[dict], bool] = lambda row: True
    ) -> None:
        self._failures.append((operation, table, predicate))

    def _maybe_fail(self, operation: str, table: str, row: dict) -> None:
        for op, tbl, predicate in self._failures:
            if op == operation and tbl == table and predicate(row):
                raise RuntimeError(f"{operation} on {table} rejected")

    @staticmethod
    def _matches(row: dict, filters: dict[str, Any] | None) -> bool:
        for column, value in (filters or {}).items():
            current = row.get(column)
            if value is None:
                if current is not None:
                    return False
            elif current is None or str(current) != str(value):
                return False
        return True

    def seed(self, table: str, row: dict) -> dict:
        stored = dict(row)
        if "id" not in stored:
            stored["id"] = self._next_id
            self._next_id += 1
        self.tables[table].append(stored)
        return stored

    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict]:
        self.calls.append(("select", table))
        self._maybe_fail("select", table, filters or {})
        rows = [copy.deepcopy(r) for r in self.tables[table] if self._matches(r, filters)]
        if order_by:
            rows.sort(key=lambda r: str(r.get(order_by)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def insert(self, table: str, row: dict) -> dict:
        self.calls.append(("insert", table))
        self._maybe_fail("insert", table, row)
        return copy.deepcopy(self.seed(table, row))

    async def upsert(self, table: str, row: dict, *, on_conflict: str) -> dict:
        self.calls.append(("upsert", table))
        self._maybe_fail("upsert", table, row)
        keys = [k.strip() for k in on_conflict.split(",")]
        for existing in self.tables[table]:
            if all(existing.get(k) == row.get(k) for k in keys):
                existing.update(row)
                return copy.deepcopy(existing)
        return copy.deepcopy(self.seed(table, row))

    async def update(self, table: str, values: dict, filters: dict[str, Any]) -> list[dict]:
        self.calls.append(("update", table))
        self._maybe_fail("update", table, values)
        updated = []
        for row in self.tables[table]:
            if self._matches(row, filters):
                row.update(values)
                updated.append(copy.deepcopy(row))
        return updated


class FakeReader:
    """Scripted stand-in for MarketSharpClient, fed with wire-shaped dicts."""

    def __init__(self) -> None:
        self.customers: list[dict] = []
        self.contacts: list[dict] = []
        self.jobs: list[dict] = []
        self.addresses: dict[str, list[dict]] = {}
        self.phones: dict[str, list[dict]] = {}
        self.contracts: dict[str, list[dict]] = {}
        self.errors: dict[str, Exception] = {}
        self.calls: list[str] = []

    def _check(self, key: str) -> None:
        self.calls.append(key)
        if key in self.errors:
            raise self.errors[key]

    async def get_customers(self, credentials: TenantCredentials) -> RemoteRecords:
        self._check("customers")
        return validate_records(self.customers, RemoteContact, "Customers")

    async def get_contacts(
        self, credentials: TenantCredentials, filter: str | None = None
    ) -> RemoteRecords:
        self._check("contacts")
        return validate_records(self.contacts, RemoteContact, "Contacts")

    async def get_contact_addresses(
        self, credentials: TenantCredentials, contact_id: str
    ) -> list[RemoteAddress]:
        self._check(f"addresses:{contact_id}")
        return [RemoteAddress.model_validate(a) for a in self.addresses.get(contact_id, [])]

    async def get_contact_phones(
        self, credentials: TenantCredentials, contact_id: str
    ) -> list[RemotePhone]:
        self._check(f"phones:{contact_id}")
        return [RemotePhone.model_validate(p) for p in self.phones.get(contact_id, [])]

    async def get_jobs(
        self, credentials: TenantCredentials, filter: str | None = None
    ) -> RemoteRecords:
        self._check("jobs")
        return validate_records(self.jobs, RemoteJob, "Jobs")

    async def get_job_contracts(
        self, credentials: TenantCredentials, job_id: str
    ) -> list[RemoteContract]:
        self._check(f"contracts:{job_id}")
        return [RemoteContract.model_validate(c) for c in self.contracts.get(job_id, [])]

    async def test_connection(self, credentials: TenantCredentials) -> dict:
        return {"success": True, "message": "ok", "data": {"customer_count": len(self.customers)}}


@pytest.fixture
def credentials() -> TenantCredentials:
    return TenantCredentials(
        tenant_id="tenant-1",
        companyId="1234",
        apiKey="api-key",
        secretKey=SECRET,
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def reader() -> FakeReader:
    return FakeReader()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW
