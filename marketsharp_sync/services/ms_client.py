"""
MarketSharp OData API Client

Read-only access to the MarketSharp WCF data service.
Every call is signed with the tenant's credentials (passed per call) and
returns typed Pydantic models.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from marketsharp_sync.error_handler import RemoteApiError
from marketsharp_sync.models import (
    RemoteAddress,
    RemoteContact,
    RemoteContract,
    RemoteJob,
    RemotePhone,
    TenantCredentials,
)
from marketsharp_sync.services.auth import sign_request
from marketsharp_sync.services.odata import normalize_response

logger = logging.getLogger(__name__)

DEFAULT_ODATA_URL = "https://api4.marketsharpm.com/WcfDataService.svc"

# MarketSharp returns at most this many rows per collection request
REMOTE_COLLECTION_CAP = 5000

RecordT = TypeVar("RecordT", bound=BaseModel)


class RemoteRecords(list):
    """
    Records that validated, in payload order.

    Items that failed validation are left out of the list and kept in
    `rejected` as (remote_id, reason) pairs, so one bad row never costs
    the rest of its collection.
    """

    def __init__(self, records=(), rejected=None):
        super().__init__(records)
        self.rejected: list[tuple[str, str]] = list(rejected or [])


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'record'}: {err['msg']}"
        for err in error.errors()
    )


def validate_records(
    items: Iterable[Any], model: Type[RecordT], resource: str
) -> RemoteRecords:
    """Validate each item on its own; invalid ones go to `rejected`"""
    records = RemoteRecords()

    for item in items:
        try:
            records.append(model.model_validate(item))
        except ValidationError as e:
            remote_id = item.get("id") if isinstance(item, dict) else None
            reason = f"invalid {resource} record: {_describe(e)}"
            logger.warning(f"Skipping {resource} record {remote_id}: {reason}")
            records.rejected.append((str(remote_id), reason))

    return records


def _key(remote_id: str) -> str:
    """Quote an id for an OData key segment: Contacts('...')"""
    return "'" + remote_id.replace("'", "''") + "'"


class MarketSharpClient:
    """Client for the MarketSharp OData API (HMAC signed, no tokens)"""

    def __init__(
        self,
        base_url: str = DEFAULT_ODATA_URL,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    def _url(self, credentials: TenantCredentials, resource: str) -> str:
        base = (credentials.base_url or self.base_url).rstrip("/")
        return f"{base}/{resource}"

    async def _get(
        self,
        credentials: TenantCredentials,
        resource: str,
        params: Optional[dict[str, str]] = None,
    ) -> Any:
        """
        Signed GET against one resource path.

        Returns:
            The unwrapped, date-normalized payload

        Raises:
            RemoteApiError: On any non-2xx response
            httpx.TransportError: If the request never completes
        """
        async with self._session() as client:
            response = await client.get(
                self._url(credentials, resource),
                headers={
                    "Authorization": sign_request(credentials),
                    "Accept": "application/json",
                },
                params=params or None,
            )

        if not response.is_success:
            raise RemoteApiError(response.status_code, response.text, resource=resource)

        return normalize_response(response.json())

    def _records(
        self, payload: Any, model: Type[RecordT], resource: str
    ) -> RemoteRecords:
        """Coerce a normalized payload into typed records"""
        if isinstance(payload, dict):
            items = [payload]
        elif isinstance(payload, list):
            items = payload
        else:
            items = []

        if len(items) >= REMOTE_COLLECTION_CAP:
            logger.warning(
                f"{resource} returned {len(items)} rows - "
                f"MarketSharp may have truncated the result"
            )

        return validate_records(items, model, resource)

    # ========================================================================
    # Contacts
    # ========================================================================

    async def get_contacts(
        self, credentials: TenantCredentials, filter: Optional[str] = None
    ) -> RemoteRecords:
        """
        Get every contact, optionally narrowed by an OData $filter expression.
        """
        params = {"$filter": filter} if filter else None
        payload = await self._get(credentials, "Contacts", params)
        return self._records(payload, RemoteContact, "Contacts")

    async def get_customers(self, credentials: TenantCredentials) -> RemoteRecords:
        """Get contacts of type customer"""
        payload = await self._get(credentials, "Customers")
        return self._records(payload, RemoteContact, "Customers")

    async def get_contact(
        self, credentials: TenantCredentials, contact_id: str
    ) -> Optional[RemoteContact]:
        """Get a single contact, None if the payload is empty"""
        payload = await self._get(credentials, f"Contacts({_key(contact_id)})")
        records = self._records(payload, RemoteContact, "Contacts")
        return records[0] if records else None

    async def get_contact_addresses(
        self, credentials: TenantCredentials, contact_id: str
    ) -> list[RemoteAddress]:
        resource = f"Contacts({_key(contact_id)})/Address"
        payload = await self._get(credentials, resource)
        return self._records(payload, RemoteAddress, resource)

    async def get_contact_phones(
        self, credentials: TenantCredentials, contact_id: str
    ) -> list[RemotePhone]:
        resource = f"Contacts({_key(contact_id)})/ContactPhone"
        payload = await self._get(credentials, resource)
        return self._records(payload, RemotePhone, resource)

    # ========================================================================
    # Jobs
    # ========================================================================

    async def get_jobs(
        self, credentials: TenantCredentials, filter: Optional[str] = None
    ) -> RemoteRecords:
        """
        Get every job with its contact expanded inline.

        Args:
            credentials: Tenant credentials
            filter: Optional OData $filter expression
        """
        params = {"$expand": "Contact"}
        if filter:
            params["$filter"] = filter

        payload = await self._get(credentials, "Jobs", params)
        return self._records(payload, RemoteJob, "Jobs")

    async def get_job_contracts(
        self, credentials: TenantCredentials, job_id: str
    ) -> list[RemoteContract]:
        resource = f"Jobs({_key(job_id)})/Contract"
        payload = await self._get(credentials, resource)
        return self._records(payload, RemoteContract, resource)

    async def test_connection(self, credentials: TenantCredentials) -> dict:
        """
        Check the credentials by fetching customers and jobs.

        Never raises; failures are reported in the returned dict.
        """
        try:
            customers = await self.get_customers(credentials)
            jobs = await self.get_jobs(credentials)
        except (RemoteApiError, httpx.HTTPError, ValueError) as e:
            logger.warning(f"Connection test failed for tenant {credentials.tenant_id}: {e}")
            return {"success": False, "message": str(e)}

        return {
            "success": True,
            "message": (
                f"Connected successfully. Found {len(customers)} customers "
                f"and {len(jobs)} jobs."
            ),
            "data": {"customer_count": len(customers), "job_count": len(jobs)},
        }
