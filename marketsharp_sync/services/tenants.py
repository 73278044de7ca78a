"""
Tenant lookup.

Each company row carries its MarketSharp credentials in marketsharp_config
({companyId, apiKey, secretKey, baseUrl?}). The service layer loads them here
and hands them to the sync core explicitly.
"""

import logging

from pydantic import ValidationError

from marketsharp_sync.error_handler import ErrorSeverity, TenantNotConfiguredError
from marketsharp_sync.models import TenantCredentials
from marketsharp_sync.services.store import COMPANIES_TABLE, TableStore

logger = logging.getLogger(__name__)


def _credentials_from_row(row: dict) -> TenantCredentials:
    config = row.get("marketsharp_config")
    if not config:
        raise TenantNotConfiguredError(
            f"MarketSharp config not found for tenant {row.get('id')}",
            severity=ErrorSeverity.LOW,
            context={"tenant_id": row.get("id")},
        )

    try:
        return TenantCredentials.model_validate({**config, "tenant_id": str(row["id"])})
    except ValidationError as e:
        raise TenantNotConfiguredError(
            f"MarketSharp config for tenant {row.get('id')} is incomplete",
            severity=ErrorSeverity.MEDIUM,
            context={"tenant_id": row.get("id"), "errors": e.error_count()},
        ) from e


async def load_tenant_credentials(store: TableStore, tenant_id: str) -> TenantCredentials:
    """
    Raises:
        TenantNotConfiguredError: Unknown tenant, or no usable credentials
    """
    rows = await store.select(COMPANIES_TABLE, {"id": tenant_id}, limit=1)
    if not rows:
        raise TenantNotConfiguredError(
            f"Tenant {tenant_id} not found",
            severity=ErrorSeverity.LOW,
            context={"tenant_id": tenant_id},
        )
    return _credentials_from_row(rows[0])


async def list_configured_tenants(store: TableStore) -> list[TenantCredentials]:
    """Every tenant with usable credentials; misconfigured ones are skipped"""
    tenants = []
    for row in await store.select(COMPANIES_TABLE):
        if not row.get("marketsharp_config"):
            continue
        try:
            tenants.append(_credentials_from_row(row))
        except TenantNotConfiguredError as e:
            logger.warning(f"Skipping tenant: {e.message}")
    return tenants
