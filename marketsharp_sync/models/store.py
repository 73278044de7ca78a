"""
Local Store Models

Rows written to the mirror tables, the operational jobs table and the sync log.
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, Union
from datetime import datetime
from enum import Enum


class MirrorContact(BaseModel):
    """Row of ms_contacts, unique on (tenant_id, remote_id)"""

    tenant_id: str
    remote_id: str
    first_name: str = ""
    last_name: str = ""
    full_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    address: str = ""
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    business_name: Optional[str] = None
    source: Optional[str] = None
    is_active: bool = True
    last_synced_at: datetime
    ms_created_date: Optional[str] = None
    ms_last_update: Optional[str] = None


class MirrorJob(BaseModel):
    """Row of ms_jobs, unique on (tenant_id, remote_id)"""

    tenant_id: str
    remote_id: str
    remote_contact_id: Optional[str] = None
    job_name: str
    description: Optional[str] = None
    job_type: Optional[str] = None
    status: Optional[str] = None
    address: str = ""
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    category: str
    start_date: Optional[str] = None
    sale_date: Optional[str] = None
    completed_date: Optional[str] = None
    is_active: bool = True
    last_synced_at: datetime
    ms_created_date: Optional[str] = None
    ms_last_update: Optional[str] = None


class OperationalJobFields(BaseModel):
    """Columns of the jobs table that every sync writes through"""

    tenant_id: str
    job_name: str
    address: str = ""
    category: str
    installation_info: Optional[str] = None
    ms_notes: Optional[str] = None
    status: Optional[str] = None
    sale_date: Optional[str] = None
    start_date: Optional[str] = None
    completed_date: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    contract_total: Optional[float] = None
    contract_balance_due: Optional[float] = None
    contract_finance_total: Optional[float] = None
    contract_cash_total: Optional[float] = None
    contract_status: Optional[str] = None
    contract_date: Optional[str] = None
    payment_type: Optional[str] = None


class OperationalJob(OperationalJobFields):
    """Business-facing job row, linked to at most one remote job"""

    id: Optional[Union[int, str]] = None
    remote_job_id: Optional[str] = None
    remote_contact_id: Optional[str] = None
    user_id: Optional[str] = None
    is_archived: bool = False


class SyncStatus(str, Enum):
    """Outcome of one sync run"""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class SyncRun(BaseModel):
    """One row of ms_sync_log, written once when a run completes"""

    tenant_id: str
    started_at: datetime
    completed_at: datetime
    contacts_synced: int = 0
    jobs_synced: int = 0
    errors: list[str] = Field(default_factory=list)
    status: SyncStatus
    triggered_by: Optional[str] = None

    @model_validator(mode="after")
    def _check_consistency(self) -> "SyncRun":
        if self.completed_at < self.started_at:
            raise ValueError("completed_at precedes started_at")
        if (self.status == SyncStatus.SUCCESS) != (not self.errors):
            raise ValueError(
                f"status {self.status.value} inconsistent with {len(self.errors)} error(s)"
            )
        return self

    @property
    def success(self) -> bool:
        return self.status == SyncStatus.SUCCESS

    def to_row(self) -> dict:
        row = self.model_dump(mode="json")
        row["errors"] = self.errors or None
        return row

    @classmethod
    def from_row(cls, row: dict) -> "SyncRun":
        data = dict(row)
        data["errors"] = data.get("errors") or []
        return cls.model_validate(data)
