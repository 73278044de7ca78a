"""
MarketSharp → local store sync engine.

One run, for one tenant:
1. Fetch customers (falling back to all contacts), enrich each with its first
   address and phone, upsert into ms_contacts.
2. Fetch jobs (contact expanded), enrich each with contact address/phone and
   first contract, upsert into ms_jobs, then create/update/archive the linked
   row in the operational jobs table.
3. Append a summary row to ms_sync_log.

Each contact and job is processed in isolation: its outcome is a RecordResult
and a failure never stops the rest of the run.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional

from pydantic import BaseModel

from marketsharp_sync.models import (
    MirrorContact,
    MirrorJob,
    OperationalJob,
    OperationalJobFields,
    RemoteAddress,
    RemoteContact,
    RemoteContract,
    RemoteJob,
    RemotePhone,
    SyncRun,
    SyncStatus,
    TenantCredentials,
)
from marketsharp_sync.services.ms_client import MarketSharpClient, RemoteRecords
from marketsharp_sync.services.promotion import (
    PromotionAction,
    classify_category,
    decide_action,
    evaluate_promotion,
)
from marketsharp_sync.services.run_logger import SyncRunLogger
from marketsharp_sync.services.store import (
    CONTACTS_MIRROR_TABLE,
    JOBS_MIRROR_TABLE,
    MIRROR_CONFLICT_KEY,
    OPERATIONAL_JOBS_TABLE,
    TableStore,
)

logger = logging.getLogger(__name__)


class RecordResult(BaseModel):
    """Outcome of syncing one remote record"""

    remote_id: str
    synced: bool = False
    error: Optional[str] = None


def tally(results: Iterable[RecordResult]) -> tuple[int, list[str]]:
    """Split record outcomes into a synced count and the error messages"""
    synced = 0
    errors: list[str] = []
    for result in results:
        if result.synced:
            synced += 1
        if result.error:
            errors.append(result.error)
    return synced, errors


def parse_amount(value: Any) -> Optional[float]:
    """Contract money fields arrive as strings; None when absent or unparseable"""
    if value is None or value == "":
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    return amount if math.isfinite(amount) else None


def display_job_name(job: RemoteJob) -> str:
    """'Smith - Window Replacement', else the job name, else 'Job <number>'"""
    last_name = job.contact.last_name if job.contact else None
    if last_name:
        return f"{last_name} - {job.name or job.type or 'Job'}"
    return job.name or f"Job {job.number or job.id}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncEngine:
    """
    Pulls one tenant's MarketSharp data into the local store.

    Args:
        store: Local store (mirror, operational and log tables)
        reader: MarketSharp OData client
        run_logger: Where the run summary goes (defaults to ms_sync_log in store)
        clock: Returns the current aware UTC time
    """

    def __init__(
        self,
        store: TableStore,
        reader: MarketSharpClient,
        run_logger: Optional[SyncRunLogger] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.reader = reader
        self.run_logger = run_logger or SyncRunLogger(store)
        self.clock = clock

    async def run(
        self, credentials: TenantCredentials, triggered_by: Optional[str] = None
    ) -> SyncRun:
        """
        Run a full sync for one tenant and log it.

        Never raises: a failure outside per-record processing produces a
        'failed' run. Writing the log row is best-effort and never changes
        the returned run.
        """
        tenant_id = credentials.tenant_id
        started_at = self.clock()
        errors: list[str] = []
        contacts_synced = 0
        jobs_synced = 0

        logger.info(f"{'=' * 80}")
        logger.info(f"MarketSharp sync for tenant {tenant_id} - {started_at.isoformat()}")
        logger.info(f"{'=' * 80}")

        try:
            # ─── Contacts ───────────────────────────────────────────────
            contacts = await self._fetch_contacts(credentials, errors)
            logger.info(f"Found {len(contacts)} contact(s)")

            contact_results = self._rejected("Contact", contacts)
            for contact in contacts:
                contact_results.append(
                    await self._capture(
                        "Contact", contact.id, self._sync_contact(credentials, contact)
                    )
                )
            contacts_synced, contact_errors = tally(contact_results)
            errors.extend(contact_errors)

            # ─── Jobs ───────────────────────────────────────────────────
            jobs = await self._fetch_jobs(credentials, errors)
            logger.info(f"Found {len(jobs)} job(s)")

            job_results = self._rejected("Job", jobs)
            for job in jobs:
                job_results.append(
                    await self._capture(
                        "Job",
                        job.id,
                        self._sync_job(credentials, job, started_at, triggered_by),
                    )
                )
            jobs_synced, job_errors = tally(job_results)
            errors.extend(job_errors)

            run = SyncRun(
                tenant_id=tenant_id,
                started_at=started_at,
                completed_at=self.clock(),
                contacts_synced=contacts_synced,
                jobs_synced=jobs_synced,
                errors=errors,
                status=SyncStatus.SUCCESS if not errors else SyncStatus.PARTIAL,
                triggered_by=triggered_by,
            )

        except Exception as e:
            logger.error(f"Fatal sync error for tenant {tenant_id}: {e}", exc_info=True)
            errors.append(f"Fatal sync error: {e}")

            run = SyncRun(
                tenant_id=tenant_id,
                started_at=started_at,
                completed_at=max(self.clock(), started_at),
                contacts_synced=contacts_synced,
                jobs_synced=jobs_synced,
                errors=errors,
                status=SyncStatus.FAILED,
                triggered_by=triggered_by,
            )

        try:
            await self.run_logger.record(run)
        except Exception as log_error:
            logger.warning(f"Could not record sync run for tenant {tenant_id}: {log_error}")

        self._log_summary(run)
        return run

    # ========================================================================
    # Fetching
    # ========================================================================

    async def _fetch_contacts(
        self, credentials: TenantCredentials, errors: list[str]
    ) -> RemoteRecords:
        """Customers first; all contacts if that fails; nothing if both fail"""
        try:
            return await self.reader.get_customers(credentials)
        except Exception as e:
            errors.append(f"Failed to fetch customers, trying all contacts: {e}")

        try:
            return await self.reader.get_contacts(credentials)
        except Exception as e:
            errors.append(f"Failed to fetch contacts: {e}")
            return RemoteRecords()

    async def _fetch_jobs(
        self, credentials: TenantCredentials, errors: list[str]
    ) -> RemoteRecords:
        try:
            return await self.reader.get_jobs(credentials)
        except Exception as e:
            errors.append(f"Failed to fetch jobs: {e}")
            return RemoteRecords()

    @staticmethod
    def _rejected(kind: str, records: RemoteRecords) -> list[RecordResult]:
        """Failed results for the records the reader could not validate"""
        return [
            RecordResult(remote_id=remote_id, error=f"{kind} {remote_id}: {reason}")
            for remote_id, reason in records.rejected
        ]

    async def _first_or_none(self, fetch: Awaitable[list], what: str, remote_id: str):
        """Best-effort enrichment: first record, or None on any failure"""
        try:
            records = await fetch
        except Exception as e:
            logger.info(f"  Could not fetch {what} for {remote_id}: {e}")
            return None
        return records[0] if records else None

    @staticmethod
    async def _capture(
        kind: str, remote_id: str, work: Awaitable[RecordResult]
    ) -> RecordResult:
        """Turn an exception from one record into a failed RecordResult"""
        try:
            return await work
        except Exception as e:
            logger.warning(f"  {kind} {remote_id} failed: {e}")
            return RecordResult(remote_id=remote_id, error=f"{kind} {remote_id}: {e}")

    # ========================================================================
    # Contacts
    # ========================================================================

    async def _sync_contact(
        self, credentials: TenantCredentials, contact: RemoteContact
    ) -> RecordResult:
        address: Optional[RemoteAddress] = await self._first_or_none(
            self.reader.get_contact_addresses(credentials, contact.id),
            "address",
            contact.id,
        )
        phone: Optional[RemotePhone] = await self._first_or_none(
            self.reader.get_contact_phones(credentials, contact.id),
            "phone",
            contact.id,
        )

        row = MirrorContact(
            tenant_id=credentials.tenant_id,
            remote_id=contact.id,
            first_name=contact.first_name or "",
            last_name=contact.last_name or "",
            full_name=contact.full_name,
            email=contact.email1 or None,
            phone=phone.best if phone else None,
            address=address.full_address if address else "",
            city=address.city if address else None,
            state=address.state if address else None,
            zip=address.zip if address else None,
            business_name=contact.business_name or None,
            source=contact.source or None,
            is_active=contact.is_active if contact.is_active is not None else True,
            last_synced_at=self.clock(),
            ms_created_date=contact.creation_date,
            ms_last_update=contact.last_update,
        )

        await self.store.upsert(
            CONTACTS_MIRROR_TABLE,
            row.model_dump(mode="json"),
            on_conflict=MIRROR_CONFLICT_KEY,
        )
        return RecordResult(remote_id=contact.id, synced=True)

    # ========================================================================
    # Jobs
    # ========================================================================

    async def _sync_job(
        self,
        credentials: TenantCredentials,
        job: RemoteJob,
        now: datetime,
        triggered_by: Optional[str],
    ) -> RecordResult:
        contact_address: Optional[RemoteAddress] = None
        contact_phone: Optional[RemotePhone] = None

        if job.contact_id:
            if not job.has_address:
                contact_address = await self._first_or_none(
                    self.reader.get_contact_addresses(credentials, job.contact_id),
                    "address",
                    job.contact_id,
                )
            contact_phone = await self._first_or_none(
                self.reader.get_contact_phones(credentials, job.contact_id),
                "phone",
                job.contact_id,
            )

        contract: Optional[RemoteContract] = await self._first_or_none(
            self.reader.get_job_contracts(credentials, job.id), "contract", job.id
        )

        if job.has_address:
            address = job.full_address
        elif contact_address:
            address = contact_address.full_address
        else:
            address = ""

        category = classify_category(job)
        job_name = display_job_name(job)

        mirror = MirrorJob(
            tenant_id=credentials.tenant_id,
            remote_id=job.id,
            remote_contact_id=job.contact_id or None,
            job_name=job_name,
            description=job.description or None,
            job_type=job.type or None,
            status=job.status or None,
            address=address,
            city=job.city or (contact_address.city if contact_address else None),
            state=job.state or (contact_address.state if contact_address else None),
            zip=job.zip or (contact_address.zip if contact_address else None),
            category=category.value,
            start_date=job.start_date,
            sale_date=job.sale_date,
            completed_date=job.completed_date,
            is_active=job.is_active if job.is_active is not None else True,
            last_synced_at=self.clock(),
            ms_created_date=job.created_date,
            ms_last_update=job.last_update,
        )
        await self.store.upsert(
            JOBS_MIRROR_TABLE,
            mirror.model_dump(mode="json"),
            on_conflict=MIRROR_CONFLICT_KEY,
        )

        fields = OperationalJobFields(
            tenant_id=credentials.tenant_id,
            job_name=job_name,
            address=address,
            category=category.value,
            installation_info=job.description or None,
            ms_notes=job.note or None,
            status=job.status or None,
            sale_date=job.sale_date,
            start_date=job.start_date,
            completed_date=job.completed_date,
            customer_name=self._customer_name(job),
            customer_email=(job.contact.email1 if job.contact else None) or None,
            customer_phone=contact_phone.best if contact_phone else None,
            **self._contract_fields(contract),
        )

        try:
            await self._promote(job, fields, now, triggered_by)
        except Exception as e:
            # The mirror row is in; only the operational step failed
            logger.warning(f"  Job {job.id} promotion failed: {e}")
            return RecordResult(
                remote_id=job.id, synced=True, error=f"Job {job.id} promotion: {e}"
            )

        return RecordResult(remote_id=job.id, synced=True)

    @staticmethod
    def _customer_name(job: RemoteJob) -> Optional[str]:
        if not job.contact:
            return None
        parts = [job.contact.first_name, job.contact.last_name]
        return " ".join(p for p in parts if p) or None

    @staticmethod
    def _contract_fields(contract: Optional[RemoteContract]) -> dict:
        if contract is None:
            return {}

        total = parse_amount(contract.total_contract)
        cash_total = parse_amount(contract.cash_total)

        return {
            "contract_total": total if total is not None else cash_total,
            "contract_balance_due": parse_amount(contract.balance_due),
            "contract_finance_total": parse_amount(contract.finance_total),
            "contract_cash_total": cash_total,
            "contract_status": contract.status or None,
            "contract_date": contract.contract_date or None,
            "payment_type": contract.payment_type or None,
        }

    async def _promote(
        self,
        job: RemoteJob,
        fields: OperationalJobFields,
        now: datetime,
        triggered_by: Optional[str],
    ) -> PromotionAction:
        """Create, update, archive or leave the operational row for one job"""
        decision = evaluate_promotion(job, now)
        link_filter = {"tenant_id": fields.tenant_id, "remote_job_id": job.id}

        existing = await self.store.select(OPERATIONAL_JOBS_TABLE, link_filter, limit=1)
        action = decide_action(bool(existing), decision.should_be_promoted)

        if action == PromotionAction.CREATE:
            row = OperationalJob(
                **fields.model_dump(),
                remote_job_id=job.id,
                remote_contact_id=job.contact_id or None,
                user_id=triggered_by,
                is_archived=False,
            )
            await self.store.insert(
                OPERATIONAL_JOBS_TABLE, row.model_dump(mode="json", exclude={"id"})
            )
            logger.info(f"  Job {job.id}: promoted")

        elif action == PromotionAction.UPDATE:
            values = fields.model_dump(mode="json")
            values["is_archived"] = False
            await self.store.update(OPERATIONAL_JOBS_TABLE, values, link_filter)

        elif action == PromotionAction.ARCHIVE:
            await self.store.update(
                OPERATIONAL_JOBS_TABLE, {"is_archived": True}, link_filter
            )
            logger.info(f"  Job {job.id}: archived")

        return action

    @staticmethod
    def _log_summary(run: SyncRun) -> None:
        logger.info(f"{'=' * 80}")
        logger.info(
            f"Sync {run.status.value} for tenant {run.tenant_id} - "
            f"{run.contacts_synced} contact(s), {run.jobs_synced} job(s)"
        )
        if run.errors:
            logger.info(f"{len(run.errors)} error(s) occurred")
        logger.info(f"{'=' * 80}")
