"""
MarketSharp → Local Store Sync Application

Pulls contacts and jobs from MarketSharp into the local mirror tables and
keeps the operational jobs table current, per tenant.
"""

from fastapi import Depends, FastAPI, File, Header, HTTPException, UploadFile
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from contextlib import asynccontextmanager
from typing import Optional
import logging

import uvicorn

from marketsharp_sync.config import settings
from marketsharp_sync.error_handler import (
    ErrorSeverity,
    JobNotFoundError,
    TenantNotConfiguredError,
    UploadError,
    safe_scheduled_job,
    setup_logging,
    slack_notifier,
)
from marketsharp_sync.models import SyncRun, SyncStatus, TenantCredentials
from marketsharp_sync.services import (
    MarketSharpClient,
    MarketSharpRestClient,
    SupabaseStore,
    SyncEngine,
    SyncRunLogger,
    TableStore,
)
from marketsharp_sync.services.attachments import push_job_attachment
from marketsharp_sync.services.tenants import (
    list_configured_tenants,
    load_tenant_credentials,
)
from marketsharp_sync.utils import SyncAlreadyRunning, run_guard

logger = logging.getLogger(__name__)

# ============================================================================
# Dependencies
# ============================================================================

store = SupabaseStore(
    settings.supabase_url,
    settings.supabase_service_key,
    timeout=settings.remote_timeout_seconds,
)
ms_client = MarketSharpClient(
    settings.ms_odata_url, timeout=settings.remote_timeout_seconds
)
ms_rest_client = MarketSharpRestClient(
    settings.ms_rest_url, timeout=settings.remote_timeout_seconds
)


def get_store() -> TableStore:
    return store


def get_reader() -> MarketSharpClient:
    return ms_client


def get_writer() -> MarketSharpRestClient:
    return ms_rest_client


def get_engine(
    store: TableStore = Depends(get_store),
    reader: MarketSharpClient = Depends(get_reader),
) -> SyncEngine:
    return SyncEngine(store, reader)


def require_api_token(authorization: Optional[str] = Header(None)) -> None:
    """Tenant routes require the API token when one is configured"""
    if settings.api_token and authorization != f"Bearer {settings.api_token}":
        raise HTTPException(status_code=401, detail="Unauthorized")


async def get_tenant_credentials(
    tenant_id: str, store: TableStore = Depends(get_store)
) -> TenantCredentials:
    try:
        return await load_tenant_credentials(store, tenant_id)
    except TenantNotConfiguredError as e:
        raise HTTPException(status_code=404, detail=e.message)


# ============================================================================
# Sync Logic
# ============================================================================


async def run_tenant_sync(
    engine: SyncEngine,
    credentials: TenantCredentials,
    triggered_by: Optional[str] = None,
) -> SyncRun:
    """
    Run one tenant's sync under the run guard and alert on failures.

    Raises:
        SyncAlreadyRunning: If this tenant is already syncing in this process
    """
    async with run_guard.hold(credentials.tenant_id):
        run = await engine.run(credentials, triggered_by=triggered_by)

    if not run.success:
        await slack_notifier.send_error(
            error=Exception(
                f"MarketSharp sync {run.status.value} for tenant {run.tenant_id}"
            ),
            function_name="run_tenant_sync",
            severity=ErrorSeverity.HIGH
            if run.status == SyncStatus.FAILED
            else ErrorSeverity.MEDIUM,
            context={
                "tenant_id": run.tenant_id,
                "contacts_synced": run.contacts_synced,
                "jobs_synced": run.jobs_synced,
                "error_count": len(run.errors),
                "errors": run.errors[:5],  # First 5 examples
            },
        )

    return run


async def sync_all_tenants(engine: SyncEngine, store: TableStore) -> list[dict]:
    """Sync every configured tenant, one after another"""
    results = []

    for credentials in await list_configured_tenants(store):
        try:
            run = await run_tenant_sync(engine, credentials, triggered_by=None)
        except SyncAlreadyRunning as e:
            logger.info(f"Skipping tenant {credentials.tenant_id}: {e}")
            results.append({"tenant_id": credentials.tenant_id, "status": "skipped"})
            continue

        results.append(run.model_dump(mode="json"))

    logger.info(f"Synced {len(results)} tenant(s)")
    return results


@safe_scheduled_job
async def scheduled_sync():
    """Daily sync of every configured tenant"""
    await sync_all_tenants(SyncEngine(store, ms_client), store)


# ============================================================================
# FastAPI App
# ============================================================================

# Scheduler instance
scheduler = AsyncIOScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown"""
    setup_logging(settings.log_level)

    scheduler.add_job(
        scheduled_sync,
        "cron",
        hour=settings.sync_cron_hour,
        minute=0,
        id="scheduled_sync",
    )

    scheduler.start()
    logger.info(f"Scheduler started (daily at {settings.sync_cron_hour:02d}:00 UTC)")

    if settings.sync_on_startup:
        await scheduled_sync()

    yield

    scheduler.shutdown()
    logger.info("Scheduler stopped")


app = FastAPI(
    title="MarketSharp Sync",
    description="Syncs contacts and jobs from MarketSharp into the local store",
    version="1.0.0",
    lifespan=lifespan,
)


# ============================================================================
# API Endpoints
# ============================================================================


@app.get("/")
async def root():
    """Root endpoint with status"""
    return {
        "status": "running",
        "sync_cron_hour": settings.sync_cron_hour,
    }


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "ok"}


@app.post("/tenants/{tenant_id}/sync", dependencies=[Depends(require_api_token)])
async def trigger_sync(
    credentials: TenantCredentials = Depends(get_tenant_credentials),
    engine: SyncEngine = Depends(get_engine),
    x_user_id: Optional[str] = Header(None),
):
    """Run a sync for one tenant now and return its run summary"""
    try:
        run = await run_tenant_sync(engine, credentials, triggered_by=x_user_id)
    except SyncAlreadyRunning as e:
        raise HTTPException(status_code=409, detail=str(e))

    return run.model_dump(mode="json")


@app.get("/tenants/{tenant_id}/sync-runs", dependencies=[Depends(require_api_token)])
async def sync_history(
    tenant_id: str,
    limit: int = settings.sync_history_limit,
    store: TableStore = Depends(get_store),
):
    """Most recent sync runs for a tenant"""
    runs = await SyncRunLogger(store).history(tenant_id, limit=limit)
    return {
        "running": run_guard.is_running(tenant_id),
        "logs": [run.model_dump(mode="json") for run in runs],
    }


@app.get(
    "/tenants/{tenant_id}/test-connection", dependencies=[Depends(require_api_token)]
)
async def test_connection(
    credentials: TenantCredentials = Depends(get_tenant_credentials),
    reader: MarketSharpClient = Depends(get_reader),
):
    """Check a tenant's MarketSharp credentials"""
    return await reader.test_connection(credentials)


@app.post(
    "/tenants/{tenant_id}/jobs/{job_id}/attachments",
    dependencies=[Depends(require_api_token)],
)
async def upload_attachment(
    job_id: str,
    file: UploadFile = File(...),
    credentials: TenantCredentials = Depends(get_tenant_credentials),
    store: TableStore = Depends(get_store),
    writer: MarketSharpRestClient = Depends(get_writer),
):
    """Push a file to the MarketSharp job linked to an operational job"""
    content = await file.read()

    try:
        return await push_job_attachment(
            store,
            writer,
            credentials,
            job_id,
            content,
            file.filename or f"job_{job_id}.jpg",
            file.content_type or "image/jpeg",
        )
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except UploadError as e:
        raise HTTPException(status_code=502, detail=e.message)


@app.get("/cron/sync")
async def cron_sync(
    authorization: Optional[str] = Header(None),
    engine: SyncEngine = Depends(get_engine),
    store: TableStore = Depends(get_store),
):
    """Sync every tenant; for external cron triggers"""
    if settings.cron_secret and authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")

    results = await sync_all_tenants(engine, store)
    return {"message": f"Synced {len(results)} tenant(s)", "results": results}


if __name__ == "__main__":
    uvicorn.run(
        "marketsharp_sync.main:app", host="0.0.0.0", port=settings.port, reload=True
    )
