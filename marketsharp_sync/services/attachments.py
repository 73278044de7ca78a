"""
Attachment push: send a file for an operational job to its MarketSharp job.

This is the only write toward MarketSharp and is best-effort; nothing in the
sync depends on it.
"""

import logging
from typing import Union

from marketsharp_sync.error_handler import (
    ErrorSeverity,
    JobNotFoundError,
    with_error_handling,
)
from marketsharp_sync.models import TenantCredentials
from marketsharp_sync.services.ms_rest_client import MarketSharpRestClient
from marketsharp_sync.services.store import OPERATIONAL_JOBS_TABLE, TableStore

logger = logging.getLogger(__name__)


@with_error_handling(severity=ErrorSeverity.HIGH)
async def push_job_attachment(
    store: TableStore,
    writer: MarketSharpRestClient,
    credentials: TenantCredentials,
    job_id: Union[int, str],
    content: bytes,
    file_name: str,
    content_type: str = "image/jpeg",
) -> dict:
    """
    Upload a file to the MarketSharp job linked to an operational job.

    Returns:
        dict: {"success": bool, "message": str, "result"?: MarketSharp response}

    Raises:
        JobNotFoundError: No such operational job for this tenant
        UploadError: MarketSharp rejected the token request or the upload
    """
    rows = await store.select(
        OPERATIONAL_JOBS_TABLE,
        {"tenant_id": credentials.tenant_id, "id": job_id},
        limit=1,
    )
    if not rows:
        raise JobNotFoundError(
            f"Job {job_id} not found",
            severity=ErrorSeverity.LOW,
            context={"tenant_id": credentials.tenant_id, "job_id": job_id},
        )

    remote_job_id = rows[0].get("remote_job_id")
    if not remote_job_id:
        logger.info(f"Skipping upload: job {job_id} is not linked to MarketSharp")
        return {"success": False, "message": "Job not linked to MarketSharp"}

    result = await writer.upload_job_attachment(
        credentials, remote_job_id, content, file_name, content_type
    )
    return {"success": True, "message": "Uploaded", "result": result}
