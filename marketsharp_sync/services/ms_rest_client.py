"""
MarketSharp REST API Client

Unlike the OData API, the REST API accepts writes. We use it for one thing:
attaching files (job photos) to a MarketSharp job.

Authentication:
1. POST /token with the HMAC signed header to get a Bearer token
2. Use the Bearer token for the upload
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from marketsharp_sync.error_handler import UploadError
from marketsharp_sync.models import TenantCredentials
from marketsharp_sync.services.auth import sign_request

logger = logging.getLogger(__name__)

DEFAULT_REST_URL = "https://restapi.marketsharpm.com"


class MarketSharpRestClient:
    """Client for the MarketSharp REST API (attachment uploads only)"""

    def __init__(
        self,
        base_url: str = DEFAULT_REST_URL,
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

    def _base(self, credentials: TenantCredentials) -> str:
        return (credentials.rest_base_url or self.base_url).rstrip("/")

    async def get_access_token(self, credentials: TenantCredentials) -> str:
        """
        Exchange the signed header for a Bearer token.

        Not cached: every upload asks for a fresh token.

        Raises:
            UploadError: If the token endpoint answers non-2xx
        """
        async with self._session() as client:
            response = await client.post(
                f"{self._base(credentials)}/token",
                headers={
                    "Authorization": sign_request(credentials),
                    "Accept": "application/json",
                },
            )

        if not response.is_success:
            raise UploadError("token", response.status_code, response.text)

        token = response.json().get("access_token")
        if not token:
            raise UploadError("token", response.status_code, "no access_token in response")
        return token

    async def upload_job_attachment(
        self,
        credentials: TenantCredentials,
        remote_job_id: str,
        content: bytes,
        file_name: str,
        content_type: str = "image/jpeg",
    ) -> dict:
        """
        Upload a file as an attachment on a MarketSharp job.

        Args:
            credentials: Tenant credentials
            remote_job_id: MarketSharp job id
            content: File bytes
            file_name: Name shown in MarketSharp
            content_type: MIME type of the file

        Returns:
            dict: MarketSharp's response body

        Raises:
            UploadError: If the token exchange or the upload answers non-2xx
        """
        token = await self.get_access_token(credentials)
        url = (
            f"{self._base(credentials)}/companies/{credentials.company_id}"
            f"/jobs/{remote_job_id}/attachments"
        )

        async with self._session() as client:
            response = await client.post(
                url,
                headers={"Authorization": f"Bearer {token}"},
                files={"file": (file_name, content, content_type)},
            )

        if not response.is_success:
            raise UploadError("upload", response.status_code, response.text)

        logger.info(
            f"Uploaded {file_name} ({len(content)} bytes) to MarketSharp job {remote_job_id}"
        )

        if not response.content:
            return {}
        return response.json()
