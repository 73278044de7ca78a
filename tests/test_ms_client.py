"""Unit tests for the MarketSharp OData and REST clients (httpx mock transport)."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from marketsharp_sync.error_handler import RemoteApiError, UploadError
from marketsharp_sync.models import TenantCredentials
from marketsharp_sync.services.ms_client import MarketSharpClient
from marketsharp_sync.services.ms_rest_client import MarketSharpRestClient

pytestmark = pytest.mark.unit

BASE = "https://odata.example.test/WcfDataService.svc"
REST = "https://rest.example.test"


def _reader(handler: Callable[[httpx.Request], httpx.Response]) -> MarketSharpClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MarketSharpClient(base_url=BASE, http_client=client)


def _writer(handler: Callable[[httpx.Request], httpx.Response]) -> MarketSharpRestClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MarketSharpRestClient(base_url=REST, http_client=client)


class TestMarketSharpClient:
    async def test_get_customers_signs_request_and_parses_records(self, credentials):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "d": {
                        "results": [
                            {
                                "id": "C1",
                                "firstName": "Ada",
                                "lastName": "Lovelace",
                                "email1": "ada@example.com",
                                "lastUpdate": "/Date(1700000000000)/",
                                "Jobs": {"__deferred": {"uri": "Contacts('C1')/Jobs"}},
                            }
                        ]
                    }
                },
            )

        customers = await _reader(handler).get_customers(credentials)

        assert len(customers) == 1
        assert customers[0].id == "C1"
        assert customers[0].full_name == "Ada Lovelace"
        assert customers[0].last_update == "2023-11-14T22:13:20.000Z"

        request = seen[0]
        assert request.method == "GET"
        assert request.url.path == "/WcfDataService.svc/Customers"
        assert request.headers["Accept"] == "application/json"
        assert request.headers["Authorization"].startswith("1234:api-key:")
        assert len(request.headers["Authorization"].split(":")) == 4

    async def test_get_jobs_expands_contact_and_passes_filter(self, credentials):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "value": [
                        {
                            "id": "J1",
                            "contactId": "C1",
                            "status": "Installed",
                            "Contact": {"id": "C1", "lastName": "Smith"},
                        }
                    ]
                },
            )

        jobs = await _reader(handler).get_jobs(credentials, filter="isActive eq true")

        assert jobs[0].contact is not None
        assert jobs[0].contact.last_name == "Smith"
        assert seen[0].url.params["$expand"] == "Contact"
        assert seen[0].url.params["$filter"] == "isActive eq true"

    async def test_contact_navigation_paths(self, credentials):
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path.endswith("/Address"):
                return httpx.Response(200, json={"d": [{"line1": "1 Main St", "city": "Austin"}]})
            if request.url.path.endswith("/ContactPhone"):
                # Single entity envelope becomes a one-item list
                return httpx.Response(200, json={"d": {"cellPhone": "555-0100"}})
            return httpx.Response(200, json={"d": []})

        reader = _reader(handler)
        addresses = await reader.get_contact_addresses(credentials, "C1")
        phones = await reader.get_contact_phones(credentials, "C1")
        contracts = await reader.get_job_contracts(credentials, "J'1")

        assert addresses[0].full_address == "1 Main St, Austin"
        assert phones[0].best == "555-0100"
        assert contracts == []
        assert paths == [
            "/WcfDataService.svc/Contacts('C1')/Address",
            "/WcfDataService.svc/Contacts('C1')/ContactPhone",
            "/WcfDataService.svc/Jobs('J''1')/Contract",
        ]

    async def test_invalid_rows_are_rejected_one_by_one(self, credentials):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "d": [
                        {"id": "J1", "status": "Sold"},
                        {"id": None, "status": "Sold"},
                        {"id": "J3", "status": "Sold"},
                    ]
                },
            )

        jobs = await _reader(handler).get_jobs(credentials)

        assert [job.id for job in jobs] == ["J1", "J3"]
        assert len(jobs.rejected) == 1
        remote_id, reason = jobs.rejected[0]
        assert remote_id == "None"
        assert reason.startswith("invalid Jobs record: id:")

    async def test_get_contact_returns_single_record_or_none(self, credentials):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("Contacts('C1')"):
                return httpx.Response(200, json={"d": {"id": "C1", "lastName": "Smith"}})
            return httpx.Response(200, json={"d": []})

        reader = _reader(handler)
        contact = await reader.get_contact(credentials, "C1")

        assert contact is not None
        assert contact.last_name == "Smith"
        assert await reader.get_contact(credentials, "C2") is None

    async def test_non_2xx_raises_remote_api_error_with_status_and_body(self, credentials):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text="stale epoch")

        with pytest.raises(RemoteApiError) as exc_info:
            await _reader(handler).get_contacts(credentials)

        assert exc_info.value.status_code == 401
        assert exc_info.value.body == "stale epoch"
        assert exc_info.value.resource == "Contacts"

    async def test_tenant_base_url_override(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"d": []})

        credentials = TenantCredentials.model_validate(
            {
                "tenant_id": "t",
                "companyId": "1",
                "apiKey": "k",
                "secretKey": "c2VjcmV0",
                "baseUrl": "https://other.example.test/svc/",
            }
        )
        await _reader(handler).get_contacts(credentials)

        assert str(seen[0].url) == "https://other.example.test/svc/Contacts"

    async def test_each_request_is_signed_afresh(self, credentials, monkeypatch):
        epochs = iter([100.0, 200.0])
        monkeypatch.setattr("marketsharp_sync.services.auth.time.time", lambda: next(epochs))
        headers: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            headers.append(request.headers["Authorization"])
            return httpx.Response(200, json={"d": []})

        reader = _reader(handler)
        await reader.get_contacts(credentials)
        await reader.get_contacts(credentials)

        assert [h.split(":")[2] for h in headers] == ["100", "200"]

    async def test_test_connection_reports_counts(self, credentials):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/Customers"):
                return httpx.Response(200, json={"d": [{"id": "C1"}, {"id": "C2"}]})
            return httpx.Response(200, json={"d": [{"id": "J1"}]})

        result = await _reader(handler).test_connection(credentials)

        assert result["success"] is True
        assert result["data"] == {"customer_count": 2, "job_count": 1}

    async def test_test_connection_never_raises(self, credentials):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="down")

        result = await _reader(handler).test_connection(credentials)

        assert result["success"] is False
        assert "500" in result["message"]


class TestMarketSharpRestClient:
    async def test_upload_exchanges_token_then_posts_multipart(self, credentials):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path == "/token":
                return httpx.Response(200, json={"access_token": "tok-1"})
            return httpx.Response(201, json={"id": "att-9"})

        result = await _writer(handler).upload_job_attachment(
            credentials, "J1", b"photo-bytes", "front.jpg"
        )

        assert result == {"id": "att-9"}
        token_request, upload_request = seen
        assert token_request.method == "POST"
        assert token_request.headers["Authorization"].startswith("1234:api-key:")
        assert upload_request.url.path == "/companies/1234/jobs/J1/attachments"
        assert upload_request.headers["Authorization"] == "Bearer tok-1"
        assert upload_request.headers["Content-Type"].startswith("multipart/form-data")
        assert b"photo-bytes" in upload_request.content
        assert b'filename="front.jpg"' in upload_request.content

    async def test_token_is_requested_for_every_upload(self, credentials):
        token_calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal token_calls
            if request.url.path == "/token":
                token_calls += 1
                return httpx.Response(200, json={"access_token": f"tok-{token_calls}"})
            return httpx.Response(200, json={})

        writer = _writer(handler)
        await writer.upload_job_attachment(credentials, "J1", b"a", "a.jpg")
        await writer.upload_job_attachment(credentials, "J1", b"b", "b.jpg")

        assert token_calls == 2

    async def test_token_failure_raises_upload_error(self, credentials):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, text="bad signature")

        with pytest.raises(UploadError) as exc_info:
            await _writer(handler).upload_job_attachment(credentials, "J1", b"x", "x.jpg")

        assert exc_info.value.step == "token"
        assert exc_info.value.status_code == 403

    async def test_upload_failure_raises_upload_error(self, credentials):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/token":
                return httpx.Response(200, json={"access_token": "tok"})
            return httpx.Response(413, text="too large")

        with pytest.raises(UploadError) as exc_info:
            await _writer(handler).upload_job_attachment(credentials, "J1", b"x", "x.jpg")

        assert exc_info.value.step == "upload"
        assert exc_info.value.body == "too large"
