"""Tests for the Paperless-ngx REST API client."""

import json

import httpx
import pytest

from archivist.core.exceptions import PaperlessAPIError
from archivist.services.paperless_client import PaperlessClient

API_URL = "https://paperless.test"


def make_client(handler) -> PaperlessClient:
    return PaperlessClient(API_URL, "secret-token", transport=httpx.MockTransport(handler))


def document_payload(document_id: int, **overrides) -> dict:
    payload = {
        "id": document_id,
        "title": f"Document {document_id}",
        "content": "OCR text",
        "correspondent": None,
        "document_type": None,
        "tags": [],
        "created": "2024-01-15T00:00:00+01:00",
        "modified": "2024-01-16T10:00:00+01:00",
    }
    payload.update(overrides)
    return payload


class TestPaperlessClientRequests:
    """Tests for request construction and error mapping."""

    @pytest.mark.asyncio
    async def test_sends_token_authorization(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["url"] = str(request.url)
            return httpx.Response(200, json=document_payload(7))

        async with make_client(handler) as client:
            document = await client.get_document(7)

        assert seen["auth"] == "Token secret-token"
        assert seen["url"] == f"{API_URL}/api/documents/7/"
        assert document.id == 7

    @pytest.mark.asyncio
    async def test_http_error_carries_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"detail": "Not found."})

        async with make_client(handler) as client:
            with pytest.raises(PaperlessAPIError) as exc_info:
                await client.get_document(99)

        assert exc_info.value.upstream_status == 404
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_server_error_maps_to_bad_gateway(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        async with make_client(handler) as client:
            with pytest.raises(PaperlessAPIError) as exc_info:
                await client.get_tags()

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_transport_error_raises_api_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(PaperlessAPIError, match="Failed to connect"):
                await client.get_tags()

    @pytest.mark.asyncio
    async def test_check_connection(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"detail": "Invalid token."})

        async with make_client(handler) as client:
            assert await client.check_connection() is False


class TestPaperlessClientDocuments:
    """Tests for document listing and updates."""

    @pytest.mark.asyncio
    async def test_get_all_documents_follows_pagination(self):
        pages = {
            "1": {
                "count": 3,
                "next": f"{API_URL}/api/documents/?page=2",
                "results": [document_payload(1), document_payload(2)],
            },
            "2": {"count": 3, "next": None, "results": [document_payload(3)]},
        }
        requested_pages = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = request.url.params["page"]
            requested_pages.append(page)
            return httpx.Response(200, json=pages[page])

        async with make_client(handler) as client:
            documents = await client.get_all_documents()

        assert [d.id for d in documents] == [1, 2, 3]
        assert requested_pages == ["1", "2"]

    @pytest.mark.asyncio
    async def test_get_documents_with_tag_filter(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"count": 0, "next": None, "results": []})

        async with make_client(handler) as client:
            await client.get_documents(tags_id_in=[1, 15], search="invoice")

        assert seen["params"]["tags__id__in"] == "1,15"
        assert seen["params"]["search"] == "invoice"

    @pytest.mark.asyncio
    async def test_update_document_patches_fields(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json=document_payload(12, title="Rechnung", tags=[1, 15])
            )

        async with make_client(handler) as client:
            updated = await client.update_document(
                12, {"title": "Rechnung", "tags": [1, 15]}
            )

        assert seen["method"] == "PATCH"
        assert seen["body"] == {"title": "Rechnung", "tags": [1, 15]}
        assert updated.tags == [1, 15]


class TestPaperlessClientEntities:
    """Tests for tags, correspondents and document types."""

    @pytest.mark.asyncio
    async def test_get_tags_requests_everything_at_once(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["page_size"] = request.url.params["page_size"]
            return httpx.Response(
                200,
                json={
                    "count": 2,
                    "next": None,
                    "results": [
                        {"id": 1, "name": "Rechnung", "color": "#ff0000"},
                        {"id": 2, "name": "Steuer"},
                    ],
                },
            )

        async with make_client(handler) as client:
            tags = await client.get_tags()

        assert seen["path"] == "/api/tags/"
        assert seen["page_size"] == "9999"
        assert [(t.id, t.name) for t in tags] == [(1, "Rechnung"), (2, "Steuer")]

    @pytest.mark.asyncio
    async def test_create_correspondent(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": 42, "name": "Stadtwerke"})

        async with make_client(handler) as client:
            correspondent = await client.create_correspondent("Stadtwerke")

        assert seen["path"] == "/api/correspondents/"
        assert seen["body"] == {"name": "Stadtwerke"}
        assert correspondent.id == 42
