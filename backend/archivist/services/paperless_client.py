"""Paperless-ngx REST API client."""

from typing import Any

import httpx

from archivist.config import get_settings
from archivist.core.encryption import decrypt
from archivist.core.exceptions import PaperlessAPIError
from archivist.core.logging import get_logger
from archivist.models.paperless_instance import PaperlessInstance
from archivist.schemas.paperless import (
    PaperlessDocumentData,
    PaperlessEntity,
    PaperlessPage,
)

logger = get_logger(__name__)
settings = get_settings()

# Large enough to fetch every tag/correspondent/type in one request
ALL_ITEMS_PAGE_SIZE = 9999


class PaperlessClient:
    """Async client for one Paperless-ngx instance."""

    def __init__(
        self,
        api_url: str,
        api_token: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            api_url: Instance base URL, e.g. ``https://paperless.example.com``
            api_token: Plain-text API token
            transport: Optional transport override (used by tests)
        """
        self._base_url = api_url.rstrip("/") + "/api"
        self._api_token = api_token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_instance(cls, instance: PaperlessInstance) -> "PaperlessClient":
        """Build a client from a stored instance, decrypting its token."""
        return cls(instance.api_url, decrypt(instance.api_token))

    async def __aenter__(self) -> "PaperlessClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "Authorization": f"Token {self._api_token}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=settings.paperless_request_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> Any:
        """Make an API request with error handling.

        Args:
            method: HTTP method
            path: Path below ``/api``, e.g. ``/documents/12/``
            **kwargs: Additional arguments for httpx request

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            PaperlessAPIError: For non-2xx responses and transport failures
        """
        client = self._get_client()

        try:
            response = await client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            logger.error("paperless_request_error", path=path, error=str(e))
            raise PaperlessAPIError(f"Failed to connect to Paperless: {e}") from e

        if response.is_error:
            logger.warning(
                "paperless_api_error",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise PaperlessAPIError(
                f"Paperless API error: {response.status_code} "
                f"{response.reason_phrase} - {response.text[:200]}",
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # --- Documents ---

    async def get_documents(
        self,
        page: int = 1,
        page_size: int | None = None,
        search: str | None = None,
        tags_id_in: list[int] | None = None,
    ) -> PaperlessPage[PaperlessDocumentData]:
        """Fetch one page of documents."""
        params: dict[str, Any] = {
            "page": page,
            "page_size": page_size or settings.paperless_page_size,
        }
        if search:
            params["search"] = search
        if tags_id_in:
            params["tags__id__in"] = ",".join(str(t) for t in tags_id_in)

        data = await self._request("GET", "/documents/", params=params)
        return PaperlessPage[PaperlessDocumentData].model_validate(data)

    async def get_all_documents(self) -> list[PaperlessDocumentData]:
        """Fetch every document by following pagination until ``next`` is null."""
        documents: list[PaperlessDocumentData] = []
        page = 1
        while True:
            result = await self.get_documents(page=page)
            documents.extend(result.results)
            if not result.next:
                break
            page += 1
        return documents

    async def get_document(self, document_id: int) -> PaperlessDocumentData:
        data = await self._request("GET", f"/documents/{document_id}/")
        return PaperlessDocumentData.model_validate(data)

    async def update_document(
        self, document_id: int, fields: dict[str, Any]
    ) -> PaperlessDocumentData:
        """PATCH the given fields on a document."""
        data = await self._request("PATCH", f"/documents/{document_id}/", json=fields)
        logger.info(
            "paperless_document_updated",
            paperless_document_id=document_id,
            fields=sorted(fields),
        )
        return PaperlessDocumentData.model_validate(data)

    # --- Tags / correspondents / document types ---

    async def _get_all_entities(self, path: str) -> list[PaperlessEntity]:
        data = await self._request(
            "GET", path, params={"page_size": ALL_ITEMS_PAGE_SIZE}
        )
        return PaperlessPage[PaperlessEntity].model_validate(data).results

    async def _create_entity(self, path: str, name: str) -> PaperlessEntity:
        data = await self._request("POST", path, json={"name": name})
        entity = PaperlessEntity.model_validate(data)
        logger.info("paperless_entity_created", path=path, id=entity.id, name=name)
        return entity

    async def get_tags(self) -> list[PaperlessEntity]:
        return await self._get_all_entities("/tags/")

    async def get_correspondents(self) -> list[PaperlessEntity]:
        return await self._get_all_entities("/correspondents/")

    async def get_document_types(self) -> list[PaperlessEntity]:
        return await self._get_all_entities("/document_types/")

    async def create_tag(self, name: str) -> PaperlessEntity:
        return await self._create_entity("/tags/", name)

    async def create_correspondent(self, name: str) -> PaperlessEntity:
        return await self._create_entity("/correspondents/", name)

    async def create_document_type(self, name: str) -> PaperlessEntity:
        return await self._create_entity("/document_types/", name)

    async def check_connection(self) -> bool:
        """Return True when the instance answers an authenticated request."""
        try:
            await self._request("GET", "/tags/", params={"page_size": 1})
        except PaperlessAPIError as e:
            logger.warning("paperless_connection_check_failed", error=str(e))
            return False
        return True
