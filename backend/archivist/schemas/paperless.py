"""Paperless-ngx REST API payload schemas (snake_case, as the API sends them)."""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class PaperlessEntity(BaseModel):
    """Tag, correspondent or document type."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str


class PaperlessDocumentData(BaseModel):
    """Remote document as returned by ``/api/documents/``."""

    model_config = ConfigDict(extra="ignore")

    id: int
    title: str
    content: str | None = None
    correspondent: int | None = None
    document_type: int | None = None
    tags: list[int] = []
    created: str | None = None
    modified: str | None = None
    added: str | None = None


class PaperlessPage(BaseModel, Generic[T]):
    """Paginated list response."""

    model_config = ConfigDict(extra="ignore")

    count: int
    next: str | None = None
    previous: str | None = None
    results: list[T]
