"""Schemas for AI document analysis and suggestion application."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import Field, model_validator

from archivist.schemas.base import CamelModel


class SuggestedItem(CamelModel):
    """A correspondent or document type: existing (with id) or new (name only)."""

    id: int | None = None
    name: str


class SuggestedTag(CamelModel):
    """A tag suggestion.

    Existing tags carry an ``id`` (name optional); new tags carry only a
    ``name``. ``is_assigned`` is filled in after parsing.
    """

    id: int | None = None
    name: str | None = None
    is_assigned: bool | None = None

    @model_validator(mode="after")
    def require_id_or_name(self) -> "SuggestedTag":
        if self.id is None and not self.name:
            raise ValueError("tag needs an id or a name")
        return self


class DocumentAnalysisResult(CamelModel):
    """Structured suggestion produced by the analysis agent."""

    suggested_title: str
    suggested_correspondent: SuggestedItem
    suggested_document_type: SuggestedItem
    suggested_tags: list[SuggestedTag] = Field(default_factory=list)
    confidence: float = Field(..., ge=0, le=1)
    reasoning: str
    suggested_date: str | None = None


class AnalyzeDocumentRequest(CamelModel):
    """Request body for a manual analysis run."""

    ai_bot_id: UUID


class AnalyzeDocumentResponse(CamelModel):
    """Analysis outcome returned to the caller."""

    success: bool = True
    result: DocumentAnalysisResult
    input_tokens: int
    output_tokens: int
    estimated_cost: float | None = None


ApplyField = Literal["title", "correspondent", "documentType", "tags", "date", "all"]


class ApplyFieldRequest(CamelModel):
    """Apply one suggested field, or every field of the latest result."""

    field: ApplyField
    value: Any = None

    @model_validator(mode="after")
    def require_value(self) -> "ApplyFieldRequest":
        if self.field != "all" and self.value is None:
            raise ValueError("value is required unless field is 'all'")
        return self


class ApplyFieldResponse(CamelModel):
    """Values written to the document store."""

    success: bool
    field: ApplyField
    applied_values: dict[str, Any]


class ProcessingResultResponse(CamelModel):
    """Latest processing audit row for a document."""

    id: UUID
    document_id: UUID
    ai_provider: str
    input_tokens: int
    output_tokens: int
    tokens_used: int
    estimated_cost: Decimal | None
    changes: dict[str, Any]
    tool_calls: list[dict[str, Any]]
    original_title: str | None
    processed_at: datetime
