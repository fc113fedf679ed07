"""Document analysis and suggestion apply endpoints."""

from uuid import UUID

from fastapi import APIRouter, Request
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from archivist.api.deps import DbSession, Instance
from archivist.core.exceptions import NotFoundError
from archivist.core.logging import get_logger
from archivist.core.rate_limit import analysis_limit, limiter
from archivist.models.document import PaperlessDocument
from archivist.schemas.analysis import (
    AnalyzeDocumentRequest,
    AnalyzeDocumentResponse,
    ApplyFieldRequest,
    ApplyFieldResponse,
    ProcessingResultResponse,
)
from archivist.services.ai.analysis_service import DocumentAnalysisService
from archivist.services.suggestion_applier import SuggestionApplyService

logger = get_logger(__name__)

router = APIRouter(
    prefix="/paperless-instances/{instance_id}/documents", tags=["documents"]
)


async def get_instance_document(
    db: AsyncSession, instance_id: UUID, document_id: UUID
) -> PaperlessDocument:
    result = await db.execute(
        select(PaperlessDocument).where(
            and_(
                PaperlessDocument.id == document_id,
                PaperlessDocument.paperless_instance_id == instance_id,
            )
        )
    )
    document = result.scalar_one_or_none()
    if document is None:
        raise NotFoundError("Document not found", error_code="documentNotFound")
    return document


@router.post("/{document_id}/analyze", response_model=AnalyzeDocumentResponse)
@limiter.limit(analysis_limit)
async def analyze_document(
    request: Request,
    document_id: UUID,
    data: AnalyzeDocumentRequest,
    instance: Instance,
    db: DbSession,
) -> AnalyzeDocumentResponse:
    """Run AI analysis on a mirrored document.

    Suggestions are returned for review; nothing is written to Paperless.
    Token usage and the processing result are recorded.
    """
    document = await get_instance_document(db, instance.id, document_id)

    service = DocumentAnalysisService(db)
    outcome = await service.analyze(
        document.id, data.ai_bot_id, user_id=instance.owner_id
    )

    return AnalyzeDocumentResponse(
        success=True,
        result=outcome.result,
        input_tokens=outcome.input_tokens,
        output_tokens=outcome.output_tokens,
        estimated_cost=(
            float(outcome.estimated_cost)
            if outcome.estimated_cost is not None
            else None
        ),
    )


@router.post("/{document_id}/apply", response_model=ApplyFieldResponse)
@limiter.limit(analysis_limit)
async def apply_document_suggestion(
    request: Request,
    document_id: UUID,
    data: ApplyFieldRequest,
    instance: Instance,
    db: DbSession,
) -> ApplyFieldResponse:
    """Write one reviewed suggestion, or all of the latest result, to Paperless.

    Paperless 5xx responses surface as 502; 4xx keep their status.
    """
    service = SuggestionApplyService(db)
    applied_values = await service.apply_field(
        instance.id, document_id, data.field, data.value
    )
    return ApplyFieldResponse(
        success=True, field=data.field, applied_values=applied_values
    )


@router.get("/{document_id}/result", response_model=ProcessingResultResponse)
async def get_processing_result(
    document_id: UUID,
    instance: Instance,
    db: DbSession,
) -> ProcessingResultResponse:
    """Latest processing result for a document."""
    document = await get_instance_document(db, instance.id, document_id)

    service = SuggestionApplyService(db)
    latest = await service.get_latest_result(document.id)
    if latest is None:
        raise NotFoundError(
            "No processing result for this document",
            error_code="noProcessingResult",
        )
    return ProcessingResultResponse.model_validate(latest)
