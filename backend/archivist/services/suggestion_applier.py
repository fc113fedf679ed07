"""Write accepted analysis suggestions back to Paperless and the local mirror."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from uuid import UUID

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from archivist.core.exceptions import NotFoundError, ValidationError
from archivist.core.logging import get_logger
from archivist.models.document import PaperlessDocument
from archivist.models.paperless_instance import PaperlessInstance
from archivist.models.processing_result import DocumentProcessingResult
from archivist.schemas.analysis import (
    DocumentAnalysisResult,
    SuggestedItem,
    SuggestedTag,
)
from archivist.services.paperless_client import PaperlessClient

logger = get_logger(__name__)

_tag_list = TypeAdapter(list[SuggestedTag])


@dataclass
class AutoApplySettings:
    """Which suggested fields are written without review."""

    title: bool = False
    correspondent: bool = False
    document_type: bool = False
    tags: bool = False
    date: bool = False

    @classmethod
    def from_instance(cls, instance: PaperlessInstance) -> "AutoApplySettings":
        return cls(
            title=instance.auto_apply_title,
            correspondent=instance.auto_apply_correspondent,
            document_type=instance.auto_apply_document_type,
            tags=instance.auto_apply_tags,
            date=instance.auto_apply_date,
        )

    @classmethod
    def everything(cls) -> "AutoApplySettings":
        return cls(True, True, True, True, True)

    @property
    def any_enabled(self) -> bool:
        return any(
            (self.title, self.correspondent, self.document_type, self.tags, self.date)
        )


def has_auto_apply_enabled(settings: AutoApplySettings) -> bool:
    return settings.any_enabled


@dataclass
class ApplySuggestionsResult:
    """Outcome of an auto-apply run; ``applied_fields`` is partial on failure."""

    success: bool
    applied_fields: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class PendingUpdate:
    """Field values resolved for one document."""

    remote: dict[str, Any] = field(default_factory=dict)
    local: dict[str, Any] = field(default_factory=dict)
    applied_fields: list[str] = field(default_factory=list)


def parse_suggested_date(value: str) -> date:
    """Date part of an ISO ``YYYY-MM-DD`` suggestion.

    Raises:
        ValidationError: If the value is not an ISO date
    """
    try:
        return date.fromisoformat(value[:10])
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"Invalid date: {value}", error_code="invalidDate"
        ) from e


async def resolve_correspondent(client: PaperlessClient, item: SuggestedItem) -> int:
    """Existing id, or the id of a newly created correspondent."""
    if item.id is not None:
        return item.id
    return (await client.create_correspondent(item.name)).id


async def resolve_document_type(client: PaperlessClient, item: SuggestedItem) -> int:
    if item.id is not None:
        return item.id
    return (await client.create_document_type(item.name)).id


async def resolve_tags(client: PaperlessClient, tags: list[SuggestedTag]) -> list[int]:
    """Tag ids in suggestion order, creating name-only tags."""
    tag_ids: list[int] = []
    for tag in tags:
        if tag.id is not None:
            tag_ids.append(tag.id)
        elif tag.name:
            tag_ids.append((await client.create_tag(tag.name)).id)
    return tag_ids


async def resolve_updates(
    client: PaperlessClient,
    result: DocumentAnalysisResult,
    settings: AutoApplySettings,
    pending: PendingUpdate | None = None,
) -> PendingUpdate:
    """Resolve enabled fields in order: title, correspondent, documentType, tags, date.

    Entities are created as they are resolved. When ``pending`` is given it
    is filled in place, so a caller that catches a failure still sees the
    fields resolved before it.
    """
    if pending is None:
        pending = PendingUpdate()

    if settings.title and result.suggested_title:
        pending.remote["title"] = result.suggested_title
        pending.local["title"] = result.suggested_title
        pending.applied_fields.append("title")

    if settings.correspondent and result.suggested_correspondent:
        correspondent_id = await resolve_correspondent(
            client, result.suggested_correspondent
        )
        pending.remote["correspondent"] = correspondent_id
        pending.local["correspondent_id"] = correspondent_id
        pending.applied_fields.append("correspondent")

    if settings.document_type and result.suggested_document_type:
        # Document types are not mirrored locally
        pending.remote["document_type"] = await resolve_document_type(
            client, result.suggested_document_type
        )
        pending.applied_fields.append("documentType")

    if settings.tags and result.suggested_tags:
        tag_ids = await resolve_tags(client, result.suggested_tags)
        pending.remote["tags"] = tag_ids
        pending.local["tag_ids"] = tag_ids
        pending.applied_fields.append("tags")

    if settings.date and result.suggested_date:
        pending.local["document_date"] = parse_suggested_date(result.suggested_date)
        pending.remote["created"] = result.suggested_date
        pending.applied_fields.append("date")

    return pending


async def write_updates(
    client: PaperlessClient,
    db: AsyncSession,
    paperless_document_id: int,
    local_document_id: UUID,
    pending: PendingUpdate,
) -> None:
    """One remote PATCH, then one local UPDATE when a mirrored column changed."""
    if not pending.remote:
        return

    await client.update_document(paperless_document_id, pending.remote)

    if pending.local:
        await db.execute(
            update(PaperlessDocument)
            .where(PaperlessDocument.id == local_document_id)
            .values(**pending.local)
            .execution_options(synchronize_session=False)
        )


async def apply_suggestions(
    client: PaperlessClient,
    paperless_document_id: int,
    local_document_id: UUID,
    result: DocumentAnalysisResult,
    settings: AutoApplySettings,
    db: AsyncSession,
) -> ApplySuggestionsResult:
    """Apply the auto-apply-enabled fields of an analysis result.

    Failures are reported, not raised. Entities created before a failure
    are left in Paperless.
    """
    pending = PendingUpdate()
    try:
        await resolve_updates(client, result, settings, pending)
        await write_updates(
            client, db, paperless_document_id, local_document_id, pending
        )
    except Exception as e:
        logger.warning(
            "suggestions_apply_failed",
            paperless_document_id=paperless_document_id,
            applied_fields=pending.applied_fields,
            error=str(e),
        )
        return ApplySuggestionsResult(
            success=False,
            applied_fields=pending.applied_fields,
            error=str(e),
        )

    logger.info(
        "suggestions_applied",
        paperless_document_id=paperless_document_id,
        applied_fields=pending.applied_fields,
    )
    return ApplySuggestionsResult(success=True, applied_fields=pending.applied_fields)


class SuggestionApplyService:
    """Manual application of reviewed suggestions."""

    def __init__(
        self,
        db: AsyncSession,
        client_factory: Callable[[PaperlessInstance], PaperlessClient] | None = None,
    ):
        self.db = db
        self.client_factory = client_factory or PaperlessClient.from_instance

    async def get_document(
        self, instance_id: UUID, document_id: UUID
    ) -> PaperlessDocument:
        result = await self.db.execute(
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

    async def get_latest_result(
        self, document_id: UUID
    ) -> DocumentProcessingResult | None:
        result = await self.db.execute(
            select(DocumentProcessingResult)
            .where(DocumentProcessingResult.document_id == document_id)
            .order_by(DocumentProcessingResult.processed_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    def _single_field_result(self, field_name: str, value: Any) -> DocumentAnalysisResult:
        """Wrap one submitted value in an otherwise empty analysis result.

        Only the submitted field is populated; ``resolve_updates`` reads
        nothing else because only that field's flag is set.
        """
        try:
            if field_name == "title":
                if not isinstance(value, str) or not value.strip():
                    raise ValidationError("Title must be a non-empty string")
                return DocumentAnalysisResult.model_construct(
                    suggested_title=value, suggested_tags=[]
                )
            if field_name == "correspondent":
                return DocumentAnalysisResult.model_construct(
                    suggested_title="",
                    suggested_correspondent=SuggestedItem.model_validate(value),
                    suggested_tags=[],
                )
            if field_name == "documentType":
                return DocumentAnalysisResult.model_construct(
                    suggested_title="",
                    suggested_document_type=SuggestedItem.model_validate(value),
                    suggested_tags=[],
                )
            if field_name == "tags":
                return DocumentAnalysisResult.model_construct(
                    suggested_title="",
                    suggested_tags=_tag_list.validate_python(value),
                )
            if not isinstance(value, str):
                raise ValidationError("Date must be an ISO date string")
            return DocumentAnalysisResult.model_construct(
                suggested_title="", suggested_tags=[], suggested_date=value
            )
        except SchemaValidationError as e:
            raise ValidationError(f"Invalid value for {field_name}: {e}") from e

    async def apply_field(
        self,
        instance_id: UUID,
        document_id: UUID,
        field_name: str,
        value: Any = None,
    ) -> dict[str, Any]:
        """Apply one field, or every field of the latest result for ``all``.

        Returns:
            The values sent to Paperless

        Raises:
            NotFoundError: If the instance or document is missing, or ``all``
                is requested and no processing result exists
            ValidationError: If the submitted value is malformed
            PaperlessAPIError: If Paperless rejects an update
        """
        instance = await self.db.get(PaperlessInstance, instance_id)
        if instance is None:
            raise NotFoundError(
                "Paperless instance not found", error_code="instanceNotFound"
            )
        document = await self.get_document(instance_id, document_id)

        if field_name == "all":
            latest = await self.get_latest_result(document.id)
            if latest is None or not latest.changes:
                raise NotFoundError(
                    "No processing result for this document",
                    error_code="noProcessingResult",
                )
            result = DocumentAnalysisResult.model_validate(latest.changes)
            settings = AutoApplySettings.everything()
        else:
            result = self._single_field_result(field_name, value)
            settings = AutoApplySettings(
                title=field_name == "title",
                correspondent=field_name == "correspondent",
                document_type=field_name == "documentType",
                tags=field_name == "tags",
                date=field_name == "date",
            )

        async with self.client_factory(instance) as client:
            pending = await resolve_updates(client, result, settings)
            await write_updates(
                client, self.db, document.paperless_id, document.id, pending
            )

        logger.info(
            "suggestion_field_applied",
            document_id=str(document.id),
            field=field_name,
            applied_fields=pending.applied_fields,
        )
        return pending.remote
