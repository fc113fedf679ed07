"""Processing queue Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from archivist.models.processing_queue import QueueStatus
from archivist.schemas.base import CamelModel


class EnqueueRequest(CamelModel):
    """Request to queue a remote document for analysis."""

    paperless_document_id: int = Field(
        ...,
        ge=1,
        validation_alias=AliasChoices(
            "paperlessDocumentId", "remoteDocumentId", "paperless_document_id"
        ),
    )
    ai_bot_id: UUID | None = None
    priority: int = Field(10, ge=0, le=100)


class QueueItemResponse(CamelModel):
    """Queue item details.

    Optional timestamps and ``lastError`` are serialized as ``null``,
    never omitted.
    """

    id: UUID
    paperless_instance_id: UUID
    paperless_document_id: int
    document_id: UUID | None
    ai_bot_id: UUID | None
    status: QueueStatus
    priority: int
    attempts: int
    max_attempts: int
    last_error: str | None
    scheduled_for: datetime
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime
    document_title: str | None = None  # Joined from the local mirror
    ai_bot_name: str | None = None  # Joined from ai_bots


class QueueStats(CamelModel):
    """Per-instance counts by status."""

    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0


class QueueListResponse(CamelModel):
    """Paginated list of queue items with instance-wide stats."""

    items: list[QueueItemResponse]
    stats: QueueStats
    page: int
    limit: int
    total: int
    total_pages: int


class BulkRetryResponse(CamelModel):
    """Result of retrying every failed item of an instance."""

    retried_count: int


class BulkDeleteResponse(CamelModel):
    """Result of deleting every completed item of an instance."""

    deleted_count: int


class QueueProcessResult(BaseModel):
    """Response schema for the queue processing cron endpoint."""

    status: str
    items_processed: int
    items_succeeded: int
    items_failed: int
    items_requeued: int
    items_max_retries: int
    items_recovered: int
    errors: list[str]
    timestamp: str
