"""Processing queue API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from archivist.api.deps import DbSession, Instance, SchedulerDep
from archivist.core.exceptions import ValidationError
from archivist.core.logging import get_logger
from archivist.core.rate_limit import limiter, queue_limit
from archivist.models.processing_queue import ProcessingQueue, QueueStatus
from archivist.schemas.processing_queue import (
    BulkDeleteResponse,
    BulkRetryResponse,
    EnqueueRequest,
    QueueItemResponse,
    QueueListResponse,
    QueueStats,
)
from archivist.services.processing_queue_service import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    ProcessingQueueService,
    total_pages,
)
from archivist.services.scheduler import Scheduler

logger = get_logger(__name__)

router = APIRouter(
    prefix="/paperless-instances/{instance_id}/queue", tags=["processing-queue"]
)


def to_response(
    queue_item: ProcessingQueue,
    document_title: str | None = None,
    ai_bot_name: str | None = None,
) -> QueueItemResponse:
    response = QueueItemResponse.model_validate(queue_item)
    response.document_title = document_title
    response.ai_bot_name = ai_bot_name
    return response


async def wake_worker(db: AsyncSession, scheduler: Scheduler | None) -> None:
    """Commit queue changes and let a running scheduler's worker claim them."""
    await db.commit()
    if scheduler is not None and scheduler.is_running:
        scheduler.trigger_processor()


def parse_status(value: str | None) -> QueueStatus | None:
    if not value:
        return None
    try:
        return QueueStatus(value)
    except ValueError as e:
        raise ValidationError(
            f"Invalid status: {value}. Must be 'pending', 'processing', "
            "'completed', or 'failed'",
            error_code="invalidStatus",
        ) from e


@router.post(
    "",
    response_model=QueueItemResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(queue_limit)
async def enqueue_document(
    request: Request,
    data: EnqueueRequest,
    instance: Instance,
    db: DbSession,
    scheduler: SchedulerDep,
) -> QueueItemResponse:
    """Queue a Paperless document for AI analysis.

    Falls back to the instance's default AI bot when none is given.
    Returns 409 when the document is already pending or processing and 404
    for an unknown AI bot. A running scheduler starts working the item at once.
    """
    service = ProcessingQueueService(db)
    queue_item = await service.enqueue(
        instance,
        data.paperless_document_id,
        ai_bot_id=data.ai_bot_id,
        priority=data.priority,
    )
    await wake_worker(db, scheduler)
    await db.refresh(queue_item)
    return to_response(queue_item)


@router.get("", response_model=QueueListResponse)
@limiter.limit(queue_limit)
async def list_queue(
    request: Request,
    instance: Instance,
    db: DbSession,
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(
        DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Items per page"
    ),
    queue_status: str | None = Query(
        None,
        alias="status",
        description="Filter by status: 'pending', 'processing', 'completed', 'failed'",
    ),
) -> QueueListResponse:
    """List queue items, highest priority and newest first.

    Stats always cover the whole instance, independent of the filter.
    """
    status_filter = parse_status(queue_status)

    service = ProcessingQueueService(db)
    rows, total = await service.list_items(
        instance.id, status=status_filter, page=page, limit=limit
    )
    stats = await service.get_stats(instance.id)

    return QueueListResponse(
        items=[to_response(item, title, bot_name) for item, title, bot_name in rows],
        stats=QueueStats(**stats),
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages(total, limit),
    )


@router.post("/bulk/retry", response_model=BulkRetryResponse)
@limiter.limit(queue_limit)
async def bulk_retry(
    request: Request,
    instance: Instance,
    db: DbSession,
    scheduler: SchedulerDep,
) -> BulkRetryResponse:
    """Reset every failed item of the instance to pending."""
    service = ProcessingQueueService(db)
    retried = await service.bulk_retry(instance.id)
    if retried:
        await wake_worker(db, scheduler)
    return BulkRetryResponse(retried_count=retried)


@router.delete("/bulk/completed", response_model=BulkDeleteResponse)
@limiter.limit(queue_limit)
async def bulk_delete_completed(
    request: Request,
    instance: Instance,
    db: DbSession,
) -> BulkDeleteResponse:
    """Delete every completed item of the instance."""
    service = ProcessingQueueService(db)
    deleted = await service.bulk_delete_completed(instance.id)
    return BulkDeleteResponse(deleted_count=deleted)


@router.post("/{queue_id}/retry", response_model=QueueItemResponse)
@limiter.limit(queue_limit)
async def retry_queue_item(
    request: Request,
    queue_id: UUID,
    instance: Instance,
    db: DbSession,
    scheduler: SchedulerDep,
) -> QueueItemResponse:
    """Reset a failed item to pending with a fresh attempt counter."""
    service = ProcessingQueueService(db)
    queue_item = await service.retry(instance.id, queue_id)
    await wake_worker(db, scheduler)
    await db.refresh(queue_item)
    return to_response(queue_item)


@router.delete("/{queue_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(queue_limit)
async def delete_queue_item(
    request: Request,
    queue_id: UUID,
    instance: Instance,
    db: DbSession,
) -> None:
    """Remove a queue item. Items being processed cannot be deleted."""
    service = ProcessingQueueService(db)
    await service.delete(instance.id, queue_id)
