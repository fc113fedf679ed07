"""Document analysis queue service.

Owns the queue item state machine: enqueue with duplicate detection,
single and bulk retry/delete, paginated listing with per-instance stats,
and the worker-facing claim/finalize/recover operations.
"""

import math
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from archivist.config import get_settings
from archivist.core.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from archivist.core.logging import get_logger
from archivist.models.ai import AiBot
from archivist.models.document import PaperlessDocument
from archivist.models.paperless_instance import PaperlessInstance
from archivist.models.processing_queue import (
    ACTIVE_DOCUMENT_INDEX,
    ACTIVE_STATUSES,
    ProcessingQueue,
    QueueStatus,
)

logger = get_logger(__name__)
settings = get_settings()

DEFAULT_PRIORITY = 10
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
MAX_ERROR_LENGTH = 500


def retry_reset_values() -> dict[str, Any]:
    """Column values that return an item to a fresh pending state."""
    return {
        "status": QueueStatus.PENDING,
        "attempts": 0,
        "last_error": None,
        "scheduled_for": datetime.now(UTC),
        "started_at": None,
        "completed_at": None,
    }


def calculate_retry_time(attempts: int) -> datetime:
    """Linear backoff: ``retry_delay_minutes`` times the attempts made so far."""
    delay = settings.retry_delay_minutes * max(attempts, 1)
    return datetime.now(UTC) + timedelta(minutes=delay)


def truncate_error(error_message: str | None) -> str | None:
    return error_message[:MAX_ERROR_LENGTH] if error_message else None


def is_active_document_violation(error: IntegrityError) -> bool:
    """Whether the error comes from the one-active-item-per-document index.

    PostgreSQL names the violated index in the driver error message.
    """
    return ACTIVE_DOCUMENT_INDEX in str(error.orig)


class ProcessingQueueService:
    """Service for processing queue operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # --- API-facing operations ---

    async def enqueue(
        self,
        instance: PaperlessInstance,
        paperless_document_id: int,
        ai_bot_id: UUID | None = None,
        priority: int = DEFAULT_PRIORITY,
    ) -> ProcessingQueue:
        """Add a remote document to the queue.

        Args:
            instance: Owning Paperless instance
            paperless_document_id: Remote document id
            ai_bot_id: Bot to analyze with; defaults to the instance's bot
            priority: Higher priority items are claimed first

        Returns:
            The created pending queue item

        Raises:
            ConflictError: If a pending/processing item exists for the document
            NotFoundError: If the given AI bot does not exist
            ValidationError: If no bot is given and the instance has no default
        """
        existing = await self.db.execute(
            select(ProcessingQueue.id).where(
                and_(
                    ProcessingQueue.paperless_instance_id == instance.id,
                    ProcessingQueue.paperless_document_id == paperless_document_id,
                    ProcessingQueue.status.in_(ACTIVE_STATUSES),
                )
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(
                "Document is already in the queue",
                error_code="documentAlreadyInQueue",
            )

        bot_id = ai_bot_id or instance.default_ai_bot_id
        if bot_id is None:
            raise ValidationError(
                "No AI bot configured for this instance",
                error_code="noAiBotConfigured",
            )
        if ai_bot_id is not None and await self.db.get(AiBot, ai_bot_id) is None:
            raise NotFoundError("AI bot not found", error_code="aiBotNotFound")

        local_document = await self.db.execute(
            select(PaperlessDocument.id).where(
                and_(
                    PaperlessDocument.paperless_instance_id == instance.id,
                    PaperlessDocument.paperless_id == paperless_document_id,
                )
            )
        )

        queue_item = ProcessingQueue(
            paperless_instance_id=instance.id,
            paperless_document_id=paperless_document_id,
            document_id=local_document.scalar_one_or_none(),
            ai_bot_id=bot_id,
            priority=priority,
            status=QueueStatus.PENDING,
            attempts=0,
            max_attempts=3,
            scheduled_for=datetime.now(UTC),
        )

        # The partial unique index closes the check-then-insert race
        try:
            async with self.db.begin_nested():
                self.db.add(queue_item)
                await self.db.flush()
        except IntegrityError as e:
            if not is_active_document_violation(e):
                raise
            raise ConflictError(
                "Document is already in the queue",
                error_code="documentAlreadyInQueue",
            ) from e

        logger.info(
            "queue_item_created",
            queue_id=str(queue_item.id),
            instance_id=str(instance.id),
            paperless_document_id=paperless_document_id,
            priority=priority,
        )
        return queue_item

    async def get_item(self, instance_id: UUID, queue_id: UUID) -> ProcessingQueue:
        """Get a queue item belonging to the instance.

        Raises:
            NotFoundError: If missing or owned by another instance
        """
        result = await self.db.execute(
            select(ProcessingQueue).where(
                and_(
                    ProcessingQueue.id == queue_id,
                    ProcessingQueue.paperless_instance_id == instance_id,
                )
            )
        )
        queue_item = result.scalar_one_or_none()
        if queue_item is None:
            raise NotFoundError("Queue item not found", error_code="queueItemNotFound")
        return queue_item

    async def retry(self, instance_id: UUID, queue_id: UUID) -> ProcessingQueue:
        """Reset a failed item to pending.

        Raises:
            NotFoundError: If the item does not exist
            InvalidStateError: If the item is not failed
        """
        queue_item = await self.get_item(instance_id, queue_id)

        if queue_item.status != QueueStatus.FAILED:
            raise InvalidStateError(
                "Can only retry failed items",
                error_code="canOnlyRetryFailedItems",
            )

        for column, value in retry_reset_values().items():
            setattr(queue_item, column, value)
        await self.db.flush()

        logger.info(
            "queue_item_retried",
            queue_id=str(queue_item.id),
            paperless_document_id=queue_item.paperless_document_id,
        )
        return queue_item

    async def bulk_retry(self, instance_id: UUID) -> int:
        """Reset every failed item of the instance in one statement.

        Returns:
            Number of items reset (0 is valid)
        """
        result = await self.db.execute(
            update(ProcessingQueue)
            .where(
                and_(
                    ProcessingQueue.paperless_instance_id == instance_id,
                    ProcessingQueue.status == QueueStatus.FAILED,
                )
            )
            .values(**retry_reset_values())
        )
        retried = result.rowcount or 0

        logger.info(
            "queue_bulk_retry", instance_id=str(instance_id), retried_count=retried
        )
        return retried

    async def delete(self, instance_id: UUID, queue_id: UUID) -> None:
        """Remove an item that is not being processed.

        Raises:
            NotFoundError: If the item does not exist
            InvalidStateError: If the item is processing
        """
        queue_item = await self.get_item(instance_id, queue_id)

        if queue_item.status == QueueStatus.PROCESSING:
            raise InvalidStateError(
                "Cannot delete an item that is being processed",
                error_code="cannotDeleteProcessingItem",
            )

        await self.db.delete(queue_item)
        await self.db.flush()

        logger.info(
            "queue_item_deleted",
            queue_id=str(queue_id),
            paperless_document_id=queue_item.paperless_document_id,
            status=queue_item.status.value,
        )

    async def bulk_delete_completed(self, instance_id: UUID) -> int:
        """Delete every completed item of the instance.

        Returns:
            Number of items deleted (0 is valid)
        """
        result = await self.db.execute(
            delete(ProcessingQueue).where(
                and_(
                    ProcessingQueue.paperless_instance_id == instance_id,
                    ProcessingQueue.status == QueueStatus.COMPLETED,
                )
            )
        )
        deleted = result.rowcount or 0

        logger.info(
            "queue_bulk_delete_completed",
            instance_id=str(instance_id),
            deleted_count=deleted,
        )
        return deleted

    async def get_stats(self, instance_id: UUID) -> dict[str, int]:
        """Counts by status for the whole instance."""
        result = await self.db.execute(
            select(
                ProcessingQueue.status,
                func.count(ProcessingQueue.id).label("count"),
            )
            .where(ProcessingQueue.paperless_instance_id == instance_id)
            .group_by(ProcessingQueue.status)
        )
        stats = {row.status.value: row.count for row in result.all()}

        return {status.value: stats.get(status.value, 0) for status in QueueStatus}

    async def list_items(
        self,
        instance_id: UUID,
        status: QueueStatus | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> tuple[list[tuple[ProcessingQueue, str | None, str | None]], int]:
        """List queue items with filtering and pagination.

        Args:
            instance_id: Owning instance
            status: Optional status filter
            page: Page number (1-indexed, clamped to >= 1)
            limit: Page size (clamped to 1..100)

        Returns:
            Tuple of ((queue item, document title, bot name) rows, total count)
        """
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        filters = [ProcessingQueue.paperless_instance_id == instance_id]
        if status:
            filters.append(ProcessingQueue.status == status)

        total = (
            await self.db.scalar(
                select(func.count(ProcessingQueue.id)).where(and_(*filters))
            )
            or 0
        )

        items_query = (
            select(ProcessingQueue, PaperlessDocument.title, AiBot.name)
            .outerjoin(
                PaperlessDocument, ProcessingQueue.document_id == PaperlessDocument.id
            )
            .outerjoin(AiBot, ProcessingQueue.ai_bot_id == AiBot.id)
            .where(and_(*filters))
            .order_by(
                ProcessingQueue.priority.desc(),
                ProcessingQueue.created_at.desc(),
            )
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(items_query)
        items = [(row[0], row[1], row[2]) for row in result.all()]

        return items, total

    # --- Worker-facing operations ---

    async def claim_next(self) -> ProcessingQueue | None:
        """Atomically claim the next due pending item across all instances.

        Flips the item to processing, sets ``started_at`` and increments
        ``attempts`` in a single statement. Concurrent workers skip rows
        already locked by another claim.

        Returns:
            The claimed item, or None if nothing is due
        """
        now = datetime.now(UTC)
        next_id = (
            select(ProcessingQueue.id)
            .where(
                and_(
                    ProcessingQueue.status == QueueStatus.PENDING,
                    ProcessingQueue.scheduled_for <= now,
                )
            )
            .order_by(
                ProcessingQueue.priority.desc(),
                ProcessingQueue.created_at.asc(),
            )
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        result = await self.db.execute(
            update(ProcessingQueue)
            .where(
                and_(
                    ProcessingQueue.id == next_id,
                    ProcessingQueue.status == QueueStatus.PENDING,
                )
            )
            .values(
                status=QueueStatus.PROCESSING,
                started_at=now,
                attempts=ProcessingQueue.attempts + 1,
            )
            .returning(ProcessingQueue)
            .execution_options(synchronize_session=False)
        )
        queue_item = result.scalar_one_or_none()

        if queue_item is not None:
            logger.info(
                "queue_item_claimed",
                queue_id=str(queue_item.id),
                paperless_document_id=queue_item.paperless_document_id,
                attempts=queue_item.attempts,
            )
        return queue_item

    async def mark_completed(self, queue_item: ProcessingQueue) -> None:
        """Mark a queue item as completed."""
        queue_item.status = QueueStatus.COMPLETED
        queue_item.completed_at = datetime.now(UTC)
        queue_item.last_error = None
        await self.db.flush()

        logger.info(
            "queue_item_completed",
            queue_id=str(queue_item.id),
            paperless_document_id=queue_item.paperless_document_id,
        )

    async def mark_failed_retry(
        self, queue_item: ProcessingQueue, error_message: str
    ) -> bool:
        """Requeue a failed attempt, or fail the item when attempts are exhausted.

        ``attempts`` was already incremented by the claim.

        Args:
            queue_item: The queue item to update
            error_message: Error from the failed attempt

        Returns:
            True if requeued for retry, False if marked as permanently failed
        """
        queue_item.last_error = truncate_error(error_message)

        if queue_item.attempts >= queue_item.max_attempts:
            queue_item.status = QueueStatus.FAILED
            queue_item.completed_at = datetime.now(UTC)

            logger.warning(
                "queue_item_max_retries",
                queue_id=str(queue_item.id),
                paperless_document_id=queue_item.paperless_document_id,
                total_attempts=queue_item.attempts,
                error=error_message[:100] if error_message else None,
            )
            await self.db.flush()
            return False

        queue_item.status = QueueStatus.PENDING
        queue_item.started_at = None
        queue_item.scheduled_for = calculate_retry_time(queue_item.attempts)

        logger.info(
            "queue_item_requeued",
            queue_id=str(queue_item.id),
            paperless_document_id=queue_item.paperless_document_id,
            attempts=queue_item.attempts,
            scheduled_for=queue_item.scheduled_for.isoformat(),
        )
        await self.db.flush()
        return True

    async def mark_failed(self, queue_item: ProcessingQueue, error_message: str) -> None:
        """Fail an item immediately, regardless of remaining attempts."""
        queue_item.status = QueueStatus.FAILED
        queue_item.last_error = truncate_error(error_message)
        queue_item.completed_at = datetime.now(UTC)
        await self.db.flush()

        logger.warning(
            "queue_item_failed",
            queue_id=str(queue_item.id),
            paperless_document_id=queue_item.paperless_document_id,
            error=error_message[:100] if error_message else None,
        )

    async def recover_stuck_items(self) -> int:
        """Requeue or fail items stuck in processing.

        Items processing for longer than ``stuck_threshold_minutes`` are
        assumed abandoned by a crashed or timed-out worker. Items with
        attempts left go back to pending; exhausted items are failed.

        Returns:
            Number of items recovered
        """
        threshold = settings.stuck_threshold_minutes
        threshold_time = datetime.now(UTC) - timedelta(minutes=threshold)

        result = await self.db.execute(
            select(ProcessingQueue).where(
                and_(
                    ProcessingQueue.status == QueueStatus.PROCESSING,
                    ProcessingQueue.started_at < threshold_time,
                )
            )
        )
        stuck_items = list(result.scalars().all())

        for item in stuck_items:
            logger.warning(
                "queue_item_stuck_recovered",
                queue_id=str(item.id),
                paperless_document_id=item.paperless_document_id,
                started_at=item.started_at.isoformat() if item.started_at else None,
            )
            message = f"Recovered from stuck state after {threshold} minutes"
            item.started_at = None
            if item.attempts >= item.max_attempts:
                item.status = QueueStatus.FAILED
                item.completed_at = datetime.now(UTC)
                item.last_error = f"{message}; max attempts reached"
            else:
                item.status = QueueStatus.PENDING
                item.scheduled_for = datetime.now(UTC)
                item.last_error = message

        if stuck_items:
            await self.db.flush()

        return len(stuck_items)


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
