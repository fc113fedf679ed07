"""Queue worker: analyze claimed items and apply suggestions.

Each claimed item is processed in its own database session so one failing
document never rolls back the bookkeeping of another.
"""

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from archivist.config import get_settings
from archivist.core.logging import get_logger, log_context
from archivist.database import async_session_maker, session_scope
from archivist.models.document import PaperlessDocument
from archivist.models.paperless_instance import PaperlessInstance
from archivist.models.processing_queue import ProcessingQueue
from archivist.services.ai.analysis_service import DocumentAnalysisService
from archivist.services.paperless_client import PaperlessClient
from archivist.services.processing_queue_service import ProcessingQueueService
from archivist.services.suggestion_applier import AutoApplySettings, apply_suggestions

logger = get_logger(__name__)
settings = get_settings()

MISSING_REFERENCE_ERROR = "Missing document or AI bot reference"


@dataclass
class ProcessResult:
    """Outcome of processing one queue item."""

    queue_item_id: UUID
    document_id: UUID | None
    success: bool
    error: str | None = None
    requeued: bool = False


class AutoApplyError(Exception):
    """Suggestions could not be written back after a successful analysis."""


def describe_error(error: BaseException) -> str:
    if isinstance(error, TimeoutError):
        return f"Analysis timed out after {settings.analysis_timeout_seconds} seconds"
    return str(error) or type(error).__name__


async def _analyze_and_apply(db: AsyncSession, queue_item: ProcessingQueue) -> None:
    instance = await db.get(PaperlessInstance, queue_item.paperless_instance_id)

    analysis = DocumentAnalysisService(db)
    outcome = await asyncio.wait_for(
        analysis.analyze(
            queue_item.document_id,
            queue_item.ai_bot_id,
            user_id=instance.owner_id,
        ),
        timeout=settings.analysis_timeout_seconds,
    )
    # Usage and audit rows survive a later apply failure
    await db.commit()

    auto_apply = AutoApplySettings.from_instance(instance)
    if not auto_apply.any_enabled:
        return

    document = await db.get(PaperlessDocument, queue_item.document_id)
    async with PaperlessClient.from_instance(instance) as client:
        applied = await apply_suggestions(
            client,
            document.paperless_id,
            document.id,
            outcome.result,
            auto_apply,
            db,
        )
    if not applied.success:
        raise AutoApplyError(f"Auto-apply failed: {applied.error}")


async def process_queue_item(queue_item: ProcessingQueue) -> ProcessResult:
    """Process an item already claimed by ``claim_next``.

    Success marks the item completed. Any failure, including an auto-apply
    failure or the analysis deadline, goes through the retry bookkeeping.
    """
    with log_context(
        queue_id=queue_item.id, instance_id=queue_item.paperless_instance_id
    ):
        return await _process_claimed(queue_item.id)


async def _process_claimed(queue_item_id: UUID) -> ProcessResult:
    async with async_session_maker() as db:
        service = ProcessingQueueService(db)
        item = await db.get(ProcessingQueue, queue_item_id)
        if item is None:
            return ProcessResult(
                queue_item_id=queue_item_id,
                document_id=None,
                success=False,
                error="Queue item not found",
            )

        if item.document_id is None or item.ai_bot_id is None:
            await service.mark_failed(item, MISSING_REFERENCE_ERROR)
            await db.commit()
            return ProcessResult(
                queue_item_id=queue_item_id,
                document_id=item.document_id,
                success=False,
                error=MISSING_REFERENCE_ERROR,
            )

        document_id = item.document_id
        logger.info(
            "queue_item_processing_started",
            document_id=str(document_id),
            attempt=item.attempts,
        )

        try:
            await _analyze_and_apply(db, item)
        except Exception as e:
            error_message = describe_error(e)
            logger.exception(
                "queue_item_processing_error",
                document_id=str(document_id),
                error=error_message,
            )
            await db.rollback()
            item = await db.get(ProcessingQueue, queue_item_id)
            requeued = await service.mark_failed_retry(item, error_message)
            await db.commit()
            return ProcessResult(
                queue_item_id=queue_item_id,
                document_id=document_id,
                success=False,
                error=error_message,
                requeued=requeued,
            )

        item = await db.get(ProcessingQueue, queue_item_id)
        await service.mark_completed(item)
        await db.commit()

    return ProcessResult(
        queue_item_id=queue_item_id, document_id=document_id, success=True
    )


async def claim_next_item() -> ProcessingQueue | None:
    async with session_scope() as db:
        return await ProcessingQueueService(db).claim_next()


async def process_all_pending() -> list[ProcessResult]:
    """Claim and process due items one at a time until none are left."""
    results: list[ProcessResult] = []
    while True:
        item = await claim_next_item()
        if item is None:
            break
        results.append(await process_queue_item(item))
    return results


async def recover_stuck_items() -> int:
    async with session_scope() as db:
        return await ProcessingQueueService(db).recover_stuck_items()


async def process_processing_queue() -> dict:
    """Recover stuck items and drain the queue.

    This function is designed to be called from a cron endpoint.

    Returns:
        Dict with processing results
    """
    logger.info("processing_queue_run_started")

    results = {
        "status": "success",
        "items_processed": 0,
        "items_succeeded": 0,
        "items_failed": 0,
        "items_requeued": 0,
        "items_max_retries": 0,
        "items_recovered": 0,
        "errors": [],
        "timestamp": datetime.now(UTC).isoformat(),
    }

    try:
        results["items_recovered"] = await recover_stuck_items()
        if results["items_recovered"]:
            logger.info(
                "processing_queue_stuck_items_recovered",
                count=results["items_recovered"],
            )

        for outcome in await process_all_pending():
            results["items_processed"] += 1
            if outcome.success:
                results["items_succeeded"] += 1
                continue
            results["items_failed"] += 1
            if outcome.requeued:
                results["items_requeued"] += 1
            else:
                results["items_max_retries"] += 1
            results["errors"].append(
                f"Queue item {outcome.queue_item_id}: {(outcome.error or '')[:100]}"
            )

    except Exception as e:
        results["status"] = "error"
        results["errors"].append(f"Queue processing error: {str(e)}")
        logger.exception("processing_queue_run_error", error=str(e))

    if results["items_failed"] > 0 and results["items_succeeded"] > 0:
        results["status"] = "partial"
    elif results["items_failed"] > 0:
        results["status"] = "error"

    logger.info(
        "processing_queue_run_completed",
        processed=results["items_processed"],
        succeeded=results["items_succeeded"],
        failed=results["items_failed"],
        requeued=results["items_requeued"],
        max_retries=results["items_max_retries"],
        recovered=results["items_recovered"],
    )
    return results
