"""Instance scanning: discover remote documents and queue them for analysis."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime
from uuid import UUID

from croniter import croniter
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from archivist.core.exceptions import ConflictError, ValidationError
from archivist.core.logging import get_logger, log_context
from archivist.database import session_scope
from archivist.models.document import PaperlessDocument
from archivist.models.paperless_instance import PaperlessInstance
from archivist.models.processing_queue import ProcessingQueue
from archivist.models.processing_result import DocumentProcessingResult
from archivist.schemas.paperless import PaperlessDocumentData
from archivist.services.paperless_client import PaperlessClient
from archivist.services.processing_queue_service import ProcessingQueueService

logger = get_logger(__name__)


@dataclass
class ScanResult:
    """Outcome of scanning one instance."""

    instance_id: UUID
    instance_name: str
    documents_queued: int = 0
    documents_already_processed: int = 0
    documents_already_queued: int = 0
    error: str | None = None


def calculate_next_scan_time(
    cron_expression: str, base_time: datetime | None = None
) -> datetime:
    """Next fire time of a cron expression after ``base_time`` (default now, UTC).

    Raises:
        ValidationError: If the expression is not a valid cron expression
    """
    if not croniter.is_valid(cron_expression):
        raise ValidationError(
            f"Invalid cron expression: {cron_expression}",
            error_code="invalidCronExpression",
        )
    return croniter(cron_expression, base_time or datetime.now(UTC)).get_next(datetime)


def filter_by_tags(
    documents: list[PaperlessDocumentData], filter_tags: list[int] | None
) -> list[PaperlessDocumentData]:
    """Keep documents carrying every filter tag; no filter keeps everything."""
    if not filter_tags:
        return documents
    required = set(filter_tags)
    return [doc for doc in documents if required.issubset(doc.tags)]


def parse_document_date(value: str | None) -> date | None:
    """Parse the date part of a Paperless ``created`` value."""
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class DocumentScanner:
    """Scans one instance and queues newly discovered documents."""

    def __init__(
        self,
        db: AsyncSession,
        client_factory: Callable[[PaperlessInstance], PaperlessClient] | None = None,
    ):
        self.db = db
        self.client_factory = client_factory or PaperlessClient.from_instance
        self.queue_service = ProcessingQueueService(db)

    async def _processed_document_ids(self, instance_id: UUID) -> set[int]:
        result = await self.db.execute(
            select(PaperlessDocument.paperless_id)
            .join(
                DocumentProcessingResult,
                DocumentProcessingResult.document_id == PaperlessDocument.id,
            )
            .where(PaperlessDocument.paperless_instance_id == instance_id)
            .distinct()
        )
        return set(result.scalars().all())

    async def _queued_document_ids(self, instance_id: UUID) -> set[int]:
        result = await self.db.execute(
            select(ProcessingQueue.paperless_document_id).where(
                ProcessingQueue.paperless_instance_id == instance_id
            )
        )
        return set(result.scalars().all())

    async def upsert_local_document(
        self, instance_id: UUID, remote: PaperlessDocumentData
    ) -> PaperlessDocument:
        """Create or refresh the local mirror row of a remote document."""
        result = await self.db.execute(
            select(PaperlessDocument).where(
                and_(
                    PaperlessDocument.paperless_instance_id == instance_id,
                    PaperlessDocument.paperless_id == remote.id,
                )
            )
        )
        document = result.scalar_one_or_none()
        if document is None:
            document = PaperlessDocument(
                paperless_instance_id=instance_id,
                paperless_id=remote.id,
            )
            self.db.add(document)

        document.title = remote.title
        document.content = remote.content
        document.correspondent_id = remote.correspondent
        document.tag_ids = list(remote.tags)
        document.document_date = parse_document_date(remote.created)
        document.paperless_modified = parse_timestamp(remote.modified)
        await self.db.flush()
        return document

    async def scan_instance(self, instance_id: UUID) -> ScanResult:
        """Queue every eligible document of an instance.

        Documents that already have a processing result, or any queue
        item, are skipped and counted. Scan timestamps are updated even
        when the scan fails so a broken instance is not rescanned in a
        tight loop.
        """
        instance = await self.db.get(PaperlessInstance, instance_id)
        if instance is None:
            return ScanResult(
                instance_id=instance_id,
                instance_name="",
                error="Instance not found",
            )

        result = ScanResult(instance_id=instance.id, instance_name=instance.name)
        cron_expression = instance.scan_cron_expression

        logger.info(
            "instance_scan_started",
            instance_id=str(instance.id),
            instance_name=instance.name,
        )

        try:
            if instance.default_ai_bot_id is None:
                result.error = "No default AI bot configured"
                logger.warning(
                    "instance_scan_no_default_bot", instance_id=str(instance.id)
                )
                return result

            async with self.client_factory(instance) as client:
                remote_documents = await client.get_all_documents()

            eligible = filter_by_tags(remote_documents, instance.import_filter_tags)
            processed_ids = await self._processed_document_ids(instance.id)
            queued_ids = await self._queued_document_ids(instance.id)

            for remote in eligible:
                if remote.id in processed_ids:
                    result.documents_already_processed += 1
                    continue
                if remote.id in queued_ids:
                    result.documents_already_queued += 1
                    continue

                await self.upsert_local_document(instance.id, remote)
                try:
                    await self.queue_service.enqueue(instance, remote.id)
                except ConflictError:
                    result.documents_already_queued += 1
                    continue
                result.documents_queued += 1

        except Exception as e:
            result.error = str(e)
            await self.db.rollback()
            # Items queued before the failure were rolled back with it
            result.documents_queued = 0
            logger.exception(
                "instance_scan_error",
                instance_id=str(instance_id),
                error=str(e),
            )

        finally:
            await self._update_scan_times(instance_id, cron_expression)

        logger.info(
            "instance_scan_completed",
            instance_id=str(instance_id),
            queued=result.documents_queued,
            already_processed=result.documents_already_processed,
            already_queued=result.documents_already_queued,
            error=result.error,
        )
        return result

    async def _update_scan_times(self, instance_id: UUID, cron_expression: str) -> None:
        now = datetime.now(UTC)
        try:
            next_scan_at = calculate_next_scan_time(cron_expression, now)
        except ValidationError:
            logger.warning(
                "instance_scan_invalid_cron",
                instance_id=str(instance_id),
                cron_expression=cron_expression,
            )
            next_scan_at = None

        await self.db.execute(
            update(PaperlessInstance)
            .where(PaperlessInstance.id == instance_id)
            .values(last_scan_at=now, next_scan_at=next_scan_at)
            .execution_options(synchronize_session=False)
        )


async def run_instance_scan(instance_id: UUID) -> ScanResult:
    """Scan one instance in its own session and commit the outcome."""
    with log_context(instance_id=instance_id):
        async with session_scope() as db:
            return await DocumentScanner(db).scan_instance(instance_id)


async def get_due_instance_ids() -> list[UUID]:
    """Enabled instances whose next scan is unset or in the past."""
    now = datetime.now(UTC)
    async with session_scope() as db:
        result = await db.execute(
            select(PaperlessInstance.id).where(
                and_(
                    PaperlessInstance.auto_process_enabled.is_(True),
                    (PaperlessInstance.next_scan_at.is_(None))
                    | (PaperlessInstance.next_scan_at <= now),
                )
            )
        )
        return list(result.scalars().all())


async def scan_due_instances() -> dict:
    """Scan every due instance.

    This function is designed to be called from a cron endpoint.
    Each instance is scanned in its own database session.

    Returns:
        Dict with scan results
    """
    logger.info("scan_due_instances_started")

    results = {
        "status": "success",
        "instances_scanned": 0,
        "documents_queued": 0,
        "errors": [],
        "timestamp": datetime.now(UTC).isoformat(),
    }

    for instance_id in await get_due_instance_ids():
        scan = await run_instance_scan(instance_id)
        results["instances_scanned"] += 1
        results["documents_queued"] += scan.documents_queued
        if scan.error:
            results["errors"].append(f"{scan.instance_name or instance_id}: {scan.error}")

    if results["errors"]:
        results["status"] = (
            "partial"
            if len(results["errors"]) < results["instances_scanned"]
            else "error"
        )

    logger.info(
        "scan_due_instances_completed",
        scanned=results["instances_scanned"],
        queued=results["documents_queued"],
        errors=len(results["errors"]),
    )
    return results
