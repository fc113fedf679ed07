"""Auto-processing configuration changes for Paperless instances."""

from sqlalchemy.ext.asyncio import AsyncSession

from archivist.core.logging import get_logger
from archivist.models.paperless_instance import PaperlessInstance
from archivist.services.document_scanner import calculate_next_scan_time
from archivist.services.scheduler import Scheduler

logger = get_logger(__name__)


async def update_auto_processing(
    db: AsyncSession,
    instance: PaperlessInstance,
    auto_process_enabled: bool | None = None,
    scan_cron_expression: str | None = None,
    scheduler: Scheduler | None = None,
) -> PaperlessInstance:
    """Apply auto-processing changes and keep the scheduler in step.

    Enabling auto-processing, or changing the cron expression while it is
    enabled, validates the expression, stores the next scan time and arms
    the instance's timer. Disabling clears the next scan time and removes
    the timer.

    Raises:
        ValidationError: If the cron expression is invalid
    """
    was_enabled = instance.auto_process_enabled
    cron_changed = (
        scan_cron_expression is not None
        and scan_cron_expression != instance.scan_cron_expression
    )

    if scan_cron_expression is not None:
        instance.scan_cron_expression = scan_cron_expression
    if auto_process_enabled is not None:
        instance.auto_process_enabled = auto_process_enabled

    if instance.auto_process_enabled and (not was_enabled or cron_changed):
        instance.next_scan_at = calculate_next_scan_time(instance.scan_cron_expression)
        await db.flush()
        if scheduler is not None and scheduler.is_running:
            scheduler.schedule_instance(
                instance.id,
                instance.name,
                instance.scan_cron_expression,
                instance.next_scan_at,
            )
    elif not instance.auto_process_enabled and was_enabled:
        instance.next_scan_at = None
        await db.flush()
        if scheduler is not None:
            scheduler.unschedule_instance(instance.id)
    else:
        await db.flush()

    logger.info(
        "instance_auto_processing_updated",
        instance_id=str(instance.id),
        auto_process_enabled=instance.auto_process_enabled,
        scan_cron_expression=instance.scan_cron_expression,
        next_scan_at=(
            instance.next_scan_at.isoformat() if instance.next_scan_at else None
        ),
    )
    return instance
