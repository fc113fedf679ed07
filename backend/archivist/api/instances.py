"""Paperless instance auto-processing endpoints."""

from fastapi import APIRouter, Request

from archivist.api.deps import DbSession, Instance, SchedulerDep
from archivist.core.logging import get_logger
from archivist.core.rate_limit import limiter, queue_limit
from archivist.schemas.instance import (
    AutoProcessingUpdate,
    InstanceScheduleResponse,
    ScanResultResponse,
)
from archivist.services.document_scanner import run_instance_scan
from archivist.services.instance_schedule import update_auto_processing

logger = get_logger(__name__)

router = APIRouter(prefix="/paperless-instances/{instance_id}", tags=["instances"])


@router.patch("/auto-processing", response_model=InstanceScheduleResponse)
async def update_instance_auto_processing(
    data: AutoProcessingUpdate,
    instance: Instance,
    db: DbSession,
    scheduler: SchedulerDep,
) -> InstanceScheduleResponse:
    """Enable or disable scheduled scanning, or change its cron expression.

    The API token is never returned.
    """
    instance = await update_auto_processing(
        db,
        instance,
        auto_process_enabled=data.auto_process_enabled,
        scan_cron_expression=data.scan_cron_expression,
        scheduler=scheduler,
    )
    await db.refresh(instance)
    return InstanceScheduleResponse.model_validate(instance)


@router.post("/scan", response_model=ScanResultResponse)
@limiter.limit(queue_limit)
async def scan_instance_now(
    request: Request,
    instance: Instance,
    scheduler: SchedulerDep,
) -> ScanResultResponse:
    """Scan the instance for new documents immediately.

    Newly queued documents wake the queue worker when the scheduler runs.
    """
    logger.info("instance_manual_scan_requested", instance_id=str(instance.id))

    if scheduler is not None:
        result = await scheduler.trigger_scan(instance.id)
    else:
        result = await run_instance_scan(instance.id)

    return ScanResultResponse.model_validate(result)
