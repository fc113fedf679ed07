"""Cron job endpoints for background processing.

Protected by CRON_SECRET bearer token authentication.
These endpoints let an external scheduler drive scanning and queue
processing when the in-process scheduler is disabled.
"""

from fastapi import APIRouter, Header, HTTPException, status

from archivist.config import get_settings
from archivist.core.logging import get_logger
from archivist.schemas.instance import ScanDueInstancesResult
from archivist.schemas.processing_queue import QueueProcessResult
from archivist.services import process_processing_queue, scan_due_instances

logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(prefix="/cron", tags=["cron"])


def verify_cron_secret(authorization: str | None) -> bool:
    """Verify CRON_SECRET bearer token."""
    if not settings.cron_secret:
        logger.warning("cron_secret_not_configured")
        return False

    if not authorization:
        return False

    if not authorization.startswith("Bearer "):
        return False

    token = authorization[7:]  # Remove "Bearer " prefix
    return token == settings.cron_secret


def require_cron_secret(authorization: str | None) -> None:
    if not verify_cron_secret(authorization):
        logger.warning("cron_unauthorized_request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing CRON_SECRET",
        )


@router.get("/processing-queue", response_model=QueueProcessResult)
async def process_queue(
    authorization: str | None = Header(None),
) -> QueueProcessResult:
    """Recover stuck items and analyze every due queue item.

    Items are processed one at a time, each in its own database session.
    Failed items are requeued with a linear backoff until their attempts
    are exhausted.
    """
    require_cron_secret(authorization)

    results = await process_processing_queue()
    return QueueProcessResult(**results)


@router.get("/scan-due-instances", response_model=ScanDueInstancesResult)
async def scan_instances(
    authorization: str | None = Header(None),
) -> ScanDueInstancesResult:
    """Scan every auto-processing instance whose next scan is due."""
    require_cron_secret(authorization)

    results = await scan_due_instances()
    return ScanDueInstancesResult(**results)
