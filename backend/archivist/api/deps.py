"""API dependencies for common path parameters and shared services."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request

from archivist.core.exceptions import NotFoundError
from archivist.database import DbSession, get_db
from archivist.models.paperless_instance import PaperlessInstance
from archivist.services.scheduler import Scheduler

# Re-export for convenience
__all__ = [
    "DbSession",
    "Instance",
    "SchedulerDep",
    "get_db",
    "get_instance",
    "get_scheduler",
]


async def get_instance(instance_id: UUID, db: DbSession) -> PaperlessInstance:
    """Load the Paperless instance named in the path."""
    instance = await db.get(PaperlessInstance, instance_id)
    if instance is None:
        raise NotFoundError(
            "Paperless instance not found", error_code="instanceNotFound"
        )
    return instance


def get_scheduler(request: Request) -> Scheduler | None:
    """Scheduler owned by the application lifespan, if enabled."""
    return getattr(request.app.state, "scheduler", None)


# Type aliases for dependency injection
Instance = Annotated[PaperlessInstance, Depends(get_instance)]
SchedulerDep = Annotated[Scheduler | None, Depends(get_scheduler)]
