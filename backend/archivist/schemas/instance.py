"""Paperless instance scheduling schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer

from archivist.schemas.base import CamelModel


class AutoProcessingUpdate(CamelModel):
    """Partial update of an instance's auto-processing settings."""

    auto_process_enabled: bool | None = None
    scan_cron_expression: str | None = Field(None, min_length=1, max_length=100)


class InstanceScheduleResponse(CamelModel):
    """Instance view; the API token is always masked."""

    id: UUID
    name: str
    api_url: str
    api_token: str
    auto_process_enabled: bool
    scan_cron_expression: str
    next_scan_at: datetime | None
    last_scan_at: datetime | None
    import_filter_tags: list[int]
    auto_apply_title: bool
    auto_apply_correspondent: bool
    auto_apply_document_type: bool
    auto_apply_tags: bool
    auto_apply_date: bool

    @field_serializer("api_token")
    def mask_token(self, _value: str) -> str:
        return "***"


class ScanResultResponse(CamelModel):
    """Outcome of one instance scan."""

    instance_id: UUID
    instance_name: str
    documents_queued: int = 0
    documents_already_processed: int = 0
    documents_already_queued: int = 0
    error: str | None = None


class ScanDueInstancesResult(BaseModel):
    """Response schema for the scan cron endpoint."""

    status: str
    instances_scanned: int
    documents_queued: int
    errors: list[str]
    timestamp: str


class SchedulerStatusResponse(CamelModel):
    """In-process scheduler state."""

    running: bool
    scheduled_instances: list[UUID]
    processor_active: bool
