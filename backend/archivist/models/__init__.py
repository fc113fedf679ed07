"""SQLAlchemy models."""

from archivist.models.ai import AiAccount, AiBot, AiModel, AiProvider, ResponseLanguage
from archivist.models.document import PaperlessDocument
from archivist.models.paperless_instance import DEFAULT_SCAN_CRON, PaperlessInstance
from archivist.models.processing_queue import (
    ACTIVE_DOCUMENT_INDEX,
    ACTIVE_STATUSES,
    ProcessingQueue,
    QueueStatus,
)
from archivist.models.processing_result import DocumentProcessingResult
from archivist.models.usage_metric import AiUsageMetric

__all__ = [
    "ACTIVE_DOCUMENT_INDEX",
    "ACTIVE_STATUSES",
    "AiAccount",
    "AiBot",
    "AiModel",
    "AiProvider",
    "AiUsageMetric",
    "DEFAULT_SCAN_CRON",
    "DocumentProcessingResult",
    "PaperlessDocument",
    "PaperlessInstance",
    "ProcessingQueue",
    "QueueStatus",
    "ResponseLanguage",
]
