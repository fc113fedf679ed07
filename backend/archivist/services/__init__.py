"""Business logic services."""

from .document_scanner import (
    DocumentScanner,
    ScanResult,
    calculate_next_scan_time,
    scan_due_instances,
)
from .instance_schedule import update_auto_processing
from .paperless_client import PaperlessClient
from .processing_queue_service import ProcessingQueueService
from .queue_processor import (
    ProcessResult,
    process_all_pending,
    process_processing_queue,
    process_queue_item,
)
from .scheduler import Scheduler
from .suggestion_applier import (
    ApplySuggestionsResult,
    AutoApplySettings,
    SuggestionApplyService,
    apply_suggestions,
    has_auto_apply_enabled,
)

__all__ = [
    "ApplySuggestionsResult",
    "AutoApplySettings",
    "DocumentScanner",
    "PaperlessClient",
    "ProcessResult",
    "ProcessingQueueService",
    "ScanResult",
    "Scheduler",
    "SuggestionApplyService",
    "apply_suggestions",
    "calculate_next_scan_time",
    "has_auto_apply_enabled",
    "process_all_pending",
    "process_processing_queue",
    "process_queue_item",
    "scan_due_instances",
    "update_auto_processing",
]
