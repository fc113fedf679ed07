"""Core application utilities and configuration."""

from archivist.core.logging import (
    configure_logging,
    generate_request_id,
    get_logger,
    log_context,
)

__all__ = ["configure_logging", "generate_request_id", "get_logger", "log_context"]
