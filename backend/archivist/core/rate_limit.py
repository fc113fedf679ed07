"""Rate limiting configuration using slowapi."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from archivist.config import get_settings

settings = get_settings()

# headers_enabled=False: slowapi cannot inject headers into responses that
# FastAPI serializes from Pydantic models.
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.rate_limit_storage_uri,
    headers_enabled=False,
    enabled=settings.rate_limit_enabled,
)


def queue_limit() -> str:
    """Get queue management endpoint rate limit."""
    return settings.rate_limit_queue


def analysis_limit() -> str:
    """Get document analysis/apply endpoint rate limit."""
    return settings.rate_limit_analysis
