"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from archivist.api import cron, documents, instances, queue
from archivist.config import get_settings
from archivist.core.error_handlers import register_exception_handlers
from archivist.core.logging import (
    configure_logging,
    generate_request_id,
    get_logger,
    log_context,
)
from archivist.core.rate_limit import limiter
from archivist.database import dispose_engine
from archivist.schemas.instance import SchedulerStatusResponse
from archivist.services.scheduler import Scheduler

settings = get_settings()

# Configure structured logging
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info(
        "application_starting",
        environment=settings.environment,
        debug=settings.debug,
    )

    if not settings.is_encryption_configured:
        logger.warning(
            "encryption_not_configured",
            message="Stored API tokens and keys cannot be decrypted. "
            "Set ENCRYPTION_KEY.",
        )

    scheduler: Scheduler | None = None
    if settings.scheduler_enabled:
        scheduler = Scheduler()
        await scheduler.start()
    else:
        logger.info("scheduler_disabled")
    app.state.scheduler = scheduler

    yield

    # Shutdown
    if scheduler is not None:
        await scheduler.stop()
    await dispose_engine()

    logger.info("application_shutdown")


app = FastAPI(
    title="Paperless Archivist API",
    description=(
        "AI metadata suggestions for Paperless-ngx: scheduled instance scans, "
        "a document processing queue and tool-assisted LLM analysis."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "Accept",
        "Origin",
        "X-Requested-With",
    ],
    expose_headers=["X-Request-ID"],
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

register_exception_handlers(app)


# Request correlation ID middleware
@app.middleware("http")
async def add_request_id_middleware(request, call_next):
    """Add correlation ID to each request."""
    request_id = generate_request_id()
    with log_context(request_id=request_id):
        response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# Include routers
app.include_router(queue.router, prefix="/api/v1")
app.include_router(documents.router, prefix="/api/v1")
app.include_router(instances.router, prefix="/api/v1")
app.include_router(cron.router, prefix="/api/v1")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/api/v1/scheduler/status", response_model=SchedulerStatusResponse)
async def scheduler_status() -> SchedulerStatusResponse:
    """In-process scheduler state."""
    scheduler: Scheduler | None = getattr(app.state, "scheduler", None)
    if scheduler is None:
        return SchedulerStatusResponse(
            running=False, scheduled_instances=[], processor_active=False
        )
    return SchedulerStatusResponse.model_validate(scheduler.get_status())
