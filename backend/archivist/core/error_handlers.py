"""Translate application exceptions into JSON error responses."""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import InterfaceError, OperationalError

from archivist.core.exceptions import ArchivistError, PersistenceError
from archivist.core.logging import get_logger

logger = get_logger(__name__)


def error_body(error: str, message: str) -> dict[str, str]:
    return {"error": error, "message": message}


async def archivist_error_handler(request: Request, exc: ArchivistError) -> JSONResponse:
    """Map the ArchivistError hierarchy to its HTTP status."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "request_failed",
        path=request.url.path,
        status_code=exc.status_code,
        error_code=exc.error_code,
        error=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.error_code, exc.message),
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies and query parameters are 400s."""
    messages = [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("validationError", "; ".join(messages)),
    )


async def database_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("database_unavailable", path=request.url.path, error=str(exc))
    error = PersistenceError("Database unavailable")
    return JSONResponse(
        status_code=error.status_code,
        content=error_body(error.error_code, error.message),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ArchivistError, archivist_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(OperationalError, database_unavailable_handler)
    app.add_exception_handler(InterfaceError, database_unavailable_handler)
