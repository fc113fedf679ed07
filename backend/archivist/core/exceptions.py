"""Core application exception classes.

This module provides a centralized exception hierarchy for all archivist
errors. All custom exceptions inherit from ArchivistError, enabling:
- Consistent error handling across the application
- Mapping of error categories to HTTP status codes in one place
- Structured logging with exception context

Exception Hierarchy:
    ArchivistError (base)
    +-- ValidationError (bad input, 400)
    +-- NotFoundError (missing referenced entity, 404)
    +-- ConflictError (uniqueness violation, 409)
    +-- InvalidStateError (operation not allowed in current state, 400)
    +-- ProviderError (LLM call or response failure, 502)
    |   +-- ConfigurationError (provider cannot be constructed)
    +-- PersistenceError (database unavailable, 503)
    +-- ExternalServiceError (document store and other APIs, 502)
        +-- PaperlessAPIError (carries the upstream status code)
"""


class ArchivistError(Exception):
    """Base exception for all archivist application errors.

    All custom exceptions should inherit from this class to enable:
    - Catching all application errors with a single except clause
    - Distinguishing application errors from system errors
    - Translating errors into HTTP responses via ``status_code``/``error_code``

    Example:
        try:
            await service.retry(instance_id, queue_id)
        except ArchivistError as e:
            logger.warning("queue_retry_rejected", error=str(e))
            raise
    """

    status_code: int = 500
    error_code: str = "internalError"

    def __init__(self, message: str = "", error_code: str | None = None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code


# --- Category Exceptions ---


class ValidationError(ArchivistError):
    """Exception for invalid input.

    Use for errors such as:
    - Out-of-range priority or pagination values
    - Unknown queue status filter
    - Invalid cron expression
    - No AI bot configured for an enqueue request
    """

    status_code = 400
    error_code = "validationError"


class NotFoundError(ArchivistError):
    """Exception for a referenced entity that does not exist.

    Raised for missing queue items, documents, bots, instances and
    processing results. Items owned by a different instance are reported
    as not found.
    """

    status_code = 404
    error_code = "notFound"


class ConflictError(ArchivistError):
    """Exception for uniqueness violations.

    The main case is enqueueing a document that already has a pending or
    processing queue item for the same instance.
    """

    status_code = 409
    error_code = "conflict"


class InvalidStateError(ArchivistError):
    """Exception for operations not permitted in the entity's current state.

    Examples:
    - Retrying a queue item that has not failed
    - Deleting a queue item that is being processed
    """

    status_code = 400
    error_code = "invalidState"


class ProviderError(ArchivistError):
    """Exception for LLM provider failures.

    Use for errors such as:
    - Network or HTTP failures calling the provider
    - Responses without a parsable JSON object
    - Responses that do not match the analysis result schema
    - Unknown provider kinds
    """

    status_code = 502
    error_code = "providerError"


class ConfigurationError(ProviderError):
    """Exception for missing or invalid provider configuration.

    Raised when a provider cannot be constructed, for example a ``custom``
    provider without a base URL or an encrypted key that cannot be
    decrypted with the configured ENCRYPTION_KEY. This typically indicates
    a setup issue rather than a transient runtime error.
    """

    error_code = "configurationError"


class PersistenceError(ArchivistError):
    """Exception for database unavailability.

    Raised when the database cannot be reached or a connection fails
    mid-operation. Constraint violations are not persistence errors; they
    surface as ConflictError or ValidationError.
    """

    status_code = 503
    error_code = "persistenceError"


class ExternalServiceError(ArchivistError):
    """Base exception for external service/API failures.

    Subclasses should be created for specific services to enable
    targeted error handling.
    """

    status_code = 502
    error_code = "externalServiceError"


# --- Service-Specific Exceptions ---


class PaperlessAPIError(ExternalServiceError):
    """Exception for Paperless-ngx REST API failures.

    Carries the upstream HTTP status code (``None`` for transport errors).
    Upstream 5xx and transport failures map to 502; upstream 4xx keep
    their own status so callers see e.g. a 404 for a deleted document.
    """

    error_code = "paperlessApiError"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.upstream_status = status_code
        if status_code is not None and status_code < 500:
            self.status_code = status_code
