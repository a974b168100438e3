"""Error classification for backend collaborator failures.

Calls to the hosted database, auth and storage services can fail for many
reasons. This module sorts those failures into categories and turns each
category into the short inline message the admin screens show. Failures are
reported, never retried automatically.

Example:
    from src.core.errors import BackendError, user_message

    try:
        record = await store.update("materias", record_id, values)
    except Exception as ex:
        error = BackendError.from_exception(ex, operation="update")
        show_inline(user_message(error.category))
"""

import asyncio
from enum import Enum, auto

from src.core.logging import get_logger

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """Classification of backend failures."""

    # Usually temporary on the service side
    RATE_LIMIT = auto()
    TIMEOUT = auto()
    NETWORK = auto()
    SERVICE_UNAVAILABLE = auto()

    # Caused by the request or the caller
    INVALID_INPUT = auto()
    AUTH_FAILURE = auto()
    PERMISSION_DENIED = auto()
    NOT_FOUND = auto()
    CONFLICT = auto()
    CONFIGURATION = auto()
    UNKNOWN = auto()


USER_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.RATE_LIMIT: "Too many requests. Wait a moment and try again.",
    ErrorCategory.TIMEOUT: "The server took too long to respond. Try again.",
    ErrorCategory.NETWORK: "Could not reach the server. Check your connection.",
    ErrorCategory.SERVICE_UNAVAILABLE: "The service is temporarily unavailable.",
    ErrorCategory.INVALID_INPUT: "Some of the submitted data is invalid.",
    ErrorCategory.AUTH_FAILURE: "Your session is invalid or has expired. Sign in again.",
    ErrorCategory.PERMISSION_DENIED: "You do not have permission to do this.",
    ErrorCategory.NOT_FOUND: "The requested record was not found.",
    ErrorCategory.CONFLICT: "This record already exists.",
    ErrorCategory.CONFIGURATION: "The server is not configured correctly.",
    ErrorCategory.UNKNOWN: "Something went wrong. Try again later.",
}


class BackendError(Exception):
    """Failure reported by a backend collaborator (database, auth, storage).

    Attributes:
        category: Classified failure type.
        operation: Short name of the operation that failed, for logs.
        original_error: The exception raised by the collaborator, if any.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        operation: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.operation = operation
        self.original_error = original_error

    @property
    def user_message(self) -> str:
        return user_message(self.category)

    @classmethod
    def from_exception(
        cls,
        ex: Exception,
        operation: str | None = None,
        category: ErrorCategory | None = None,
    ) -> "BackendError":
        """Wrap an arbitrary exception, classifying it if no category is given."""
        if isinstance(ex, BackendError) and category is None:
            return ex
        if category is None:
            category = classify_error(ex)
        logger.warning(
            "backend_error",
            category=category.name,
            operation=operation,
            error=str(ex),
        )
        return cls(
            message=str(ex),
            category=category,
            operation=operation,
            original_error=ex,
        )


# Checked in order; the first category with a marker found in the lowercased
# message wins. Postgres SQLSTATE and PostgREST codes show up verbatim in the
# hosted database's error messages.
_MESSAGE_MARKERS: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    (ErrorCategory.NETWORK, ("connection", "network")),
    (ErrorCategory.RATE_LIMIT, ("429", "too many requests", "rate limit")),
    (ErrorCategory.SERVICE_UNAVAILABLE, ("502", "503", "bad gateway", "service unavailable")),
    (
        ErrorCategory.AUTH_FAILURE,
        ("401", "unauthorized", "jwt", "token", "session", "invalid login", "credentials"),
    ),
    (
        ErrorCategory.PERMISSION_DENIED,
        ("403", "forbidden", "42501", "row-level security", "permission denied"),
    ),
    (ErrorCategory.NOT_FOUND, ("404", "not found", "pgrst116")),
    (
        ErrorCategory.CONFLICT,
        ("409", "23505", "duplicate", "already been registered", "already exists"),
    ),
    (ErrorCategory.INVALID_INPUT, ("400", "22p02", "bad request", "invalid", "validation")),
    (
        ErrorCategory.CONFIGURATION,
        ("configuration", "not configured", "missing env", "missing key"),
    ),
)

_TYPE_CATEGORIES: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (TimeoutError, ErrorCategory.TIMEOUT),
    (asyncio.TimeoutError, ErrorCategory.TIMEOUT),
    (PermissionError, ErrorCategory.PERMISSION_DENIED),
    (ConnectionError, ErrorCategory.NETWORK),
    (KeyError, ErrorCategory.NOT_FOUND),
)


def classify_error(error: Exception) -> ErrorCategory:
    """Pick the category for ``error`` from its type, then from its message."""
    if isinstance(error, BackendError):
        return error.category

    for exc_type, category in _TYPE_CATEGORIES:
        if isinstance(error, exc_type):
            return category

    text = str(error).lower()
    for category, markers in _MESSAGE_MARKERS:
        if any(marker in text for marker in markers):
            return category
    return ErrorCategory.UNKNOWN


def user_message(category: ErrorCategory) -> str:
    """Return the inline message shown to users for a failure category."""
    return USER_MESSAGES.get(category, USER_MESSAGES[ErrorCategory.UNKNOWN])
