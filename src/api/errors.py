"""Translate backend failures into HTTP errors.

Route handlers wrap collaborator calls in ``backend_call``; whatever the
adapter raises is classified into a ``BackendError`` and answered with the
same inline message the back-office shows. The client decides whether to
try again.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import HTTPException, status

from src.core.errors import BackendError, ErrorCategory

STATUS_BY_CATEGORY: dict[ErrorCategory, int] = {
    ErrorCategory.RATE_LIMIT: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCategory.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorCategory.NETWORK: status.HTTP_502_BAD_GATEWAY,
    ErrorCategory.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCategory.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.AUTH_FAILURE: status.HTTP_401_UNAUTHORIZED,
    ErrorCategory.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCategory.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCategory.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCategory.CONFIGURATION: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCategory.UNKNOWN: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def http_error(error: BackendError) -> HTTPException:
    """HTTPException for a backend failure, with its user-facing message."""
    return HTTPException(
        status_code=STATUS_BY_CATEGORY.get(
            error.category, status.HTTP_500_INTERNAL_SERVER_ERROR
        ),
        detail={
            "error": error.user_message,
            "code": error.category.name,
            "operation": error.operation,
        },
    )


@contextmanager
def backend_call(operation: str) -> Iterator[None]:
    """Answer any failure of the wrapped collaborator call with an HTTP error.

    Example:
        with backend_call("select"):
            rows = await store.select("materias")
    """
    try:
        yield
    except HTTPException:
        raise
    except Exception as ex:
        raise http_error(BackendError.from_exception(ex, operation=operation)) from ex
