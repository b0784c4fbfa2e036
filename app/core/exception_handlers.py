"""
DRF exception handler for application errors.

Services raise BaseApplicationError subclasses; this handler turns them
into JSON responses with a status code chosen by error kind. Anything
else falls through to DRF's default handler.

Configured in settings:
    REST_FRAMEWORK = {
        "EXCEPTION_HANDLER": "core.exception_handlers.api_exception_handler",
    }
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.exceptions import (
    AuthorizationError,
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


logger = logging.getLogger(__name__)


# Checked in order, first match wins
STATUS_BY_ERROR: list[tuple[type[BaseApplicationError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (RateLimitError, status.HTTP_429_TOO_MANY_REQUESTS),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
]


def status_for_error(exc: BaseApplicationError) -> int:
    """Return the HTTP status code for an application error."""
    if isinstance(exc, ExternalServiceError) and exc.is_indeterminate:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    for error_class, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_class):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def api_exception_handler(exc: Exception, context: dict[str, Any]) -> Response | None:
    """
    Render BaseApplicationError as a JSON error response.

    Args:
        exc: The raised exception
        context: DRF handler context (view, request, args, kwargs)

    Returns:
        Response for application errors, DRF's default handling otherwise
    """
    if isinstance(exc, BaseApplicationError):
        status_code = status_for_error(exc)
        view = context.get("view")
        log_method = logger.warning if status_code < 500 else logger.error
        log_method(
            f"Request failed: {exc}",
            extra={
                "error_code": exc.error_code,
                "status_code": status_code,
                "view": view.__class__.__name__ if view else None,
            },
        )
        return Response(exc.to_dict(), status=status_code)

    return exception_handler(exc, context)
