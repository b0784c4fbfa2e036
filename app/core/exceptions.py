"""
Base exception classes for application-wide error handling.

Every domain error raised by a service derives from BaseApplicationError so
the API layer can render it the same way regardless of where it came from.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Bad input or a business rule rejected the request
    ├── AuthorizationError - Caller may not act on the resource
    ├── NotFoundError - Resource not found
    ├── ConflictError - Resource is no longer in the required state
    ├── RateLimitError - Rate limit exceeded
    └── ExternalServiceError - Third-party service failures

HTTP mapping (see core.exception_handlers):
    ValidationError      -> 400
    AuthorizationError   -> 403
    NotFoundError        -> 404
    ConflictError        -> 409
    RateLimitError       -> 429
    ExternalServiceError -> 502 (503 when the outcome is unknown)

Usage:
    from core.exceptions import ConflictError, NotFoundError

    raise NotFoundError(
        f"Listing {listing_id} not found",
        error_code="LISTING_NOT_FOUND",
        details={"listing_id": str(listing_id)},
    )

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=400)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (ids, current state, etc.)

    Example:
        try:
            payment = EscrowService.get_payment(payment_id)
        except NotFoundError as e:
            logger.warning(f"Payment lookup failed: {e.error_code}")
            return Response(e.to_dict(), status=404)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Returns:
            Dict with error and error_code keys, plus details when present

        Example:
            {
                "error": "Payment is already released",
                "error_code": "ALREADY_PROCESSED",
                "details": {"payment_id": "...", "current_status": "released"}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation or a business rule fails.

    Use for:
    - Non-positive amounts
    - Incomplete bank details
    - Buying your own listing
    - Withdrawing more than the available balance

    Always raised before any write or gateway call.

    Note:
        For DRF serializer validation, use DRF's built-in validation.
        Use this for service-layer rules.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Example:
        listing = Listing.objects.filter(id=listing_id).first()
        if not listing:
            raise NotFoundError(
                f"Listing {listing_id} not found",
                error_code="LISTING_NOT_FOUND",
                details={"listing_id": str(listing_id)},
            )
    """

    default_error_code: str = "NOT_FOUND"


class AuthorizationError(BaseApplicationError):
    """
    Raised when the caller is not allowed to act on a resource.

    The caller's identity comes from the session layer and is trusted;
    this error means the identity does not hold the capability the
    operation needs (buyer of the payment, seller of the payment, admin).

    Example:
        if payment.buyer_id != actor.id:
            raise AuthorizationError(
                "Only the buyer can release this payment",
                error_code="NOT_PAYMENT_BUYER",
            )

    Note:
        For authentication failures (missing/invalid token), DRF's
        NotAuthenticated/AuthenticationFailed apply instead.
    """

    default_error_code: str = "NOT_AUTHORIZED"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Conditional updates that matched zero rows
    - Transitions attempted from the wrong source state
    - Unique constraint violations (duplicate open payment)

    Conflicts are final for the request: callers should report
    "already processed" instead of retrying.
    """

    default_error_code: str = "CONFLICT"


class RateLimitError(BaseApplicationError):
    """
    Raised when rate limit is exceeded.

    Note:
        Include retry_after in details when possible to help clients.
        HTTP 429 Too Many Requests is the appropriate status.
    """

    default_error_code: str = "RATE_LIMIT_EXCEEDED"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Subclasses may set ``is_indeterminate`` when the remote side may
    have applied the operation even though we saw an error (timeouts,
    dropped connections, 5xx). Callers must not mutate local state on
    an indeterminate error.

    Note:
        Log the original error for debugging but don't expose
        internal details to clients in production.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    is_indeterminate: bool = False
