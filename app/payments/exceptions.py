"""
Payment-specific exceptions for escrow and withdrawal operations.

Exception Hierarchy:
    NotFoundError
    ├── PaymentNotFoundError - Payment lookup by id or reference failed
    └── WithdrawalNotFoundError - Withdrawal lookup failed

    ValidationError
    ├── SelfPurchaseError - Buyer is the listing's seller
    └── InsufficientBalanceError - Withdrawal exceeds the available balance

    ConflictError
    ├── AlreadyProcessedError - Conditional update matched zero rows
    └── InvalidStateTransitionError - FSM transition not allowed from the current state

    ExternalServiceError
    └── GatewayError - Base for all payment gateway (Stripe) errors
        ├── GatewayCardDeclinedError - Card declined (definite)
        ├── GatewayInsufficientFundsError - Insufficient funds (definite)
        ├── GatewayInvalidAccountError - Invalid destination account (definite)
        ├── GatewayInvalidRequestError - Invalid request / auth failure (definite)
        ├── GatewayRateLimitError - Rate limited (definite, retryable)
        ├── GatewayUnavailableError - Gateway 5xx (indeterminate, retryable)
        └── GatewayTimeoutError - Timeout or dropped connection (indeterminate, retryable)

"Definite" errors mean the gateway rejected the operation and nothing
moved. "Indeterminate" errors mean the operation may or may not have been
applied; callers must leave local state untouched and resolve it later
(Verify, webhook, or a retry with the same idempotency key).

Usage:
    from payments.exceptions import AlreadyProcessedError, GatewayError

    try:
        refund = StripeAdapter.create_refund(payment.gateway_payment_id, key)
    except GatewayError as e:
        if e.is_indeterminate:
            ...  # leave the payment held, surface the error
        raise
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Lookup Errors
# =============================================================================


class PaymentNotFoundError(NotFoundError):
    """
    Raised when a payment cannot be found by id or reference.

    Example:
        payment = Payment.objects.filter(reference=reference).first()
        if not payment:
            raise PaymentNotFoundError(
                f"Payment with reference {reference} not found",
                details={"reference": reference},
            )
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"


class WithdrawalNotFoundError(NotFoundError):
    """Raised when a withdrawal cannot be found."""

    default_error_code: str = "WITHDRAWAL_NOT_FOUND"


# =============================================================================
# Business Rule Errors
# =============================================================================


class SelfPurchaseError(ValidationError):
    """
    Raised when a buyer tries to purchase their own listing.

    Raised before any payment row or checkout session is created.
    """

    default_error_code: str = "SELF_PURCHASE"


class InsufficientBalanceError(ValidationError):
    """
    Raised when a withdrawal exceeds the seller's available balance.

    Available balance = sum of released payments - sum of non-failed
    withdrawals. Raised before any gateway call.

    Example:
        raise InsufficientBalanceError(
            "Withdrawal exceeds available balance",
            details={"requested": "300.00", "available": "250.00"},
        )
    """

    default_error_code: str = "INSUFFICIENT_BALANCE"


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class AlreadyProcessedError(ConflictError):
    """
    Raised when a conditional update matched zero rows.

    Another request moved the record out of the expected state first
    (double release, release racing refund, duplicate confirmation).
    The operation is final for this request and is not retried.

    Example:
        if not transition_if(payment, "release"):
            raise AlreadyProcessedError(
                "Payment has already been processed",
                details={"payment_id": str(payment.id)},
            )
    """

    default_error_code: str = "ALREADY_PROCESSED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state machine transition is not allowed.

    This exception wraps django-fsm's TransitionNotAllowed to provide
    our standard error format with additional context.

    Attributes:
        details: Contains current_state and the transition name

    Example:
        from django_fsm import TransitionNotAllowed

        try:
            payment.release()
        except TransitionNotAllowed:
            raise InvalidStateTransitionError(
                f"Cannot release payment from '{payment.status}' state",
                details={"current_state": payment.status, "transition": "release"},
            )

    Note:
        This exception inherits from ConflictError (HTTP 409) because
        the current state conflicts with the requested operation.
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayError(ExternalServiceError):
    """
    Base exception for all payment gateway errors.

    Provides common attributes for gateway error handling:
    - gateway_code: The gateway's own error code
    - decline_code: Card decline code (if applicable)
    - is_retryable: Whether the same call may succeed later
    - is_indeterminate: Whether the call may already have been applied

    Unknown failures are treated as indeterminate.

    Example:
        try:
            StripeAdapter.verify_checkout(session_id)
        except GatewayError as e:
            if e.is_indeterminate:
                logger.warning("Outcome unknown, leaving payment pending")
            raise
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = True
    is_indeterminate: bool = True

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        gateway_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if gateway_code:
            details["gateway_code"] = gateway_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.gateway_code = gateway_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Definite Errors (the gateway rejected the call)
# -----------------------------------------------------------------------------


class GatewayCardDeclinedError(GatewayError):
    """
    Card was declined by the issuing bank.

    Do not retry with the same card. The decline_code attribute
    contains the specific reason.
    """

    default_error_code: str = "CARD_DECLINED"
    is_retryable: bool = False
    is_indeterminate: bool = False


class GatewayInsufficientFundsError(GatewayError):
    """
    Insufficient funds on the payment method or platform balance.

    User (or operator) action is required before a retry can succeed.
    """

    default_error_code: str = "INSUFFICIENT_FUNDS"
    is_retryable: bool = False
    is_indeterminate: bool = False


class GatewayInvalidAccountError(GatewayError):
    """
    Invalid destination account for a transfer.

    Raised when the payout recipient is missing, disabled or cannot
    receive transfers. Usually caused by bad bank details.
    """

    default_error_code: str = "INVALID_PAYOUT_ACCOUNT"
    is_retryable: bool = False
    is_indeterminate: bool = False


class GatewayInvalidRequestError(GatewayError):
    """
    Invalid request parameters, or the gateway rejected our credentials.

    The request will never succeed with the same parameters.

    Note:
        This usually indicates a bug or misconfiguration, not a user
        error. Log these errors for developer investigation.
    """

    default_error_code: str = "INVALID_GATEWAY_REQUEST"
    is_retryable: bool = False
    is_indeterminate: bool = False


class GatewayRateLimitError(GatewayError):
    """
    Rate limited by the gateway.

    The request was refused before processing, so nothing was applied.
    Retry with backoff.
    """

    default_error_code: str = "GATEWAY_RATE_LIMITED"
    is_retryable: bool = True
    is_indeterminate: bool = False


# -----------------------------------------------------------------------------
# Indeterminate Errors (the call may have been applied)
# -----------------------------------------------------------------------------


class GatewayUnavailableError(GatewayError):
    """
    Gateway returned a server error (5xx).

    The operation may have been applied. Retry only with the same
    idempotency key.
    """

    default_error_code: str = "GATEWAY_UNAVAILABLE"


class GatewayTimeoutError(GatewayError):
    """
    Gateway call timed out or the connection dropped.

    IMPORTANT: The operation may have succeeded on the gateway's side.
    Retrying with the same idempotency key returns the original result
    if it did.
    """

    default_error_code: str = "GATEWAY_TIMEOUT"


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Lookup
    "PaymentNotFoundError",
    "WithdrawalNotFoundError",
    # Business rules
    "SelfPurchaseError",
    "InsufficientBalanceError",
    # Concurrency control
    "AlreadyProcessedError",
    "InvalidStateTransitionError",
    # Gateway
    "GatewayError",
    "GatewayCardDeclinedError",
    "GatewayInsufficientFundsError",
    "GatewayInvalidAccountError",
    "GatewayInvalidRequestError",
    "GatewayRateLimitError",
    "GatewayUnavailableError",
    "GatewayTimeoutError",
]
