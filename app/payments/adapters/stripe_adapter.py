"""
Stripe API adapter: the escrow gateway client.

This module provides the StripeAdapter class which encapsulates all
Stripe API interactions used by escrow and withdrawals. All Stripe calls
go through this adapter to ensure consistent error handling, timeouts,
idempotency, and observability.

Operations:
- Checkout Sessions: buyer pays for a listing (initialize, verify, expire)
- Refunds: return a held payment to the buyer
- Connect accounts: payout recipient holding a seller's bank account
- Transfers: move a withdrawal to the payout recipient
- Webhook signature verification

Amounts cross this boundary in minor units (cents); the rest of the
application works in Decimal major units. Use to_minor_units() at the
call site.

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: Network retries inside the SDK (default: 2)
- ESCROW_CURRENCY, ESCROW_PAYOUT_COUNTRY
- ESCROW_CHECKOUT_SUCCESS_URL, ESCROW_CHECKOUT_CANCEL_URL

Usage:
    from payments.adapters import StripeAdapter, to_minor_units

    checkout = StripeAdapter.initialize_checkout(
        email=buyer.email,
        amount_minor=to_minor_units(listing.price),
        reference="PAY-3k9d...",
        metadata={"listing_id": str(listing.id)},
    )
    redirect_to(checkout.authorization_url)

    verification = StripeAdapter.verify_checkout(checkout.session_id)
    if verification.outcome == CheckoutOutcome.SUCCEEDED:
        ...
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

import stripe
from django.conf import settings

from payments.exceptions import (
    GatewayCardDeclinedError,
    GatewayError,
    GatewayInsufficientFundsError,
    GatewayInvalidAccountError,
    GatewayInvalidRequestError,
    GatewayRateLimitError,
    GatewayTimeoutError,
    GatewayUnavailableError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Data Types
# =============================================================================


def to_minor_units(amount: Decimal | int | str) -> int:
    """
    Convert a major-unit amount to the gateway's minor unit.

    Example:
        to_minor_units(Decimal("12.34"))  # 1234
    """
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


class CheckoutOutcome(str, Enum):
    """
    Result of verifying a checkout session.

    SUCCEEDED: Funds captured
    FAILED: Session expired or the payment was declined
    OPEN: Buyer has not finished paying (or async payment still processing)
    """

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    OPEN = "open"


@dataclass
class CheckoutSessionResult:
    """
    Result from creating a Checkout Session.

    Attributes:
        session_id: Checkout Session ID (cs_xxx)
        authorization_url: Hosted checkout page the buyer is redirected to
        reference: Our reference, echoed back as client_reference_id
        raw_response: Full Stripe response dict (for debugging)
    """

    session_id: str
    authorization_url: str
    reference: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class CheckoutVerification:
    """
    Result from verifying a Checkout Session.

    Attributes:
        session_id: Checkout Session ID
        outcome: succeeded / failed / open
        payment_id: PaymentIntent ID (pi_xxx) when one exists
        amount_minor: Session total in minor units
        reference: client_reference_id of the session
        failure_reason: Human-readable reason when outcome is failed
    """

    session_id: str
    outcome: CheckoutOutcome
    payment_id: str | None = None
    amount_minor: int | None = None
    reference: str | None = None
    failure_reason: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class RefundResult:
    """
    Result from Stripe Refund operations.

    Attributes:
        id: Refund ID (re_xxx)
        amount_minor: Refunded amount
        currency: Currency code
        status: Refund status (succeeded, pending, failed)
        payment_id: Original PaymentIntent ID
    """

    id: str
    amount_minor: int
    currency: str
    status: str
    payment_id: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class PayoutRecipientResult:
    """
    Result from creating a payout recipient (Connect account).

    Attributes:
        id: Stripe account ID (acct_xxx), stored as Withdrawal.recipient_code
        bank_account_id: External bank account ID (ba_xxx) if returned
    """

    id: str
    bank_account_id: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransferResult:
    """
    Result from Stripe Transfer operations.

    Attributes:
        id: Transfer ID (tr_xxx), stored as Withdrawal.transfer_reference
        amount_minor: Amount transferred
        currency: Currency code
        destination: Destination Stripe account ID
        metadata: Attached metadata
    """

    id: str
    amount_minor: int
    currency: str
    destination: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    Keys are deterministic: the same operation on the same entity always
    produces the same key, so a retry after a timeout is collapsed by
    Stripe into the original request.

    Example:
        key = IdempotencyKeyGenerator.generate("refund", payment.id)
        # "refund:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        """
        Generate an idempotency key.

        Args:
            operation: The Stripe operation (checkout, refund, transfer, ...)
            entity_id: The domain entity ID or reference
            attempt: Attempt number, bumped only to deliberately start over

        Returns:
            Formatted idempotency key string
        """
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.

    Every call:
    - logs start and completion with duration_ms
    - translates Stripe SDK errors to GatewayError subclasses
      (see _handle_stripe_error for definite vs indeterminate)
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key, timeout and retries."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 2)
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def _log_completed(
        cls, log_context: dict[str, Any], start_time: float, **result: Any
    ) -> None:
        duration_ms = (time.time() - start_time) * 1000
        cls.get_logger().info(
            "Stripe operation completed",
            extra={**log_context, **result, "duration_ms": duration_ms},
        )

    # =========================================================================
    # Checkout
    # =========================================================================

    @classmethod
    def initialize_checkout(
        cls,
        email: str,
        amount_minor: int,
        reference: str,
        metadata: dict[str, str] | None = None,
        description: str = "",
    ) -> CheckoutSessionResult:
        """
        Create a Checkout Session for a purchase.

        The reference is sent as client_reference_id and is also the
        idempotency key, so a retried initialize returns the same session.

        Args:
            email: Buyer e-mail, prefilled on the checkout page
            amount_minor: Amount to charge in minor units
            reference: Our unique payment reference
            metadata: listing_id, buyer_id, seller_id
            description: Line item name shown to the buyer

        Returns:
            CheckoutSessionResult with the session id and redirect URL

        Raises:
            GatewayInvalidRequestError: Invalid parameters
            GatewayUnavailableError / GatewayTimeoutError: Outcome unknown
        """
        cls._configure_stripe()
        logger = cls.get_logger()
        metadata = {**(metadata or {}), "reference": reference}

        log_context = {
            "operation": "initialize_checkout",
            "reference": reference,
            "amount_minor": amount_minor,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                customer_email=email,
                client_reference_id=reference,
                line_items=[
                    {
                        "quantity": 1,
                        "price_data": {
                            "currency": settings.ESCROW_CURRENCY,
                            "unit_amount": amount_minor,
                            "product_data": {"name": description or reference},
                        },
                    }
                ],
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
                success_url=settings.ESCROW_CHECKOUT_SUCCESS_URL,
                cancel_url=settings.ESCROW_CHECKOUT_CANCEL_URL,
                idempotency_key=IdempotencyKeyGenerator.generate("checkout", reference),
            )
        except Exception as e:
            cls._handle_stripe_error(e, log_context, (time.time() - start_time) * 1000)
            raise

        cls._log_completed(log_context, start_time, session_id=session.id)
        return CheckoutSessionResult(
            session_id=session.id,
            authorization_url=session.url,
            reference=reference,
            raw_response=session.to_dict(),
        )

    @classmethod
    def verify_checkout(cls, session_id: str) -> CheckoutVerification:
        """
        Look up a Checkout Session and classify its outcome.

        Classification:
            complete + paid                      -> succeeded
            expired                              -> failed
            complete + unpaid, PaymentIntent
              requires_payment_method/canceled   -> failed (async payment failed)
            anything else                        -> open

        Args:
            session_id: Checkout Session ID (cs_xxx)

        Returns:
            CheckoutVerification

        Raises:
            GatewayInvalidRequestError: Unknown session
            GatewayUnavailableError / GatewayTimeoutError: Outcome unknown
        """
        cls._configure_stripe()

        log_context = {"operation": "verify_checkout", "session_id": session_id}
        start_time = time.time()
        cls.get_logger().info("Starting Stripe operation", extra=log_context)

        try:
            session = stripe.checkout.Session.retrieve(
                session_id,
                expand=["payment_intent"],
            )
        except Exception as e:
            cls._handle_stripe_error(e, log_context, (time.time() - start_time) * 1000)
            raise

        data = session.to_dict()
        intent = data.get("payment_intent")
        intent_status = intent.get("status") if isinstance(intent, dict) else None
        payment_id = intent.get("id") if isinstance(intent, dict) else intent

        outcome = CheckoutOutcome.OPEN
        failure_reason = ""
        if data.get("status") == "complete" and data.get("payment_status") in (
            "paid",
            "no_payment_required",
        ):
            outcome = CheckoutOutcome.SUCCEEDED
        elif data.get("status") == "expired":
            outcome = CheckoutOutcome.FAILED
            failure_reason = "Checkout session expired"
        elif data.get("status") == "complete" and intent_status in (
            "requires_payment_method",
            "canceled",
        ):
            outcome = CheckoutOutcome.FAILED
            last_error = intent.get("last_payment_error") or {}
            failure_reason = last_error.get("message") or "Payment was not completed"

        cls._log_completed(
            log_context,
            start_time,
            outcome=outcome.value,
            session_status=data.get("status"),
            payment_status=data.get("payment_status"),
        )
        return CheckoutVerification(
            session_id=session_id,
            outcome=outcome,
            payment_id=payment_id,
            amount_minor=data.get("amount_total"),
            reference=data.get("client_reference_id"),
            failure_reason=failure_reason,
            raw_response=data,
        )

    @classmethod
    def expire_checkout(cls, session_id: str) -> None:
        """
        Expire an open Checkout Session so the buyer can no longer pay.

        Raises:
            GatewayInvalidRequestError: Session already complete or expired
        """
        cls._configure_stripe()

        log_context = {"operation": "expire_checkout", "session_id": session_id}
        start_time = time.time()
        cls.get_logger().info("Starting Stripe operation", extra=log_context)

        try:
            stripe.checkout.Session.expire(session_id)
        except Exception as e:
            cls._handle_stripe_error(e, log_context, (time.time() - start_time) * 1000)
            raise

        cls._log_completed(log_context, start_time)

    # =========================================================================
    # Refunds
    # =========================================================================

    @classmethod
    def create_refund(
        cls,
        payment_id: str,
        idempotency_key: str,
        amount_minor: int | None = None,
        metadata: dict[str, str] | None = None,
    ) -> RefundResult:
        """
        Refund a PaymentIntent.

        Args:
            payment_id: Stripe PaymentIntent ID (pi_xxx)
            idempotency_key: Unique key for idempotent refund
            amount_minor: Amount to refund (None for full refund)
            metadata: Optional metadata dict

        Returns:
            RefundResult with refund details

        Raises:
            GatewayInvalidRequestError: Refund not possible
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_refund",
            "payment_id": payment_id,
            "amount_minor": amount_minor,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        refund_params: dict[str, Any] = {
            "payment_intent": payment_id,
            "metadata": metadata or {},
        }
        if amount_minor is not None:
            refund_params["amount"] = amount_minor

        try:
            refund = stripe.Refund.create(
                idempotency_key=idempotency_key,
                **refund_params,
            )
        except Exception as e:
            cls._handle_stripe_error(e, log_context, (time.time() - start_time) * 1000)
            raise

        cls._log_completed(log_context, start_time, refund_id=refund.id, status=refund.status)
        return RefundResult(
            id=refund.id,
            amount_minor=refund.amount,
            currency=refund.currency,
            status=refund.status,
            payment_id=refund.payment_intent,
            raw_response=refund.to_dict(),
        )

    # =========================================================================
    # Payouts
    # =========================================================================

    @classmethod
    def create_payout_recipient(
        cls,
        bank_details: dict[str, str],
        email: str,
        idempotency_key: str,
    ) -> PayoutRecipientResult:
        """
        Create a Connect account holding the seller's bank account.

        Transfers to this account are paid out to the bank account by
        Stripe; payout.paid / payout.failed events report the result.

        Args:
            bank_details: account_name, account_number, bank_name,
                optional routing_number
            email: Seller e-mail
            idempotency_key: Unique key for idempotent creation

        Returns:
            PayoutRecipientResult with the account id

        Raises:
            GatewayInvalidAccountError: Bank details rejected
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        # Never log the account number
        log_context = {
            "operation": "create_payout_recipient",
            "bank_name": bank_details.get("bank_name"),
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        external_account = {
            "object": "bank_account",
            "country": settings.ESCROW_PAYOUT_COUNTRY,
            "currency": settings.ESCROW_CURRENCY,
            "account_holder_name": bank_details["account_name"],
            "account_number": bank_details["account_number"],
        }
        if bank_details.get("routing_number"):
            external_account["routing_number"] = bank_details["routing_number"]

        try:
            account = stripe.Account.create(
                type="custom",
                country=settings.ESCROW_PAYOUT_COUNTRY,
                email=email,
                capabilities={"transfers": {"requested": True}},
                external_account=external_account,
                metadata={"bank_name": bank_details.get("bank_name", "")},
                idempotency_key=idempotency_key,
            )
        except Exception as e:
            cls._handle_stripe_error(e, log_context, (time.time() - start_time) * 1000)
            raise

        data = account.to_dict()
        bank_accounts = (data.get("external_accounts") or {}).get("data") or []

        cls._log_completed(log_context, start_time, recipient_code=account.id)
        return PayoutRecipientResult(
            id=account.id,
            bank_account_id=bank_accounts[0].get("id") if bank_accounts else None,
            raw_response=data,
        )

    @classmethod
    def create_transfer(
        cls,
        amount_minor: int,
        destination: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> TransferResult:
        """
        Transfer funds to a payout recipient.

        Args:
            amount_minor: Amount to transfer in minor units
            destination: Stripe account ID (acct_xxx)
            idempotency_key: Unique key for idempotent transfer
            metadata: Optional metadata dict (withdrawal_id)

        Returns:
            TransferResult with transfer details

        Raises:
            GatewayInvalidAccountError: Invalid destination account
            GatewayInsufficientFundsError: Insufficient platform balance
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_transfer",
            "amount_minor": amount_minor,
            "destination": destination,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            transfer = stripe.Transfer.create(
                amount=amount_minor,
                currency=settings.ESCROW_CURRENCY,
                destination=destination,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )
        except Exception as e:
            cls._handle_stripe_error(e, log_context, (time.time() - start_time) * 1000)
            raise

        cls._log_completed(log_context, start_time, transfer_id=transfer.id)
        return TransferResult(
            id=transfer.id,
            amount_minor=transfer.amount,
            currency=transfer.currency,
            destination=transfer.destination,
            metadata=dict(transfer.metadata or {}),
            raw_response=transfer.to_dict(),
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        signature: str,
    ) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Args:
            payload: Raw webhook payload bytes
            signature: Stripe-Signature header value

        Returns:
            Parsed event data dict

        Raises:
            GatewayInvalidRequestError: Invalid signature or payload
        """
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
            )
        except stripe.SignatureVerificationError as e:
            raise GatewayInvalidRequestError(
                "Invalid webhook signature",
                gateway_code="signature_verification_failed",
                details={"error": str(e)},
            ) from e
        except ValueError as e:
            raise GatewayInvalidRequestError(
                "Invalid webhook payload",
                gateway_code="invalid_payload",
            ) from e
        return event.to_dict()

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to gateway exceptions.

        Definite (nothing was applied):
            CardError -> GatewayCardDeclinedError / GatewayInsufficientFundsError
            InvalidRequestError -> GatewayInvalidRequestError / GatewayInvalidAccountError
            AuthenticationError -> GatewayInvalidRequestError
            RateLimitError -> GatewayRateLimitError

        Indeterminate (may have been applied):
            APIConnectionError -> GatewayTimeoutError
            APIError -> GatewayUnavailableError
            anything else -> GatewayError

        Args:
            error: The Stripe exception
            log_context: Logging context dict
            duration_ms: Operation duration for logging

        Raises:
            GatewayError: Always
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, GatewayError):
            raise error

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )
            message = str(error.user_message or error)
            if decline_code == "insufficient_funds":
                raise GatewayInsufficientFundsError(
                    message, gateway_code=error.code, decline_code=decline_code
                ) from error
            raise GatewayCardDeclinedError(
                message, gateway_code=error.code, decline_code=decline_code
            ) from error

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "gateway_code": error.code, "param": error.param},
            )
            if error.code == "balance_insufficient":
                raise GatewayInsufficientFundsError(
                    str(error), gateway_code=error.code
                ) from error
            param = error.param or ""
            if (
                param in ("destination", "external_account")
                or param.startswith("external_account[")
                or "account" in (error.code or "")
            ):
                raise GatewayInvalidAccountError(str(error), gateway_code=error.code) from error
            raise GatewayInvalidRequestError(str(error), gateway_code=error.code) from error

        if isinstance(error, stripe.AuthenticationError):
            logger.critical("Stripe authentication failed - check API key", extra=log_context)
            raise GatewayInvalidRequestError(
                "Stripe authentication failed",
                gateway_code="authentication_error",
            ) from error

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise GatewayRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                gateway_code="rate_limit",
            ) from error

        if isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            raise GatewayTimeoutError(
                "Could not reach Stripe; the operation may or may not have been applied.",
                gateway_code="api_connection_error",
            ) from error

        if isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise GatewayUnavailableError(
                "Stripe service error. Please retry.",
                gateway_code="api_error",
            ) from error

        logger.error(
            f"Unexpected error from Stripe: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise GatewayError(
            f"Unexpected Stripe error: {error}",
            gateway_code="unknown_error",
        ) from error
