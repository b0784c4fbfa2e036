"""
Payment adapters for external services.

All gateway calls go through StripeAdapter to ensure consistent error
handling, timeouts, idempotency, and observability.

Usage:
    from payments.adapters import StripeAdapter, to_minor_units

    result = StripeAdapter.create_refund(
        payment_id="pi_xxx",
        idempotency_key=IdempotencyKeyGenerator.generate("refund", payment.id),
    )
"""

from payments.adapters.stripe_adapter import (
    CheckoutOutcome,
    CheckoutSessionResult,
    CheckoutVerification,
    IdempotencyKeyGenerator,
    PayoutRecipientResult,
    RefundResult,
    StripeAdapter,
    TransferResult,
    to_minor_units,
)

__all__ = [
    "CheckoutOutcome",
    "CheckoutSessionResult",
    "CheckoutVerification",
    "IdempotencyKeyGenerator",
    "PayoutRecipientResult",
    "RefundResult",
    "StripeAdapter",
    "TransferResult",
    "to_minor_units",
]
