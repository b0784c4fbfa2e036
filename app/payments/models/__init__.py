"""
Payment domain models.

- Payment: Escrow record for one purchase attempt
- Withdrawal: Seller payout of released funds
- WebhookEvent: Stripe webhook event tracking for idempotent processing
"""

from payments.models.payment import Payment
from payments.models.webhook_event import WebhookEvent
from payments.models.withdrawal import Withdrawal

__all__ = [
    "Payment",
    "WebhookEvent",
    "Withdrawal",
]
