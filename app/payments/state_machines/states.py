"""
State enums for payment models.

These are Django TextChoices used by the django-fsm fields on the
payment models and shown in the admin.

State Machines Overview:

Payment States:
    pending → held → released
    pending → held → refunded
    pending → failed

Withdrawal States:
    pending → completed
    pending → failed

WebhookEvent States:
    pending → processing → processed
    pending → processing → failed (retried)
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """
    States for the Payment (escrow) lifecycle.

    Terminal states: RELEASED, REFUNDED, FAILED
    Open states: PENDING, HELD (at most one per listing)

    State Flow:
        PENDING → HELD → RELEASED   (buyer confirms receipt)
        PENDING → HELD → REFUNDED   (seller cannot fulfil)
        PENDING → FAILED            (checkout failed or expired)
    """

    PENDING = "pending", "Pending"
    HELD = "held", "Held"
    RELEASED = "released", "Released"
    REFUNDED = "refunded", "Refunded"
    FAILED = "failed", "Failed"

    @classmethod
    def open_states(cls) -> list[str]:
        """States that block another purchase of the same listing."""
        return [cls.PENDING, cls.HELD]

    @classmethod
    def terminal_states(cls) -> list[str]:
        """States a payment never leaves."""
        return [cls.RELEASED, cls.REFUNDED, cls.FAILED]


class WithdrawalStatus(models.TextChoices):
    """
    States for the Withdrawal lifecycle.

    A withdrawal stays PENDING while the transfer is in flight and is
    moved to COMPLETED or FAILED by the payout confirmation events.
    """

    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    Tracks the lifecycle of webhook event processing for idempotency.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


__all__ = [
    "PaymentStatus",
    "WithdrawalStatus",
    "WebhookEventStatus",
]
