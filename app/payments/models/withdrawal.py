"""
Withdrawal model for seller payouts from released escrow funds.

A Withdrawal moves a seller's available balance to their bank account:
a payout recipient is created at the gateway for the bank details, then
a transfer is issued to it. The record stays pending until the gateway
reports the payout paid or failed.

    pending → completed
    pending → failed
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.managers import ConditionalUpdateManager
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.state_machines import WithdrawalStatus


class Withdrawal(UUIDPrimaryKeyMixin, BaseModel):
    """
    A seller's request to move released funds to their bank account.

    Fields:
        seller: Seller withdrawing funds
        amount: Amount in major currency units
        currency: ISO 4217 currency code (lowercase)
        bank_details: account_name, account_number, bank_name, routing_number
        status: Current FSM state (protected, see transition_if)
        recipient_code: Gateway payout recipient (Stripe account id)
        transfer_reference: Gateway transfer id, empty until the transfer succeeds
        failure_reason: Why the withdrawal failed
        completed_at / failed_at: Transition times

    Note:
        A pending withdrawal with no transfer_reference had an
        indeterminate gateway error; resume_stalled_withdrawals retries it
        with the same idempotency keys.
    """

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="withdrawals",
        help_text="Seller withdrawing funds",
    )

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount in major currency units",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    bank_details = models.JSONField(
        default=dict,
        help_text="Destination bank account details",
    )

    status = FSMField(
        default=WithdrawalStatus.PENDING,
        choices=WithdrawalStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the withdrawal (managed by FSM)",
    )

    recipient_code = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Gateway payout recipient (acct_xxx)",
    )

    transfer_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Gateway transfer ID (tr_xxx)",
    )

    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Reason the withdrawal failed",
    )

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payout was confirmed",
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the withdrawal failed",
    )

    objects = ConditionalUpdateManager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Withdrawal"
        verbose_name_plural = "Withdrawals"
        indexes = [
            models.Index(fields=["seller", "status"]),
            models.Index(fields=["status", "created_at"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="withdrawal_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with ID, status, and amount."""
        return f"Withdrawal({self.id}, {self.status}, {self.amount} {self.currency.upper()})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=WithdrawalStatus.PENDING,
        target=WithdrawalStatus.COMPLETED,
    )
    def complete(self):
        """
        Mark the payout as paid.

        Transition: PENDING -> COMPLETED
        """
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=WithdrawalStatus.PENDING,
        target=WithdrawalStatus.FAILED,
    )
    def fail(self, reason: str = ""):
        """
        Mark the withdrawal as failed.

        Transition: PENDING -> FAILED

        The amount becomes available again once failed.

        Args:
            reason: Gateway error or payout failure message
        """
        self.failed_at = timezone.now()
        self.failure_reason = reason

    @property
    def is_awaiting_transfer(self) -> bool:
        """Check if the transfer still has to be (re)issued."""
        return self.status == WithdrawalStatus.PENDING and not self.transfer_reference
