"""
Payment model: one escrow record per purchase attempt.

A Payment moves through a small state machine driven by the escrow
coordinator (payments.services.EscrowService):

    pending → held → released
    pending → held → refunded
    pending → failed

Transitions are django-fsm methods on the instance; the database write
is done by payments.transitions.transition_if(), which keys the UPDATE on
the source state so two concurrent requests can never both move the same
payment.

Usage:
    from payments.models import Payment
    from payments.transitions import transition_if

    payment = Payment.objects.get(reference="PAY-...")
    if transition_if(payment, "hold", payment_id="pi_123"):
        ...  # this request won the pending -> held transition
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.managers import ConditionalUpdateManager
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.state_machines import PaymentStatus


class Payment(UUIDPrimaryKeyMixin, BaseModel):
    """
    Escrow record for one buyer's purchase of one listing.

    Fields:
        listing: Listing being purchased
        buyer: User paying for the listing
        seller: Listing's seller at initiation time
        amount: Amount charged, in major currency units
        currency: ISO 4217 currency code (lowercase)
        status: Current FSM state (protected, see transition_if)
        reference: Unique external reference, also the checkout idempotency key
        gateway_session_id: Stripe Checkout Session ID (cs_xxx)
        gateway_payment_id: Stripe PaymentIntent ID (pi_xxx), set when held
        gateway_refund_id: Stripe Refund ID (re_xxx), set when refunded
        authorization_url: Checkout page the buyer is redirected to
        failure_reason: Why the checkout failed
        metadata: Flexible JSON storage
        held_at / released_at / refunded_at / failed_at: Transition times

    Constraints:
        At most one payment per listing is pending or held.
    """

    # ==========================================================================
    # Parties
    # ==========================================================================

    listing = models.ForeignKey(
        "listings.Listing",
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="Listing being purchased",
    )

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payments_made",
        help_text="User paying for the listing",
    )

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payments_received",
        help_text="Seller who receives the funds on release",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount charged in major currency units",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current escrow state (managed by FSM)",
    )

    # ==========================================================================
    # Gateway Integration
    # ==========================================================================

    reference = models.CharField(
        max_length=64,
        unique=True,
        help_text="Unique external reference (PAY-xxx)",
    )

    gateway_session_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Stripe Checkout Session ID (cs_xxx)",
    )

    gateway_payment_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )

    gateway_refund_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe Refund ID (re_xxx)",
    )

    authorization_url = models.URLField(
        max_length=2048,
        blank=True,
        default="",
        help_text="Checkout URL the buyer completes payment on",
    )

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    held_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the gateway confirmed the funds",
    )

    released_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the buyer released the funds",
    )

    refunded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the buyer was refunded",
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the checkout failed",
    )

    # ==========================================================================
    # Metadata & Error Info
    # ==========================================================================

    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Reason the checkout failed",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON metadata for extensibility",
    )

    objects = ConditionalUpdateManager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["buyer", "status"]),
            models.Index(fields=["seller", "status"]),
            models.Index(fields=["status", "created_at"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["listing"],
                condition=models.Q(status__in=["pending", "held"]),
                name="one_open_payment_per_listing",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="payment_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with reference, status, and amount."""
        return f"Payment({self.reference}, {self.status}, {self.amount} {self.currency.upper()})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.HELD,
    )
    def hold(self, payment_id: str = ""):
        """
        Funds captured by the gateway and held in escrow.

        Transition: PENDING -> HELD

        Args:
            payment_id: Gateway payment id (PaymentIntent) to record
        """
        self.held_at = timezone.now()
        if payment_id:
            self.gateway_payment_id = payment_id

    @transition(
        field=status,
        source=PaymentStatus.HELD,
        target=PaymentStatus.RELEASED,
    )
    def release(self):
        """
        Buyer confirmed receipt; funds belong to the seller.

        Transition: HELD -> RELEASED
        """
        self.released_at = timezone.now()

    @transition(
        field=status,
        source=PaymentStatus.HELD,
        target=PaymentStatus.REFUNDED,
    )
    def refund(self, refund_id: str = ""):
        """
        Charge refunded to the buyer.

        Transition: HELD -> REFUNDED

        Only called after the gateway confirmed the refund.

        Args:
            refund_id: Gateway refund id to record
        """
        self.refunded_at = timezone.now()
        if refund_id:
            self.gateway_refund_id = refund_id

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.FAILED,
    )
    def fail(self, reason: str = ""):
        """
        Checkout failed or expired before funds were captured.

        Transition: PENDING -> FAILED

        Args:
            reason: Failure reason for the buyer and for support
        """
        self.failed_at = timezone.now()
        self.failure_reason = reason

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_open(self) -> bool:
        """Check if payment still blocks the listing (pending or held)."""
        return self.status in PaymentStatus.open_states()

    @property
    def is_terminal(self) -> bool:
        """Check if payment reached released, refunded or failed."""
        return self.status in PaymentStatus.terminal_states()
