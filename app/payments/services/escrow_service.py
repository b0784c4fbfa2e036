"""
Escrow payment coordinator.

Drives a purchase from initiation through verification to one terminal
outcome, keeping three separately stored records consistent: the
Payment, the Listing's status projection, and the PlatformFee.

    Initiate  -> Payment pending           (checkout session created)
    Verify    -> Payment held,  Listing pending   (gateway confirmed funds)
              -> Payment failed                   (checkout failed/expired)
    Release   -> Payment released, Listing sold, fee collected   (buyer)
    Refund    -> Payment refunded, Listing active, fee pending   (seller)

Consistency rules:
- Every status write is conditional on the current status
  (transition_if / ListingService.set_status_if). Two requests racing on
  the same record cannot both win; the loser gets a ConflictError.
- The Payment row decides. Listing and fee updates follow only after
  this request won the Payment transition.
- A gateway call whose success a transition depends on (refund) happens
  before that transition. An indeterminate gateway error leaves every
  record as it was.
- The one-open-payment-per-listing rule is enforced by a partial unique
  constraint on Payment.

Usage:
    from payments.services import EscrowService

    started = EscrowService.initiate(listing.id, buyer)
    redirect(started.authorization_url)

    payment = EscrowService.verify(started.reference)
    payment = EscrowService.release(payment.id, buyer)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Q

from core.exceptions import ConflictError, ValidationError
from core.helpers import generate_token
from core.services import BaseService
from listings.exceptions import ListingUnavailableError
from listings.models import ListingStatus
from listings.services import ListingService
from payments.adapters import (
    CheckoutOutcome,
    IdempotencyKeyGenerator,
    StripeAdapter,
    to_minor_units,
)
from payments.exceptions import (
    AlreadyProcessedError,
    GatewayError,
    InvalidStateTransitionError,
    PaymentNotFoundError,
    SelfPurchaseError,
)
from payments.models import Payment
from payments.services.authorization import EscrowRole, has_capability, require_capability
from payments.state_machines import PaymentStatus
from payments.transitions import transition_if

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from django.db.models import QuerySet

    from authentication.models import User


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class InitiatedPayment:
    """
    Result of EscrowService.initiate().

    Attributes:
        payment: The pending Payment
        authorization_url: Checkout page to redirect the buyer to
        reference: The payment's external reference (used to Verify)
    """

    payment: Payment
    authorization_url: str
    reference: str


# =============================================================================
# Escrow Service
# =============================================================================


class EscrowService(BaseService):
    """
    Escrow payment coordinator.

    The gateway is a class attribute so tests (and alternative gateways)
    can replace it:

        mocker.patch.object(EscrowService, "gateway", fake_gateway)
    """

    gateway = StripeAdapter

    # =========================================================================
    # Initiate
    # =========================================================================

    @classmethod
    def initiate(cls, listing_id: UUID | str, buyer: User) -> InitiatedPayment:
        """
        Start a purchase: create a checkout session and a pending Payment.

        Nothing is written before the gateway call. If the insert then
        loses the race for the listing, the new checkout session is
        expired so the buyer cannot pay for it.

        Args:
            listing_id: Listing to buy
            buyer: Authenticated buyer

        Returns:
            InitiatedPayment with the redirect URL and reference

        Raises:
            ListingNotFoundError: No such listing
            ListingUnavailableError: Listing is not active
            SelfPurchaseError: Buyer is the listing's seller
            ConflictError: Another purchase of the listing is in progress
            GatewayError: Checkout session could not be created
        """
        logger = cls.get_logger()
        listing = ListingService.get_listing(listing_id)

        if listing.status != ListingStatus.ACTIVE:
            raise ListingUnavailableError(
                "Listing is not available for purchase",
                details={"listing_id": str(listing.id), "listing_status": listing.status},
            )
        if listing.seller_id == buyer.id:
            raise SelfPurchaseError(
                "You cannot purchase your own listing",
                details={"listing_id": str(listing.id)},
            )
        if cls._open_payments(listing.id).exists():
            raise ConflictError(
                "A purchase of this listing is already in progress",
                error_code="PAYMENT_IN_PROGRESS",
                details={"listing_id": str(listing.id)},
            )

        reference = f"PAY-{generate_token(12)}"
        metadata = {
            "listing_id": str(listing.id),
            "buyer_id": str(buyer.id),
            "seller_id": str(listing.seller_id),
        }

        checkout = cls.gateway.initialize_checkout(
            email=buyer.email,
            amount_minor=to_minor_units(listing.price),
            reference=reference,
            metadata=metadata,
            description=listing.title,
        )

        try:
            with transaction.atomic():
                payment = Payment.objects.create(
                    listing=listing,
                    buyer=buyer,
                    seller_id=listing.seller_id,
                    amount=listing.price,
                    currency=settings.ESCROW_CURRENCY,
                    reference=reference,
                    gateway_session_id=checkout.session_id,
                    authorization_url=checkout.authorization_url,
                    metadata=metadata,
                )
        except IntegrityError as e:
            logger.warning(
                "Lost race for listing, expiring orphaned checkout",
                extra={
                    "listing_id": str(listing.id),
                    "reference": reference,
                    "session_id": checkout.session_id,
                },
            )
            cls._expire_orphaned_checkout(checkout.session_id, reference)
            raise ConflictError(
                "A purchase of this listing is already in progress",
                error_code="PAYMENT_IN_PROGRESS",
                details={"listing_id": str(listing.id)},
            ) from e

        logger.info(
            f"Initiated payment {payment.id}",
            extra={
                "payment_id": str(payment.id),
                "reference": reference,
                "listing_id": str(listing.id),
                "buyer_id": str(buyer.id),
                "amount": str(payment.amount),
            },
        )
        return InitiatedPayment(
            payment=payment,
            authorization_url=checkout.authorization_url,
            reference=reference,
        )

    # =========================================================================
    # Verify
    # =========================================================================

    @classmethod
    def verify(cls, reference: str, actor: User | None = None) -> Payment:
        """
        Reconcile a Payment with its checkout session.

        Safe to call any number of times, from the buyer's redirect, from
        webhooks and from the stale-payment sweeper.

        Outcomes:
            succeeded: pending -> held, Listing active -> pending.
                Already held/released/refunded: returned unchanged.
            failed: pending -> failed. Already failed: returned unchanged.
            open: returned unchanged (buyer still paying).

        Args:
            reference: Payment reference (PAY-xxx)
            actor: Authenticated caller for API requests; must be the
                buyer, the seller or an admin. None for webhooks and sweepers.

        Returns:
            The Payment as stored after verification

        Raises:
            PaymentNotFoundError: Unknown reference, or not visible to actor
            AlreadyProcessedError: Gateway outcome contradicts a terminal state
            GatewayError: Verification failed; nothing was changed
        """
        logger = cls.get_logger()
        payment = cls.get_payment_by_reference(reference)
        if actor is not None:
            cls._require_visible(actor, payment)
        log_context = {
            "payment_id": str(payment.id),
            "reference": reference,
            "status": payment.status,
        }

        try:
            verification = cls.gateway.verify_checkout(payment.gateway_session_id)
        except GatewayError as e:
            logger.warning(
                "Checkout verification failed, payment left unchanged",
                extra={**log_context, "error_code": e.error_code, "indeterminate": e.is_indeterminate},
            )
            raise

        log_context["outcome"] = verification.outcome.value

        if verification.outcome == CheckoutOutcome.SUCCEEDED:
            return cls._confirm_held(payment, verification.payment_id or "", log_context)

        if verification.outcome == CheckoutOutcome.FAILED:
            return cls._confirm_failed(payment, verification.failure_reason, log_context)

        logger.info("Checkout still open, payment stays pending", extra=log_context)
        return payment

    @classmethod
    def _confirm_held(cls, payment: Payment, gateway_payment_id: str, log_context: dict) -> Payment:
        logger = cls.get_logger()

        if payment.status == PaymentStatus.PENDING:
            if transition_if(payment, "hold", payment_id=gateway_payment_id):
                claimed = ListingService.set_status_if(
                    payment.listing_id,
                    expected=ListingStatus.ACTIVE,
                    new=ListingStatus.PENDING,
                    buyer_id=payment.buyer_id,
                    purchased_at=payment.held_at,
                )
                if not claimed:
                    logger.error(
                        "Payment held but listing was not active",
                        extra={**log_context, "listing_id": str(payment.listing_id)},
                    )
                logger.info("Payment held in escrow", extra=log_context)
                return cls.get_payment(payment.id)
            payment = cls.get_payment(payment.id)

        if payment.status == PaymentStatus.HELD:
            cls._ensure_listing_pending(payment)

        if payment.status in (PaymentStatus.HELD, PaymentStatus.RELEASED, PaymentStatus.REFUNDED):
            logger.info(
                "Payment already verified",
                extra={**log_context, "status": payment.status},
            )
            return payment

        raise AlreadyProcessedError(
            "Payment has already failed",
            details={"payment_id": str(payment.id), "current_status": payment.status},
        )

    @classmethod
    def _ensure_listing_pending(cls, payment: Payment) -> None:
        """Re-apply the held projection if an earlier verify stopped before it."""
        listing = ListingService.get_listing(payment.listing_id)
        if listing.status == ListingStatus.ACTIVE:
            ListingService.set_status_if(
                payment.listing_id,
                expected=ListingStatus.ACTIVE,
                new=ListingStatus.PENDING,
                buyer_id=payment.buyer_id,
                purchased_at=payment.held_at,
            )

    @classmethod
    def _confirm_failed(cls, payment: Payment, reason: str, log_context: dict) -> Payment:
        logger = cls.get_logger()

        if payment.status == PaymentStatus.PENDING:
            if transition_if(payment, "fail", reason=reason):
                logger.info("Payment failed", extra={**log_context, "failure_reason": reason})
                return cls.get_payment(payment.id)
            payment = cls.get_payment(payment.id)

        if payment.status == PaymentStatus.FAILED:
            return payment

        raise AlreadyProcessedError(
            f"Payment is already {payment.status}",
            details={"payment_id": str(payment.id), "current_status": payment.status},
        )

    # =========================================================================
    # Release
    # =========================================================================

    @classmethod
    def release(cls, payment_id: UUID | str, actor: User) -> Payment:
        """
        Buyer confirms receipt: release the held funds to the seller.

        No gateway call is needed (funds were captured at verify), so the
        conditional held -> released update is authoritative.

        Raises:
            PaymentNotFoundError: No such payment
            AuthorizationError: Actor is not the buyer
            AlreadyProcessedError: Payment already left held
            InvalidStateTransitionError: Payment is still pending
        """
        logger = cls.get_logger()
        payment = cls.get_payment(payment_id)
        require_capability(actor, payment, EscrowRole.BUYER)
        cls._reject_terminal(payment)

        if not transition_if(payment, "release"):
            current = cls.get_payment(payment.id)
            raise AlreadyProcessedError(
                "Payment has already been processed",
                details={"payment_id": str(payment.id), "current_status": current.status},
            )

        sold = ListingService.set_status_if(
            payment.listing_id,
            expected=ListingStatus.PENDING,
            new=ListingStatus.SOLD,
        )
        if not sold:
            # The held projection never landed (verify stopped between writes)
            sold = ListingService.set_status_if(
                payment.listing_id,
                expected=ListingStatus.ACTIVE,
                new=ListingStatus.SOLD,
                buyer_id=payment.buyer_id,
                purchased_at=payment.held_at,
            )
            if not sold:
                logger.critical(
                    "Payment released but listing could not be marked sold",
                    extra={"payment_id": str(payment.id), "listing_id": str(payment.listing_id)},
                )
        collected = ListingService.collect_fee(payment.listing_id)

        logger.info(
            f"Released payment {payment.id}",
            extra={
                "payment_id": str(payment.id),
                "listing_id": str(payment.listing_id),
                "listing_sold": sold,
                "fee_collected": collected,
            },
        )
        return cls.get_payment(payment.id)

    # =========================================================================
    # Refund
    # =========================================================================

    @classmethod
    def refund(cls, payment_id: UUID | str, actor: User) -> Payment:
        """
        Seller cannot fulfil: refund the buyer.

        The gateway refund runs first; only after it succeeds is the
        Payment moved held -> refunded. A gateway error leaves the Payment
        held. The refund idempotency key is derived from the payment, so
        a retry after a timeout cannot refund twice.

        Raises:
            PaymentNotFoundError: No such payment
            AuthorizationError: Actor is not the seller
            AlreadyProcessedError: Payment already left held
            InvalidStateTransitionError: Payment is still pending
            GatewayError: Refund failed or outcome unknown
        """
        logger = cls.get_logger()
        payment = cls.get_payment(payment_id)
        require_capability(actor, payment, EscrowRole.SELLER)
        cls._reject_terminal(payment)

        log_context = {
            "payment_id": str(payment.id),
            "reference": payment.reference,
            "listing_id": str(payment.listing_id),
        }

        if payment.status != PaymentStatus.HELD:
            raise InvalidStateTransitionError(
                f"Cannot refund payment from '{payment.status}' state",
                details={**log_context, "current_state": payment.status, "transition": "refund"},
            )
        if not payment.gateway_payment_id:
            raise ConflictError(
                "Payment has no captured charge to refund",
                error_code="REFUND_UNAVAILABLE",
                details=log_context,
            )

        try:
            refund = cls.gateway.create_refund(
                payment.gateway_payment_id,
                idempotency_key=IdempotencyKeyGenerator.generate("refund", payment.id),
                metadata={"payment_id": str(payment.id), "reference": payment.reference},
            )
        except GatewayError as e:
            logger.error(
                "Gateway refund failed, payment stays held",
                extra={**log_context, "error_code": e.error_code, "indeterminate": e.is_indeterminate},
            )
            raise

        if not transition_if(payment, "refund", refund_id=refund.id):
            current = cls.get_payment(payment.id)
            logger.critical(
                "Refund issued at gateway but payment was no longer held",
                extra={
                    **log_context,
                    "gateway_refund_id": refund.id,
                    "current_status": current.status,
                },
            )
            raise AlreadyProcessedError(
                "Payment has already been processed",
                details={
                    "payment_id": str(payment.id),
                    "current_status": current.status,
                    "gateway_refund_id": refund.id,
                },
            )

        ListingService.set_status_if(
            payment.listing_id,
            expected=ListingStatus.PENDING,
            new=ListingStatus.ACTIVE,
            buyer_id=None,
            purchased_at=None,
        )
        ListingService.reset_fee(payment.listing_id)

        logger.info(
            f"Refunded payment {payment.id}",
            extra={**log_context, "gateway_refund_id": refund.id},
        )
        return cls.get_payment(payment.id)

    @classmethod
    def _reject_terminal(cls, payment: Payment) -> None:
        if payment.is_terminal:
            raise AlreadyProcessedError(
                f"Payment is already {payment.status}",
                details={"payment_id": str(payment.id), "current_status": payment.status},
            )

    # =========================================================================
    # Reads
    # =========================================================================

    @classmethod
    def get_payment(cls, payment_id: UUID | str) -> Payment:
        """
        Get a payment by id.

        Raises:
            PaymentNotFoundError: If no payment has this id
        """
        payment = Payment.objects.select_related("listing").filter(id=payment_id).first()
        if payment is None:
            raise PaymentNotFoundError(
                f"Payment {payment_id} not found",
                details={"payment_id": str(payment_id)},
            )
        return payment

    @classmethod
    def get_payment_by_reference(cls, reference: str) -> Payment:
        """
        Get a payment by its external reference.

        Raises:
            PaymentNotFoundError: If no payment has this reference
        """
        payment = Payment.objects.filter(reference=reference).first()
        if payment is None:
            raise PaymentNotFoundError(
                f"Payment with reference {reference} not found",
                details={"reference": reference},
            )
        return payment

    @classmethod
    def get_payment_for(cls, actor: User, payment_id: UUID | str) -> Payment:
        """
        Get a payment visible to ``actor`` (its buyer, its seller, or admin).

        Payments of other users are reported as not found.
        """
        payment = cls.get_payment(payment_id)
        cls._require_visible(actor, payment)
        return payment

    @classmethod
    def _require_visible(cls, actor: User, payment: Payment) -> None:
        if not any(has_capability(actor, payment, role) for role in EscrowRole):
            raise PaymentNotFoundError(
                f"Payment {payment.id} not found",
                details={"payment_id": str(payment.id)},
            )

    @classmethod
    def list_for_user(cls, user: User) -> QuerySet[Payment]:
        """Payments where the user is buyer or seller, newest first."""
        return Payment.objects.filter(Q(buyer=user) | Q(seller=user)).select_related("listing")

    @classmethod
    def list_all(cls, actor: User, status: str | None = None) -> QuerySet[Payment]:
        """
        Every payment, optionally filtered by status. Admin only.

        Raises:
            AuthorizationError: Actor is not an admin
            ValidationError: Unknown status filter
        """
        require_capability(actor, None, EscrowRole.ADMIN)
        queryset = Payment.objects.select_related("listing", "buyer", "seller")
        if status:
            if status not in PaymentStatus.values:
                raise ValidationError(
                    f"Unknown payment status '{status}'",
                    error_code="INVALID_STATUS_FILTER",
                    details={"allowed": PaymentStatus.values},
                )
            queryset = queryset.filter(status=status)
        return queryset

    @classmethod
    def stale_pending(cls, created_before: datetime) -> QuerySet[Payment]:
        """Pending payments created before ``created_before``, oldest first."""
        return Payment.objects.filter(
            status=PaymentStatus.PENDING,
            created_at__lt=created_before,
        ).order_by("created_at")

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _open_payments(cls, listing_id: UUID | str) -> QuerySet[Payment]:
        return Payment.objects.filter(
            listing_id=listing_id,
            status__in=PaymentStatus.open_states(),
        )

    @classmethod
    def _expire_orphaned_checkout(cls, session_id: str, reference: str) -> None:
        try:
            cls.gateway.expire_checkout(session_id)
        except GatewayError:
            cls.get_logger().error(
                "Could not expire orphaned checkout session",
                extra={"session_id": session_id, "reference": reference},
                exc_info=True,
            )
