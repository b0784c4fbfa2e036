"""
Withdrawal processor: pays out a seller's released escrow funds.

Available balance:
    sum(released payments) - sum(pending + completed withdrawals)

Flow:
1. Validate actor, amount and bank details (nothing written yet)
2. In one transaction, lock the seller's user row, check the balance
   and insert the Withdrawal as pending
3. Outside the transaction, create the payout recipient and the transfer
4. Definite gateway failure: pending -> failed with the reason, error raised
   Indeterminate failure: left pending with no transfer reference; the
   resume_stalled_withdrawals task retries with the same idempotency keys
   Success: transfer reference stored, still pending until payout.paid

Usage:
    from payments.services import WithdrawalService

    withdrawal = WithdrawalService.request_withdrawal(
        seller_id=user.id,
        actor=user,
        amount=Decimal("250.00"),
        bank_details={"account_name": "...", "account_number": "...", "bank_name": "..."},
    )
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db.models import Count, Sum

from core.exceptions import AuthorizationError, ValidationError
from core.services import BaseService
from payments.adapters import IdempotencyKeyGenerator, StripeAdapter, to_minor_units
from payments.exceptions import (
    AlreadyProcessedError,
    GatewayError,
    InsufficientBalanceError,
    WithdrawalNotFoundError,
)
from payments.models import Payment, Withdrawal
from payments.state_machines import PaymentStatus, WithdrawalStatus
from payments.transitions import transition_if

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Any
    from uuid import UUID

    from django.db.models import QuerySet

    from authentication.models import User


REQUIRED_BANK_FIELDS = ("account_name", "account_number", "bank_name")
OPTIONAL_BANK_FIELDS = ("routing_number",)
ZERO = Decimal("0.00")

# Withdrawal.amount is max_digits=12, decimal_places=2
AMOUNT_MAX_DIGITS = 12


@dataclass
class SalesSummary:
    """
    A seller's escrow totals.

    Attributes:
        total_sales: Sum of released payments
        completed_sales: Number of released payments
        pending_amount: Sum of payments held in escrow
        pending_sales: Number of payments held in escrow
        total_withdrawn: Sum of pending and completed withdrawals
        available_balance: total_sales - total_withdrawn
    """

    total_sales: Decimal
    completed_sales: int
    pending_amount: Decimal
    pending_sales: int
    total_withdrawn: Decimal
    available_balance: Decimal


class WithdrawalService(BaseService):
    """
    Withdrawal processor.

    The gateway is a class attribute so tests can replace it.
    """

    gateway = StripeAdapter

    # =========================================================================
    # Request
    # =========================================================================

    @classmethod
    def request_withdrawal(
        cls,
        seller_id: UUID | str,
        actor: User,
        amount: Decimal | str | int,
        bank_details: dict[str, Any],
    ) -> Withdrawal:
        """
        Withdraw part of the seller's available balance to a bank account.

        Args:
            seller_id: Seller whose balance is withdrawn
            actor: Authenticated caller (must be the seller)
            amount: Amount in major units
            bank_details: account_name, account_number, bank_name,
                optional routing_number

        Returns:
            The Withdrawal (pending, with transfer_reference on success)

        Raises:
            AuthorizationError: Actor is not the seller
            ValidationError: Non-positive amount or incomplete bank details
            InsufficientBalanceError: Amount exceeds the available balance
            GatewayError: Transfer failed (withdrawal failed) or outcome
                unknown (withdrawal left pending)
        """
        logger = cls.get_logger()

        if str(actor.id) != str(seller_id):
            raise AuthorizationError(
                "You can only withdraw your own funds",
                error_code="NOT_SELLER",
            )

        amount = cls._clean_amount(amount)
        bank_details = cls._clean_bank_details(bank_details)

        with cls.atomic():
            # Serializes balance checks per seller
            seller = get_user_model().objects.select_for_update().get(pk=seller_id)

            available = cls.available_balance(seller.id)
            if amount > available:
                raise InsufficientBalanceError(
                    "Withdrawal amount exceeds available balance",
                    details={"requested": str(amount), "available": str(available)},
                )

            withdrawal = Withdrawal.objects.create(
                seller=seller,
                amount=amount,
                currency=settings.ESCROW_CURRENCY,
                bank_details=bank_details,
            )

        logger.info(
            f"Created withdrawal {withdrawal.id}",
            extra={
                "withdrawal_id": str(withdrawal.id),
                "seller_id": str(seller.id),
                "amount": str(amount),
                "available_before": str(available),
            },
        )
        return cls._execute_transfer(withdrawal, seller.email)

    @classmethod
    def resume_transfer(cls, withdrawal_id: UUID | str) -> Withdrawal:
        """
        Re-issue the gateway calls for a pending withdrawal that has no
        transfer reference (an earlier attempt had an unknown outcome).

        Uses the same idempotency keys, so a transfer that did go through
        is returned rather than duplicated.

        Raises:
            WithdrawalNotFoundError: No such withdrawal
            GatewayError: As for request_withdrawal
        """
        withdrawal = cls.get_withdrawal(withdrawal_id)
        if not withdrawal.is_awaiting_transfer:
            cls.get_logger().info(
                "Withdrawal not awaiting transfer, nothing to resume",
                extra={"withdrawal_id": str(withdrawal.id), "status": withdrawal.status},
            )
            return withdrawal
        return cls._execute_transfer(withdrawal, withdrawal.seller.email)

    @classmethod
    def _execute_transfer(cls, withdrawal: Withdrawal, email: str) -> Withdrawal:
        logger = cls.get_logger()
        log_context = {
            "withdrawal_id": str(withdrawal.id),
            "seller_id": str(withdrawal.seller_id),
            "amount": str(withdrawal.amount),
        }

        try:
            if not withdrawal.recipient_code:
                recipient = cls.gateway.create_payout_recipient(
                    withdrawal.bank_details,
                    email=email,
                    idempotency_key=IdempotencyKeyGenerator.generate(
                        "payout_recipient", withdrawal.id
                    ),
                )
                Withdrawal.objects.compare_and_set(
                    withdrawal.pk,
                    field="status",
                    expected=WithdrawalStatus.PENDING,
                    new=WithdrawalStatus.PENDING,
                    recipient_code=recipient.id,
                )
                withdrawal.recipient_code = recipient.id

            transfer = cls.gateway.create_transfer(
                amount_minor=to_minor_units(withdrawal.amount),
                destination=withdrawal.recipient_code,
                idempotency_key=IdempotencyKeyGenerator.generate("transfer", withdrawal.id),
                metadata={
                    "withdrawal_id": str(withdrawal.id),
                    "seller_id": str(withdrawal.seller_id),
                },
            )
        except GatewayError as e:
            if e.is_indeterminate:
                logger.warning(
                    "Transfer outcome unknown, withdrawal left pending for resume",
                    extra={**log_context, "error_code": e.error_code},
                )
                raise
            logger.error(
                "Transfer rejected by gateway, failing withdrawal",
                extra={**log_context, "error_code": e.error_code},
            )
            if not transition_if(withdrawal, "fail", reason=e.message):
                logger.warning("Withdrawal already left pending", extra=log_context)
            raise

        Withdrawal.objects.compare_and_set(
            withdrawal.pk,
            field="status",
            expected=WithdrawalStatus.PENDING,
            new=WithdrawalStatus.PENDING,
            transfer_reference=transfer.id,
        )
        logger.info(
            "Transfer created",
            extra={
                **log_context,
                "recipient_code": withdrawal.recipient_code,
                "transfer_reference": transfer.id,
            },
        )
        return cls.get_withdrawal(withdrawal.id)

    # =========================================================================
    # Confirmation
    # =========================================================================

    @classmethod
    def confirm_withdrawal(cls, withdrawal_id: UUID | str) -> Withdrawal:
        """
        Mark a withdrawal completed (pending -> completed).

        Already completed: returned unchanged.

        Raises:
            WithdrawalNotFoundError: No such withdrawal
            AlreadyProcessedError: Withdrawal already failed
        """
        return cls._settle(withdrawal_id, "complete", WithdrawalStatus.COMPLETED)

    @classmethod
    def fail_withdrawal(cls, withdrawal_id: UUID | str, reason: str) -> Withdrawal:
        """
        Mark a withdrawal failed (pending -> failed), releasing its amount.

        Already failed: returned unchanged.

        Raises:
            WithdrawalNotFoundError: No such withdrawal
            AlreadyProcessedError: Withdrawal already completed
        """
        return cls._settle(withdrawal_id, "fail", WithdrawalStatus.FAILED, reason=reason)

    @classmethod
    def _settle(
        cls,
        withdrawal_id: UUID | str,
        transition_name: str,
        target: str,
        **kwargs: Any,
    ) -> Withdrawal:
        withdrawal = cls.get_withdrawal(withdrawal_id)

        if withdrawal.status == WithdrawalStatus.PENDING:
            if transition_if(withdrawal, transition_name, **kwargs):
                cls.get_logger().info(
                    f"Withdrawal {target}",
                    extra={"withdrawal_id": str(withdrawal.id), **kwargs},
                )
                return cls.get_withdrawal(withdrawal.id)
            withdrawal = cls.get_withdrawal(withdrawal.id)

        if withdrawal.status == target:
            return withdrawal

        raise AlreadyProcessedError(
            f"Withdrawal is already {withdrawal.status}",
            details={"withdrawal_id": str(withdrawal.id), "current_status": withdrawal.status},
        )

    @classmethod
    def confirm_for_recipient(cls, recipient_code: str) -> int:
        """
        Complete every pending withdrawal paid out through ``recipient_code``.

        Returns:
            Number of withdrawals completed
        """
        confirmed = 0
        for withdrawal_id in cls._pending_for_recipient(recipient_code):
            if cls.confirm_withdrawal(withdrawal_id).status == WithdrawalStatus.COMPLETED:
                confirmed += 1
        return confirmed

    @classmethod
    def fail_for_recipient(cls, recipient_code: str, reason: str) -> int:
        """
        Fail every pending withdrawal paid out through ``recipient_code``.

        Returns:
            Number of withdrawals failed
        """
        failed = 0
        for withdrawal_id in cls._pending_for_recipient(recipient_code):
            if cls.fail_withdrawal(withdrawal_id, reason).status == WithdrawalStatus.FAILED:
                failed += 1
        return failed

    @classmethod
    def _pending_for_recipient(cls, recipient_code: str) -> list[UUID]:
        return list(
            Withdrawal.objects.filter(
                recipient_code=recipient_code,
                status=WithdrawalStatus.PENDING,
            )
            .exclude(transfer_reference="")
            .values_list("id", flat=True)
        )

    # =========================================================================
    # Balances & Reads
    # =========================================================================

    @classmethod
    def available_balance(cls, seller_id: UUID | str) -> Decimal:
        """Released payments minus pending and completed withdrawals."""
        released = Payment.objects.filter(
            seller_id=seller_id, status=PaymentStatus.RELEASED
        ).aggregate(total=Sum("amount"))["total"] or ZERO
        return released - cls._withdrawn(seller_id)

    @classmethod
    def sales_summary(cls, seller: User) -> SalesSummary:
        """Totals for the seller's sales page."""
        released = Payment.objects.filter(
            seller=seller, status=PaymentStatus.RELEASED
        ).aggregate(total=Sum("amount"), count=Count("id"))
        held = Payment.objects.filter(
            seller=seller, status=PaymentStatus.HELD
        ).aggregate(total=Sum("amount"), count=Count("id"))

        total_sales = released["total"] or ZERO
        total_withdrawn = cls._withdrawn(seller.id)
        return SalesSummary(
            total_sales=total_sales,
            completed_sales=released["count"],
            pending_amount=held["total"] or ZERO,
            pending_sales=held["count"],
            total_withdrawn=total_withdrawn,
            available_balance=total_sales - total_withdrawn,
        )

    @classmethod
    def _withdrawn(cls, seller_id: UUID | str) -> Decimal:
        return Withdrawal.objects.filter(seller_id=seller_id).exclude(
            status=WithdrawalStatus.FAILED
        ).aggregate(total=Sum("amount"))["total"] or ZERO

    @classmethod
    def get_withdrawal(cls, withdrawal_id: UUID | str) -> Withdrawal:
        """
        Get a withdrawal by id.

        Raises:
            WithdrawalNotFoundError: If no withdrawal has this id
        """
        withdrawal = Withdrawal.objects.select_related("seller").filter(id=withdrawal_id).first()
        if withdrawal is None:
            raise WithdrawalNotFoundError(
                f"Withdrawal {withdrawal_id} not found",
                details={"withdrawal_id": str(withdrawal_id)},
            )
        return withdrawal

    @classmethod
    def list_for_seller(cls, seller: User) -> QuerySet[Withdrawal]:
        """The seller's withdrawals, newest first."""
        return Withdrawal.objects.filter(seller=seller)

    @classmethod
    def stalled(
        cls, created_before: datetime, created_after: datetime | None = None
    ) -> QuerySet[Withdrawal]:
        """Pending withdrawals without a transfer reference, created before the cutoff."""
        withdrawals = Withdrawal.objects.filter(
            status=WithdrawalStatus.PENDING,
            transfer_reference="",
            created_at__lt=created_before,
        )
        if created_after is not None:
            withdrawals = withdrawals.filter(created_at__gte=created_after)
        return withdrawals.order_by("created_at")

    # =========================================================================
    # Validation
    # =========================================================================

    @classmethod
    def _clean_amount(cls, amount: Decimal | str | int) -> Decimal:
        try:
            amount = Decimal(str(amount))
        except InvalidOperation as e:
            raise ValidationError(
                "Invalid amount",
                error_code="INVALID_AMOUNT",
                details={"amount": str(amount)},
            ) from e
        if not amount.is_finite() or amount <= 0:
            raise ValidationError(
                "Amount must be greater than zero",
                error_code="INVALID_AMOUNT",
                details={"amount": str(amount)},
            )
        if amount.adjusted() >= AMOUNT_MAX_DIGITS - 2:
            raise ValidationError(
                "Amount is too large",
                error_code="INVALID_AMOUNT",
                details={"amount": str(amount)},
            )
        if amount != amount.quantize(Decimal("0.01")):
            raise ValidationError(
                "Amount cannot have more than two decimal places",
                error_code="INVALID_AMOUNT",
                details={"amount": str(amount)},
            )
        return amount

    @classmethod
    def _clean_bank_details(cls, bank_details: dict[str, Any] | None) -> dict[str, str]:
        bank_details = bank_details or {}
        missing = [
            name for name in REQUIRED_BANK_FIELDS if not str(bank_details.get(name) or "").strip()
        ]
        if missing:
            raise ValidationError(
                "Missing bank details",
                error_code="MISSING_BANK_DETAILS",
                details={"missing_fields": missing},
            )
        cleaned = {name: str(bank_details[name]).strip() for name in REQUIRED_BANK_FIELDS}
        for name in OPTIONAL_BANK_FIELDS:
            if bank_details.get(name):
                cleaned[name] = str(bank_details[name]).strip()
        return cleaned
