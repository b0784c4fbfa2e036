"""
DRF serializers for the payments API.

This module provides serializers for:
- Payment display and escrow actions (initiate, verify)
- Withdrawal display and requests
- The seller sales summary

Related files:
    - services/escrow_service.py: Payment operations
    - services/withdrawal_service.py: Withdrawal operations
    - views.py: Payment API views

Usage:
    serializer = PaymentSerializer(payment)
    data = serializer.data
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from payments.models import Payment, Withdrawal


class PaymentSerializer(serializers.ModelSerializer):
    """
    Payment serializer for API responses.

    Gateway identifiers other than the checkout URL are internal and not
    exposed; failure_reason is shown so the buyer can see why a checkout
    did not go through.
    """

    listing_id = serializers.UUIDField(read_only=True)
    listing_title = serializers.CharField(source="listing.title", read_only=True)
    buyer_id = serializers.UUIDField(read_only=True)
    seller_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Payment
        fields = [
            "id",
            "reference",
            "listing_id",
            "listing_title",
            "buyer_id",
            "seller_id",
            "amount",
            "currency",
            "status",
            "authorization_url",
            "failure_reason",
            "held_at",
            "released_at",
            "refunded_at",
            "failed_at",
            "created_at",
        ]
        read_only_fields = fields


class PaymentInitiateSerializer(serializers.Serializer):
    """Input for starting a purchase."""

    listing_id = serializers.UUIDField()


class InitiatedPaymentSerializer(serializers.Serializer):
    """Output of a started purchase: where to send the buyer."""

    payment = PaymentSerializer(read_only=True)
    authorization_url = serializers.URLField(read_only=True)
    reference = serializers.CharField(read_only=True)


class PaymentVerifySerializer(serializers.Serializer):
    """Input for verifying a payment after the checkout redirect."""

    reference = serializers.CharField(max_length=64)


class WithdrawalSerializer(serializers.ModelSerializer):
    """
    Withdrawal serializer for API responses.

    Bank details are reduced to the account name, the bank and the last four
    digits of the account number.
    """

    bank_account = serializers.SerializerMethodField()

    class Meta:
        model = Withdrawal
        fields = [
            "id",
            "amount",
            "currency",
            "status",
            "bank_account",
            "failure_reason",
            "completed_at",
            "failed_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_bank_account(self, obj: Withdrawal) -> dict:
        details = obj.bank_details or {}
        account_number = str(details.get("account_number", ""))
        return {
            "account_name": details.get("account_name", ""),
            "bank_name": details.get("bank_name", ""),
            "last4": account_number[-4:],
        }


class WithdrawalRequestSerializer(serializers.Serializer):
    """Input for requesting a withdrawal."""

    amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal("0.01"),
    )
    # Required keys are checked by WithdrawalService so the error carries
    # MISSING_BANK_DETAILS with the missing field names
    bank_details = serializers.DictField(child=serializers.CharField(allow_blank=True))


class SalesSummarySerializer(serializers.Serializer):
    """Seller totals derived from released payments and withdrawals."""

    total_sales = serializers.DecimalField(max_digits=12, decimal_places=2)
    completed_sales = serializers.IntegerField()
    pending_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    pending_sales = serializers.IntegerField()
    total_withdrawn = serializers.DecimalField(max_digits=12, decimal_places=2)
    available_balance = serializers.DecimalField(max_digits=12, decimal_places=2)
