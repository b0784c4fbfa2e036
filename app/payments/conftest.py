"""
Pytest fixtures shared by the payments test packages.

Provides the parties of an escrow purchase, payments in each open state,
authenticated API clients and a fake gateway standing in for
StripeAdapter on both services.

Usage:
    def test_release(held_payment, buyer, mock_gateway):
        payment = EscrowService.release(held_payment.id, buyer)
        assert payment.status == PaymentStatus.RELEASED
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from authentication.tests.factories import UserFactory
from listings.models import Listing, ListingStatus
from listings.tests.factories import ListingFactory
from payments.adapters import (
    CheckoutOutcome,
    CheckoutSessionResult,
    CheckoutVerification,
    PayoutRecipientResult,
    RefundResult,
    StripeAdapter,
    TransferResult,
)
from payments.services import EscrowService, WithdrawalService
from payments.tests.factories import PaymentFactory


# =============================================================================
# Parties
# =============================================================================


@pytest.fixture
def seller(db):
    """A user who sells items."""
    return UserFactory(full_name="Sam Seller")


@pytest.fixture
def buyer(db):
    """A user who buys items."""
    return UserFactory(full_name="Bea Buyer")


@pytest.fixture
def stranger(db):
    """A user who is neither buyer nor seller."""
    return UserFactory(full_name="Olly Other")


@pytest.fixture
def staff_user(db):
    """A staff user holding the admin capability."""
    return UserFactory(full_name="Ada Admin", is_staff=True)


# =============================================================================
# Listing & Payment Fixtures
# =============================================================================


@pytest.fixture
def listing(seller):
    """An active 500.00 listing with a pending 5.00 fee."""
    return ListingFactory(seller=seller, price=Decimal("500.00"))


@pytest.fixture
def pending_payment(listing, buyer):
    """A pending payment for the listing; the listing is still active."""
    return PaymentFactory(
        listing=listing,
        buyer=buyer,
        reference="PAY-pending0001",
        gateway_session_id="cs_test_123",
    )


@pytest.fixture
def held_payment(listing, buyer):
    """A held payment with the listing projected to pending for the buyer."""
    payment = PaymentFactory(
        listing=listing,
        buyer=buyer,
        held=True,
        reference="PAY-held00000001",
        gateway_session_id="cs_test_123",
        gateway_payment_id="pi_test_123",
    )
    Listing.objects.filter(pk=listing.pk).update(
        status=ListingStatus.PENDING,
        buyer=buyer,
        purchased_at=payment.held_at or timezone.now(),
    )
    return payment


@pytest.fixture
def bank_details():
    """Complete bank details for a withdrawal request."""
    return {
        "account_name": "Sam Seller",
        "account_number": "000123456789",
        "bank_name": "Test Bank",
        "routing_number": "110000000",
    }


# =============================================================================
# API Clients
# =============================================================================


def _client_for(user) -> APIClient:
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def buyer_client(buyer):
    """API client authenticated as the buyer."""
    return _client_for(buyer)


@pytest.fixture
def seller_client(seller):
    """API client authenticated as the seller."""
    return _client_for(seller)


@pytest.fixture
def stranger_client(stranger):
    """API client authenticated as an unrelated user."""
    return _client_for(stranger)


@pytest.fixture
def staff_client(staff_user):
    """API client authenticated as a staff user."""
    return _client_for(staff_user)


# =============================================================================
# Gateway
# =============================================================================


@pytest.fixture
def mock_gateway(mocker):
    """
    Replace StripeAdapter on EscrowService and WithdrawalService.

    Every call succeeds by default; override return_value or side_effect
    per test.
    """
    gateway = MagicMock(spec=StripeAdapter)
    gateway.initialize_checkout.return_value = CheckoutSessionResult(
        session_id="cs_test_new",
        authorization_url="https://checkout.stripe.com/c/pay/cs_test_new",
        reference="PAY-ignored",
    )
    gateway.verify_checkout.return_value = CheckoutVerification(
        session_id="cs_test_123",
        outcome=CheckoutOutcome.SUCCEEDED,
        payment_id="pi_test_123",
        amount_minor=50000,
    )
    gateway.create_refund.return_value = RefundResult(
        id="re_test_123",
        amount_minor=50000,
        currency="usd",
        status="succeeded",
        payment_id="pi_test_123",
    )
    gateway.create_payout_recipient.return_value = PayoutRecipientResult(
        id="acct_test123",
        bank_account_id="ba_test123",
    )
    gateway.create_transfer.return_value = TransferResult(
        id="tr_test123",
        amount_minor=20000,
        currency="usd",
        destination="acct_test123",
    )

    mocker.patch.object(EscrowService, "gateway", gateway)
    mocker.patch.object(WithdrawalService, "gateway", gateway)
    return gateway
