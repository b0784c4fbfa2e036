"""
Pytest fixtures for webhook tests.

Provides Stripe event payloads and WebhookEvent rows in each processing
state. Parties, payments and the fake gateway come from
payments/conftest.py.
"""

import pytest

from payments.state_machines import WebhookEventStatus
from payments.tests.factories import WebhookEventFactory, make_event_payload


# =============================================================================
# Payload Fixtures
# =============================================================================


@pytest.fixture
def checkout_completed_payload(pending_payment):
    """checkout.session.completed for the pending payment."""
    return make_event_payload(
        "evt_checkout_completed",
        "checkout.session.completed",
        {
            "id": pending_payment.gateway_session_id,
            "object": "checkout.session",
            "client_reference_id": pending_payment.reference,
            "payment_status": "paid",
        },
    )


@pytest.fixture
def payout_paid_payload():
    """payout.paid on connected account acct_paid."""
    return make_event_payload(
        "evt_payout_paid",
        "payout.paid",
        {"id": "po_test_1", "object": "payout", "status": "paid"},
        account="acct_paid",
    )


@pytest.fixture
def payout_failed_payload():
    """payout.failed on connected account acct_paid."""
    return make_event_payload(
        "evt_payout_failed",
        "payout.failed",
        {
            "id": "po_test_2",
            "object": "payout",
            "status": "failed",
            "failure_code": "account_closed",
            "failure_message": "The bank account has been closed",
        },
        account="acct_paid",
    )


# =============================================================================
# WebhookEvent Fixtures
# =============================================================================


@pytest.fixture
def pending_webhook_event(db):
    """A WebhookEvent waiting to be processed."""
    return WebhookEventFactory(stripe_event_id="evt_test_pending_123")


@pytest.fixture
def processed_webhook_event(db):
    """A WebhookEvent that was processed."""
    return WebhookEventFactory(
        stripe_event_id="evt_test_processed_789",
        status=WebhookEventStatus.PROCESSED,
        retry_count=1,
    )


@pytest.fixture
def failed_webhook_event(db):
    """A failed WebhookEvent with retries left."""
    return WebhookEventFactory(
        stripe_event_id="evt_test_failed_456",
        status=WebhookEventStatus.FAILED,
        retry_count=2,
        error_message="Previous error",
    )


@pytest.fixture
def exhausted_webhook_event(db):
    """A failed WebhookEvent that used all its attempts."""
    return WebhookEventFactory(
        stripe_event_id="evt_test_exhausted_999",
        status=WebhookEventStatus.FAILED,
        retry_count=5,
        error_message="Max retries exceeded",
    )
