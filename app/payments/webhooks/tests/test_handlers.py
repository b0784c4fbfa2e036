"""
Tests for webhook handlers.

Tests cover:
- Handler registry and dispatch
- Checkout events driving EscrowService.verify
- Payout and transfer events driving the withdrawal processor
- Error mapping (conflicts ignored, gateway errors raised)
"""

import pytest

from core.services import ServiceResult
from listings.models import Listing, ListingStatus
from payments.adapters import CheckoutOutcome, CheckoutVerification
from payments.exceptions import GatewayTimeoutError
from payments.models import Payment, Withdrawal
from payments.state_machines import PaymentStatus, WithdrawalStatus
from payments.tests.factories import (
    PaymentFactory,
    WebhookEventFactory,
    WithdrawalFactory,
    make_event_payload,
)
from payments.webhooks.handlers import (
    WEBHOOK_HANDLERS,
    dispatch_webhook,
    handle_checkout_session,
    register_handler,
)


def _event(event_type: str, obj: dict, **extra):
    return WebhookEventFactory(
        event_type=event_type,
        payload=make_event_payload("evt_handler_test", event_type, obj, **extra),
    )


# =============================================================================
# Registry & Dispatch
# =============================================================================


@pytest.mark.django_db
class TestDispatchWebhook:
    """Tests for the handler registry and dispatch_webhook."""

    @pytest.mark.parametrize(
        "event_type",
        [
            "checkout.session.completed",
            "checkout.session.async_payment_succeeded",
            "checkout.session.async_payment_failed",
            "checkout.session.expired",
            "payout.paid",
            "payout.failed",
            "transfer.reversed",
        ],
    )
    def test_handlers_are_registered(self, event_type):
        """Should register a handler for every subscribed event type."""
        assert event_type in WEBHOOK_HANDLERS

    def test_checkout_events_share_one_handler(self):
        """Should route every checkout event through Verify."""
        assert WEBHOOK_HANDLERS["checkout.session.expired"] is handle_checkout_session
        assert WEBHOOK_HANDLERS["checkout.session.completed"] is handle_checkout_session

    def test_unknown_event_type_succeeds(self):
        """Should accept event types without a handler."""
        event = _event("customer.created", {"id": "cus_1"})

        result = dispatch_webhook(event)

        assert result.success
        assert result.data is None

    def test_register_handler_decorator(self, mocker):
        """Should register a function for each given type."""
        mocker.patch.dict(WEBHOOK_HANDLERS, clear=False)

        @register_handler("test.one", "test.two")
        def handler(webhook_event):
            return ServiceResult.success("handled")

        assert WEBHOOK_HANDLERS["test.one"] is handler
        assert WEBHOOK_HANDLERS["test.two"] is handler
        assert dispatch_webhook(_event("test.two", {})).data == "handled"


# =============================================================================
# Checkout Handlers
# =============================================================================


@pytest.mark.django_db
class TestCheckoutHandler:
    """Tests for checkout.session.* events."""

    def test_completed_holds_payment(self, pending_payment, mock_gateway):
        """Should verify the payment and hold it."""
        event = _event(
            "checkout.session.completed",
            {"id": "cs_test_123", "client_reference_id": pending_payment.reference},
        )

        result = dispatch_webhook(event)

        assert result.success
        assert result.data == {"payment_id": str(pending_payment.id), "status": PaymentStatus.HELD}
        assert Listing.objects.get(pk=pending_payment.listing_id).status == ListingStatus.PENDING

    def test_reference_from_metadata(self, pending_payment, mock_gateway):
        """Should fall back to metadata.reference when client_reference_id is missing."""
        event = _event(
            "checkout.session.async_payment_succeeded",
            {"id": "cs_test_123", "metadata": {"reference": pending_payment.reference}},
        )

        result = dispatch_webhook(event)

        assert result.success
        assert Payment.objects.get(pk=pending_payment.pk).status == PaymentStatus.HELD

    def test_expired_fails_payment(self, pending_payment, mock_gateway):
        """Should fail the payment when Verify reports the session expired."""
        mock_gateway.verify_checkout.return_value = CheckoutVerification(
            session_id="cs_test_123",
            outcome=CheckoutOutcome.FAILED,
            failure_reason="Checkout session expired",
        )
        event = _event(
            "checkout.session.expired",
            {"id": "cs_test_123", "client_reference_id": pending_payment.reference},
        )

        result = dispatch_webhook(event)

        assert result.success
        assert Payment.objects.get(pk=pending_payment.pk).status == PaymentStatus.FAILED

    def test_redelivery_is_harmless(self, pending_payment, mock_gateway):
        """Should leave a held payment held when the event arrives again."""
        obj = {"id": "cs_test_123", "client_reference_id": pending_payment.reference}
        dispatch_webhook(_event("checkout.session.completed", obj))

        result = dispatch_webhook(
            WebhookEventFactory(
                event_type="checkout.session.completed",
                payload=make_event_payload("evt_again", "checkout.session.completed", obj),
            )
        )

        assert result.success
        assert Payment.objects.get(pk=pending_payment.pk).status == PaymentStatus.HELD

    def test_missing_reference_fails(self, mock_gateway):
        """Should fail the event when the session carries no reference."""
        result = dispatch_webhook(_event("checkout.session.completed", {"id": "cs_test_123"}))

        assert not result.success
        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"
        mock_gateway.verify_checkout.assert_not_called()

    def test_unknown_reference_fails(self, mock_gateway):
        """Should report an unknown payment as a handler failure."""
        result = dispatch_webhook(
            _event(
                "checkout.session.completed",
                {"id": "cs_test_123", "client_reference_id": "PAY-unknown"},
            )
        )

        assert not result.success
        assert result.error_code == "PAYMENT_NOT_FOUND"

    def test_conflict_is_treated_as_handled(self, listing, buyer, mock_gateway):
        """Should ignore an event that contradicts a terminal payment."""
        payment = PaymentFactory(listing=listing, buyer=buyer, status=PaymentStatus.FAILED)

        result = dispatch_webhook(
            _event(
                "checkout.session.completed",
                {"id": payment.gateway_session_id, "client_reference_id": payment.reference},
            )
        )

        assert result.success
        assert result.data == {"ignored": "ALREADY_PROCESSED"}

    def test_gateway_error_is_raised(self, pending_payment, mock_gateway):
        """Should raise gateway errors so the task retries."""
        mock_gateway.verify_checkout.side_effect = GatewayTimeoutError("timed out")

        with pytest.raises(GatewayTimeoutError):
            dispatch_webhook(
                _event(
                    "checkout.session.completed",
                    {"id": "cs_test_123", "client_reference_id": pending_payment.reference},
                )
            )

        assert Payment.objects.get(pk=pending_payment.pk).status == PaymentStatus.PENDING


# =============================================================================
# Withdrawal Handlers
# =============================================================================


@pytest.mark.django_db
class TestPayoutHandlers:
    """Tests for payout.* and transfer.reversed events."""

    def test_payout_paid_completes_withdrawals(self, seller, payout_paid_payload):
        """Should complete the account's transferred withdrawals."""
        withdrawal = WithdrawalFactory(seller=seller, recipient_code="acct_paid")
        event = WebhookEventFactory(event_type="payout.paid", payload=payout_paid_payload)

        result = dispatch_webhook(event)

        assert result.success
        assert result.data == {"completed": 1}
        assert Withdrawal.objects.get(pk=withdrawal.pk).status == WithdrawalStatus.COMPLETED

    def test_payout_paid_without_account_fails(self):
        """Should fail a payout event that names no account."""
        result = dispatch_webhook(_event("payout.paid", {"id": "po_1"}))

        assert not result.success
        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"

    def test_payout_failed_fails_withdrawals(self, seller, payout_failed_payload):
        """Should fail the account's withdrawals with the bank's message."""
        withdrawal = WithdrawalFactory(seller=seller, recipient_code="acct_paid")
        event = WebhookEventFactory(event_type="payout.failed", payload=payout_failed_payload)

        result = dispatch_webhook(event)

        assert result.data == {"failed": 1}
        failed = Withdrawal.objects.get(pk=withdrawal.pk)
        assert failed.status == WithdrawalStatus.FAILED
        assert failed.failure_reason == "The bank account has been closed"

    def test_payout_failed_reason_fallback(self, seller):
        """Should use a generic reason when the payout has no message."""
        withdrawal = WithdrawalFactory(seller=seller, recipient_code="acct_x")

        dispatch_webhook(_event("payout.failed", {"id": "po_3"}, account="acct_x"))

        assert Withdrawal.objects.get(pk=withdrawal.pk).failure_reason == "Bank payout failed"

    def test_transfer_reversed_fails_withdrawal(self, seller):
        """Should fail the withdrawal named in the transfer metadata."""
        withdrawal = WithdrawalFactory(seller=seller)

        result = dispatch_webhook(
            _event(
                "transfer.reversed",
                {"id": withdrawal.transfer_reference, "metadata": {"withdrawal_id": str(withdrawal.id)}},
            )
        )

        assert result.success
        failed = Withdrawal.objects.get(pk=withdrawal.pk)
        assert failed.status == WithdrawalStatus.FAILED
        assert failed.failure_reason == "Transfer reversed"

    def test_transfer_reversed_without_withdrawal_is_ignored(self):
        """Should accept reversals of transfers we did not create."""
        result = dispatch_webhook(_event("transfer.reversed", {"id": "tr_other", "metadata": {}}))

        assert result.success
        assert result.data is None

    def test_transfer_reversed_after_completion_is_ignored(self, seller):
        """Should treat a reversal of a completed withdrawal as a handled conflict."""
        withdrawal = WithdrawalFactory(seller=seller, status=WithdrawalStatus.COMPLETED)

        result = dispatch_webhook(
            _event("transfer.reversed", {"id": "tr_1", "metadata": {"withdrawal_id": str(withdrawal.id)}})
        )

        assert result.success
        assert result.data == {"ignored": "ALREADY_PROCESSED"}
        assert Withdrawal.objects.get(pk=withdrawal.pk).status == WithdrawalStatus.COMPLETED
