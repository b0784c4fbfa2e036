"""
Tests for Stripe adapter.

Tests cover:
- Minor unit conversion
- Idempotency key generation
- Checkout session creation and outcome classification
- Refunds, payout recipients and transfers
- Error translation (definite vs indeterminate)
- Webhook signature verification
"""

import uuid
from decimal import Decimal

import pytest
import stripe

from payments.adapters import (
    CheckoutOutcome,
    IdempotencyKeyGenerator,
    StripeAdapter,
    to_minor_units,
)
from payments.exceptions import (
    GatewayCardDeclinedError,
    GatewayError,
    GatewayInsufficientFundsError,
    GatewayInvalidAccountError,
    GatewayInvalidRequestError,
    GatewayRateLimitError,
    GatewayTimeoutError,
    GatewayUnavailableError,
)


BANK_DETAILS = {
    "account_name": "Ada Seller",
    "account_number": "000123456789",
    "bank_name": "First Bank",
    "routing_number": "110000000",
}


# =============================================================================
# Helper Tests
# =============================================================================


class TestToMinorUnits:
    """Tests for to_minor_units."""

    def test_converts_decimal_amounts(self):
        """Should convert major units to integer cents."""
        assert to_minor_units(Decimal("500.00")) == 50000
        assert to_minor_units(Decimal("12.34")) == 1234

    def test_accepts_strings_and_ints(self):
        """Should accept str and int amounts."""
        assert to_minor_units("0.01") == 1
        assert to_minor_units(7) == 700


class TestIdempotencyKeyGenerator:
    """Tests for IdempotencyKeyGenerator."""

    def test_generate_key_format(self):
        """Should generate key in operation:entity:attempt:hash format."""
        entity_id = uuid.uuid4()
        key = IdempotencyKeyGenerator.generate("refund", entity_id)

        parts = key.split(":")
        assert len(parts) == 4
        assert parts[0] == "refund"
        assert parts[1] == str(entity_id)
        assert parts[2] == "1"
        assert len(parts[3]) == 8

    def test_same_inputs_produce_same_key(self):
        """Same inputs should produce same key (deterministic)."""
        entity_id = uuid.uuid4()

        assert IdempotencyKeyGenerator.generate(
            "transfer", entity_id
        ) == IdempotencyKeyGenerator.generate("transfer", entity_id)

    def test_different_operations_produce_different_keys(self):
        """Different operations should produce different keys."""
        entity_id = uuid.uuid4()

        assert IdempotencyKeyGenerator.generate(
            "payout_recipient", entity_id
        ) != IdempotencyKeyGenerator.generate("transfer", entity_id)

    def test_different_attempts_produce_different_keys(self):
        """Different attempt numbers should produce different keys."""
        assert IdempotencyKeyGenerator.generate(
            "checkout", "PAY-1", attempt=1
        ) != IdempotencyKeyGenerator.generate("checkout", "PAY-1", attempt=2)


# =============================================================================
# Checkout Tests
# =============================================================================


class TestInitializeCheckout:
    """Tests for StripeAdapter.initialize_checkout."""

    def test_creates_payment_mode_session(self, mock_stripe_session):
        """Should create a payment-mode session tagged with the reference."""
        result = StripeAdapter.initialize_checkout(
            email="buyer@example.com",
            amount_minor=50000,
            reference="PAY-abc123",
            metadata={"listing_id": "lst-1"},
            description="Vintage camera",
        )

        assert result.session_id == "cs_test_123"
        assert result.authorization_url == "https://checkout.stripe.com/c/pay/cs_test_123"
        assert result.reference == "PAY-abc123"

        kwargs = mock_stripe_session.create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["client_reference_id"] == "PAY-abc123"
        assert kwargs["customer_email"] == "buyer@example.com"
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 50000
        assert kwargs["line_items"][0]["price_data"]["product_data"]["name"] == "Vintage camera"
        assert kwargs["metadata"] == {"listing_id": "lst-1", "reference": "PAY-abc123"}
        assert kwargs["idempotency_key"] == IdempotencyKeyGenerator.generate(
            "checkout", "PAY-abc123"
        )

    def test_connection_error_is_indeterminate(
        self, mock_stripe_session, api_connection_error
    ):
        """Should raise an indeterminate GatewayTimeoutError on connection failure."""
        mock_stripe_session.create.side_effect = api_connection_error

        with pytest.raises(GatewayTimeoutError) as exc_info:
            StripeAdapter.initialize_checkout(
                email="buyer@example.com",
                amount_minor=50000,
                reference="PAY-abc123",
            )

        assert exc_info.value.is_indeterminate is True


class TestVerifyCheckout:
    """Tests for StripeAdapter.verify_checkout outcome classification."""

    def test_paid_session_succeeds(self, mock_stripe_session, mock_checkout_session):
        """Should classify a complete, paid session as succeeded."""
        mock_stripe_session.retrieve.return_value = mock_checkout_session(
            status="complete",
            payment_status="paid",
            payment_intent={"id": "pi_123", "status": "succeeded"},
        )

        result = StripeAdapter.verify_checkout("cs_test_123")

        assert result.outcome == CheckoutOutcome.SUCCEEDED
        assert result.payment_id == "pi_123"
        assert result.amount_minor == 50000
        assert result.reference == "PAY-abc123"
        mock_stripe_session.retrieve.assert_called_once_with(
            "cs_test_123", expand=["payment_intent"]
        )

    def test_expired_session_fails(self, mock_stripe_session, mock_checkout_session):
        """Should classify an expired session as failed with a reason."""
        mock_stripe_session.retrieve.return_value = mock_checkout_session(status="expired")

        result = StripeAdapter.verify_checkout("cs_test_123")

        assert result.outcome == CheckoutOutcome.FAILED
        assert result.failure_reason == "Checkout session expired"

    def test_async_payment_failure_fails(self, mock_stripe_session, mock_checkout_session):
        """Should classify a complete session whose payment failed as failed."""
        mock_stripe_session.retrieve.return_value = mock_checkout_session(
            status="complete",
            payment_status="unpaid",
            payment_intent={
                "id": "pi_123",
                "status": "requires_payment_method",
                "last_payment_error": {"message": "Bank debit was rejected"},
            },
        )

        result = StripeAdapter.verify_checkout("cs_test_123")

        assert result.outcome == CheckoutOutcome.FAILED
        assert result.failure_reason == "Bank debit was rejected"

    def test_open_session_is_open(self, mock_stripe_session):
        """Should classify an unfinished session as open."""
        result = StripeAdapter.verify_checkout("cs_test_123")

        assert result.outcome == CheckoutOutcome.OPEN
        assert result.failure_reason == ""

    def test_processing_async_payment_is_open(
        self, mock_stripe_session, mock_checkout_session
    ):
        """Should keep a complete session with a processing payment open."""
        mock_stripe_session.retrieve.return_value = mock_checkout_session(
            status="complete",
            payment_status="unpaid",
            payment_intent={"id": "pi_123", "status": "processing"},
        )

        result = StripeAdapter.verify_checkout("cs_test_123")

        assert result.outcome == CheckoutOutcome.OPEN

    def test_unknown_session_is_definite_error(
        self, mock_stripe_session, invalid_request_error
    ):
        """Should raise GatewayInvalidRequestError for an unknown session."""
        mock_stripe_session.retrieve.side_effect = invalid_request_error()

        with pytest.raises(GatewayInvalidRequestError) as exc_info:
            StripeAdapter.verify_checkout("cs_missing")

        assert exc_info.value.is_indeterminate is False


class TestExpireCheckout:
    """Tests for StripeAdapter.expire_checkout."""

    def test_expires_session(self, mock_stripe_session):
        """Should call Session.expire with the session id."""
        StripeAdapter.expire_checkout("cs_test_123")

        mock_stripe_session.expire.assert_called_once_with("cs_test_123")


# =============================================================================
# Refund / Payout Tests
# =============================================================================


class TestCreateRefund:
    """Tests for StripeAdapter.create_refund."""

    def test_full_refund(self, mock_stripe_refund):
        """Should refund the whole PaymentIntent when no amount is given."""
        result = StripeAdapter.create_refund(
            payment_id="pi_test123456",
            idempotency_key="refund:1:1:abcd1234",
        )

        assert result.id == "re_test123456"
        assert result.status == "succeeded"
        assert result.payment_id == "pi_test123456"

        kwargs = mock_stripe_refund.create.call_args.kwargs
        assert kwargs["payment_intent"] == "pi_test123456"
        assert kwargs["idempotency_key"] == "refund:1:1:abcd1234"
        assert "amount" not in kwargs

    def test_partial_refund_passes_amount(self, mock_stripe_refund):
        """Should pass amount for a partial refund."""
        StripeAdapter.create_refund(
            payment_id="pi_test123456",
            idempotency_key="key",
            amount_minor=1000,
        )

        assert mock_stripe_refund.create.call_args.kwargs["amount"] == 1000


class TestCreatePayoutRecipient:
    """Tests for StripeAdapter.create_payout_recipient."""

    def test_creates_custom_account_with_bank(self, mock_stripe_account):
        """Should create a custom account carrying the bank account."""
        result = StripeAdapter.create_payout_recipient(
            BANK_DETAILS,
            email="seller@example.com",
            idempotency_key="payout_recipient:1:1:abcd1234",
        )

        assert result.id == "acct_test123"
        assert result.bank_account_id == "ba_test123"

        kwargs = mock_stripe_account.create.call_args.kwargs
        assert kwargs["type"] == "custom"
        assert kwargs["capabilities"] == {"transfers": {"requested": True}}
        external = kwargs["external_account"]
        assert external["account_holder_name"] == "Ada Seller"
        assert external["account_number"] == "000123456789"
        assert external["routing_number"] == "110000000"

    def test_rejected_bank_account(self, mock_stripe_account, invalid_request_error):
        """Should raise GatewayInvalidAccountError for rejected bank details."""
        mock_stripe_account.create.side_effect = invalid_request_error(
            message="Invalid account number",
            param="external_account[account_number]",
            code="invalid_bank_account",
        )

        with pytest.raises(GatewayInvalidAccountError):
            StripeAdapter.create_payout_recipient(
                BANK_DETAILS, email="seller@example.com", idempotency_key="key"
            )


class TestCreateTransfer:
    """Tests for StripeAdapter.create_transfer."""

    def test_transfers_to_destination(self, mock_stripe_transfer):
        """Should transfer the amount to the destination account."""
        result = StripeAdapter.create_transfer(
            amount_minor=20000,
            destination="acct_test123",
            idempotency_key="transfer:1:1:abcd1234",
            metadata={"withdrawal_id": "w-1"},
        )

        assert result.id == "tr_test123456"
        assert result.amount_minor == 20000
        assert result.destination == "acct_test123"

        kwargs = mock_stripe_transfer.create.call_args.kwargs
        assert kwargs["destination"] == "acct_test123"
        assert kwargs["metadata"] == {"withdrawal_id": "w-1"}
        assert kwargs["idempotency_key"] == "transfer:1:1:abcd1234"

    def test_platform_balance_insufficient(
        self, mock_stripe_transfer, invalid_request_error
    ):
        """Should raise GatewayInsufficientFundsError when the balance is short."""
        mock_stripe_transfer.create.side_effect = invalid_request_error(
            message="Insufficient funds in Stripe account",
            param=None,
            code="balance_insufficient",
        )

        with pytest.raises(GatewayInsufficientFundsError):
            StripeAdapter.create_transfer(
                amount_minor=20000, destination="acct_test123", idempotency_key="key"
            )

    def test_invalid_destination(self, mock_stripe_transfer, invalid_request_error):
        """Should raise GatewayInvalidAccountError for a bad destination."""
        mock_stripe_transfer.create.side_effect = invalid_request_error(
            message="No such destination",
            param="destination",
            code="resource_missing",
        )

        with pytest.raises(GatewayInvalidAccountError):
            StripeAdapter.create_transfer(
                amount_minor=20000, destination="acct_gone", idempotency_key="key"
            )


# =============================================================================
# Error Translation Tests
# =============================================================================


class TestStripeAdapterErrorTranslation:
    """Tests for Stripe error translation to gateway exceptions."""

    def test_card_declined_error(self, mock_stripe_refund, card_error):
        """Should translate CardError to a definite GatewayCardDeclinedError."""
        mock_stripe_refund.create.side_effect = card_error()

        with pytest.raises(GatewayCardDeclinedError) as exc_info:
            StripeAdapter.create_refund(payment_id="pi_1", idempotency_key="key")

        assert exc_info.value.decline_code == "generic_decline"
        assert exc_info.value.is_indeterminate is False

    def test_insufficient_funds_card_error(self, mock_stripe_refund, card_error):
        """Should translate insufficient_funds decline to GatewayInsufficientFundsError."""
        mock_stripe_refund.create.side_effect = card_error(decline_code="insufficient_funds")

        with pytest.raises(GatewayInsufficientFundsError):
            StripeAdapter.create_refund(payment_id="pi_1", idempotency_key="key")

    def test_rate_limit_error(self, mock_stripe_refund, rate_limit_error):
        """Should translate RateLimitError to a retryable, definite error."""
        mock_stripe_refund.create.side_effect = rate_limit_error

        with pytest.raises(GatewayRateLimitError) as exc_info:
            StripeAdapter.create_refund(payment_id="pi_1", idempotency_key="key")

        assert exc_info.value.is_retryable is True
        assert exc_info.value.is_indeterminate is False

    def test_api_error_is_indeterminate(self, mock_stripe_refund, api_error):
        """Should translate APIError to an indeterminate GatewayUnavailableError."""
        mock_stripe_refund.create.side_effect = api_error

        with pytest.raises(GatewayUnavailableError) as exc_info:
            StripeAdapter.create_refund(payment_id="pi_1", idempotency_key="key")

        assert exc_info.value.is_indeterminate is True

    def test_authentication_error(self, mock_stripe_refund, authentication_error):
        """Should translate AuthenticationError to GatewayInvalidRequestError."""
        mock_stripe_refund.create.side_effect = authentication_error

        with pytest.raises(GatewayInvalidRequestError):
            StripeAdapter.create_refund(payment_id="pi_1", idempotency_key="key")

    def test_unexpected_error(self, mock_stripe_refund):
        """Should wrap unknown exceptions in an indeterminate GatewayError."""
        mock_stripe_refund.create.side_effect = RuntimeError("boom")

        with pytest.raises(GatewayError) as exc_info:
            StripeAdapter.create_refund(payment_id="pi_1", idempotency_key="key")

        assert type(exc_info.value) is GatewayError
        assert exc_info.value.is_indeterminate is True
        assert isinstance(exc_info.value.__cause__, RuntimeError)


# =============================================================================
# Webhook Verification Tests
# =============================================================================


class TestVerifyWebhookSignature:
    """Tests for StripeAdapter.verify_webhook_signature."""

    def test_valid_signature(self, mock_stripe_webhook):
        """Should return the parsed event dict."""
        event = StripeAdapter.verify_webhook_signature(b"{}", "t=1,v1=abc")

        assert event["id"] == "evt_test123"
        assert event["type"] == "checkout.session.completed"

    def test_invalid_signature(self, mock_stripe_webhook):
        """Should raise GatewayInvalidRequestError for a bad signature."""
        mock_stripe_webhook.construct_event.side_effect = stripe.SignatureVerificationError(
            "Unable to verify webhook signature.", "bad_signature"
        )

        with pytest.raises(GatewayInvalidRequestError) as exc_info:
            StripeAdapter.verify_webhook_signature(b"{}", "bad_signature")

        assert exc_info.value.gateway_code == "signature_verification_failed"

    def test_invalid_payload(self, mock_stripe_webhook):
        """Should raise GatewayInvalidRequestError for an unparseable payload."""
        mock_stripe_webhook.construct_event.side_effect = ValueError("bad json")

        with pytest.raises(GatewayInvalidRequestError) as exc_info:
            StripeAdapter.verify_webhook_signature(b"not json", "t=1,v1=abc")

        assert exc_info.value.gateway_code == "invalid_payload"
