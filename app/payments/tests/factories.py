"""
Factory Boy factories for payment test data.

Usage:
    from payments.tests.factories import (
        PaymentFactory,
        WebhookEventFactory,
        WithdrawalFactory,
    )

    # A pending payment for a fresh listing
    payment = PaymentFactory()

    # A payment in a specific state
    payment = PaymentFactory(status=PaymentStatus.HELD, listing=listing, buyer=buyer)

    # Released funds for a seller
    PaymentFactory(seller=seller, listing__seller=seller, status=PaymentStatus.RELEASED)

Note:
    status is a protected FSM field. Passing it to the factory is fine
    (the constructor sets it once); tests that need a transition go
    through payments.transitions.transition_if or the services.
"""

from decimal import Decimal

import factory
from django.utils import timezone

from authentication.tests.factories import UserFactory
from listings.tests.factories import ListingFactory
from payments.models import Payment, WebhookEvent, Withdrawal
from payments.state_machines import (
    PaymentStatus,
    WebhookEventStatus,
    WithdrawalStatus,
)


class PaymentFactory(factory.django.DjangoModelFactory):
    """
    Factory for Payment model.

    The seller and amount follow the listing, as EscrowService.initiate
    sets them.
    """

    class Meta:
        model = Payment

    listing = factory.SubFactory(ListingFactory)
    buyer = factory.SubFactory(UserFactory)
    seller = factory.SelfAttribute("listing.seller")
    amount = factory.SelfAttribute("listing.price")
    currency = "usd"
    status = PaymentStatus.PENDING
    reference = factory.Sequence(lambda n: f"PAY-{n:024d}")
    gateway_session_id = factory.Sequence(lambda n: f"cs_test_{n:08d}")
    authorization_url = factory.LazyAttribute(
        lambda o: f"https://checkout.stripe.com/c/pay/{o.gateway_session_id}"
    )

    class Params:
        held = factory.Trait(
            status=PaymentStatus.HELD,
            gateway_payment_id=factory.Sequence(lambda n: f"pi_test_{n:08d}"),
            held_at=factory.LazyFunction(timezone.now),
        )
        released = factory.Trait(
            status=PaymentStatus.RELEASED,
            gateway_payment_id=factory.Sequence(lambda n: f"pi_test_{n:08d}"),
            held_at=factory.LazyFunction(timezone.now),
            released_at=factory.LazyFunction(timezone.now),
        )


class WithdrawalFactory(factory.django.DjangoModelFactory):
    """Factory for Withdrawal model. Defaults to a pending, transferred withdrawal."""

    class Meta:
        model = Withdrawal

    seller = factory.SubFactory(UserFactory)
    amount = Decimal("100.00")
    currency = "usd"
    status = WithdrawalStatus.PENDING
    bank_details = factory.LazyFunction(
        lambda: {
            "account_name": "Sam Seller",
            "account_number": "000123456789",
            "bank_name": "Test Bank",
            "routing_number": "110000000",
        }
    )
    recipient_code = factory.Sequence(lambda n: f"acct_test_{n:06d}")
    transfer_reference = factory.Sequence(lambda n: f"tr_test_{n:06d}")


class WebhookEventFactory(factory.django.DjangoModelFactory):
    """
    Factory for WebhookEvent model.

    Builds a checkout.session.completed payload by default; pass
    ``payload`` for other event types.
    """

    class Meta:
        model = WebhookEvent

    stripe_event_id = factory.Sequence(lambda n: f"evt_test_{n:08d}")
    event_type = "checkout.session.completed"
    status = WebhookEventStatus.PENDING
    payload = factory.LazyAttribute(
        lambda o: {
            "id": o.stripe_event_id,
            "type": o.event_type,
            "data": {
                "object": {
                    "id": "cs_test_123",
                    "object": "checkout.session",
                    "client_reference_id": "PAY-abc123",
                }
            },
        }
    )


def make_event_payload(event_id: str, event_type: str, obj: dict, **extra) -> dict:
    """Build a Stripe event body around ``obj``."""
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
        **extra,
    }
