"""
Stripe webhook intake and dispatch.

The view verifies the signature, stores the event once per Stripe event id
and queues process_webhook_event. Handlers map checkout and payout events
onto EscrowService and WithdrawalService.

Usage:
    from payments.webhooks import register_handler

    @register_handler("checkout.session.completed")
    def handle_checkout_completed(event):
        ...
"""

from payments.webhooks.handlers import dispatch_webhook, register_handler
from payments.webhooks.views import stripe_webhook

__all__ = [
    "dispatch_webhook",
    "register_handler",
    "stripe_webhook",
]
