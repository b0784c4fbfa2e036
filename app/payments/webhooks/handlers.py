"""
Webhook event handlers for Stripe events.

This module provides a handler registry and the handlers that feed
Stripe events into the escrow coordinator and the withdrawal processor.

Event mapping:
    checkout.session.completed               -> EscrowService.verify
    checkout.session.async_payment_succeeded -> EscrowService.verify
    checkout.session.async_payment_failed    -> EscrowService.verify
    checkout.session.expired                 -> EscrowService.verify
    payout.paid                              -> confirm withdrawals of the account
    payout.failed                            -> fail withdrawals of the account
    transfer.reversed                        -> fail the withdrawal in metadata

Checkout events never carry the outcome into our records directly;
they only trigger Verify, which asks the gateway and applies the same
conditional transitions as the buyer's redirect. A redelivered event is
therefore harmless.

Error handling:
    ConflictError     -> logged, treated as handled (never retried)
    Other app errors  -> ServiceResult failure (event marked failed)
    GatewayError      -> raised, so the Celery task retries with backoff

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from core.exceptions import BaseApplicationError, ConflictError
from core.services import ServiceResult
from payments.exceptions import GatewayError
from payments.services import EscrowService, WithdrawalService

if TYPE_CHECKING:
    from payments.models import WebhookEvent


logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(*event_types: str) -> Callable:
    """
    Decorator to register a webhook event handler for one or more types.

    Usage:
        @register_handler("payout.paid")
        def handle_payout_paid(webhook_event: WebhookEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        for event_type in event_types:
            WEBHOOK_HANDLERS[event_type] = func
            logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    Unknown event types succeed without doing anything, so Stripe does not
    keep redelivering events we never subscribed to on purpose.

    Raises:
        GatewayError: Propagated from the handler for a task retry
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)
    log_context = {
        "stripe_event_id": webhook_event.stripe_event_id,
        "event_type": webhook_event.event_type,
    }

    if not handler:
        logger.info(f"No handler registered for event type: {webhook_event.event_type}", extra=log_context)
        return ServiceResult.success(None)

    logger.info(f"Dispatching {webhook_event.event_type} to handler", extra=log_context)

    try:
        return handler(webhook_event)
    except GatewayError:
        raise
    except ConflictError as e:
        logger.warning(
            f"Webhook conflicts with current state, ignoring: {e.message}",
            extra={**log_context, "error_code": e.error_code, "details": e.details},
        )
        return ServiceResult.success({"ignored": e.error_code})
    except BaseApplicationError as e:
        logger.warning(
            f"Webhook handler failed: {e.message}",
            extra={**log_context, "error_code": e.error_code},
        )
        return ServiceResult.from_exception(e)


# =============================================================================
# Checkout Handlers
# =============================================================================


@register_handler(
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
    "checkout.session.async_payment_failed",
    "checkout.session.expired",
)
def handle_checkout_session(webhook_event: WebhookEvent) -> ServiceResult:
    """Re-verify the payment whose checkout session changed."""
    session = webhook_event.get_object()
    reference = session.get("client_reference_id") or (session.get("metadata") or {}).get(
        "reference"
    )

    if not reference:
        logger.error(
            f"{webhook_event.event_type}: session has no payment reference",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "session_id": session.get("id"),
            },
        )
        return ServiceResult.failure(
            "Checkout session has no payment reference",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    payment = EscrowService.verify(reference)
    return ServiceResult.success({"payment_id": str(payment.id), "status": payment.status})


# =============================================================================
# Withdrawal Handlers
# =============================================================================


@register_handler("payout.paid")
def handle_payout_paid(webhook_event: WebhookEvent) -> ServiceResult:
    """Complete withdrawals paid out by the connected account."""
    account = webhook_event.payload.get("account")
    if not account:
        return ServiceResult.failure(
            "payout.paid event has no connected account",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    confirmed = WithdrawalService.confirm_for_recipient(account)
    logger.info(
        "Payout paid",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "recipient_code": account,
            "withdrawals_completed": confirmed,
        },
    )
    return ServiceResult.success({"completed": confirmed})


@register_handler("payout.failed")
def handle_payout_failed(webhook_event: WebhookEvent) -> ServiceResult:
    """Fail withdrawals whose bank payout failed."""
    account = webhook_event.payload.get("account")
    if not account:
        return ServiceResult.failure(
            "payout.failed event has no connected account",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    payout = webhook_event.get_object()
    reason = payout.get("failure_message") or payout.get("failure_code") or "Bank payout failed"

    failed = WithdrawalService.fail_for_recipient(account, reason)
    logger.warning(
        "Payout failed",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "recipient_code": account,
            "failure_reason": reason,
            "withdrawals_failed": failed,
        },
    )
    return ServiceResult.success({"failed": failed})


@register_handler("transfer.reversed")
def handle_transfer_reversed(webhook_event: WebhookEvent) -> ServiceResult:
    """Fail the withdrawal whose transfer was reversed."""
    transfer = webhook_event.get_object()
    withdrawal_id = (transfer.get("metadata") or {}).get("withdrawal_id")

    if not withdrawal_id:
        logger.info(
            "transfer.reversed without withdrawal_id, ignoring",
            extra={"stripe_event_id": webhook_event.stripe_event_id, "transfer_id": transfer.get("id")},
        )
        return ServiceResult.success(None)

    withdrawal = WithdrawalService.fail_withdrawal(withdrawal_id, "Transfer reversed")
    return ServiceResult.success({"withdrawal_id": str(withdrawal.id), "status": withdrawal.status})
