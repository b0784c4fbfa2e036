"""
Celery tasks for escrow payments.

This module provides async tasks for:
- Processing Stripe webhook events
- Retrying failed webhook events
- Resetting webhook events stuck in processing
- Re-verifying pending payments whose buyer never came back
- Resuming withdrawals whose transfer outcome is unknown

Usage:
    from payments.tasks import process_webhook_event

    # Queue a webhook for async processing
    process_webhook_event.delay(str(webhook_event.id))

    # Periodic tasks are scheduled through django-celery-beat
    # (see migration 0002_register_periodic_tasks)
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from core.exceptions import BaseApplicationError
from payments.models import WebhookEvent
from payments.services import EscrowService, WithdrawalService
from payments.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_WEBHOOK_RETRIES = WebhookEvent.MAX_RETRIES
STUCK_PROCESSING_THRESHOLD_MINUTES = 30
SWEEP_BATCH_SIZE = 100


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a Stripe webhook event asynchronously.

    This task:
    1. Loads the WebhookEvent by ID
    2. Checks if already processed (idempotency)
    3. Marks as processing
    4. Dispatches to the registered handler
    5. Marks as processed or failed

    Handlers are not wrapped in a transaction: each one calls services
    that make gateway calls and then apply conditional single-row
    updates, so partial progress is always a valid state.

    Args:
        webhook_event_id: UUID of the WebhookEvent to process

    Returns:
        Dict with processing result status

    Raises:
        Exception: Re-raised to trigger Celery retry mechanism
    """
    # Import here to avoid circular imports
    from payments.webhooks.handlers import dispatch_webhook

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    logger.info(
        "Processing webhook event",
        extra={"webhook_event_id": str(webhook_event_id)},
    )

    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.is_processed:
        logger.info(
            "WebhookEvent already processed, skipping",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
            },
        )
        return {
            "status": "already_processed",
            "webhook_event_id": str(webhook_event_id),
        }

    webhook_event.mark_processing()
    webhook_event.save()

    logger.info(
        f"Dispatching webhook: {webhook_event.event_type}",
        extra={
            "webhook_event_id": str(webhook_event_id),
            "stripe_event_id": webhook_event.stripe_event_id,
            "event_type": webhook_event.event_type,
            "retry_count": webhook_event.retry_count,
        },
    )

    try:
        result = dispatch_webhook(webhook_event)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {str(e)}"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()

        logger.exception(
            "Webhook processing failed with exception",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
                "error": error_msg,
            },
        )
        raise

    if result.success:
        webhook_event.mark_processed()
        webhook_event.save()
        logger.info(
            "Webhook processed successfully",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
            },
        )
        return {
            "status": "processed",
            "webhook_event_id": str(webhook_event_id),
            "stripe_event_id": webhook_event.stripe_event_id,
        }

    error_msg = result.error or "Handler returned failure"
    webhook_event.mark_failed(error_msg)
    webhook_event.save()
    logger.warning(
        f"Webhook handler failed: {error_msg}",
        extra={
            "webhook_event_id": str(webhook_event_id),
            "stripe_event_id": webhook_event.stripe_event_id,
            "error": error_msg,
            "error_code": result.error_code,
        },
    )
    return {
        "status": "handler_failed",
        "webhook_event_id": str(webhook_event_id),
        "error": error_msg,
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to retry failed webhook events.

    Finds failed webhooks that haven't exceeded max retries and
    re-queues them for processing.

    Returns:
        Dict with count of webhooks queued for retry
    """
    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:SWEEP_BATCH_SIZE]

    queued_count = 0
    for webhook in failed_webhooks:
        process_webhook_event.delay(str(webhook.id))
        queued_count += 1
        logger.info(
            "Queued failed webhook for retry",
            extra={
                "webhook_event_id": str(webhook.id),
                "stripe_event_id": webhook.stripe_event_id,
                "retry_count": webhook.retry_count,
            },
        )

    logger.info(
        f"Queued {queued_count} failed webhooks for retry",
        extra={"queued_count": queued_count},
    )

    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Periodic task to reset stuck webhooks.

    Webhooks left in PROCESSING for too long (worker crashed mid-run)
    are marked FAILED so retry_failed_webhooks picks them up.

    Returns:
        Dict with count of webhooks reset
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)

    stuck_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook in stuck_webhooks:
        stuck_since = webhook.updated_at
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save()
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_event_id": str(webhook.id),
                "stripe_event_id": webhook.stripe_event_id,
                "stuck_since": stuck_since.isoformat(),
            },
        )

    if reset_count > 0:
        logger.info(
            f"Reset {reset_count} stuck webhooks",
            extra={"reset_count": reset_count},
        )

    return {"reset_count": reset_count}


# =============================================================================
# Escrow Sweepers
# =============================================================================


@shared_task
def reverify_stale_pending_payments() -> dict:
    """
    Periodic task to re-run Verify for payments stuck in pending.

    Covers buyers who never returned from checkout and webhooks that
    never arrived. Once the gateway session expires, Verify moves the
    payment to failed and the listing is free for another buyer.

    Returns:
        Dict with counts of payments checked, changed and errored
    """
    cutoff = timezone.now() - timedelta(minutes=settings.ESCROW_PENDING_VERIFY_AFTER_MINUTES)

    checked = changed = errored = 0
    for payment in EscrowService.stale_pending(cutoff)[:SWEEP_BATCH_SIZE]:
        checked += 1
        try:
            verified = EscrowService.verify(payment.reference)
        except BaseApplicationError as e:
            errored += 1
            logger.warning(
                f"Re-verification failed: {e.message}",
                extra={
                    "payment_id": str(payment.id),
                    "reference": payment.reference,
                    "error_code": e.error_code,
                },
            )
            continue

        if verified.status != payment.status:
            changed += 1

    logger.info(
        f"Re-verified {checked} stale pending payments",
        extra={"checked": checked, "changed": changed, "errored": errored},
    )
    return {"checked": checked, "changed": changed, "errored": errored}


@shared_task
def resume_stalled_withdrawals() -> dict:
    """
    Periodic task to resume withdrawals whose transfer outcome is unknown.

    A withdrawal stays pending without a transfer reference when the
    gateway call timed out or the worker died. Resuming reuses the same
    idempotency keys, so no second transfer is created.

    Stripe keeps idempotency keys for 24 hours. Withdrawals older than
    ESCROW_WITHDRAWAL_RESUME_MAX_AGE_HOURS are no longer resumed; they
    stay pending (their amount stays reserved) and are logged at
    critical level for manual reconciliation against the Stripe dashboard.

    Returns:
        Dict with counts of withdrawals resumed, errored and expired
    """
    now = timezone.now()
    cutoff = now - timedelta(minutes=settings.ESCROW_WITHDRAWAL_RESUME_AFTER_MINUTES)
    expiry = now - timedelta(hours=settings.ESCROW_WITHDRAWAL_RESUME_MAX_AGE_HOURS)

    expired = 0
    for withdrawal in WithdrawalService.stalled(expiry)[:SWEEP_BATCH_SIZE]:
        expired += 1
        logger.critical(
            "Stalled withdrawal past the idempotency window, reconcile manually",
            extra={
                "withdrawal_id": str(withdrawal.id),
                "seller_id": str(withdrawal.seller_id),
                "recipient_code": withdrawal.recipient_code,
                "amount": str(withdrawal.amount),
            },
        )

    resumed = errored = 0
    for withdrawal in WithdrawalService.stalled(cutoff, created_after=expiry)[:SWEEP_BATCH_SIZE]:
        try:
            WithdrawalService.resume_transfer(withdrawal.id)
        except BaseApplicationError as e:
            errored += 1
            logger.warning(
                f"Withdrawal resume failed: {e.message}",
                extra={
                    "withdrawal_id": str(withdrawal.id),
                    "seller_id": str(withdrawal.seller_id),
                    "error_code": e.error_code,
                },
            )
            continue
        resumed += 1

    logger.info(
        f"Resumed {resumed} stalled withdrawals",
        extra={"resumed": resumed, "errored": errored, "expired": expired},
    )
    return {"resumed": resumed, "errored": errored, "expired": expired}
