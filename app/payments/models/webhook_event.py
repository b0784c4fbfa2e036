"""
WebhookEvent model: stored Stripe events for idempotent processing.

Every verified Stripe event is inserted once, keyed on its event id;
a redelivery of the same event finds the existing row and is not
processed again. Processing itself runs in the process_webhook_event
Celery task.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.state_machines import WebhookEventStatus

if TYPE_CHECKING:
    from typing import Any


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    A Stripe webhook event and its processing status.

    Processing Flow:
        1. Webhook arrives, Stripe signature verified
        2. get_or_create on stripe_event_id
        3. Existing row that is processed or processing -> duplicate, ignored
        4. New (or failed) row -> process_webhook_event task queued
        5. Task marks processing, dispatches to the handler registry,
           then marks processed or failed

    Fields:
        stripe_event_id: Unique Stripe Event ID (evt_xxx)
        event_type: Stripe event type (checkout.session.completed, ...)
        payload: Full event JSON
        status: Processing status
        processed_at: When processing succeeded
        error_message: Last processing error
        retry_count: Number of processing attempts
    """

    MAX_RETRIES = 5

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Event ID (evt_xxx), unique for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Stripe event type (e.g. 'checkout.session.completed')",
    )

    payload = models.JSONField(
        help_text="Full webhook payload from Stripe",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    error_message = models.TextField(
        blank=True,
        default="",
        help_text="Error message if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"]),
            models.Index(fields=["status", "retry_count"]),
        ]

    def __str__(self) -> str:
        """Return string representation with event ID and type."""
        return f"WebhookEvent({self.stripe_event_id}, {self.event_type})"

    @property
    def is_processed(self) -> bool:
        """Check if event has been successfully processed."""
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def can_retry(self) -> bool:
        """Check if a failed event still has attempts left."""
        return self.status == WebhookEventStatus.FAILED and self.retry_count < self.MAX_RETRIES

    # Status helpers do not save; the caller saves.

    def mark_processing(self) -> None:
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = ""

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_object(self) -> dict[str, Any]:
        """
        Return the event's data.object (checkout session, payout, transfer).

        Returns an empty dict when the payload has no object.
        """
        data = self.payload.get("data") if isinstance(self.payload, dict) else None
        obj = data.get("object") if isinstance(data, dict) else None
        return obj if isinstance(obj, dict) else {}
