"""
Payment admin configuration.

Payments and withdrawals are view-only here: their states move through
EscrowService and WithdrawalService only, which apply the conditional
updates the escrow flow relies on.
"""

from django.contrib import admin

from payments.models import Payment, WebhookEvent, Withdrawal

__all__ = [
    "PaymentAdmin",
    "WithdrawalAdmin",
    "WebhookEventAdmin",
]


class ReadOnlyAdminMixin:
    """Disable add, change and delete while keeping the detail view."""

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payment)
class PaymentAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """
    Admin configuration for Payment.

    Provides visibility into escrow payments and their gateway references.
    """

    list_display = [
        "reference",
        "listing",
        "buyer",
        "seller",
        "amount",
        "currency",
        "status",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = [
        "id",
        "reference",
        "gateway_session_id",
        "gateway_payment_id",
        "buyer__email",
        "seller__email",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "reference", "listing", "buyer", "seller", "status"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount", "currency"),
            },
        ),
        (
            "Gateway",
            {
                "fields": (
                    "gateway_session_id",
                    "gateway_payment_id",
                    "gateway_refund_id",
                    "authorization_url",
                ),
            },
        ),
        (
            "State Timestamps",
            {
                "fields": ("held_at", "released_at", "refunded_at", "failed_at"),
            },
        ),
        (
            "Error Info",
            {
                "fields": ("failure_reason",),
                "classes": ("collapse",),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("metadata",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )


@admin.register(Withdrawal)
class WithdrawalAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """
    Admin configuration for Withdrawal.

    Bank details are excluded; only the gateway recipient is shown.
    """

    list_display = [
        "id",
        "seller",
        "amount",
        "currency",
        "status",
        "transfer_reference",
        "created_at",
    ]
    list_filter = ["status", "created_at"]
    search_fields = ["id", "seller__email", "recipient_code", "transfer_reference"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "seller", "amount", "currency", "status"),
            },
        ),
        (
            "Gateway",
            {
                "fields": ("recipient_code", "transfer_reference"),
            },
        ),
        (
            "Outcome",
            {
                "fields": ("completed_at", "failed_at", "failure_reason"),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "stripe_event_id",
        "event_type",
        "payload",
        "processed_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "stripe_event_id", "event_type", "status"),
            },
        ),
        (
            "Processing",
            {
                "fields": ("processed_at", "retry_count"),
            },
        ),
        (
            "Error Info",
            {
                "fields": ("error_message",),
                "classes": ("collapse",),
            },
        ),
        (
            "Payload",
            {
                "fields": ("payload",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        """Disable adding webhook events through admin."""
        return False
