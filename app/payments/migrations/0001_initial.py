import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


def _timestamps():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
        (
            "id",
            models.UUIDField(
                default=uuid.uuid4,
                editable=False,
                help_text="Unique identifier (UUID v4)",
                primary_key=True,
                serialize=False,
            ),
        ),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("listings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=_timestamps()
            + [
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Amount charged in major currency units",
                        max_digits=12,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd",
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("held", "Held"),
                            ("released", "Released"),
                            ("refunded", "Refunded"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current escrow state (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "reference",
                    models.CharField(
                        help_text="Unique external reference (PAY-xxx)",
                        max_length=64,
                        unique=True,
                    ),
                ),
                (
                    "gateway_session_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Stripe Checkout Session ID (cs_xxx)",
                        max_length=255,
                    ),
                ),
                (
                    "gateway_payment_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Stripe PaymentIntent ID (pi_xxx)",
                        max_length=255,
                    ),
                ),
                (
                    "gateway_refund_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Stripe Refund ID (re_xxx)",
                        max_length=255,
                    ),
                ),
                (
                    "authorization_url",
                    models.URLField(
                        blank=True,
                        default="",
                        help_text="Checkout URL the buyer completes payment on",
                        max_length=2048,
                    ),
                ),
                (
                    "held_at",
                    models.DateTimeField(
                        blank=True, help_text="When the gateway confirmed the funds", null=True
                    ),
                ),
                (
                    "released_at",
                    models.DateTimeField(
                        blank=True, help_text="When the buyer released the funds", null=True
                    ),
                ),
                (
                    "refunded_at",
                    models.DateTimeField(
                        blank=True, help_text="When the buyer was refunded", null=True
                    ),
                ),
                (
                    "failed_at",
                    models.DateTimeField(
                        blank=True, help_text="When the checkout failed", null=True
                    ),
                ),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True, default="", help_text="Reason the checkout failed"
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Arbitrary JSON metadata for extensibility",
                    ),
                ),
                (
                    "buyer",
                    models.ForeignKey(
                        help_text="User paying for the listing",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments_made",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "listing",
                    models.ForeignKey(
                        help_text="Listing being purchased",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="listings.listing",
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        help_text="Seller who receives the funds on release",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments_received",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["buyer", "status"], name="payments_pa_buyer_i_c1e634_idx"),
                    models.Index(fields=["seller", "status"], name="payments_pa_seller__b99267_idx"),
                    models.Index(fields=["status", "created_at"], name="payments_pa_status_343680_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ["pending", "held"])),
                        fields=("listing",),
                        name="one_open_payment_per_listing",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="payment_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Withdrawal",
            fields=_timestamps()
            + [
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Amount in major currency units",
                        max_digits=12,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd",
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "bank_details",
                    models.JSONField(default=dict, help_text="Destination bank account details"),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the withdrawal (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "recipient_code",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Gateway payout recipient (acct_xxx)",
                        max_length=255,
                    ),
                ),
                (
                    "transfer_reference",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Gateway transfer ID (tr_xxx)",
                        max_length=255,
                    ),
                ),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True, default="", help_text="Reason the withdrawal failed"
                    ),
                ),
                (
                    "completed_at",
                    models.DateTimeField(
                        blank=True, help_text="When the payout was confirmed", null=True
                    ),
                ),
                (
                    "failed_at",
                    models.DateTimeField(
                        blank=True, help_text="When the withdrawal failed", null=True
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        help_text="Seller withdrawing funds",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="withdrawals",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Withdrawal",
                "verbose_name_plural": "Withdrawals",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["seller", "status"], name="payments_wi_seller__0c7275_idx"),
                    models.Index(fields=["status", "created_at"], name="payments_wi_status_eb5158_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="withdrawal_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=_timestamps()
            + [
                (
                    "stripe_event_id",
                    models.CharField(
                        help_text="Stripe Event ID (evt_xxx), unique for idempotency",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        help_text="Stripe event type (e.g. 'checkout.session.completed')",
                        max_length=100,
                    ),
                ),
                ("payload", models.JSONField(help_text="Full webhook payload from Stripe")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current processing status",
                        max_length=20,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True, help_text="When event was successfully processed", null=True
                    ),
                ),
                (
                    "error_message",
                    models.TextField(
                        blank=True, default="", help_text="Error message if processing failed"
                    ),
                ),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(
                        default=0, help_text="Number of processing attempts"
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="payments_we_status_f91a85_idx"),
                    models.Index(fields=["status", "retry_count"], name="payments_we_status_5574c3_idx"),
                ],
            },
        ),
    ]
