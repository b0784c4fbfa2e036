import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Listing",
            fields=[
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
                ("title", models.CharField(help_text="Listing title", max_length=200)),
                (
                    "description",
                    models.TextField(blank=True, default="", help_text="Listing description"),
                ),
                (
                    "price",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Asking price in major currency units",
                        max_digits=12,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("pending", "Pending"), ("sold", "Sold")],
                        db_index=True,
                        default="active",
                        help_text="Availability, projected from the listing's payments",
                        max_length=20,
                    ),
                ),
                (
                    "purchased_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the buyer's payment was confirmed",
                        null=True,
                    ),
                ),
                (
                    "buyer",
                    models.ForeignKey(
                        blank=True,
                        help_text="Buyer whose payment holds or bought the listing",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="purchases",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        help_text="User selling the item",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="listings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="listings_li_status_29a9da_idx"),
                    models.Index(fields=["seller", "status"], name="listings_li_seller__3237a3_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("price__gt", 0)),
                        name="listing_price_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PlatformFee",
            fields=[
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
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Fee amount in major currency units",
                        max_digits=12,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("collected", "Collected")],
                        db_index=True,
                        default="pending",
                        help_text="Collected only once the sale's payment is released",
                        max_length=20,
                    ),
                ),
                (
                    "collected_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the fee was collected",
                        null=True,
                    ),
                ),
                (
                    "listing",
                    models.OneToOneField(
                        help_text="Listing this fee applies to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="platform_fee",
                        to="listings.listing",
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        help_text="Seller the fee is charged to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="platform_fees",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Platform Fee",
                "verbose_name_plural": "Platform Fees",
                "ordering": ["-created_at"],
            },
        ),
    ]
