"""
Listing and PlatformFee models.

Listing status is a projection of the escrow state of its payments:

    active  --(payment held)-->     pending
    pending --(payment released)--> sold
    pending --(payment refunded)--> active

Each arrow is a single conditional update keyed on the current status
(see ListingService.set_status_if), so two purchases can never both
claim the same listing.

PlatformFee is created together with its listing and flips between
pending and collected as the sale completes or is refunded.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.managers import ConditionalUpdateManager
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class ListingStatus(models.TextChoices):
    """
    Availability of a listing.

    ACTIVE: Open for purchase
    PENDING: A buyer's payment is held in escrow
    SOLD: The buyer released the payment to the seller
    """

    ACTIVE = "active", "Active"
    PENDING = "pending", "Pending"
    SOLD = "sold", "Sold"


class PlatformFeeStatus(models.TextChoices):
    """
    Collection status of a platform fee.

    PENDING: Sale not completed (or refunded)
    COLLECTED: Payment released, fee earned
    """

    PENDING = "pending", "Pending"
    COLLECTED = "collected", "Collected"


class Listing(UUIDPrimaryKeyMixin, BaseModel):
    """
    An item a seller offers on the marketplace.

    Fields:
        seller: Owner of the listing
        title: Short description shown in search results
        description: Free-form details
        price: Asking price in the configured currency's major unit
        status: Availability (co-owned by the escrow coordinator)
        buyer: Provisional holder while a payment is held, final buyer once sold
        purchased_at: When the buyer's payment was verified
    """

    # ==========================================================================
    # Ownership & Content
    # ==========================================================================

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="listings",
        help_text="User selling the item",
    )

    title = models.CharField(
        max_length=200,
        help_text="Listing title",
    )

    description = models.TextField(
        blank=True,
        default="",
        help_text="Listing description",
    )

    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Asking price in major currency units",
    )

    # ==========================================================================
    # Escrow Projection (written by the payments app)
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=ListingStatus.choices,
        default=ListingStatus.ACTIVE,
        db_index=True,
        help_text="Availability, projected from the listing's payments",
    )

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="purchases",
        help_text="Buyer whose payment holds or bought the listing",
    )

    purchased_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the buyer's payment was confirmed",
    )

    objects = ConditionalUpdateManager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"]),
            models.Index(fields=["seller", "status"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price__gt=0),
                name="listing_price_positive",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with title and status."""
        return f"Listing({self.title}, {self.status}, {self.price})"


class PlatformFee(UUIDPrimaryKeyMixin, BaseModel):
    """
    Marketplace commission for one listing.

    Fields:
        listing: The listing the fee belongs to (one fee per listing)
        seller: Seller who owes the fee
        amount: min(price x PLATFORM_FEE_PERCENT%, PLATFORM_FEE_CAP)
        status: pending until the listing's payment is released
        collected_at: When the fee was collected
    """

    listing = models.OneToOneField(
        Listing,
        on_delete=models.CASCADE,
        related_name="platform_fee",
        help_text="Listing this fee applies to",
    )

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="platform_fees",
        help_text="Seller the fee is charged to",
    )

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Fee amount in major currency units",
    )

    status = models.CharField(
        max_length=20,
        choices=PlatformFeeStatus.choices,
        default=PlatformFeeStatus.PENDING,
        db_index=True,
        help_text="Collected only once the sale's payment is released",
    )

    collected_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the fee was collected",
    )

    objects = ConditionalUpdateManager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Platform Fee"
        verbose_name_plural = "Platform Fees"

    def __str__(self) -> str:
        """Return string representation with amount and status."""
        return f"PlatformFee({self.listing_id}, {self.amount}, {self.status})"
