"""
Listing service: the listing collaborator used by the escrow coordinator.

Provides:
- Listing creation together with its platform fee row
- Lookups (by id, active listings, a seller's listings)
- Conditional status updates for the escrow projection
- Platform fee collection and reset

Usage:
    from listings.services import ListingService

    result = ListingService.create_listing(seller, "Desk lamp", Decimal("500"))
    if result.success:
        listing = result.data

    claimed = ListingService.set_status_if(
        listing.id,
        expected=ListingStatus.ACTIVE,
        new=ListingStatus.PENDING,
        buyer_id=buyer.id,
        purchased_at=timezone.now(),
    )
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from core.services import BaseService, ServiceResult
from listings.exceptions import ListingNotFoundError
from listings.models import Listing, ListingStatus, PlatformFee, PlatformFeeStatus

if TYPE_CHECKING:
    from typing import Any
    from uuid import UUID

    from django.db.models import QuerySet

    from authentication.models import User


CENT = Decimal("0.01")


def calculate_platform_fee(price: Decimal) -> Decimal:
    """
    Compute the platform fee for a listing price.

    fee = min(price x PLATFORM_FEE_PERCENT / 100, PLATFORM_FEE_CAP),
    rounded half-up to two decimal places.

    Examples (1%, cap 1000):
        500    -> 5.00
        50000  -> 500.00
        250000 -> 1000.00 (capped)
    """
    percent = Decimal(str(settings.PLATFORM_FEE_PERCENT))
    cap = Decimal(str(settings.PLATFORM_FEE_CAP))
    fee = min(Decimal(price) * percent / Decimal("100"), cap)
    return fee.quantize(CENT, rounding=ROUND_HALF_UP)


class ListingService(BaseService):
    """Service for listing records and the fields the escrow flow projects."""

    @classmethod
    def create_listing(
        cls,
        seller: User,
        title: str,
        price: Decimal,
        description: str = "",
    ) -> ServiceResult[Listing]:
        """
        Create a listing and its pending platform fee.

        Both rows are inserted in one transaction; a listing never exists
        without its fee.

        Args:
            seller: User offering the item
            title: Listing title
            price: Asking price (major units, must be positive)
            description: Optional description

        Returns:
            ServiceResult with the created Listing
        """
        logger = cls.get_logger()
        price = Decimal(price)

        if price <= 0:
            return ServiceResult.failure(
                "Price must be greater than zero",
                error_code="INVALID_PRICE",
                errors={"price": ["Must be greater than zero."]},
            )
        if not title or not title.strip():
            return ServiceResult.failure(
                "Title is required",
                error_code="VALIDATION_ERROR",
                errors={"title": ["This field is required."]},
            )

        fee_amount = calculate_platform_fee(price)

        with cls.atomic():
            listing = Listing.objects.create(
                seller=seller,
                title=title.strip(),
                description=description,
                price=price,
            )
            PlatformFee.objects.create(
                listing=listing,
                seller=seller,
                amount=fee_amount,
            )

        logger.info(
            f"Created listing {listing.id}",
            extra={
                "listing_id": str(listing.id),
                "seller_id": str(seller.id),
                "price": str(price),
                "platform_fee": str(fee_amount),
            },
        )
        return ServiceResult.success(listing)

    @classmethod
    def get_listing(cls, listing_id: UUID | str) -> Listing:
        """
        Get a listing by id.

        Raises:
            ListingNotFoundError: If no listing has this id
        """
        listing = Listing.objects.select_related("seller").filter(id=listing_id).first()
        if listing is None:
            raise ListingNotFoundError(
                f"Listing {listing_id} not found",
                details={"listing_id": str(listing_id)},
            )
        return listing

    @classmethod
    def list_active(cls) -> QuerySet[Listing]:
        """Return listings open for purchase, newest first."""
        return Listing.objects.filter(status=ListingStatus.ACTIVE).select_related("seller")

    @classmethod
    def list_for_seller(cls, seller: User) -> QuerySet[Listing]:
        """Return every listing of a seller, newest first."""
        return Listing.objects.filter(seller=seller).select_related("buyer", "platform_fee")

    @classmethod
    def set_status_if(
        cls,
        listing_id: UUID | str,
        expected: str,
        new: str,
        **fields: Any,
    ) -> bool:
        """
        Move a listing to ``new`` only if it is currently ``expected``.

        Args:
            listing_id: Listing to update
            expected: Status the listing must currently have
            new: Status to write
            **fields: Other co-owned fields to write in the same statement
                (buyer_id, purchased_at)

        Returns:
            True if the listing was updated, False if its status did not match
        """
        updated = Listing.objects.compare_and_set(
            listing_id,
            field="status",
            expected=expected,
            new=new,
            **fields,
        )

        log_context = {
            "listing_id": str(listing_id),
            "expected_status": expected,
            "new_status": new,
        }
        if updated:
            cls.get_logger().info("Listing status updated", extra=log_context)
        else:
            cls.get_logger().warning(
                "Listing status update did not match current status",
                extra=log_context,
            )
        return updated

    # =========================================================================
    # Platform Fee
    # =========================================================================

    @classmethod
    def collect_fee(cls, listing_id: UUID | str) -> bool:
        """
        Mark a listing's fee collected (pending -> collected).

        Returns:
            True if the fee moved to collected
        """
        fee = PlatformFee.objects.filter(listing_id=listing_id).only("id").first()
        if fee is None:
            cls.get_logger().error(
                "No platform fee row for listing",
                extra={"listing_id": str(listing_id)},
            )
            return False

        collected = PlatformFee.objects.compare_and_set(
            fee.id,
            field="status",
            expected=PlatformFeeStatus.PENDING,
            new=PlatformFeeStatus.COLLECTED,
            collected_at=timezone.now(),
        )
        cls.get_logger().info(
            "Platform fee collected" if collected else "Platform fee already collected",
            extra={"listing_id": str(listing_id), "platform_fee_id": str(fee.id)},
        )
        return collected

    @classmethod
    def reset_fee(cls, listing_id: UUID | str) -> bool:
        """
        Return a listing's fee to pending.

        A fee that is already pending is left as is.

        Returns:
            True if the fee was collected and is now pending
        """
        fee = PlatformFee.objects.filter(listing_id=listing_id).only("id").first()
        if fee is None:
            cls.get_logger().error(
                "No platform fee row for listing",
                extra={"listing_id": str(listing_id)},
            )
            return False

        return PlatformFee.objects.compare_and_set(
            fee.id,
            field="status",
            expected=PlatformFeeStatus.COLLECTED,
            new=PlatformFeeStatus.PENDING,
            collected_at=None,
        )
