"""
Listing-specific exceptions.

Exception Hierarchy:
    ListingNotFoundError (NotFoundError) - Unknown listing id
    ListingUnavailableError (ConflictError) - Listing is not active
"""

from __future__ import annotations

from core.exceptions import ConflictError, NotFoundError


class ListingNotFoundError(NotFoundError):
    """Raised when a listing id does not exist."""

    default_error_code: str = "LISTING_NOT_FOUND"


class ListingUnavailableError(ConflictError):
    """
    Raised when a listing cannot be bought in its current status.

    Example:
        if listing.status != ListingStatus.ACTIVE:
            raise ListingUnavailableError(
                "Listing is not available for purchase",
                details={"listing_id": str(listing.id), "status": listing.status},
            )
    """

    default_error_code: str = "LISTING_UNAVAILABLE"


__all__ = [
    "ListingNotFoundError",
    "ListingUnavailableError",
]
