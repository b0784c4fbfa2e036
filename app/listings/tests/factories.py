"""
Factory Boy factories for listing models.

Usage:
    from listings.tests.factories import ListingFactory

    listing = ListingFactory(price=Decimal("500.00"))
    sold = ListingFactory(status=ListingStatus.SOLD, buyer=buyer)
"""

from decimal import Decimal

import factory

from authentication.tests.factories import UserFactory
from listings.models import Listing, ListingStatus, PlatformFee, PlatformFeeStatus


class ListingFactory(factory.django.DjangoModelFactory):
    """
    Factory for Listing model.

    Creates the matching PlatformFee row, as ListingService.create_listing does.
    """

    class Meta:
        model = Listing
        skip_postgeneration_save = True

    seller = factory.SubFactory(UserFactory)
    title = factory.Faker("sentence", nb_words=3)
    description = factory.Faker("paragraph")
    price = Decimal("500.00")
    status = ListingStatus.ACTIVE

    @factory.post_generation
    def platform_fee(obj, create, extracted, **kwargs):
        """Attach a pending fee unless one was passed in."""
        if not create or extracted is False:
            return
        PlatformFeeFactory(
            listing=obj,
            seller=obj.seller,
            amount=(obj.price / 100).quantize(Decimal("0.01")),
            **kwargs,
        )


class PlatformFeeFactory(factory.django.DjangoModelFactory):
    """Factory for PlatformFee model."""

    class Meta:
        model = PlatformFee

    listing = factory.SubFactory(ListingFactory, platform_fee=False)
    seller = factory.SelfAttribute("listing.seller")
    amount = Decimal("5.00")
    status = PlatformFeeStatus.PENDING
