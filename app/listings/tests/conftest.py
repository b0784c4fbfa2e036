"""
Pytest fixtures for listing tests.
"""

from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from authentication.tests.factories import UserFactory
from listings.tests.factories import ListingFactory


@pytest.fixture
def seller(db):
    """A user who sells items."""
    return UserFactory(full_name="Sam Seller")


@pytest.fixture
def buyer(db):
    """A user who buys items."""
    return UserFactory(full_name="Bea Buyer")


@pytest.fixture
def listing(seller):
    """An active 500.00 listing with a pending 5.00 fee."""
    return ListingFactory(seller=seller, price=Decimal("500.00"))


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def seller_client(seller):
    """API client authenticated as the seller."""
    client = APIClient()
    client.force_authenticate(user=seller)
    return client


@pytest.fixture(autouse=True)
def platform_fee_settings(settings):
    """Pin the fee to 1% capped at 1000 regardless of environment."""
    settings.PLATFORM_FEE_PERCENT = 1
    settings.PLATFORM_FEE_CAP = 1000
