"""
Serializers for the listings API.

ListingSerializer: read representation (status comes straight from the
    model enum; clients derive display state from it)
ListingCreateSerializer: create input
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from listings.models import Listing, PlatformFee


class PlatformFeeSerializer(serializers.ModelSerializer):
    """Platform fee with its collection status."""

    class Meta:
        model = PlatformFee
        fields = ["amount", "status", "collected_at"]
        read_only_fields = fields


class ListingSerializer(serializers.ModelSerializer):
    """Listing with seller identity and escrow projection fields."""

    seller_id = serializers.UUIDField(read_only=True)
    seller_name = serializers.CharField(source="seller.get_full_name", read_only=True)
    buyer_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = Listing
        fields = [
            "id",
            "title",
            "description",
            "price",
            "status",
            "seller_id",
            "seller_name",
            "buyer_id",
            "purchased_at",
            "created_at",
        ]
        read_only_fields = fields


class ListingOwnerSerializer(ListingSerializer):
    """Listing as seen by its seller, including the platform fee."""

    platform_fee = PlatformFeeSerializer(read_only=True)

    class Meta(ListingSerializer.Meta):
        fields = ListingSerializer.Meta.fields + ["platform_fee"]
        read_only_fields = fields


class ListingCreateSerializer(serializers.Serializer):
    """Input for creating a listing."""

    title = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    price = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal("0.01"),
    )
