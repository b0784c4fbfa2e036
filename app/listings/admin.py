"""
Django admin configuration for listings and platform fees.

Status fields are read-only: they are written by the escrow flow through
conditional updates, never edited by hand.
"""

from django.contrib import admin

from listings.models import Listing, PlatformFee


class PlatformFeeInline(admin.StackedInline):
    """Platform fee shown on the listing page."""

    model = PlatformFee
    can_delete = False
    readonly_fields = ("seller", "amount", "status", "collected_at")
    extra = 0


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):
    """Admin for listings."""

    list_display = ("title", "seller", "price", "status", "buyer", "created_at")
    list_filter = ("status",)
    search_fields = ("title", "seller__email", "buyer__email")
    readonly_fields = ("status", "buyer", "purchased_at", "created_at", "updated_at")
    raw_id_fields = ("seller",)
    inlines = [PlatformFeeInline]


@admin.register(PlatformFee)
class PlatformFeeAdmin(admin.ModelAdmin):
    """Admin for platform fees."""

    list_display = ("listing", "seller", "amount", "status", "collected_at")
    list_filter = ("status",)
    readonly_fields = ("listing", "seller", "amount", "status", "collected_at")
