"""
Listings application.

Owns marketplace listings and their platform fee rows. The escrow
coordinator in the payments app co-owns three listing fields (status,
buyer, purchased_at) and the fee status, and changes them only through
the conditional updates exposed by ListingService.
"""
