"""
Payments app: escrow between buyers and sellers.

This app handles:
- Escrow payments (initiate, verify, release, refund) through Stripe Checkout
- Seller withdrawals of released funds through Stripe Connect
- Stripe webhook intake and asynchronous processing
- Periodic sweepers for stale payments, stalled withdrawals and webhooks

Related apps:
    - listings: Listing status projection and platform fees
    - authentication: User model for buyers, sellers and staff

Usage:
    from payments.services import EscrowService

    started = EscrowService.initiate(listing_id, buyer)
    payment = EscrowService.verify(started.reference)
"""
