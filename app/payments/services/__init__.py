"""
Payment services.

- EscrowService: Escrow payment coordinator (initiate, verify, release, refund)
- WithdrawalService: Seller withdrawals of released funds
- authorization: Capability checks shared by both

Usage:
    from payments.services import EscrowService, WithdrawalService

    started = EscrowService.initiate(listing_id, buyer)
    payment = EscrowService.verify(started.reference)
    payment = EscrowService.release(payment.id, buyer)

    summary = WithdrawalService.sales_summary(seller)
"""

from payments.services.authorization import (
    EscrowRole,
    has_capability,
    require_capability,
)
from payments.services.escrow_service import EscrowService, InitiatedPayment
from payments.services.withdrawal_service import SalesSummary, WithdrawalService

__all__ = [
    "EscrowRole",
    "EscrowService",
    "InitiatedPayment",
    "SalesSummary",
    "WithdrawalService",
    "has_capability",
    "require_capability",
]
