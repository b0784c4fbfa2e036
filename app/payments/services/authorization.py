"""
Capability checks for escrow operations.

Each operation asks one question, once, before any write or gateway
call: may this caller act in this role on this payment?

    BUYER   - the payment's buyer (release)
    SELLER  - the payment's seller (refund)
    ADMIN   - staff users (payment overview)

Usage:
    from payments.services.authorization import EscrowRole, require_capability

    require_capability(actor, payment, EscrowRole.BUYER)
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from core.exceptions import AuthorizationError

if TYPE_CHECKING:
    from authentication.models import User
    from payments.models import Payment


class EscrowRole(str, Enum):
    """Role a caller must hold to perform an escrow operation."""

    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


def is_admin(actor: User | None) -> bool:
    """Staff users hold the admin capability."""
    return bool(actor and actor.is_active and actor.is_staff)


def has_capability(actor: User | None, payment: Payment | None, role: EscrowRole) -> bool:
    """
    Check whether ``actor`` may act as ``role`` on ``payment``.

    ADMIN does not need a payment. BUYER and SELLER are matched against
    the payment's parties only; staff do not inherit them.
    """
    if actor is None or not actor.is_authenticated:
        return False
    if role is EscrowRole.ADMIN:
        return is_admin(actor)
    if payment is None:
        return False
    if role is EscrowRole.BUYER:
        return payment.buyer_id == actor.id
    if role is EscrowRole.SELLER:
        return payment.seller_id == actor.id
    return False


def require_capability(
    actor: User | None,
    payment: Payment | None,
    role: EscrowRole,
) -> None:
    """
    Raise AuthorizationError unless ``actor`` holds ``role`` on ``payment``.

    Raises:
        AuthorizationError: error_code NOT_PAYMENT_BUYER, NOT_PAYMENT_SELLER
            or NOT_ADMIN
    """
    if has_capability(actor, payment, role):
        return

    details = {"role": role.value}
    if payment is not None:
        details["payment_id"] = str(payment.id)

    if role is EscrowRole.ADMIN:
        raise AuthorizationError("Admin access required", error_code="NOT_ADMIN", details=details)
    raise AuthorizationError(
        f"Only the {role.value} of this payment can perform this action",
        error_code=f"NOT_PAYMENT_{role.value.upper()}",
        details=details,
    )
