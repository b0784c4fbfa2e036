"""
Payments app configuration.

This app provides the escrow payment flow:
- Payments held between buyer and seller (Stripe Checkout)
- Seller withdrawals (Stripe Connect transfers)
- Webhook handling and background reconciliation
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
