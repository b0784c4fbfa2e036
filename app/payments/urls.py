"""
URL configuration for the payments app.

Routes:
    - /                     - PaymentViewSet (see views.py for the actions)
    - POST /webhooks/stripe/ - Stripe webhook endpoint

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("payments/", include("payments.urls")),
    ]
"""

from django.urls import include, path
from rest_framework.routers import SimpleRouter

from payments.views import PaymentViewSet
from payments.webhooks.views import stripe_webhook

app_name = "payments"

router = SimpleRouter()
router.register(r"", PaymentViewSet, basename="payment")

urlpatterns = [
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    path("", include(router.urls)),
]
