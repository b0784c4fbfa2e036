"""
Tests for payments app.

- test_models.py: Payment/Withdrawal transitions, constraints, WebhookEvent helpers
- test_views.py: Escrow and withdrawal API endpoints
- factories.py: Payment, Withdrawal and WebhookEvent factories

Service, webhook and adapter tests live beside their packages
(services/tests, webhooks/tests, adapters/tests).

Usage:
    pytest payments/
    pytest payments/services/tests/test_escrow_service.py
"""
