"""
Django app configuration for authentication.

Holds the custom e-mail User model referenced by AUTH_USER_MODEL.
"""

from django.apps import AppConfig


class AuthenticationConfig(AppConfig):
    """Configuration for the authentication application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "authentication"
    verbose_name = "Accounts"
