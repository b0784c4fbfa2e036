"""
Authentication models.

The marketplace only needs an identity from this app: who the caller is
and the e-mail address the payment gateway sends receipts to. Listing,
payment and withdrawal ownership checks live in the apps that own those
records.

Related files:
    - managers.py: Custom user manager for email-based creation
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from authentication.managers import UserManager


class User(UUIDPrimaryKeyMixin, AbstractBaseUser, PermissionsMixin):
    """
    Marketplace user identified by e-mail.

    A user can be a buyer on one listing and a seller on another; the
    role is decided per payment, not stored on the user. ``is_staff``
    grants the admin capability for escrow oversight endpoints.

    Fields:
        email: Primary identifier, unique, used for login and checkout
        full_name: Display name shown to the other party of a sale
        is_active: Whether the user account is active
        is_staff: Whether the user holds the admin capability
        date_joined: When the user account was created
    """

    email = models.EmailField(
        unique=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    full_name = models.CharField(
        max_length=150,
        blank=True,
        default="",
        help_text="Display name shown to buyers and sellers",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site and escrow oversight.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        """Return the user's email as string representation."""
        return self.email

    def get_full_name(self):
        """Return the display name, falling back to the e-mail address."""
        return self.full_name or self.email

    def get_short_name(self):
        """Return the first word of the display name or the e-mail local part."""
        if self.full_name:
            return self.full_name.split()[0]
        return self.email.split("@")[0]
