"""
Core infrastructure shared by all apps.

Services (import from core.services):
    - ServiceResult: Standard success/failure wrapper
    - BaseService: Logger and transaction helpers

Exceptions (import from core.exceptions):
    - BaseApplicationError and its subclasses

Helpers (import from core.helpers):
    - generate_token: Cryptographically secure token generation

Note:
    Models, model mixins and managers are NOT imported here because they
    depend on Django's app registry being ready. Import them directly:
        from core.models import BaseModel
        from core.model_mixins import UUIDPrimaryKeyMixin
        from core.managers import ConditionalUpdateManager
"""

# Services (no Django model dependencies)
from .services import BaseService, ServiceResult

# Exceptions (no Django dependencies)
from .exceptions import (
    AuthorizationError,
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)

# Helpers (no Django model dependencies)
from .helpers import generate_token

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "AuthorizationError",
    "ConflictError",
    "RateLimitError",
    "ExternalServiceError",
    # Helpers
    "generate_token",
]
