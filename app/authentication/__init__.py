"""
Authentication application.

Provides the e-mail based User model and JWT token endpoints. The escrow
apps trust the identity it supplies and perform their own ownership checks.
"""
