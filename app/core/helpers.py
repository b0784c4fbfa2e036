"""
Generic helper functions with no domain knowledge.

Usage:
    from core.helpers import generate_token

    reference = f"PAY-{generate_token(12)}"
"""

from __future__ import annotations

import secrets


def generate_token(length: int = 32) -> str:
    """
    Generate a cryptographically secure random token.

    Args:
        length: Number of bytes (resulting string is 2x length in hex)

    Returns:
        Hexadecimal token string

    Example:
        token = generate_token(12)  # Returns 24-character hex string
    """
    return secrets.token_hex(length)
