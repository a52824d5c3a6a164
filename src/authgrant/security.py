"""Security utilities for authgrant.

Provides secret redaction for logging, random token generation
and constant-time comparison.
"""

from __future__ import annotations

import hmac
import secrets
from typing import Any

DEFAULT_SENSITIVE_KEYS = frozenset(
    {
        "access_token",
        "refresh_token",
        "id_token",
        "token",
        "secret",
        "password",
        "client_secret",
        "assertion",
        "authorization",
        "code_verifier",
        "encryption_key",
    }
)


def redact(value: str | None) -> str:
    """Redact a potentially sensitive value for safe logging.

    Args:
        value: The value to redact

    Returns:
        "***" if value is non-empty, "<empty>" if empty/None
    """
    if value is None or value == "":
        return "<empty>"
    return "***"


def constant_time_equals(a: str | None, b: str | None) -> bool:
    """Compare two strings in constant time to prevent timing attacks.

    Args:
        a: First string to compare
        b: Second string to compare

    Returns:
        True if strings are equal, False otherwise
    """
    if a is None and b is None:
        return True
    if a is None or b is None:
        return False
    return hmac.compare_digest(a.encode(), b.encode())


def generate_secure_token(nbytes: int = 32) -> str:
    """Generate a cryptographically secure random token.

    Args:
        nbytes: Number of random bytes (default 32 = 256 bits)

    Returns:
        URL-safe base64-encoded token string
    """
    return secrets.token_urlsafe(nbytes)


def mask_sensitive_data(
    data: dict[str, Any], sensitive_keys: set[str] | frozenset[str] | None = None
) -> dict[str, Any]:
    """Mask sensitive data in a dictionary for logging.

    Args:
        data: Dictionary potentially containing sensitive data
        sensitive_keys: Set of keys to mask (uses defaults if not provided)

    Returns:
        Copy of dictionary with sensitive values masked
    """
    if sensitive_keys is None:
        sensitive_keys = DEFAULT_SENSITIVE_KEYS

    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            result[key] = mask_sensitive_data(value, sensitive_keys)
        elif any(sensitive in key.lower() for sensitive in sensitive_keys):
            result[key] = "***"
        else:
            result[key] = value

    return result
