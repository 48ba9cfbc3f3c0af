"""Random values for OTP codes, CSRF tokens and assertion ids. Backed by ``secrets``."""

from __future__ import annotations

import secrets
import string


def generate_otp_code(length: int = 8) -> str:
    """Return *length* uniformly random decimal digits; leading zeros are kept."""
    return "".join(secrets.choice(string.digits) for _ in range(length))


def generate_csrf_token(nbytes: int = 32) -> str:
    return secrets.token_hex(nbytes)


def generate_secure_token(nbytes: int = 32) -> str:
    # URL-safe so it can sit in a JWT claim or a query string unescaped
    return secrets.token_urlsafe(nbytes)
