"""
Cryptographic helpers: token hashing, HMAC and constant-time comparison.

OTP codes are stored as SHA-256 digests; signed values use HMAC-SHA256.
"""

from __future__ import annotations

import hashlib
import hmac


def hash_token(token: str) -> str:
    """Return the hex-encoded SHA-256 digest of *token*.

    Used to hash OTP codes before storing them in the database so the
    plaintext is never persisted.

    Returns:
        64-character lowercase hex string.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    """Return the hex HMAC-SHA256 of *message* keyed with *secret*."""
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def constant_time_equals(a: str, b: str) -> bool:
    """Compare two strings without leaking where they differ.

    Strings of different length are rejected up front; the length of a
    token is not secret.
    """
    a_bytes = a.encode("utf-8")
    b_bytes = b.encode("utf-8")
    if len(a_bytes) != len(b_bytes):
        return False
    return hmac.compare_digest(a_bytes, b_bytes)
