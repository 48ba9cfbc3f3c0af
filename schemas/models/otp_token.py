"""
OTP token document model.

Maps to the `otp-tokens` MongoDB collection.

token_hash stores SHA-256(code); the plain code is never stored.
attempts is incremented before every comparison; once it passes
max_attempts the token can no longer succeed.
superseded marks tokens invalidated by a newer send for the same email.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from schemas.models.base import MongoBaseModel


class OtpTokenDoc(MongoBaseModel):
    """Document model for the `otp-tokens` collection."""

    email: str
    token_hash: str
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=5, ge=1)
    expires_at: datetime
    used: bool = False
    superseded: bool = False
    created_at: Optional[datetime] = None
    used_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def attempts_exhausted(self) -> bool:
        # Called on the document returned after the atomic $inc.
        return self.attempts > self.max_attempts
