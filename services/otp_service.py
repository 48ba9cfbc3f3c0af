"""
Email OTP issuance and verification backed by the `otp-tokens` collection.

Only the newest unused token per email can ever succeed: generate_otp()
supersedes older ones before inserting. verify_otp() claims an attempt with
one atomic ``$inc`` before comparing, so N concurrent guesses get attempt
numbers 1..N and only the first ``max_attempts`` are compared.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from pymongo import DESCENDING, ReturnDocument

from errors import OtpFailureReason
from infrastructure.mongo import OTP_TOKENS_COLLECTION
from schemas.models.otp_token import OtpTokenDoc
from shared.crypto import constant_time_equals, hash_token
from shared.datetime_utils import utcnow
from shared.generators import generate_otp_code
from shared.logging import get_logger, mask_email_for_log

log = get_logger(__name__)

# Expiry and limits (overridable from OtpSettings)
OTP_LENGTH = 8
OTP_TTL_SECONDS = 900  # 15 minutes
MAX_VERIFICATION_ATTEMPTS = 5


@dataclass(frozen=True)
class GeneratedOtp:
    code: str
    expires_at: datetime


@dataclass(frozen=True)
class OtpVerification:
    valid: bool
    reason: Optional[OtpFailureReason] = None


class OtpService:
    def __init__(
        self,
        db: Any,
        *,
        code_length: int = OTP_LENGTH,
        ttl_seconds: int = OTP_TTL_SECONDS,
        max_attempts: int = MAX_VERIFICATION_ATTEMPTS,
    ) -> None:
        self._collection = db[OTP_TOKENS_COLLECTION]
        self.code_length = code_length
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts

    async def generate_otp(
        self, email: str, now: Optional[datetime] = None
    ) -> GeneratedOtp:
        """Create a new code for *email*, invalidating any outstanding one."""
        now = now or utcnow()
        code = generate_otp_code(self.code_length)
        expires_at = now + timedelta(seconds=self.ttl_seconds)

        superseded = await self._collection.update_many(
            {"email": email, "used": False},
            {"$set": {"used": True, "superseded": True, "used_at": now}},
        )

        token = OtpTokenDoc(
            email=email,
            token_hash=hash_token(code),
            attempts=0,
            max_attempts=self.max_attempts,
            expires_at=expires_at,
            used=False,
            created_at=now,
        )
        result = await self._collection.insert_one(token.to_mongo())

        log.info(
            "otp_generated",
            email=mask_email_for_log(email),
            otp_id=str(result.inserted_id),
            superseded=superseded.modified_count,
        )
        return GeneratedOtp(code=code, expires_at=expires_at)

    async def verify_otp(
        self, email: str, code: str, now: Optional[datetime] = None
    ) -> OtpVerification:
        """Check *code* against the newest unused token for *email*."""
        now = now or utcnow()

        doc = await self._collection.find_one_and_update(
            {"email": email, "used": False},
            {"$inc": {"attempts": 1}},
            sort=[("created_at", DESCENDING), ("_id", DESCENDING)],
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return self._fail(email, OtpFailureReason.NO_ACTIVE_TOKEN)

        token = OtpTokenDoc.from_mongo(doc)
        if token.is_expired(now):
            return self._fail(email, OtpFailureReason.EXPIRED, token)
        if token.attempts_exhausted():
            return self._fail(email, OtpFailureReason.ATTEMPTS_EXHAUSTED, token)
        if not constant_time_equals(token.token_hash, hash_token(code)):
            return self._fail(email, OtpFailureReason.MISMATCH, token)

        claimed = await self._collection.update_one(
            {"_id": token.id, "used": False},
            {"$set": {"used": True, "used_at": now}},
        )
        if claimed.modified_count != 1:
            # A concurrent request consumed or superseded it first
            return self._fail(email, OtpFailureReason.NO_ACTIVE_TOKEN, token)

        log.info(
            "otp_verified",
            email=mask_email_for_log(email),
            otp_id=str(token.id),
            attempts=token.attempts,
        )
        return OtpVerification(valid=True)

    def _fail(
        self,
        email: str,
        reason: OtpFailureReason,
        token: Optional[OtpTokenDoc] = None,
    ) -> OtpVerification:
        log.warning(
            "otp_verify_failed",
            email=mask_email_for_log(email),
            reason=reason.value,
            otp_id=str(token.id) if token else None,
            attempts=token.attempts if token else None,
        )
        return OtpVerification(valid=False, reason=reason)

    async def cleanup_expired(
        self, retention_seconds: int = 3600, now: Optional[datetime] = None
    ) -> int:
        """Purge tokens expired (or consumed) longer ago than the retention."""
        now = now or utcnow()
        horizon = now - timedelta(seconds=retention_seconds)
        result = await self._collection.delete_many(
            {
                "$or": [
                    {"expires_at": {"$lt": horizon}},
                    {"used": True, "used_at": {"$lt": horizon}},
                ]
            }
        )
        return result.deleted_count
