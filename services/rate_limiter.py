"""
Fixed-window rate limiter backed by the shared `rate-limits` collection.

One document per (key, action). Every step of check() is a single-document
atomic operation, so concurrent requests on any gateway instance can never
be admitted past the limit:

1. ``$inc`` the counter of a window that is still current.
2. Otherwise reset an expired window in place (count = 1).
3. Otherwise insert the first window; a DuplicateKeyError means another
   request created it first, so go back to step 1.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from infrastructure.mongo import RATE_LIMITS_COLLECTION
from schemas.models.rate_limit import RateLimitDoc
from shared.datetime_utils import seconds_until, utcnow
from shared.logging import get_logger

log = get_logger(__name__)

_MAX_CREATE_RETRIES = 3


@dataclass(frozen=True)
class LimitPolicy:
    action: str
    max_count: int
    window_seconds: int


class Limits:
    """
    Single source of truth for all gateway rate limits.
    """

    # send-code / resend-code, keyed by email
    SEND_CODE_BURST = LimitPolicy("send-code-burst", 3, 15 * 60)
    SEND_CODE = LimitPolicy("send-code", 5, 60 * 60)
    # send-code / resend-code, keyed by client IP
    SEND_CODE_IP = LimitPolicy("send-code-ip", 10, 15 * 60)

    # verify-code, keyed by email and by client IP
    VERIFY_CODE = LimitPolicy("verify-code", 10, 15 * 60)
    VERIFY_CODE_IP = LimitPolicy("verify-code-ip", 20, 15 * 60)

    # authorize page, keyed by client IP
    AUTHORIZE_IP = LimitPolicy("authorize-ip", 30, 60)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    count: int
    retry_after_seconds: Optional[int] = None


class RateLimiter:
    def __init__(self, db: Any) -> None:
        self._collection = db[RATE_LIMITS_COLLECTION]

    async def check(
        self,
        key: str,
        action: str,
        limit: int,
        window_seconds: int,
        now: Optional[datetime] = None,
    ) -> RateLimitResult:
        """Count one event for (key, action) and decide whether it is allowed."""
        now = now or utcnow()
        cutoff = now - timedelta(seconds=window_seconds)

        for _ in range(_MAX_CREATE_RETRIES):
            doc = await self._collection.find_one_and_update(
                {"key": key, "action": action, "window_start": {"$gt": cutoff}},
                {"$inc": {"count": 1}},
                return_document=ReturnDocument.AFTER,
            )
            if doc is not None:
                entry = RateLimitDoc.from_mongo(doc)
                if entry.count <= limit:
                    return RateLimitResult(allowed=True, count=entry.count)
                retry_after = seconds_until(
                    entry.window_start + timedelta(seconds=window_seconds), now
                )
                log.warning(
                    "rate_limited",
                    action=action,
                    count=entry.count,
                    limit=limit,
                    retry_after_seconds=retry_after,
                )
                return RateLimitResult(
                    allowed=False,
                    count=entry.count,
                    retry_after_seconds=max(retry_after, 1),
                )

            doc = await self._collection.find_one_and_update(
                {"key": key, "action": action, "window_start": {"$lte": cutoff}},
                {"$set": {"count": 1, "window_start": now}},
                return_document=ReturnDocument.AFTER,
            )
            if doc is not None:
                return RateLimitResult(allowed=1 <= limit, count=1)

            try:
                await self._collection.insert_one(
                    RateLimitDoc(
                        key=key, action=action, count=1, window_start=now
                    ).to_mongo()
                )
                return RateLimitResult(allowed=1 <= limit, count=1)
            except DuplicateKeyError:
                continue

        # Persistent contention on one key: fail closed
        log.error("rate_limit_contention", action=action)
        return RateLimitResult(
            allowed=False, count=limit + 1, retry_after_seconds=window_seconds
        )

    async def check_policy(
        self, key: str, policy: LimitPolicy, now: Optional[datetime] = None
    ) -> RateLimitResult:
        return await self.check(
            key, policy.action, policy.max_count, policy.window_seconds, now=now
        )

    async def check_all(
        self, checks: list[tuple[str, LimitPolicy]], now: Optional[datetime] = None
    ) -> RateLimitResult:
        """Run several checks in order, stopping at the first blocked one."""
        result = RateLimitResult(allowed=True, count=0)
        for key, policy in checks:
            result = await self.check_policy(key, policy, now=now)
            if not result.allowed:
                return result
        return result

    async def cleanup_old(
        self, retention_seconds: int = 3600, now: Optional[datetime] = None
    ) -> int:
        """Delete windows that started before the retention horizon."""
        now = now or utcnow()
        horizon = now - timedelta(seconds=retention_seconds)
        result = await self._collection.delete_many({"window_start": {"$lt": horizon}})
        return result.deleted_count
