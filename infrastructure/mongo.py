"""MongoDB collection names and index bootstrap.

All gateway instances share one database; the unique and compound indexes
below are what make the atomic counter updates in the services correct.
"""

from __future__ import annotations

from typing import Any

from pymongo import ASCENDING, DESCENDING

from shared.logging import get_logger

log = get_logger(__name__)

ACCOUNTS_COLLECTION = "accounts"
OTP_TOKENS_COLLECTION = "otp-tokens"
RATE_LIMITS_COLLECTION = "rate-limits"


async def ensure_indexes(db: Any) -> None:
    """Create the indexes the gateway relies on. Safe to call repeatedly."""
    accounts = db[ACCOUNTS_COLLECTION]
    await accounts.create_index([("email", ASCENDING)], unique=True)
    # did is omitted (not null) until the identity resolves, so sparse works
    await accounts.create_index([("did", ASCENDING)], unique=True, sparse=True)

    tokens = db[OTP_TOKENS_COLLECTION]
    await tokens.create_index(
        [("email", ASCENDING), ("used", ASCENDING), ("created_at", DESCENDING)]
    )
    await tokens.create_index([("expires_at", ASCENDING)])

    rate_limits = db[RATE_LIMITS_COLLECTION]
    await rate_limits.create_index(
        [("key", ASCENDING), ("action", ASCENDING)], unique=True
    )
    await rate_limits.create_index([("window_start", ASCENDING)])

    log.info("mongo_indexes_ensured")
