"""
Rate-limit window document model.

Maps to the `rate-limits` MongoDB collection. One document per
(key, action) pair, enforced by a unique index.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from schemas.models.base import MongoBaseModel


class RateLimitDoc(MongoBaseModel):
    """Document model for the `rate-limits` collection."""

    key: str
    action: str
    count: int = Field(default=1, ge=0)
    window_start: datetime
