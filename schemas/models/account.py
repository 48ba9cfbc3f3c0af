"""
Account document model.

Maps to the `accounts` MongoDB collection.

An account is created lazily the first time a verified email is linked to a
resolved identity. did/handle stay None until the upstream identity system
returns them and are never changed afterwards.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from schemas.models.base import MongoBaseModel


class AccountDoc(MongoBaseModel):
    """Document model for the `accounts` collection."""

    email: str
    did: Optional[str] = None
    handle: Optional[str] = None
    created_at: Optional[datetime] = None
