"""
Account lookups for the authorize flow.

Only consulted after a code has been verified, so nothing an unauthenticated
caller can observe depends on whether an account exists.
"""

from __future__ import annotations

from typing import Any, Optional

from pymongo.errors import DuplicateKeyError

from infrastructure.mongo import ACCOUNTS_COLLECTION
from schemas.models.account import AccountDoc
from shared.datetime_utils import utcnow
from shared.logging import get_logger, mask_email_for_log

log = get_logger(__name__)


class AccountService:
    def __init__(self, db: Any) -> None:
        self._collection = db[ACCOUNTS_COLLECTION]

    async def find_by_email(self, email: str) -> Optional[AccountDoc]:
        doc = await self._collection.find_one({"email": email})
        return AccountDoc.from_mongo(doc)

    async def exists(self, email: str) -> bool:
        doc = await self._collection.find_one({"email": email}, {"_id": 1})
        return doc is not None

    async def link_identity(
        self, email: str, did: str, handle: Optional[str] = None
    ) -> AccountDoc:
        """Attach a resolved identity to *email*, creating the account if needed.

        An identity is written once. Linking the same did again is a no-op;
        linking a different did to an already-linked email raises ValueError.
        """
        existing = await self.find_by_email(email)
        if existing is not None and existing.did:
            if existing.did != did:
                raise ValueError("account is already linked to another identity")
            return existing

        if existing is None:
            account = AccountDoc(email=email, did=did, handle=handle, created_at=utcnow())
            try:
                result = await self._collection.insert_one(
                    account.to_mongo(exclude_none=True)
                )
            except DuplicateKeyError:
                # Lost a race with another link for the same email or did
                return await self._relink(email, did, handle)
            account.id = result.inserted_id
            log.info("account_linked", email=mask_email_for_log(email), created=True)
            return account

        return await self._relink(email, did, handle)

    async def _relink(
        self, email: str, did: str, handle: Optional[str]
    ) -> AccountDoc:
        update: dict = {"did": did}
        if handle:
            update["handle"] = handle
        await self._collection.update_one(
            {"email": email, "did": {"$exists": False}}, {"$set": update}
        )
        account = await self.find_by_email(email)
        if account is None or account.did != did:
            raise ValueError("account is already linked to another identity")
        log.info("account_linked", email=mask_email_for_log(email), created=False)
        return account
