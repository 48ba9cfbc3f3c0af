"""
Shared fixtures.

The services talk to MongoDB through pymongo's async API. Tests back them
with mongomock wrapped in a thin awaitable adapter, so the same documents can
be inspected synchronously through ``mongo_db``.
"""

from __future__ import annotations

import asyncio
from typing import Any

import mongomock
import pytest

from config import (
    AppSettings,
    CallbackSettings,
    DatabaseSettings,
    EmailSettings,
    LoggingSettings,
    OtpSettings,
    SentrySettings,
    SessionSettings,
)

SESSION_SECRET = "test-session-secret-0123456789abcdef"
CALLBACK_SECRET = "test-callback-secret-0123456789abcdef"
PDS_URL = "https://pds.example.com"


class AsyncCollectionAdapter:
    """Awaitable facade over a mongomock collection.

    Each mongomock call runs to completion without yielding, like a single
    document operation on the server. With ``yield_first`` every call first
    gives up the event loop, so gathered coroutines interleave between
    operations the way concurrent requests do against a real server.
    """

    def __init__(self, collection: Any, yield_first: bool = False) -> None:
        self.sync = collection
        self.yield_first = yield_first

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self.sync, name)
        if not callable(attr):
            return attr

        async def call(*args: Any, **kwargs: Any) -> Any:
            if self.yield_first:
                await asyncio.sleep(0)
            return attr(*args, **kwargs)

        return call


class AsyncDatabaseAdapter:
    def __init__(self, db: Any, yield_first: bool = False) -> None:
        self.sync = db
        self.yield_first = yield_first

    def __getitem__(self, name: str) -> AsyncCollectionAdapter:
        return AsyncCollectionAdapter(self.sync[name], yield_first=self.yield_first)


class FakeMailer:
    """Mailer that records deliveries instead of sending them."""

    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.sent: list[tuple[str, str]] = []

    async def send_otp(self, email: str, code: str) -> bool:
        self.sent.append((email, code))
        return self.succeed

    def last_code_for(self, email: str) -> str:
        for sent_email, code in reversed(self.sent):
            if sent_email == email:
                return code
        raise AssertionError(f"no code sent to {email}")


@pytest.fixture
def mongo_db():
    client = mongomock.MongoClient(tz_aware=True)
    return client["otp-gateway-test"]


@pytest.fixture
def db(mongo_db):
    return AsyncDatabaseAdapter(mongo_db)


@pytest.fixture
def interleaving_db(mongo_db):
    return AsyncDatabaseAdapter(mongo_db, yield_first=True)


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def settings():
    return AppSettings(
        env="test",
        app_url="http://testserver",
        db=DatabaseSettings(mongodb_uri="mongodb://localhost:27017/"),
        session=SessionSettings(session_secret=SESSION_SECRET),
        callback=CallbackSettings(callback_secret=CALLBACK_SECRET, pds_url=PDS_URL),
        otp=OtpSettings(cleanup_interval_seconds=0),
        email=EmailSettings(zepto_api_token=""),
        logging=LoggingSettings(log_level="WARNING", log_format="console"),
        sentry=SentrySettings(sentry_dsn=""),
    )
