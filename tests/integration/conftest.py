"""
Integration test configuration.

Builds the real application through create_app() with the MongoDB database
and the mailer swapped for in-memory fakes; no network connections are made.
"""

import pytest
from fastapi.testclient import TestClient

from app import create_app

CSRF_COOKIE = "csrf-token"


@pytest.fixture
def app(settings, db, mailer):
    return create_app(settings, db=db, mailer=mailer)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def csrf(client):
    """Return a callable producing a header that matches the current CSRF cookie.

    Every safe request rotates the cookie, so call it right before each POST.
    """

    def headers(refresh: bool = False) -> dict:
        if refresh or client.cookies.get(CSRF_COOKIE) is None:
            client.get("/health")
        return {"x-csrf-token": client.cookies.get(CSRF_COOKIE)}

    return headers
