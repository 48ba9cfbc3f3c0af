"""
Unit test configuration.

Settings tests must only see what they set with monkeypatch.setenv(): the
project's .env file is never read and gateway variables inherited from the
shell are removed.
"""

import pytest

GATEWAY_ENV_VARS = (
    "MONGODB_URI",
    "DB_NAME",
    "SESSION_SECRET",
    "CALLBACK_SECRET",
    "PDS_URL",
    "ENV",
    "COOKIE_SECURE",
    "CORS_ORIGINS",
    "TRUSTED_PROXIES",
    "ZEPTO_API_TOKEN",
    "SENTRY_DSN",
)


@pytest.fixture(autouse=True)
def isolated_settings_env(monkeypatch):
    import pydantic_settings.sources.providers.dotenv as dotenv_source

    monkeypatch.setattr(dotenv_source, "dotenv_values", lambda *a, **kw: {})
    for var in GATEWAY_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
