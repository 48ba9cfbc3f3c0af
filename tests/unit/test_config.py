"""Unit tests for AppSettings and sub-configs."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from config import (
    AppSettings,
    CallbackSettings,
    DatabaseSettings,
    EmailSettings,
    OtpSettings,
    SessionSettings,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def with_required(monkeypatch):
    """Set the required variables so AppSettings can be instantiated."""
    monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
    monkeypatch.setenv("SESSION_SECRET", "s" * 32)
    monkeypatch.setenv("CALLBACK_SECRET", "c" * 32)
    for var in ("ENV", "COOKIE_SECURE", "CORS_ORIGINS", "PDS_URL"):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


# ---------------------------------------------------------------------------
# DatabaseSettings
# ---------------------------------------------------------------------------


class TestDatabaseSettings:
    def test_default_db_name(self, monkeypatch):
        monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
        monkeypatch.delenv("DB_NAME", raising=False)
        assert DatabaseSettings().db_name == "otp-gateway"

    def test_missing_mongodb_uri_raises(self, monkeypatch):
        monkeypatch.delenv("MONGODB_URI", raising=False)
        with pytest.raises(PydanticValidationError):
            DatabaseSettings()


# ---------------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------------


class TestSecrets:
    def test_session_secret_required(self, monkeypatch):
        monkeypatch.delenv("SESSION_SECRET", raising=False)
        with pytest.raises(PydanticValidationError):
            SessionSettings()

    @pytest.mark.parametrize("value", ["", "   "], ids=["empty", "blank"])
    def test_session_secret_not_blank(self, monkeypatch, value):
        monkeypatch.setenv("SESSION_SECRET", value)
        with pytest.raises(PydanticValidationError):
            SessionSettings()

    def test_callback_secret_required(self, monkeypatch):
        monkeypatch.delenv("CALLBACK_SECRET", raising=False)
        with pytest.raises(PydanticValidationError):
            CallbackSettings()


class TestCallbackSettings:
    def test_pds_url_trailing_slash_stripped(self, monkeypatch):
        monkeypatch.setenv("CALLBACK_SECRET", "c" * 32)
        monkeypatch.setenv("PDS_URL", "https://pds.example.com/")
        assert CallbackSettings().pds_url == "https://pds.example.com"

    def test_defaults(self, monkeypatch):
        monkeypatch.setenv("CALLBACK_SECRET", "c" * 32)
        monkeypatch.delenv("CALLBACK_TTL_SECONDS", raising=False)
        assert CallbackSettings().callback_ttl_seconds == 300


class TestOtpSettings:
    def test_defaults(self, monkeypatch):
        for var in ("OTP_LENGTH", "OTP_TTL_SECONDS", "OTP_MAX_ATTEMPTS"):
            monkeypatch.delenv(var, raising=False)
        s = OtpSettings()
        assert s.otp_length == 8
        assert s.otp_ttl_seconds == 900
        assert s.otp_max_attempts == 5
        assert s.cleanup_interval_seconds == 300

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("OTP_MAX_ATTEMPTS", "3")
        assert OtpSettings().otp_max_attempts == 3


class TestEmailSettings:
    def test_token_optional(self, monkeypatch):
        monkeypatch.delenv("ZEPTO_API_TOKEN", raising=False)
        assert EmailSettings().zepto_api_token == ""


# ---------------------------------------------------------------------------
# AppSettings
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "env, expected",
    [("production", True), ("development", False)],
    ids=["production", "development"],
)
def test_is_production(with_required, env, expected):
    with_required.setenv("ENV", env)
    s = AppSettings()
    assert s.is_production is expected
    assert s.cookie_secure is expected


class TestAppSettings:
    def test_sub_configs_populated(self, with_required):
        s = AppSettings()
        for attr in ("db", "session", "callback", "otp", "email", "logging", "sentry"):
            assert getattr(s, attr) is not None, f"sub-config '{attr}' is None"

    def test_cors_disabled_by_default(self, with_required):
        assert AppSettings().cors_origins == []

    def test_no_trusted_proxies_by_default(self, with_required):
        assert AppSettings().trusted_proxies == []

    def test_trusted_proxies_from_env(self, with_required):
        with_required.setenv("TRUSTED_PROXIES", '["10.0.0.0/8", "127.0.0.1"]')
        assert AppSettings().trusted_proxies == ["10.0.0.0/8", "127.0.0.1"]

    def test_cookie_secure_override(self, with_required):
        with_required.setenv("ENV", "development")
        with_required.setenv("COOKIE_SECURE", "true")
        assert AppSettings().cookie_secure is True

    def test_missing_secret_fails_fast(self, with_required):
        with_required.delenv("SESSION_SECRET")
        with pytest.raises(PydanticValidationError):
            AppSettings()
