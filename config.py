"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

Secrets (SESSION_SECRET, CALLBACK_SECRET) have no defaults: the gateway
refuses to start without them rather than signing cookies or callback
assertions with a guessable key.
"""

from __future__ import annotations

from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "otp-gateway"


class SessionSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    session_secret: str
    session_ttl_seconds: int = 600
    csrf_ttl_seconds: int = 600

    # None → follow AppSettings.is_production
    cookie_secure: Optional[bool] = None

    @field_validator("session_secret")
    @classmethod
    def _secret_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("SESSION_SECRET cannot be empty")
        return v


class CallbackSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    callback_secret: str
    pds_url: str = "http://localhost:2583"
    callback_ttl_seconds: int = 300
    gateway_issuer: str = "otp-gateway"

    @field_validator("callback_secret")
    @classmethod
    def _secret_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("CALLBACK_SECRET cannot be empty")
        return v

    @field_validator("pds_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return (v or "").strip().rstrip("/")


class OtpSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    otp_length: int = 8
    otp_ttl_seconds: int = 900
    otp_max_attempts: int = 5

    # How long dead rows are kept before the cleanup sweep removes them
    otp_retention_seconds: int = 3600
    rate_limit_retention_seconds: int = 3600

    cleanup_interval_seconds: int = 300
    cleanup_timeout_seconds: float = 30.0


class EmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    zepto_api_token: str = ""
    zepto_from_email: str = "noreply@localhost"
    zepto_from_name: str = "Sign in"
    email_app_name: str = "Certified"


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1
    sentry_profile_sample_rate: float = 0.05


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    env: str = "development"
    app_url: str = "http://localhost:3001"
    app_name: str = "otp-gateway"

    # Empty disables CORS; never "*" with credentialed cookies
    cors_origins: list[str] = []

    # Peers (IPs, CIDRs or "*") whose CF-Connecting-IP / X-Forwarded-For headers
    # are believed. Empty: the socket peer is the client.
    trusted_proxies: list[str] = []

    # OpenAPI docs URL (None disables the docs UI in production)
    docs_url: Optional[str] = None

    # Sub-configs (composed via model_validator below)
    db: Optional[DatabaseSettings] = None
    session: Optional[SessionSettings] = None
    callback: Optional[CallbackSettings] = None
    otp: Optional[OtpSettings] = None
    email: Optional[EmailSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        if self.db is None:
            self.db = DatabaseSettings()
        if self.session is None:
            self.session = SessionSettings()
        if self.callback is None:
            self.callback = CallbackSettings()
        if self.otp is None:
            self.otp = OtpSettings()
        if self.email is None:
            self.email = EmailSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()
        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def cookie_secure(self) -> bool:
        if self.session.cookie_secure is not None:
            return self.session.cookie_secure
        return self.is_production
