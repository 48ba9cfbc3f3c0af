"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain functions used with
FastAPI's Depends() system. Everything they return is built once in the app
lifespan and stored on app.state; tests swap them through
app.dependency_overrides or by assigning app.state directly.
"""

from __future__ import annotations

from fastapi import Depends, Request

from config import AppSettings
from errors import SignatureError
from infrastructure.email.protocol import Mailer
from services.account_service import AccountService
from services.otp_service import OtpService
from services.rate_limiter import RateLimiter
from shared.callback_signer import CallbackSigner
from shared.crypto import constant_time_equals
from shared.session_signer import SessionSigner


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


def get_otp_service(request: Request) -> OtpService:
    return request.app.state.otp_service


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_account_service(request: Request) -> AccountService:
    return request.app.state.account_service


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_session_signer(request: Request) -> SessionSigner:
    return request.app.state.session_signer


def get_callback_signer(request: Request) -> CallbackSigner:
    return request.app.state.callback_signer


def require_pds_caller(
    request: Request, settings: AppSettings = Depends(get_settings)
) -> None:
    """Reject callers that do not present the shared callback secret.

    The PDS sends ``Authorization: Bearer <CALLBACK_SECRET>``. Browsers see
    callback assertions but never the secret.
    """
    auth_header = request.headers.get("Authorization", "")
    token = None
    if auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ", 1)[1].strip()
    if not token or not constant_time_equals(
        token, settings.callback.callback_secret
    ):
        raise SignatureError("Missing or invalid PDS credential")
