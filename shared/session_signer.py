"""Signed, stateless authorize-flow session carried in the ``auth-session`` cookie.

Wire format::

    <base64url(json(payload))>.<hex(hmac_sha256(secret, encoded))>

The payload is an explicit field list (no pickling) with sorted keys and
compact separators. It embeds ``exp`` so a copied cookie value stops working
after the TTL even if a client ignores the cookie's ``Max-Age``.
"""

from __future__ import annotations

import base64
import binascii
import json
import time
from dataclasses import dataclass
from typing import Optional

from starlette.requests import Request
from starlette.responses import Response

from shared.crypto import constant_time_equals, hmac_sha256_hex
from shared.logging import get_logger

log = get_logger(__name__)

SESSION_COOKIE = "auth-session"
DEFAULT_SESSION_TTL_SECONDS = 600


@dataclass(frozen=True)
class AuthFlowSession:
    request_uri: str
    client_id: str = ""
    email: Optional[str] = None

    def with_email(self, email: str) -> "AuthFlowSession":
        return AuthFlowSession(
            request_uri=self.request_uri, client_id=self.client_id, email=email
        )


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


class SessionSigner:
    """HMAC signer for :class:`AuthFlowSession` values."""

    def __init__(
        self, secret: str, ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS
    ) -> None:
        if not secret:
            raise ValueError("session secret must not be empty")
        self._secret = secret
        self.ttl_seconds = ttl_seconds

    def _mac(self, encoded: str) -> str:
        return hmac_sha256_hex(self._secret, encoded.encode("utf-8"))

    def sign(self, state: AuthFlowSession, now: Optional[int] = None) -> str:
        issued_at = int(time.time()) if now is None else now
        payload = {
            "request_uri": state.request_uri,
            "client_id": state.client_id,
            "email": state.email,
            "exp": issued_at + self.ttl_seconds,
        }
        raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        encoded = _b64url_encode(raw.encode("utf-8"))
        return f"{encoded}.{self._mac(encoded)}"

    def verify(
        self, token: Optional[str], now: Optional[int] = None
    ) -> Optional[AuthFlowSession]:
        """Return the session in *token*, or ``None`` if it is not authentic.

        Never returns a partially populated session: any structural problem,
        MAC mismatch or expiry yields ``None``.
        """
        if not token:
            return None
        encoded, sep, mac = token.rpartition(".")
        if not sep or not encoded or not mac:
            return None
        if not constant_time_equals(mac, self._mac(encoded)):
            return None

        try:
            payload = json.loads(_b64url_decode(encoded).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError):
            return None
        if not isinstance(payload, dict):
            return None

        request_uri = payload.get("request_uri")
        client_id = payload.get("client_id")
        email = payload.get("email")
        exp = payload.get("exp")
        if not isinstance(request_uri, str) or not isinstance(client_id, str):
            return None
        if email is not None and not isinstance(email, str):
            return None
        if not isinstance(exp, int) or isinstance(exp, bool):
            return None

        current = int(time.time()) if now is None else now
        if current >= exp:
            return None

        return AuthFlowSession(request_uri=request_uri, client_id=client_id, email=email)


def set_session_cookie(
    response: Response,
    signer: SessionSigner,
    state: AuthFlowSession,
    *,
    secure: bool,
) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        signer.sign(state),
        max_age=signer.ttl_seconds,
        path="/",
        secure=secure,
        httponly=True,
        samesite="lax",
    )


def clear_session_cookie(response: Response, *, secure: bool) -> None:
    response.delete_cookie(
        SESSION_COOKIE, path="/", secure=secure, httponly=True, samesite="lax"
    )


def read_session(request: Request, signer: SessionSigner) -> Optional[AuthFlowSession]:
    """Return the verified session from the request cookie, if any.

    A cookie that is present but fails verification is logged and treated
    exactly like a missing one.
    """
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        return None
    state = signer.verify(token)
    if state is None:
        log.warning("session_invalid", path=request.url.path)
    return state
