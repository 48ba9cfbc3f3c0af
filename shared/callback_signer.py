"""Short-lived signed assertion handed to the PDS after a successful OTP check.

The assertion is an HS256 JWT. Each call to :meth:`CallbackSigner.sign` mints
a fresh ``jti``, so two completions never share an assertion; replay
protection beyond the ``exp`` window is the PDS's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

import jwt

from errors import SignatureError
from shared.generators import generate_secure_token

CALLBACK_PATH = "/oauth/magic-callback"
_ALGORITHM = "HS256"


@dataclass(frozen=True)
class CallbackClaims:
    request_uri: str
    email: str
    client_id: str = ""
    approved: bool = True
    new_account: bool = False
    # Set by sign(); ignored on input
    issued_at: Optional[int] = None
    expires_at: Optional[int] = None
    nonce: Optional[str] = None


class CallbackSigner:
    def __init__(
        self,
        secret: str,
        *,
        issuer: str,
        audience: str,
        ttl_seconds: int = 300,
    ) -> None:
        if not secret:
            raise ValueError("callback secret must not be empty")
        self._secret = secret
        self.issuer = issuer
        self.audience = audience
        self.ttl_seconds = ttl_seconds

    def sign(self, claims: CallbackClaims, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        payload = {
            "iss": self.issuer,
            "aud": self.audience,
            "sub": claims.email,
            "request_uri": claims.request_uri,
            "client_id": claims.client_id,
            "approved": claims.approved,
            "new_account": claims.new_account,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self.ttl_seconds)).timestamp()),
            "jti": generate_secure_token(16),
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def build_callback_url(self, pds_url: str, claims: CallbackClaims) -> str:
        assertion = self.sign(claims)
        query = urlencode({"assertion": assertion})
        return f"{pds_url.rstrip('/')}{CALLBACK_PATH}?{query}"

    def verify(self, assertion: str) -> CallbackClaims:
        """Decode *assertion*, raising SignatureError if it is not acceptable."""
        try:
            payload = jwt.decode(
                assertion,
                self._secret,
                algorithms=[_ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                options={"require": ["exp", "iat", "sub", "jti"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise SignatureError("Callback expired") from e
        except jwt.InvalidTokenError as e:
            raise SignatureError("Invalid callback signature") from e

        request_uri = payload.get("request_uri")
        if not isinstance(request_uri, str) or not request_uri:
            raise SignatureError("Invalid callback signature")

        return CallbackClaims(
            request_uri=request_uri,
            email=payload["sub"],
            client_id=payload.get("client_id", ""),
            approved=bool(payload.get("approved", False)),
            new_account=bool(payload.get("new_account", False)),
            issued_at=payload["iat"],
            expires_at=payload["exp"],
            nonce=payload["jti"],
        )
