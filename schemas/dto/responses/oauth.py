"""
Response DTOs for the authorize flow.

SendCodeResponse    — POST /oauth/send-code   (always 200)
ResendCodeResponse  — POST /oauth/resend-code (always 200 with a session)
VerifyCodeResponse  — POST /oauth/verify-code
LinkIdentityResponse — POST /oauth/link-identity
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class SendCodeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    redirect: str = "/oauth/verify"


class ResendCodeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = "Code resent!"


class VerifyCodeResponse(BaseModel):
    """Success carries the callback redirect; failure carries one generic error."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    redirect: Optional[str] = None
    error: Optional[str] = None


class LinkIdentityResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    did: str
    handle: Optional[str] = None
