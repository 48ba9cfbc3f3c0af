"""
Request DTOs for the authorize flow.

SendCodeRequest      — POST /oauth/send-code
VerifyCodeRequest    — POST /oauth/verify-code
LinkIdentityRequest  — POST /oauth/link-identity (PDS only)
(POST /oauth/resend-code takes no body; the email comes from the session.)

SendCodeRequest and VerifyCodeRequest fields are optional at the schema level
so that blank and missing values get the same 400 from the route handler.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class SendCodeRequest(BaseModel):
    """Request body for POST /oauth/send-code."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    email: str | None = None


class VerifyCodeRequest(BaseModel):
    """Request body for POST /oauth/verify-code.

    ``email`` may be omitted; the session email is used instead.
    """

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    code: str | None = None
    email: str | None = None


class LinkIdentityRequest(BaseModel):
    """Request body the PDS sends once it has created or found the account."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    assertion: str
    did: str = Field(..., min_length=5, pattern=r"^did:[a-z]+:\S+$")
    handle: str | None = None
