"""
Input normalisers and validators. Pure functions with no framework imports.

Email checks are deliberately loose: anything containing ``@`` is accepted
so that the response for a malformed address looks exactly like the response
for a real one.
"""

from __future__ import annotations

import re
from typing import Optional

_OTP_CODE_RE = re.compile(r"^[0-9]{4,12}$")


def normalize_email(email: Optional[str]) -> str:
    """Trim and lowercase *email*; ``None`` becomes ``""``."""
    return (email or "").strip().lower()


def looks_like_email(value: Optional[str]) -> bool:
    """Return True if *value* has a non-empty local part and an ``@``."""
    value = normalize_email(value)
    return "@" in value and not value.startswith("@")


def mask_email(email: str) -> str:
    """Mask an email for display on the OTP-entry page.

    ``alice@example.com`` → ``a***@example.com``. Local parts of a single
    character (or no ``@``) are returned unchanged, matching what the user
    typed.
    """
    at = email.find("@")
    if at <= 1:
        return email
    return f"{email[0]}***{email[at:]}"


def normalize_otp_code(code: Optional[str]) -> str:
    """Strip whitespace and inner spaces/dashes users paste from email clients."""
    return re.sub(r"[\s-]", "", code or "")


def is_plausible_otp_code(code: str) -> bool:
    """Return True if *code* is all digits with a sane length."""
    return bool(_OTP_CODE_RE.match(code))
