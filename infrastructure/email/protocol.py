"""Mailer protocol: the routes depend on this, never on a delivery backend."""

from typing import Protocol


class Mailer(Protocol):
    async def send_otp(self, email: str, code: str) -> bool:
        """Deliver *code* to *email*. Returns False on failure, never raises."""
        ...
