"""Development mailer: writes the delivery to the console instead of sending it."""

from shared.logging import get_logger, mask_email_for_log

log = get_logger(__name__)


class LogMailer:
    def __init__(self, reveal_code: bool = False) -> None:
        # Never True in production
        self._reveal_code = reveal_code

    async def send_otp(self, email: str, code: str) -> bool:
        if self._reveal_code:
            print(f"[dev mailer] sign-in code for {email}: {code}", flush=True)
        log.info("otp_email_logged", email=mask_email_for_log(email))
        return True
