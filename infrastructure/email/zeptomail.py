"""ZeptoMail delivery for sign-in codes.

Implements the Mailer protocol over the ZeptoMail HTTP API. HTML bodies are
rendered from Jinja2 templates in templates/emails/; delivery problems are
logged and reported as False so the authorize flow never leaks them.
"""

import os
from typing import Optional

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import EmailSettings
from infrastructure.http_client import HttpClient
from shared.logging import get_logger, mask_email_for_log

log = get_logger(__name__)

ZEPTO_API_URL = "https://api.zeptomail.in/v1.1/email"
_DEFAULT_TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))),
    "templates",
    "emails",
)


def otp_subject(code: str) -> str:
    return f"Your sign-in code: {code}"


def otp_text_body(app_name: str, code: str, ttl_minutes: int) -> str:
    return (
        f"{app_name}\n\n"
        f"Your sign-in code is: {code}\n\n"
        f"This code expires in {ttl_minutes} minutes.\n\n"
        f"If you didn't request this code, you can safely ignore this email."
    )


class ZeptoMailMailer:
    def __init__(
        self,
        settings: EmailSettings,
        http_client: HttpClient,
        ttl_minutes: int = 15,
        template_dir: str = _DEFAULT_TEMPLATE_DIR,
        api_url: str = ZEPTO_API_URL,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._ttl_minutes = ttl_minutes
        self._api_url = api_url
        self._jinja = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def _auth_header(self) -> str:
        token = self._settings.zepto_api_token
        if not token.startswith("Zoho-enczapikey "):
            token = f"Zoho-enczapikey {token}"
        return token

    def _build_payload(
        self, to_email: str, subject: str, html_body: str, text_body: Optional[str]
    ) -> dict:
        payload: dict = {
            "from": {
                "address": self._settings.zepto_from_email,
                "name": self._settings.zepto_from_name,
            },
            "to": [{"email_address": {"address": to_email, "name": to_email}}],
            "subject": subject,
            "htmlbody": html_body,
        }
        if text_body:
            payload["textbody"] = text_body
        return payload

    async def send_otp(self, email: str, code: str) -> bool:
        if not self._settings.zepto_api_token:
            log.error("otp_email_failed", reason="token_not_configured")
            return False

        app_name = self._settings.email_app_name
        subject = otp_subject(code)
        html_body = self._jinja.get_template("otp_code.html").render(
            app_name=app_name,
            code=code,
            subject=subject,
            ttl_minutes=self._ttl_minutes,
        )
        text_body = otp_text_body(app_name, code, self._ttl_minutes)
        payload = self._build_payload(email, subject, html_body, text_body)

        try:
            response = await self._http.post_json(
                self._api_url, payload, headers={"Authorization": self._auth_header()}
            )
        except httpx.HTTPError as e:
            log.error(
                "otp_email_error",
                email=mask_email_for_log(email),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if response.status_code in (200, 201, 202):
            log.info("otp_email_sent", email=mask_email_for_log(email))
            return True
        log.error(
            "otp_email_failed",
            email=mask_email_for_log(email),
            status_code=response.status_code,
            response=response.text[:200],
        )
        return False
