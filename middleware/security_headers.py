"""
Security headers middleware.

Every response, HTML page or JSON, gets the same fixed set of headers:

- Strict-Transport-Security: one year, subdomains included
- X-Content-Type-Options: nosniff
- X-Frame-Options: DENY
- Content-Security-Policy: same-origin only; inline styles and data: images
  are allowed for the sign-in pages
"""

from typing import Awaitable, Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

DEFAULT_CSP = "; ".join(
    [
        "default-src 'self'",
        "style-src 'self' 'unsafe-inline'",
        "img-src 'self' data:",
        "frame-ancestors 'none'",
        "form-action 'self'",
        "base-uri 'self'",
    ]
)


DEFAULT_HSTS_MAX_AGE = 31536000


def security_headers(
    hsts_max_age: int = DEFAULT_HSTS_MAX_AGE, csp_policy: Optional[str] = None
) -> dict[str, str]:
    return {
        "Strict-Transport-Security": f"max-age={hsts_max_age}; includeSubDomains",
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Content-Security-Policy": csp_policy or DEFAULT_CSP,
    }


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        hsts_max_age: int = DEFAULT_HSTS_MAX_AGE,
        csp_policy: Optional[str] = None,
    ) -> None:
        super().__init__(app)
        self.headers = security_headers(hsts_max_age, csp_policy)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers[name] = value
        return response
