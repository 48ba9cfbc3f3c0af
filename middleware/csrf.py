"""
Double-submit cookie CSRF protection.

Safe methods (GET, HEAD, OPTIONS) always receive a fresh random token in the
``csrf-token`` cookie, readable by page scripts. The same token is placed on
``request.state.csrf_token`` for templates.

Every other method must echo the cookie value in the ``x-csrf-token`` header.
A missing cookie, a missing header, or any mismatch is rejected with 403
before the route runs, whatever the request body contains. Paths listed in
``exempt_paths`` are never called by browsers and skip the check.
"""

from typing import Awaitable, Callable, Sequence

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from errors import CsrfError
from shared.crypto import constant_time_equals
from shared.generators import generate_csrf_token
from shared.ip_utils import get_client_ip
from shared.logging import get_logger, hash_ip

log = get_logger(__name__)

CSRF_COOKIE = "csrf-token"
CSRF_HEADER = "x-csrf-token"
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def check_csrf_tokens(cookie_token: str | None, header_token: str | None) -> CsrfError | None:
    """Return the rejection for a cookie/header pair, or None if they match."""
    if not cookie_token or not header_token:
        return CsrfError("CSRF token missing")
    if not constant_time_equals(cookie_token, header_token):
        return CsrfError("CSRF token invalid")
    return None


class CSRFMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        secure: bool = False,
        max_age: int = 600,
        trusted_proxies: Sequence[str] = (),
        exempt_paths: Sequence[str] = (),
    ) -> None:
        super().__init__(app)
        self.secure = secure
        self.max_age = max_age
        self.trusted_proxies = tuple(trusted_proxies)
        self.exempt_paths = frozenset(exempt_paths)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.method in SAFE_METHODS:
            token = generate_csrf_token()
            request.state.csrf_token = token
            response = await call_next(request)
            response.set_cookie(
                CSRF_COOKIE,
                token,
                max_age=self.max_age,
                path="/",
                secure=self.secure,
                httponly=False,
                samesite="lax",
            )
            return response

        # Server-to-server endpoints authenticate with a bearer credential
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        error = check_csrf_tokens(
            request.cookies.get(CSRF_COOKIE), request.headers.get(CSRF_HEADER)
        )
        if error is not None:
            log.warning(
                "csrf_rejected",
                path=request.url.path,
                method=request.method,
                reason=error.message,
                ip=hash_ip(get_client_ip(request, self.trusted_proxies)),
            )
            return JSONResponse(status_code=error.status_code, content=error.to_dict())

        return await call_next(request)
