"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to consistent JSON responses.

Security-relevant failures fail closed. Errors that could reveal whether an
email has an account (OTP failures, mail delivery) are collapsed by the route
handlers into one generic response before they reach these handlers.

MongoDB failures are turned into InternalError inside the middleware stack so
the 500 still carries the security headers. Anything else ends up in the
outermost handler, which sets those headers itself.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from middleware.security_headers import security_headers
from shared.logging import get_logger

log = get_logger(__name__)


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {"error": self.message, "code": self.error_code}
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload

    def headers(self) -> Optional[dict[str, str]]:
        return None


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"


class SignatureError(AppError):
    """A signed session token or callback assertion failed verification."""

    status_code = 401
    error_code = "invalid_signature"


class CsrfError(AppError):
    status_code = 403
    error_code = "csrf_error"


class RateLimitError(AppError):
    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(self, message: str, *, retry_after: Optional[int] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.retry_after is not None:
            payload["retry_after_seconds"] = self.retry_after
        return payload

    def headers(self) -> Optional[dict[str, str]]:
        if self.retry_after is None:
            return None
        return {"Retry-After": str(self.retry_after)}


class OtpFailureReason(str, Enum):
    NO_ACTIVE_TOKEN = "no_active_token"
    EXPIRED = "expired"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    MISMATCH = "mismatch"


GENERIC_OTP_FAILURE = (
    "Invalid or expired code. Please try again or request a new one."
)


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class ConflictError(AppError):
    status_code = 409
    error_code = "conflict"


class InternalError(AppError):
    status_code = 500
    error_code = "internal_error"


STORE_UNAVAILABLE = "Service temporarily unavailable. Please try again."


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            log.error(
                "app_error",
                path=request.url.path,
                error_code=exc.error_code,
                error=exc.message,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=exc.headers(),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        field = None
        if errors:
            loc = errors[0].get("loc") or ()
            field = str(loc[-1]) if loc else None
        err = ValidationError("Invalid request", field=field)
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.exception_handler(PyMongoError)
    async def store_error_handler(request: Request, exc: PyMongoError) -> JSONResponse:
        sentry_sdk.capture_exception(exc)
        log.error(
            "store_error",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        err = InternalError(STORE_UNAVAILABLE)
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Runs in ServerErrorMiddleware, outside SecurityHeadersMiddleware.
        # Sentry captures the exception after this handler returns.
        log.error(
            "unhandled_exception",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content={"error": "An internal server error occurred.", "code": "internal_error"},
            headers=security_headers(),
        )
