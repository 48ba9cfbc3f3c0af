"""
Authorize-flow routes.

GET  /oauth/authorize    — start: email page, or OTP page when login_hint is an email
POST /oauth/send-code    — issue a code for an email, then go to /oauth/verify
POST /oauth/resend-code  — issue a fresh code for the session email
GET  /oauth/verify       — OTP-entry page for the session email
POST /oauth/verify-code  — check the code, hand back a signed PDS callback URL
POST /oauth/link-identity — PDS reports the DID it bound to a verified email

Flow state lives only in the signed ``auth-session`` cookie. Nothing an
unauthenticated caller sees depends on whether an account exists, whether
mail delivery worked or whether a send was rate limited.
"""

from __future__ import annotations

import os
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from pymongo.errors import PyMongoError

from config import AppSettings
from dependencies import (
    get_account_service,
    get_callback_signer,
    get_mailer,
    get_otp_service,
    get_rate_limiter,
    get_session_signer,
    get_settings,
    require_pds_caller,
)
from errors import (
    GENERIC_OTP_FAILURE,
    ConflictError,
    ForbiddenError,
    RateLimitError,
    ValidationError,
)
from infrastructure.email.protocol import Mailer
from schemas.dto.requests.oauth import (
    LinkIdentityRequest,
    SendCodeRequest,
    VerifyCodeRequest,
)
from schemas.dto.responses.common import ErrorResponse
from schemas.dto.responses.oauth import (
    LinkIdentityResponse,
    ResendCodeResponse,
    SendCodeResponse,
    VerifyCodeResponse,
)
from services.account_service import AccountService
from services.otp_service import OtpService
from services.rate_limiter import Limits, RateLimiter
from shared.callback_signer import CallbackClaims, CallbackSigner
from shared.ip_utils import get_client_ip
from shared.logging import get_logger, hash_ip, log_with_context, mask_email_for_log
from shared.session_signer import (
    AuthFlowSession,
    SessionSigner,
    clear_session_cookie,
    read_session,
    set_session_cookie,
)
from shared.validators import (
    is_plausible_otp_code,
    looks_like_email,
    mask_email,
    normalize_email,
    normalize_otp_code,
)

log = get_logger(__name__)

router = APIRouter(
    prefix="/oauth",
    tags=["oauth"],
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
)

LINK_IDENTITY_PATH = "/oauth/link-identity"

TEMPLATES_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "templates"
)
templates = Jinja2Templates(directory=TEMPLATES_DIR)

VERIFY_PATH = "/oauth/verify"
SESSION_EXPIRED_MESSAGE = "Session expired. Please start over."


# ── Helpers ──────────────────────────────────────────────────────────────────


def _csrf_token(request: Request) -> str:
    return getattr(request.state, "csrf_token", "") or request.cookies.get(
        "csrf-token", ""
    )


def _render_email_page(request: Request, status_code: int = 200) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "oauth/email_input.html",
        {"csrf_token": _csrf_token(request), "error": None},
        status_code=status_code,
    )


def _render_otp_page(
    request: Request, email: str, settings: AppSettings, status_code: int = 200
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "oauth/otp_entry.html",
        {
            "csrf_token": _csrf_token(request),
            "masked_email": mask_email(email),
            "code_length": settings.otp.otp_length,
            "error": None,
        },
        status_code=status_code,
    )


def _render_session_expired(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        request, "oauth/session_expired.html", {}, status_code=400
    )


async def _issue_code(
    email: str,
    ip: str,
    limiter: RateLimiter,
    otp_service: OtpService,
    mailer: Mailer,
) -> bool:
    """Rate-limit, generate and mail a code. Returns whether a mail went out.

    The outcome is for logging only; callers respond identically either way.
    """
    gate = await limiter.check_all(
        [
            (email, Limits.SEND_CODE_BURST),
            (email, Limits.SEND_CODE),
            (ip, Limits.SEND_CODE_IP),
        ]
    )
    if not gate.allowed:
        log.warning(
            "otp_send_rate_limited",
            email=mask_email_for_log(email),
            ip=hash_ip(ip),
            retry_after_seconds=gate.retry_after_seconds,
        )
        return False

    try:
        generated = await otp_service.generate_otp(email)
    except PyMongoError as e:
        log.error(
            "otp_generate_failed",
            email=mask_email_for_log(email),
            error=str(e),
            error_type=type(e).__name__,
        )
        return False

    delivered = await mailer.send_otp(email, generated.code)
    log.info(
        "otp_sent",
        email=mask_email_for_log(email),
        ip=hash_ip(ip),
        delivered=delivered,
    )
    return delivered


# ── Routes ───────────────────────────────────────────────────────────────────


@router.get("/authorize", response_class=HTMLResponse)
async def authorize(
    request: Request,
    request_uri: Optional[str] = Query(default=None),
    client_id: Optional[str] = Query(default=None),
    login_hint: Optional[str] = Query(default=None),
    settings: AppSettings = Depends(get_settings),
    signer: SessionSigner = Depends(get_session_signer),
    limiter: RateLimiter = Depends(get_rate_limiter),
    otp_service: OtpService = Depends(get_otp_service),
    mailer: Mailer = Depends(get_mailer),
) -> HTMLResponse:
    if not request_uri:
        raise ValidationError(
            "Missing required parameter: request_uri", field="request_uri"
        )

    ip = get_client_ip(request, settings.trusted_proxies)
    gate = await limiter.check_policy(ip, Limits.AUTHORIZE_IP)
    if not gate.allowed:
        raise RateLimitError(
            "Too many requests. Please try again later.",
            retry_after=gate.retry_after_seconds,
        )

    state = AuthFlowSession(request_uri=request_uri, client_id=client_id or "")

    email = normalize_email(login_hint)
    if looks_like_email(email):
        await _issue_code(email, ip, limiter, otp_service, mailer)
        state = state.with_email(email)
        response = _render_otp_page(request, email, settings)
    else:
        response = _render_email_page(request)

    set_session_cookie(response, signer, state, secure=settings.cookie_secure)
    return response


@router.post("/send-code", response_model=SendCodeResponse)
async def send_code(
    request: Request,
    body: SendCodeRequest,
    settings: AppSettings = Depends(get_settings),
    signer: SessionSigner = Depends(get_session_signer),
    limiter: RateLimiter = Depends(get_rate_limiter),
    otp_service: OtpService = Depends(get_otp_service),
    mailer: Mailer = Depends(get_mailer),
) -> JSONResponse:
    email = normalize_email(body.email)
    if not email:
        raise ValidationError("Email is required", field="email")

    ip = get_client_ip(request, settings.trusted_proxies)
    if looks_like_email(email):
        await _issue_code(email, ip, limiter, otp_service, mailer)
    else:
        log.info("otp_send_skipped", reason="malformed_email", ip=hash_ip(ip))

    existing = read_session(request, signer)
    state = (existing or AuthFlowSession(request_uri="")).with_email(email)

    response = JSONResponse(
        content=SendCodeResponse(redirect=VERIFY_PATH).model_dump()
    )
    set_session_cookie(response, signer, state, secure=settings.cookie_secure)
    return response


@router.post("/resend-code", response_model=ResendCodeResponse)
async def resend_code(
    request: Request,
    settings: AppSettings = Depends(get_settings),
    signer: SessionSigner = Depends(get_session_signer),
    limiter: RateLimiter = Depends(get_rate_limiter),
    otp_service: OtpService = Depends(get_otp_service),
    mailer: Mailer = Depends(get_mailer),
) -> ResendCodeResponse:
    session = read_session(request, signer)
    if session is None or not session.email:
        raise ValidationError(SESSION_EXPIRED_MESSAGE)

    await _issue_code(
        session.email,
        get_client_ip(request, settings.trusted_proxies),
        limiter,
        otp_service,
        mailer,
    )
    return ResendCodeResponse()


@router.get("/verify", response_class=HTMLResponse)
async def verify_page(
    request: Request,
    settings: AppSettings = Depends(get_settings),
    signer: SessionSigner = Depends(get_session_signer),
) -> HTMLResponse:
    session = read_session(request, signer)
    if session is None or not session.email:
        return _render_session_expired(request)
    return _render_otp_page(request, session.email, settings)


@router.post("/verify-code", response_model=VerifyCodeResponse)
async def verify_code(
    request: Request,
    body: VerifyCodeRequest,
    settings: AppSettings = Depends(get_settings),
    signer: SessionSigner = Depends(get_session_signer),
    limiter: RateLimiter = Depends(get_rate_limiter),
    otp_service: OtpService = Depends(get_otp_service),
    accounts: AccountService = Depends(get_account_service),
    callback_signer: CallbackSigner = Depends(get_callback_signer),
) -> JSONResponse:
    code = normalize_otp_code(body.code)
    if not code:
        raise ValidationError("Code is required", field="code")

    session = read_session(request, signer)
    if session is None or not session.request_uri:
        raise ValidationError(SESSION_EXPIRED_MESSAGE)

    email = normalize_email(body.email) or session.email
    if not email:
        raise ValidationError(SESSION_EXPIRED_MESSAGE)

    ip = get_client_ip(request, settings.trusted_proxies)
    failure = VerifyCodeResponse(success=False, error=GENERIC_OTP_FAILURE)
    req_log = log_with_context(log, email=mask_email_for_log(email), ip=hash_ip(ip))

    gate = await limiter.check_all(
        [(email, Limits.VERIFY_CODE), (ip, Limits.VERIFY_CODE_IP)]
    )
    if not gate.allowed:
        req_log.warning(
            "otp_verify_rate_limited",
            retry_after_seconds=gate.retry_after_seconds,
        )
        return JSONResponse(content=failure.model_dump(exclude_none=True))

    if not is_plausible_otp_code(code):
        req_log.info("otp_verify_rejected", reason="malformed_code")
        return JSONResponse(content=failure.model_dump(exclude_none=True))

    result = await otp_service.verify_otp(email, code)
    if not result.valid:
        return JSONResponse(content=failure.model_dump(exclude_none=True))

    new_account = not await accounts.exists(email)
    redirect = callback_signer.build_callback_url(
        settings.callback.pds_url,
        CallbackClaims(
            request_uri=session.request_uri,
            email=email,
            client_id=session.client_id,
            approved=True,
            new_account=new_account,
        ),
    )
    req_log.info("callback_issued", new_account=new_account)

    response = JSONResponse(
        content=VerifyCodeResponse(success=True, redirect=redirect).model_dump(
            exclude_none=True
        )
    )
    clear_session_cookie(response, secure=settings.cookie_secure)
    return response


@router.post(
    "/link-identity",
    response_model=LinkIdentityResponse,
    dependencies=[Depends(require_pds_caller)],
    responses={
        401: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def link_identity(
    body: LinkIdentityRequest,
    accounts: AccountService = Depends(get_account_service),
    callback_signer: CallbackSigner = Depends(get_callback_signer),
) -> LinkIdentityResponse:
    """Record the identity the PDS resolved for a completed sign-in.

    Called by the PDS after it has handled the magic callback. The assertion
    proves the email was verified here; later sign-ins for that email then
    carry ``new_account=false``.
    """
    claims = callback_signer.verify(body.assertion)
    if not claims.approved:
        raise ForbiddenError("Sign-in was not approved")

    try:
        account = await accounts.link_identity(claims.email, body.did, body.handle)
    except ValueError as e:
        log.warning(
            "identity_link_conflict", email=mask_email_for_log(claims.email)
        )
        raise ConflictError("Email is already linked to another identity") from e

    return LinkIdentityResponse(
        email=account.email, did=account.did, handle=account.handle
    )
