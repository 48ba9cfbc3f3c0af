"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pymongo.asynchronous.mongo_client import AsyncMongoClient

from config import AppSettings
from errors import register_error_handlers
from infrastructure.email.log_mailer import LogMailer
from infrastructure.email.protocol import Mailer
from infrastructure.email.zeptomail import ZeptoMailMailer
from infrastructure.http_client import HttpClient
from infrastructure.mongo import ensure_indexes
from infrastructure.scheduler import CleanupScheduler
from middleware.csrf import CSRFMiddleware
from middleware.security_headers import SecurityHeadersMiddleware
from routes.health_routes import router as health_router
from routes.oauth_routes import LINK_IDENTITY_PATH
from routes.oauth_routes import router as oauth_router
from services.account_service import AccountService
from services.otp_service import OtpService
from services.rate_limiter import RateLimiter
from shared.callback_signer import CallbackSigner
from shared.logging import get_logger, setup_logging
from shared.session_signer import SessionSigner

log = get_logger(__name__)

STATIC_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "static")


def build_mailer(settings: AppSettings, http_client: HttpClient) -> Mailer:
    """ZeptoMail when an API token is configured, the console mailer otherwise."""
    if settings.email.zepto_api_token:
        return ZeptoMailMailer(
            settings.email,
            http_client,
            ttl_minutes=max(settings.otp.otp_ttl_seconds // 60, 1),
        )
    if settings.is_production:
        log.warning("mailer_not_configured", env=settings.env)
    return LogMailer(reveal_code=not settings.is_production)


def init_services(app: FastAPI, settings: AppSettings, db: Any, mailer: Mailer) -> None:
    """Build the request-scoped collaborators and store them on app.state."""
    app.state.settings = settings
    app.state.db = db
    app.state.mailer = mailer
    app.state.otp_service = OtpService(
        db,
        code_length=settings.otp.otp_length,
        ttl_seconds=settings.otp.otp_ttl_seconds,
        max_attempts=settings.otp.otp_max_attempts,
    )
    app.state.rate_limiter = RateLimiter(db)
    app.state.account_service = AccountService(db)
    app.state.session_signer = SessionSigner(
        settings.session.session_secret,
        ttl_seconds=settings.session.session_ttl_seconds,
    )
    app.state.callback_signer = CallbackSigner(
        settings.callback.callback_secret,
        issuer=settings.callback.gateway_issuer,
        audience=settings.callback.pds_url,
        ttl_seconds=settings.callback.callback_ttl_seconds,
    )


def create_app(
    settings: Optional[AppSettings] = None,
    *,
    db: Any = None,
    mailer: Optional[Mailer] = None,
) -> FastAPI:
    """Create and return a fully configured FastAPI application.

    ``db`` and ``mailer`` replace the MongoDB database and the mail backend
    that the lifespan would otherwise build from settings.
    """
    if settings is None:
        settings = AppSettings()

    setup_logging(settings.logging.log_level, settings.logging.log_format)

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            environment=settings.env,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            profiles_sample_rate=settings.sentry.sentry_profile_sample_rate,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: Optional[AsyncMongoClient] = None
        database = db
        if database is None:
            mongo_client = AsyncMongoClient(settings.db.mongodb_uri, tz_aware=True)
            app.state.mongo_client = mongo_client
            database = mongo_client[settings.db.db_name]

        http_client = HttpClient(timeout=10.0)
        app.state.http_client = http_client

        init_services(app, settings, database, mailer or build_mailer(settings, http_client))
        await ensure_indexes(database)

        scheduler: Optional[CleanupScheduler] = None
        if settings.otp.cleanup_interval_seconds > 0:
            scheduler = CleanupScheduler(
                app.state.otp_service,
                app.state.rate_limiter,
                interval_seconds=settings.otp.cleanup_interval_seconds,
                timeout_seconds=settings.otp.cleanup_timeout_seconds,
                otp_retention_seconds=settings.otp.otp_retention_seconds,
                rate_limit_retention_seconds=settings.otp.rate_limit_retention_seconds,
            )
            scheduler.start()
        app.state.scheduler = scheduler

        log.info("app_started", env=settings.env, app_name=settings.app_name)

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        if scheduler is not None:
            await scheduler.stop()
        await http_client.aclose()
        if mongo_client is not None:
            await mongo_client.close()
        log.info("app_stopped")

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    # Last added runs first: security headers wrap every response, CSRF
    # rejections included.
    app.add_middleware(
        CSRFMiddleware,
        secure=settings.cookie_secure,
        max_age=settings.session.csrf_ttl_seconds,
        trusted_proxies=settings.trusted_proxies,
        exempt_paths=(LINK_IDENTITY_PATH,),
    )
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["Content-Type", "x-csrf-token"],
        )
    app.add_middleware(SecurityHeadersMiddleware)

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(oauth_router)
    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    return app
