"""
Periodic cleanup of expired OTP tokens and stale rate-limit windows.

CleanupScheduler owns one asyncio task, started and stopped from the app
lifespan. A failing or slow sweep is logged and the loop carries on; nothing
here ever reaches a request handler.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from services.otp_service import OtpService
from services.rate_limiter import RateLimiter
from shared.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class CleanupResult:
    otp_tokens_deleted: int
    rate_limits_deleted: int


class CleanupScheduler:
    def __init__(
        self,
        otp_service: OtpService,
        rate_limiter: RateLimiter,
        *,
        interval_seconds: float = 300,
        timeout_seconds: float = 30.0,
        otp_retention_seconds: int = 3600,
        rate_limit_retention_seconds: int = 3600,
    ) -> None:
        self._otp_service = otp_service
        self._rate_limiter = rate_limiter
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self.otp_retention_seconds = otp_retention_seconds
        self.rate_limit_retention_seconds = rate_limit_retention_seconds
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="otp-gateway-cleanup")
        log.info("cleanup_scheduler_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        try:
            await asyncio.wait_for(self._task, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        log.info("cleanup_scheduler_stopped")

    async def run_once(self) -> CleanupResult:
        """Run a single sweep and return how many rows each store dropped."""
        otp_deleted = await self._otp_service.cleanup_expired(
            self.otp_retention_seconds
        )
        limits_deleted = await self._rate_limiter.cleanup_old(
            self.rate_limit_retention_seconds
        )
        log.info(
            "cleanup_completed",
            otps_deleted=otp_deleted,
            rate_limits_deleted=limits_deleted,
        )
        return CleanupResult(otp_deleted, limits_deleted)

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self.run_once(), timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                log.warning("cleanup_timed_out", timeout_seconds=self.timeout_seconds)
            except Exception as e:
                log.error(
                    "cleanup_failed", error=str(e), error_type=type(e).__name__
                )

            try:
                await asyncio.wait_for(
                    self._stopping.wait(), timeout=self.interval_seconds
                )
            except asyncio.TimeoutError:
                continue
