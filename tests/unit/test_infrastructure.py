"""Unit tests for the infrastructure layer (HTTP client, mailers, scheduler, indexes)."""

import asyncio
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from config import EmailSettings
from infrastructure.email.log_mailer import LogMailer
from infrastructure.email.zeptomail import ZEPTO_API_URL, ZeptoMailMailer, otp_subject
from infrastructure.http_client import DEFAULT_USER_AGENT, HttpClient
from infrastructure.mongo import (
    ACCOUNTS_COLLECTION,
    OTP_TOKENS_COLLECTION,
    RATE_LIMITS_COLLECTION,
    ensure_indexes,
)
from infrastructure.scheduler import CleanupResult, CleanupScheduler


# ── Helpers ───────────────────────────────────────────────────────────────────


def _email_settings(token: str = "secret-token") -> EmailSettings:
    return EmailSettings(
        zepto_api_token=token,
        zepto_from_email="noreply@example.com",
        zepto_from_name="Sign in",
        email_app_name="Certified",
    )


def _http(handler) -> HttpClient:
    return HttpClient(transport=httpx.MockTransport(handler))


# ── HttpClient ────────────────────────────────────────────────────────────────


class TestHttpClient:
    async def test_post_json_sends_payload_and_headers(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            seen["ua"] = request.headers["User-Agent"]
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(202)

        async with _http(handler) as client:
            resp = await client.post_json(
                "https://api.example/x", {"a": 1}, headers={"Authorization": "t"}
            )

        assert resp.status_code == 202
        assert seen == {"body": {"a": 1}, "ua": DEFAULT_USER_AGENT, "auth": "t"}

    async def test_aclose_is_idempotent(self):
        client = HttpClient()
        await client.aclose()
        await client.aclose()
        assert client.is_closed


# ── ZeptoMailMailer ───────────────────────────────────────────────────────────


class TestZeptoMailMailer:
    async def test_sends_rendered_otp(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["payload"] = json.loads(request.content)
            return httpx.Response(201, json={"data": []})

        mailer = ZeptoMailMailer(_email_settings(), _http(handler), ttl_minutes=15)
        assert await mailer.send_otp("alice@example.com", "12345678") is True

        payload = captured["payload"]
        assert captured["url"] == ZEPTO_API_URL
        assert captured["auth"] == "Zoho-enczapikey secret-token"
        assert payload["subject"] == otp_subject("12345678")
        assert payload["to"][0]["email_address"]["address"] == "alice@example.com"
        assert "12345678" in payload["htmlbody"]
        assert "15 minutes" in payload["htmlbody"]
        assert "12345678" in payload["textbody"]
        assert "Certified" in payload["textbody"]

    async def test_prefixed_token_not_doubled(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["auth"] = request.headers["Authorization"]
            return httpx.Response(200)

        settings = _email_settings("Zoho-enczapikey abc")
        await ZeptoMailMailer(settings, _http(handler)).send_otp("a@b.c", "1")
        assert captured["auth"] == "Zoho-enczapikey abc"

    async def test_non_2xx_returns_false(self):
        mailer = ZeptoMailMailer(
            _email_settings(), _http(lambda r: httpx.Response(500, text="down"))
        )
        assert await mailer.send_otp("alice@example.com", "12345678") is False

    async def test_transport_error_returns_false(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        mailer = ZeptoMailMailer(_email_settings(), _http(handler))
        assert await mailer.send_otp("alice@example.com", "12345678") is False

    async def test_missing_token_returns_false_without_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        mailer = ZeptoMailMailer(_email_settings(token=""), _http(handler))
        assert await mailer.send_otp("alice@example.com", "12345678") is False


class TestLogMailer:
    async def test_always_succeeds(self, capsys):
        assert await LogMailer().send_otp("alice@example.com", "12345678") is True
        assert "12345678" not in capsys.readouterr().out

    async def test_reveals_code_when_asked(self, capsys):
        await LogMailer(reveal_code=True).send_otp("alice@example.com", "12345678")
        assert "12345678" in capsys.readouterr().out


# ── CleanupScheduler ──────────────────────────────────────────────────────────


def _services(otp_deleted=2, limits_deleted=3):
    otp = AsyncMock()
    otp.cleanup_expired = AsyncMock(return_value=otp_deleted)
    limiter = AsyncMock()
    limiter.cleanup_old = AsyncMock(return_value=limits_deleted)
    return otp, limiter


class TestCleanupScheduler:
    async def test_run_once_sweeps_both_stores(self):
        otp, limiter = _services()
        scheduler = CleanupScheduler(
            otp, limiter, otp_retention_seconds=10, rate_limit_retention_seconds=20
        )

        result = await scheduler.run_once()

        assert result == CleanupResult(otp_tokens_deleted=2, rate_limits_deleted=3)
        otp.cleanup_expired.assert_awaited_once_with(10)
        limiter.cleanup_old.assert_awaited_once_with(20)

    async def test_start_and_stop(self):
        otp, limiter = _services()
        scheduler = CleanupScheduler(otp, limiter, interval_seconds=0.01)

        scheduler.start()
        assert scheduler.running
        for _ in range(100):
            if otp.cleanup_expired.await_count >= 2:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert not scheduler.running
        assert otp.cleanup_expired.await_count >= 2

    async def test_failures_do_not_stop_the_loop(self):
        otp, limiter = _services()
        otp.cleanup_expired.side_effect = [RuntimeError("db down"), 0, 0, 0, 0]
        scheduler = CleanupScheduler(otp, limiter, interval_seconds=0.01)

        scheduler.start()
        for _ in range(100):
            if otp.cleanup_expired.await_count >= 2:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert otp.cleanup_expired.await_count >= 2

    async def test_slow_sweep_times_out(self):
        otp, limiter = _services()

        async def slow(*args):
            await asyncio.sleep(10)

        otp.cleanup_expired.side_effect = slow
        scheduler = CleanupScheduler(
            otp, limiter, interval_seconds=10, timeout_seconds=0.05
        )

        scheduler.start()
        await asyncio.sleep(0.2)
        await scheduler.stop()

        limiter.cleanup_old.assert_not_awaited()

    async def test_stop_without_start_is_noop(self):
        otp, limiter = _services()
        await CleanupScheduler(otp, limiter).stop()


# ── ensure_indexes ────────────────────────────────────────────────────────────


class TestEnsureIndexes:
    async def test_creates_unique_indexes(self, db, mongo_db):
        await ensure_indexes(db)
        await ensure_indexes(db)

        accounts = mongo_db[ACCOUNTS_COLLECTION].index_information()
        limits = mongo_db[RATE_LIMITS_COLLECTION].index_information()
        tokens = mongo_db[OTP_TOKENS_COLLECTION].index_information()

        assert accounts["email_1"]["unique"] is True
        assert accounts["did_1"]["sparse"] is True
        assert limits["key_1_action_1"]["unique"] is True
        assert "email_1_used_1_created_at_-1" in tokens
