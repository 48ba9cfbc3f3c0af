"""Async HTTP client shared by outbound integrations (mail delivery)."""

from typing import Any, Optional

import httpx

DEFAULT_USER_AGENT = "otp-gateway/1.0"


class HttpClient:
    """Wraps httpx.AsyncClient with a per-integration timeout and default headers.

    The underlying client is created once and reused so connections are
    pooled across requests; close it from the app lifespan.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        default_headers = {"User-Agent": DEFAULT_USER_AGENT}
        if headers:
            default_headers.update(headers)
        self._client = httpx.AsyncClient(
            timeout=timeout, headers=default_headers, transport=transport
        )

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def post_json(
        self,
        url: str,
        payload: dict,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        return await self._client.post(url, json=payload, headers=headers)

    async def aclose(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
