"""
Client address used as the subject of the per-IP rate limits.

Proxy headers are client-controlled unless a proxy we run overwrote them, so
they are read only when the socket peer is one of the configured trusted
proxies. Otherwise the peer address itself is the client.
"""

from __future__ import annotations

import ipaddress
from typing import Iterable, Optional

from starlette.requests import Request

# CF-Connecting-IP (Cloudflare), True-Client-IP (Akamai), then generic proxies
PROXY_IP_HEADERS: tuple[str, ...] = (
    "CF-Connecting-IP",
    "True-Client-IP",
    "X-Forwarded-For",
    "X-Real-IP",
)

UNKNOWN_IP = "unknown"


def _first_hop(value: str) -> str:
    # X-Forwarded-For is "client, proxy1, proxy2"
    return value.split(",", 1)[0].strip()


def is_trusted_proxy(peer: str, trusted_proxies: Iterable[str]) -> bool:
    """Match *peer* against IPs, CIDR ranges, ``"*"`` or literal host names."""
    try:
        peer_ip: Optional[ipaddress.IPv4Address | ipaddress.IPv6Address] = (
            ipaddress.ip_address(peer)
        )
    except ValueError:
        peer_ip = None

    for entry in trusted_proxies:
        if entry == "*" or entry == peer:
            return True
        if peer_ip is None:
            continue
        try:
            if peer_ip in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            continue
    return False


def get_client_ip(request: Request, trusted_proxies: Iterable[str] = ()) -> str:
    """Return the originating client address for *request*.

    Falls back to ``"unknown"`` when there is no peer so every request still
    lands in some rate-limit bucket.
    """
    client = request.client
    peer = client.host if client and client.host else None

    if peer and is_trusted_proxy(peer, trusted_proxies):
        for name in PROXY_IP_HEADERS:
            candidate = _first_hop(request.headers.get(name) or "")
            if candidate:
                return candidate

    return peer or UNKNOWN_IP
