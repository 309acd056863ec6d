"""
Shared HTTP client utilities for the REST price sources.

Centralizes httpx client creation with sensible defaults, connection pooling,
timeouts, and a consistent User-Agent. Use these helpers instead of creating
ad-hoc clients across the codebase.
"""

from __future__ import annotations

import os
from typing import Optional

import httpx

DEFAULT_TIMEOUT = float(os.getenv("PRICING_HTTP_TIMEOUT", "10"))
DEFAULT_CONNECT_TIMEOUT = float(os.getenv("PRICING_HTTP_CONNECT_TIMEOUT", "5"))
USER_AGENT = os.getenv("PRICING_HTTP_UA", "pricing-toolkit/0.x")

_async_client: Optional[httpx.AsyncClient] = None


def _build_limits() -> httpx.Limits:
    return httpx.Limits(max_keepalive_connections=20, max_connections=100)


def _build_timeout() -> httpx.Timeout:
    return httpx.Timeout(DEFAULT_TIMEOUT, connect=DEFAULT_CONNECT_TIMEOUT)


def _default_headers() -> dict:
    return {"User-Agent": USER_AGENT, "Accept": "application/json"}


def build_async_client(**kwargs) -> httpx.AsyncClient:
    """Build a new asynchronous client with the toolkit defaults."""
    kwargs.setdefault("timeout", _build_timeout())
    kwargs.setdefault("limits", _build_limits())
    kwargs.setdefault("headers", _default_headers())
    return httpx.AsyncClient(**kwargs)


def get_async_client() -> httpx.AsyncClient:
    """Get a shared asynchronous httpx client."""
    global _async_client
    if _async_client is None or _async_client.is_closed:
        _async_client = build_async_client()
    return _async_client


async def aclose_async_client() -> None:
    global _async_client
    if _async_client is not None:
        await _async_client.aclose()
        _async_client = None
