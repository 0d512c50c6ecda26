"""Shared HTTP client factory for the xkcd and explainxkcd adapters."""

from __future__ import annotations

import httpx

USER_AGENT = "comicsync/0.1.0 (offline xkcd reader)"


def create_http_client(
    *,
    proxy_url: str | None = None,
    user_agent: str = USER_AGENT,
    timeout: float = 30.0,
    follow_redirects: bool = True,
) -> httpx.Client:
    """Create an httpx.Client with our User-Agent and optional proxy."""
    headers = {"User-Agent": user_agent}
    return httpx.Client(
        headers=headers,
        timeout=timeout,
        proxy=proxy_url,
        follow_redirects=follow_redirects,
    )
