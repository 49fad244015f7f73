"""Shared httpx client handling for probes."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

DEFAULT_USER_AGENT = "ForgeVerifier/3.0"


def build_probe_client(
    timeout: float = 10.0,
    user_agent: str = DEFAULT_USER_AGENT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers={"User-Agent": user_agent},
        transport=transport,
    )


@asynccontextmanager
async def client_scope(
    client: Optional[httpx.AsyncClient],
    timeout: float = 10.0,
    user_agent: str = DEFAULT_USER_AGENT,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the caller's client, or a temporary one closed on exit."""
    if client is not None:
        yield client
        return
    owned = build_probe_client(timeout=timeout, user_agent=user_agent)
    try:
        yield owned
    finally:
        await owned.aclose()


def describe_error(exc: BaseException) -> str:
    message = str(exc)
    return message if message else type(exc).__name__


# Network failures a probe turns into negative evidence
PROBE_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


__all__ = ["DEFAULT_USER_AGENT", "PROBE_ERRORS", "build_probe_client", "client_scope", "describe_error"]
