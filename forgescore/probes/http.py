"""HTTP deployment probe.

A bounded HEAD request checks reachability; when it succeeds the body is
fetched (shorter timeout) to look for an embedded ``forge-verify`` token.
Network failures become a FAIL result, never an exception.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from forgescore.scoring.types import HttpProbePayload

from .client import DEFAULT_USER_AGENT, PROBE_ERRORS, client_scope, describe_error

logger = logging.getLogger(__name__)

VERIFY_TOKEN = "forge-verify"
VERIFY_HEADER = "x-forge-verify"

CONFIDENCE_WITH_TOKEN = 0.95
CONFIDENCE_REACHABLE = 0.7
CONFIDENCE_UNREACHABLE = 0.1


@dataclass(frozen=True)
class HttpProbeResult:
    url: str
    reachable: bool
    status_code: Optional[int]
    response_time_ms: Optional[int]
    has_forge_token: bool
    error: Optional[str]

    @property
    def confidence(self) -> float:
        if not self.reachable:
            return CONFIDENCE_UNREACHABLE
        return CONFIDENCE_WITH_TOKEN if self.has_forge_token else CONFIDENCE_REACHABLE

    def as_payload(self) -> HttpProbePayload:
        return {
            "url": self.url,
            "reachable": self.reachable,
            "status_code": self.status_code,
            "response_time_ms": self.response_time_ms,
            "has_forge_token": self.has_forge_token,
            "error": self.error,
        }


async def _fetch_body(client: httpx.AsyncClient, url: str, timeout: float) -> str:
    try:
        response = await client.get(url, timeout=timeout)
        return response.text
    except PROBE_ERRORS as e:
        logger.debug(f"Body fetch failed for {url}: {describe_error(e)}")
        return ""


async def probe_deployment(
    url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 10.0,
    body_timeout: float = 5.0,
    user_agent: str = DEFAULT_USER_AGENT,
) -> HttpProbeResult:
    start = time.monotonic()

    def elapsed_ms() -> int:
        return int((time.monotonic() - start) * 1000)

    try:
        async with client_scope(client, timeout=timeout, user_agent=user_agent) as http:
            response = await http.head(url, timeout=timeout, follow_redirects=True)
            body = ""
            if response.is_success:
                body = await _fetch_body(http, url, body_timeout)
            has_token = VERIFY_TOKEN in body or VERIFY_HEADER in response.headers
            return HttpProbeResult(
                url=url,
                reachable=200 <= response.status_code < 400,
                status_code=response.status_code,
                response_time_ms=elapsed_ms(),
                has_forge_token=has_token,
                error=None,
            )
    except PROBE_ERRORS as e:
        logger.warning(f"Deployment probe failed for {url}: {describe_error(e)}")
        return HttpProbeResult(
            url=url,
            reachable=False,
            status_code=None,
            response_time_ms=elapsed_ms(),
            has_forge_token=False,
            error=describe_error(e),
        )


__all__ = [
    "VERIFY_TOKEN",
    "VERIFY_HEADER",
    "HttpProbeResult",
    "probe_deployment",
]
