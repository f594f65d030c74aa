"""Shared HTTP helpers for the upstream relay listing and the geocoder."""

from __future__ import annotations

from typing import Any, Mapping

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_USER_AGENT = "relay-map/1.0"
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}
_DEFAULT_WAIT = wait_exponential(min=1, max=16)
_DEFAULT_STOP = stop_after_attempt(4)


Headers = Mapping[str, str] | None
Params = Mapping[str, Any] | None


def is_transient_error(exc: BaseException) -> bool:
    """Network failures and throttling/server errors are worth another attempt."""

    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, httpx.TransportError)


async def request_json(
    url: str,
    *,
    headers: Headers = None,
    params: Params = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> Any:
    """GET ``url`` once and return the decoded JSON payload.

    Raises ``httpx.HTTPError`` for transport and status failures and
    ``ValueError`` for a body that is not JSON.
    """

    request_headers = {"User-Agent": DEFAULT_USER_AGENT, "Accept": "application/json"}
    if headers:
        request_headers.update(headers)
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        response = await client.get(url, headers=request_headers, params=params)

    response.raise_for_status()
    return response.json()


# Retries transient failures with exponential backoff, re-raising the last one.
fetch_json = retry(
    wait=_DEFAULT_WAIT,
    stop=_DEFAULT_STOP,
    retry=retry_if_exception(is_transient_error),
    reraise=True,
)(request_json)


__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "DEFAULT_USER_AGENT",
    "fetch_json",
    "is_transient_error",
    "request_json",
]
