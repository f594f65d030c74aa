"""Mullvad public relay listing."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from pipelines.common import DEFAULT_TIMEOUT_SECONDS, fetch_json

MULLVAD_RELAYS_URL = "https://api.mullvad.net/www/relays/all/"

logger = logging.getLogger(__name__)


class RelayFetchError(RuntimeError):
    """The relay listing could not be fetched or has an unexpected shape."""


async def fetch_relays(
    url: str = MULLVAD_RELAYS_URL,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> list[Any]:
    """Fetch the full relay listing (the endpoint is unauthenticated and unpaginated)."""

    logger.debug("Fetching relays from %s", url)
    try:
        payload = await fetch_json(url, headers={"Cache-Control": "no-store"}, timeout=timeout)
    except httpx.HTTPStatusError as exc:
        body = exc.response.text[:200] if exc.response is not None else ""
        raise RelayFetchError(
            f"Failed to fetch {url}: HTTP {exc.response.status_code} - {body}"
        ) from exc
    except httpx.HTTPError as exc:
        raise RelayFetchError(f"Failed to fetch {url}: {exc}") from exc
    except ValueError as exc:
        raise RelayFetchError(f"Response from {url} is not valid JSON") from exc

    if not isinstance(payload, list):
        raise RelayFetchError(
            f"Unexpected response from {url}: expected a JSON array, got {type(payload).__name__}"
        )
    return payload


__all__ = ["MULLVAD_RELAYS_URL", "RelayFetchError", "fetch_relays"]
