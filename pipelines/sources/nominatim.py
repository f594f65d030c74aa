"""Nominatim (OpenStreetMap) geocoding for city names.

Nominatim's usage policy requires a descriptive User-Agent and at most one
request per second. Callers that loop over many cities must pace themselves;
see ``jobs.update_city_coords``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_fixed

from pipelines.common import DEFAULT_TIMEOUT_SECONDS, is_transient_error, request_json

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_USER_AGENT = "relay-map/1.0 (city coordinate lookup)"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeocodeResult:
    lat: float
    lon: float
    display_name: str | None
    candidate: str


class GeocodeError(RuntimeError):
    """The geocoding service could not be reached or answered with an error."""


def _to_float(value: Any) -> float | None:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    return numeric if math.isfinite(numeric) else None


def build_query_params(candidate: str) -> dict[str, Any]:
    """Single names go through the structured ``city=`` query, anything else free text."""

    key = "q" if "," in candidate else "city"
    return {key: candidate, "format": "json", "limit": 1}


def parse_first_result(payload: Any, candidate: str) -> GeocodeResult | None:
    if not isinstance(payload, list) or not payload:
        return None
    entry = payload[0]
    if not isinstance(entry, dict):
        return None
    lat, lon = _to_float(entry.get("lat")), _to_float(entry.get("lon"))
    if lat is None or lon is None:
        return None
    return GeocodeResult(lat=lat, lon=lon, display_name=entry.get("display_name"), candidate=candidate)


async def query_nominatim(
    candidate: str,
    *,
    url: str = NOMINATIM_URL,
    user_agent: str = DEFAULT_USER_AGENT,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    retry_wait: float = 1.0,
) -> Any:
    """Run one search and return the raw JSON payload.

    A transient failure is retried once after ``retry_wait`` seconds. Raises
    ``GeocodeError`` when the service cannot answer.
    """

    retrying = AsyncRetrying(
        stop=stop_after_attempt(2),
        wait=wait_fixed(retry_wait),
        retry=retry_if_exception(is_transient_error),
        reraise=True,
    )
    try:
        async for attempt in retrying:
            with attempt:
                return await request_json(
                    url,
                    headers={"User-Agent": user_agent},
                    params=build_query_params(candidate),
                    timeout=timeout,
                )
    except (httpx.HTTPError, ValueError) as exc:
        raise GeocodeError(f"Nominatim request failed for {candidate!r}: {exc}") from exc
    return None


async def geocode_candidate(candidate: str, **kwargs: Any) -> GeocodeResult | None:
    """Geocode one query string, logging (not raising) service failures."""

    try:
        payload = await query_nominatim(candidate, **kwargs)
    except GeocodeError as exc:
        logger.warning("%s", exc)
        return None
    return parse_first_result(payload, candidate)


__all__ = [
    "DEFAULT_USER_AGENT",
    "GeocodeError",
    "GeocodeResult",
    "NOMINATIM_URL",
    "build_query_params",
    "geocode_candidate",
    "parse_first_result",
    "query_nominatim",
]
