"""Fill gaps in the city coordinate table by geocoding city names with Nominatim.

Requests are strictly serial with a fixed pause between them, and the table is
saved after every lookup so an interrupted run keeps its progress.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import time
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Mapping, Sequence, TypeVar

from jobs.config import IngestSettings, configure_logging, load_settings
from pipelines.sources.nominatim import GeocodeResult, geocode_candidate
from storage.json_store import read_json, write_json

logger = logging.getLogger(__name__)

T = TypeVar("T")
Geocoder = Callable[[str], Awaitable[GeocodeResult | None]]

_US_STATE = re.compile(r"^[A-Za-z]{2}$")
_STATE_AND_COUNTRY = re.compile(r"^[A-Za-z]{2}\s+[A-Za-z]{2}$")


class RateLimitedQueue:
    """Run async tasks one at a time with at least ``min_interval`` seconds between them."""

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be non-negative")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_finished: float | None = None

    async def _wait_turn(self) -> None:
        if self._last_finished is None:
            return
        remaining = self.min_interval - (self._clock() - self._last_finished)
        if remaining > 0:
            await self._sleep(remaining)

    async def submit(self, task: Callable[[], Awaitable[T]]) -> T:
        await self._wait_turn()
        try:
            return await task()
        finally:
            self._last_finished = self._clock()

    async def run(
        self,
        tasks: Iterable[Callable[[], Awaitable[T]]],
        *,
        after_each: Callable[[T], None] | None = None,
    ) -> list[T]:
        results: list[T] = []
        for task in tasks:
            result = await self.submit(task)
            if after_each is not None:
                after_each(result)
            results.append(result)
        return results


def build_candidates(raw_city: str) -> list[str]:
    """Query strings to try for a city name, most specific first.

    ``"San Jose, CA"`` yields ``["San Jose, CA", "San Jose", "San Jose, United States"]``.
    """

    city = (raw_city or "").strip()
    if not city:
        return []

    candidates = [city]
    parts = [part.strip() for part in city.split(",") if part.strip()]
    if len(parts) > 1:
        first, second = parts[0], parts[1]
        candidates.append(first)
        if _US_STATE.match(second):
            candidates.append(f"{first}, United States")
        elif not _STATE_AND_COUNTRY.match(second):
            candidates.append(f"{first}, {second}")

    seen: set[str] = set()
    unique: list[str] = []
    for candidate in candidates:
        if candidate.lower() not in seen:
            seen.add(candidate.lower())
            unique.append(candidate)
    return unique


def collect_city_names(relays: Iterable[Any]) -> list[str]:
    names = {
        str(relay.get("city") or "").strip()
        for relay in relays
        if isinstance(relay, Mapping)
    }
    names.discard("")
    return sorted(names)


def select_cities(names: Sequence[str], table: Mapping[str, Any], *, force: bool = False) -> list[str]:
    """Cities that have no entry under their exact or lower-cased name."""

    if force:
        return list(names)
    return [name for name in names if name not in table and name.lower() not in table]


async def find_city_coordinates(city: str, geocode: Geocoder) -> GeocodeResult | None:
    for candidate in build_candidates(city):
        result = await geocode(candidate)
        if result is not None:
            return result
    return None


def load_coordinate_table(path: Path) -> dict[str, Any]:
    try:
        payload = read_json(path)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        logger.warning("%s is unreadable (%s); starting from an empty table.", path, exc)
        return {}
    if not isinstance(payload, dict):
        logger.warning("%s does not hold a JSON object; starting from an empty table.", path)
        return {}
    return payload


def record_result(table: dict[str, Any], city: str, result: GeocodeResult) -> None:
    entry = {"lat": float(result.lat), "lon": float(result.lon)}
    table[city] = entry
    table.setdefault(city.lower(), dict(entry))


@dataclass
class UpdateSummary:
    resolved: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)


async def update_city_coordinates(
    cities: Sequence[str],
    table_path: Path,
    *,
    geocode: Geocoder,
    queue: RateLimitedQueue,
) -> UpdateSummary:
    """Geocode ``cities`` one by one, saving the table after every lookup."""

    table = load_coordinate_table(table_path)
    summary = UpdateSummary()
    total = len(cities)

    def lookup(index: int, city: str) -> Callable[[], Awaitable[None]]:
        async def task() -> None:
            logger.info("[%s/%s] Querying: %s", index, total, city)
            result = await find_city_coordinates(city, geocode)
            if result is None:
                logger.info("  -> No result for %r", city)
                summary.unresolved.append(city)
            else:
                record_result(table, city, result)
                logger.info("  -> %s, %s (via %r)", result.lat, result.lon, result.candidate)
                summary.resolved.append(city)
            try:
                write_json(table_path, table)
            except OSError as exc:
                logger.warning("Failed to save %s: %s", table_path, exc)

        return task

    await queue.run(lookup(index, city) for index, city in enumerate(cities, start=1))
    return summary


def add_city_coordinate(table_path: Path, key: str, lat: float, lon: float) -> dict[str, Any]:
    """Insert or overwrite a single entry in the coordinate table."""

    key = key.strip()
    if not key:
        raise ValueError("city key must not be empty")
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise ValueError("lat and lon must be finite numbers")
    table = load_coordinate_table(table_path)
    table[key] = {"lat": float(lat), "lon": float(lon)}
    write_json(table_path, table)
    return table


def _cities_to_process(
    settings: IngestSettings, *, city: str | None, refresh_all: bool, force: bool
) -> list[str]:
    if city is not None:
        name = city.strip()
        if not name:
            raise ValueError("Invalid city name.")
        return [name]

    try:
        relays = read_json(settings.relays_path)
    except (FileNotFoundError, ValueError):
        relays = None
    if not isinstance(relays, list) or not relays:
        raise FileNotFoundError(f"No relays found in {settings.relays_path}. Run ingest first.")

    names = collect_city_names(relays)
    table = load_coordinate_table(settings.city_coordinates_path)
    return select_cities(names, table, force=force or refresh_all)


def main(
    *,
    city: str | None = None,
    refresh_all: bool = False,
    force: bool = False,
    settings: IngestSettings | None = None,
) -> int:
    settings = settings or load_settings()
    configure_logging(settings)

    try:
        cities = _cities_to_process(settings, city=city, refresh_all=refresh_all, force=force)
    except (FileNotFoundError, ValueError) as exc:
        logger.error("%s", exc)
        return 1

    if not cities:
        logger.info(
            "No cities to process. Use --all to refresh every city or --city NAME for a single one."
        )
        return 0

    logger.info(
        "Will query Nominatim for %s cities (wait %ss between requests).",
        len(cities),
        settings.geocoder_wait_seconds,
    )
    geocode = partial(
        geocode_candidate,
        url=settings.nominatim_url,
        user_agent=settings.geocoder_user_agent,
    )
    summary = asyncio.run(
        update_city_coordinates(
            cities,
            settings.city_coordinates_path,
            geocode=geocode,
            queue=RateLimitedQueue(settings.geocoder_wait_seconds),
        )
    )
    logger.info(
        "Done. Updated %s (resolved=%s, unresolved=%s).",
        settings.city_coordinates_path,
        len(summary.resolved),
        len(summary.unresolved),
    )
    return 0


__all__ = [
    "RateLimitedQueue",
    "UpdateSummary",
    "add_city_coordinate",
    "build_candidates",
    "collect_city_names",
    "find_city_coordinates",
    "select_cities",
    "update_city_coordinates",
]
