"""Job that fetches the relay listing, normalizes it and writes the relay artifacts."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable

from jobs.config import IngestSettings, configure_logging, load_settings
from pipelines.lookup import load_lookup_tables
from pipelines.normalize import normalize_relays
from pipelines.sources.mullvad import RelayFetchError, fetch_relays
from storage.json_store import write_json

logger = logging.getLogger(__name__)

Fetcher = Callable[[IngestSettings], Awaitable[list[Any]]]


@dataclass
class IngestResult:
    fetched: int = 0
    normalized: int = 0
    skipped: int = 0
    written: list[Path] = field(default_factory=list)
    failed: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.written)


async def _fetch_from_settings(settings: IngestSettings) -> list[Any]:
    return await fetch_relays(settings.api_url, timeout=settings.fetch_timeout)


def _write_each(paths: Iterable[Path], payload: Any, label: str) -> tuple[list[Path], list[Path]]:
    """Write ``payload`` to every path; one failing destination does not stop the others."""

    written: list[Path] = []
    failed: list[Path] = []
    for path in paths:
        try:
            write_json(path, payload)
        except (OSError, ValueError) as exc:
            logger.error("Failed to write %s to %s: %s", label, path, exc)
            failed.append(path)
            continue
        written.append(path)
    return written, failed


async def ingest_async(
    settings: IngestSettings,
    *,
    fetch: Fetcher = _fetch_from_settings,
) -> IngestResult:
    """Run one ingestion.

    Raises ``RelayFetchError`` before anything is written when the listing
    cannot be fetched, so a previous artifact is left untouched.
    """

    tables = load_lookup_tables(settings.lookup_dirs)
    logger.debug(
        "Lookup tables: %s city coordinates, %s country names, %s city codes.",
        len(tables.city_coordinates),
        len(tables.country_names),
        len(tables.city_code_names),
    )

    payload = await fetch(settings)
    result = IngestResult(fetched=len(payload))

    cached, _ = _write_each(settings.raw_cache_paths, payload, "raw API payload")
    for path in cached:
        logger.info("Wrote %s raw API entries to %s.", len(payload), path)

    relays, result.skipped = normalize_relays(payload, tables)
    result.normalized = len(relays)

    serialized = [relay.to_json_dict() for relay in relays]
    result.written, result.failed = _write_each(settings.relays_output_paths, serialized, "relays")
    for path in result.written:
        logger.info("Wrote %s relays to %s.", len(serialized), path)
    return result


def run_ingest(settings: IngestSettings | None = None, *, fetch: Fetcher = _fetch_from_settings) -> IngestResult:
    return asyncio.run(ingest_async(settings or load_settings(), fetch=fetch))


def main(settings: IngestSettings | None = None) -> int:
    settings = settings or load_settings()
    configure_logging(settings)
    try:
        result = run_ingest(settings)
    except RelayFetchError as exc:
        logger.error("Failed to fetch relays: %s", exc)
        return 1

    if result.skipped:
        logger.warning(
            "Ingest finished with %s of %s entries skipped.", result.skipped, result.fetched
        )
    if not result.ok:
        logger.error("Ingest could not write relays to any destination.")
        return 1
    logger.info(
        "Ingest finished (fetched=%s, normalized=%s).", result.fetched, result.normalized
    )
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
