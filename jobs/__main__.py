"""Command-line entrypoint for relay jobs."""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path

from jobs.config import configure_logging, load_settings
from jobs.ingest_relays import main as run_ingest
from jobs.update_city_coords import add_city_coordinate
from jobs.update_city_coords import main as run_update_coords
from storage.exports import EXPORT_FORMATS, export_relays
from storage.json_store import read_json

logger = logging.getLogger(__name__)


def _export(fmt: str, output: str | None) -> int:
    settings = load_settings()
    configure_logging(settings)
    try:
        relays = read_json(settings.relays_path)
    except (OSError, ValueError) as exc:
        logger.error("Cannot read %s: %s. Run ingest first.", settings.relays_path, exc)
        return 1
    if not isinstance(relays, list):
        logger.error("%s does not hold a relay list.", settings.relays_path)
        return 1
    destination = Path(output) if output else settings.data_dir / f"relays.{fmt}"
    export_relays(relays, destination, fmt=fmt)
    logger.info("Exported %s relays to %s.", len(relays), destination)
    return 0


def _add_city(key: str, lat: float, lon: float) -> int:
    settings = load_settings()
    configure_logging(settings)
    try:
        add_city_coordinate(settings.city_coordinates_path, key, lat, lon)
    except (OSError, ValueError) as exc:
        logger.error("Failed to update city coordinates: %s", exc)
        return 1
    logger.info("%s updated with %s.", settings.city_coordinates_path, key)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Relay map job runner")
    parser.add_argument(
        "--log-level",
        help="Override LOG_LEVEL for this invocation (e.g. DEBUG, INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "ingest", help="Fetch the relay listing, normalize it and write data/relays.json"
    )

    coords_parser = subparsers.add_parser(
        "update-coords", help="Geocode cities missing from the city coordinate table"
    )
    coords_parser.add_argument("-c", "--city", help="Fetch coordinates for a single city only")
    coords_parser.add_argument(
        "-a", "--all", dest="refresh_all", action="store_true", help="Refresh every city in relays.json"
    )
    coords_parser.add_argument(
        "-f", "--force", action="store_true", help="Re-query cities that already have an entry"
    )

    add_parser = subparsers.add_parser("add-city", help="Add or overwrite one coordinate entry")
    add_parser.add_argument("key", help="City code or city name used as the lookup key")
    add_parser.add_argument("lat", type=float)
    add_parser.add_argument("lon", type=float)

    export_parser = subparsers.add_parser("export", help="Export relays.json as CSV or Parquet")
    export_parser.add_argument("--format", choices=sorted(EXPORT_FORMATS), default="csv")
    export_parser.add_argument("--output", help="Destination file (defaults to data/relays.<format>)")

    args = parser.parse_args(argv)
    if args.log_level:
        os.environ["LOG_LEVEL"] = args.log_level

    if args.command == "ingest":
        return run_ingest()
    if args.command == "update-coords":
        return run_update_coords(city=args.city, refresh_all=args.refresh_all, force=args.force)
    if args.command == "add-city":
        return _add_city(args.key, args.lat, args.lon)
    if args.command == "export":
        return _export(args.format, args.output)

    parser.error("Unknown command")
    return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
