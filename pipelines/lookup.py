"""Lookup tables used to name and place relays.

The tables are loaded once per run and handed to the resolver and normalizer
explicitly. File-backed tables overlay the built-in ones below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from storage.json_store import read_json

CITY_COORDINATES_FILE = "city-coordinates.json"
COUNTRIES_FILE = "countries.json"
CITY_CODES_FILE = "city-codes.json"

logger = logging.getLogger(__name__)


class LookupTableError(ValueError):
    """Raised when a lookup table file does not have the expected shape."""


# Short relay city codes used by the upstream listing.
BUILTIN_CITY_CODE_NAMES: Mapping[str, str] = MappingProxyType(
    {
        "sea": "Seattle",
        "lax": "Los Angeles",
        "tor": "Toronto",
        "van": "Vancouver",
        "sfo": "San Francisco",
        "tia": "Tirana",
        "dal": "Dallas",
        "chi": "Chicago",
        "nyc": "New York",
        "adl": "Adelaide",
        "mel": "Melbourne",
        "per": "Perth",
        "syd": "Sydney",
        "yyc": "Calgary",
        "mtr": "Montreal",
        "par": "Paris",
        "bru": "Brussels",
        "vie": "Vienna",
        "sof": "Sofia",
        "hel": "Helsinki",
        "cph": "Copenhagen",
        "lon": "London",
        "bos": "Boston",
        "was": "Washington DC",
        "den": "Denver",
        "atl": "Atlanta",
        "phx": "Phoenix",
        "scl": "Santiago",
    }
)

BUILTIN_COUNTRY_NAMES: Mapping[str, str] = MappingProxyType(
    {
        "US": "United States",
        "GB": "United Kingdom",
        "AU": "Australia",
        "DE": "Germany",
        "FR": "France",
        "NL": "Netherlands",
        "BE": "Belgium",
        "CA": "Canada",
        "DK": "Denmark",
        "ES": "Spain",
        "FI": "Finland",
        "SE": "Sweden",
        "GR": "Greece",
        "AT": "Austria",
        "IE": "Ireland",
        "CH": "Switzerland",
        "PT": "Portugal",
        "CY": "Cyprus",
        "EE": "Estonia",
        "RO": "Romania",
        "PL": "Poland",
        "CZ": "Czechia",
        "NO": "Norway",
        "IT": "Italy",
        "JP": "Japan",
        "CN": "China",
        "KR": "South Korea",
        "MX": "Mexico",
        "BR": "Brazil",
        "CL": "Chile",
        "CO": "Colombia",
        "ZA": "South Africa",
        "SG": "Singapore",
        "NZ": "New Zealand",
        "IL": "Israel",
    }
)

# Country name -> (lat, lon)
BUILTIN_COUNTRY_CENTROIDS: Mapping[str, tuple[float, float]] = MappingProxyType(
    {
        "United States": (37.0902, -95.7129),
        "United Kingdom": (55.3781, -3.4360),
        "Australia": (-25.2744, 133.7751),
        "Germany": (51.1657, 10.4515),
        "France": (46.2276, 2.2137),
        "Netherlands": (52.1400, 5.2913),
        "Canada": (56.1304, -106.3468),
    }
)


def _frozen(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class LookupTables:
    """Immutable bundle of every table the resolver and normalizer consult."""

    city_coordinates: Mapping[str, Any] = field(default_factory=dict)
    country_names: Mapping[str, str] = field(default_factory=dict)
    city_code_names: Mapping[str, str] = field(default_factory=dict)
    country_centroids: Mapping[str, tuple[float, float]] = field(
        default_factory=lambda: BUILTIN_COUNTRY_CENTROIDS
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "city_coordinates", _frozen(self.city_coordinates))
        object.__setattr__(self, "country_names", _frozen(self.country_names))
        object.__setattr__(self, "city_code_names", _frozen(self.city_code_names))
        object.__setattr__(self, "country_centroids", _frozen(self.country_centroids))

    @classmethod
    def build(
        cls,
        *,
        city_coordinates: Mapping[str, Any] | None = None,
        country_names: Mapping[str, str] | None = None,
        city_code_names: Mapping[str, str] | None = None,
        country_centroids: Mapping[str, tuple[float, float]] | None = None,
    ) -> "LookupTables":
        """Overlay file-backed tables on top of the built-in ones."""

        return cls(
            city_coordinates=city_coordinates or {},
            country_names={**BUILTIN_COUNTRY_NAMES, **(country_names or {})},
            city_code_names={**BUILTIN_CITY_CODE_NAMES, **(city_code_names or {})},
            country_centroids=(
                BUILTIN_COUNTRY_CENTROIDS if country_centroids is None else country_centroids
            ),
        )

    def country_name(self, country_code: str | None) -> str:
        if not country_code:
            return "Unknown"
        return self.country_names.get(country_code.upper(), "Unknown")

    def city_code_name(self, city_code: str | None) -> str | None:
        if not city_code:
            return None
        return self.city_code_names.get(city_code)


def _validate_object(payload: Any, path: Path) -> dict[str, Any]:
    if not isinstance(payload, Mapping):
        raise LookupTableError(f"{path} must contain a JSON object, got {type(payload).__name__}")
    return {str(key): value for key, value in payload.items()}


def _validate_name_table(payload: Any, path: Path) -> dict[str, str]:
    table = _validate_object(payload, path)
    cleaned = {key: value for key, value in table.items() if isinstance(value, str) and value}
    dropped = len(table) - len(cleaned)
    if dropped:
        logger.warning("Ignored %s non-string entries in %s.", dropped, path)
    return cleaned


def read_table(name: str, search_dirs: Iterable[Path], *, names_only: bool = False) -> dict[str, Any]:
    """Load the first readable copy of ``name`` from ``search_dirs``.

    A missing or malformed file degrades to an empty table; it is never fatal.
    """

    for directory in search_dirs:
        path = Path(directory) / name
        try:
            payload = read_json(path)
        except FileNotFoundError:
            logger.debug("Lookup table %s not found.", path)
            continue
        except OSError as exc:
            logger.warning("Cannot read lookup table %s (%s); trying next location.", path, exc)
            continue
        except ValueError as exc:
            logger.warning("Lookup table %s is not valid JSON (%s); trying next location.", path, exc)
            continue
        try:
            table = _validate_name_table(payload, path) if names_only else _validate_object(payload, path)
        except LookupTableError as exc:
            logger.warning("%s; trying next location.", exc)
            continue
        logger.debug("Loaded %s entries from %s.", len(table), path)
        return table

    logger.info("No usable %s found; continuing with an empty table.", name)
    return {}


def load_lookup_tables(search_dirs: Iterable[Path]) -> LookupTables:
    """Read every file-backed table and combine it with the built-in tables."""

    dirs = tuple(search_dirs)
    return LookupTables.build(
        city_coordinates=read_table(CITY_COORDINATES_FILE, dirs),
        country_names={
            key.upper(): value
            for key, value in read_table(COUNTRIES_FILE, dirs, names_only=True).items()
        },
        city_code_names=read_table(CITY_CODES_FILE, dirs, names_only=True),
    )


__all__ = [
    "BUILTIN_CITY_CODE_NAMES",
    "BUILTIN_COUNTRY_CENTROIDS",
    "BUILTIN_COUNTRY_NAMES",
    "CITY_CODES_FILE",
    "CITY_COORDINATES_FILE",
    "COUNTRIES_FILE",
    "LookupTableError",
    "LookupTables",
    "load_lookup_tables",
    "read_table",
]
