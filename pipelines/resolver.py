"""Coordinate resolution for relays, from most to least precise source."""

from __future__ import annotations

import math
from typing import Any, Mapping

from pipelines.lookup import LookupTables
from pipelines.model import Coordinate


def _coerce_coordinate(entry: Any) -> Coordinate | None:
    """Return the entry as a ``Coordinate`` if it holds two finite numbers."""

    if isinstance(entry, Mapping):
        lat, lon = entry.get("lat"), entry.get("lon")
    elif isinstance(entry, (list, tuple)) and len(entry) == 2:
        lat, lon = entry
    else:
        return None
    for value in (lat, lon):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
    try:
        lat_f, lon_f = float(lat), float(lon)
    except OverflowError:
        return None
    if not (math.isfinite(lat_f) and math.isfinite(lon_f)):
        return None
    return Coordinate(lat_f, lon_f)


def _city_entry(tables: LookupTables, key: str | None) -> Coordinate | None:
    if not key:
        return None
    return _coerce_coordinate(tables.city_coordinates.get(key))


def resolve_coordinates(
    tables: LookupTables,
    country_code: str | None,
    city_code: str | None,
    city_name: str | None,
) -> Coordinate | None:
    """Resolve a relay location, returning ``None`` when every strategy misses.

    Order: city code, lowercased city name, exact city name, the friendly name
    behind the city code, then the country centroid. The first well-formed
    entry wins; malformed entries are skipped. The centroid is keyed by the
    name derived from ``country_code`` only, so a record with a display name
    but no code gets no centroid.
    """

    candidates = [city_code]
    if city_name:
        candidates.extend([city_name.lower(), city_name])
    candidates.append(tables.city_code_name(city_code))

    for key in candidates:
        coordinate = _city_entry(tables, key)
        if coordinate is not None:
            return coordinate

    country = tables.country_name(country_code)
    return _coerce_coordinate(tables.country_centroids.get(country))


__all__ = ["resolve_coordinates"]
