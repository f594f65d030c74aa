"""Map raw upstream relay entries onto the canonical relay schema."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from pipelines.lookup import LookupTables
from pipelines.model import (
    CanonicalRelay,
    Ownership,
    Protocol,
    RawRelayRecord,
    RelayParseError,
    parse_raw_record,
)
from pipelines.resolver import resolve_coordinates

# Lower-cased upstream type tag -> protocol
PROTOCOL_TAGS: Mapping[str, Protocol] = {
    "wireguard": Protocol.WIREGUARD,
    "wg": Protocol.WIREGUARD,
    "openvpn": Protocol.OPENVPN,
    "ovpn": Protocol.OPENVPN,
}

OPERATOR_NAME = "mullvad"

logger = logging.getLogger(__name__)


def _protocols(type_tag: str | None) -> list[Protocol]:
    if not type_tag:
        return []
    protocol = PROTOCOL_TAGS.get(type_tag.lower())
    return [protocol] if protocol else []


def _ownership(record: RawRelayRecord) -> Ownership:
    if record.owned is not None:
        return Ownership.MULLVAD if record.owned else Ownership.RENTED
    if record.provider:
        return Ownership.MULLVAD if OPERATOR_NAME in record.provider.lower() else Ownership.RENTED
    return Ownership.MULLVAD


def _city(record: RawRelayRecord, tables: LookupTables) -> str:
    if record.city_name:
        return record.city_name
    if record.city_code:
        return tables.city_code_name(record.city_code) or record.city_code.upper()
    return ""


def normalize_relay(raw: RawRelayRecord | Mapping[str, Any], tables: LookupTables) -> CanonicalRelay:
    """Build a ``CanonicalRelay`` from one upstream entry.

    Raises ``RelayParseError`` when ``raw`` is not a usable record.
    """

    record = parse_raw_record(raw)
    country_code = (record.country_code or "").upper()
    city = _city(record, tables)
    coordinate = resolve_coordinates(tables, country_code, record.city_code, city)

    return CanonicalRelay(
        id=record.hostname or record.fqdn or "",
        country=record.country_name or tables.country_name(country_code),
        country_code=country_code or "XX",
        city=city,
        lat=coordinate.lat if coordinate else None,
        lon=coordinate.lon if coordinate else None,
        ownership=_ownership(record),
        protocols=_protocols(record.type),
        active=True if record.active is None else record.active,
    )


def normalize_relays(
    payload: Iterable[Any], tables: LookupTables
) -> tuple[list[CanonicalRelay], int]:
    """Normalize every entry, skipping (and logging) the ones that fail.

    Returns the normalized relays in input order and the number of skipped entries.
    """

    relays: list[CanonicalRelay] = []
    skipped = 0
    for index, entry in enumerate(payload):
        try:
            relays.append(normalize_relay(entry, tables))
        except (RelayParseError, ValueError) as exc:
            skipped += 1
            logger.warning("Skipping relay entry #%s: %s", index, exc)
        except Exception:
            skipped += 1
            logger.exception("Skipping relay entry #%s after an unexpected error.", index)
    return relays, skipped


__all__ = ["OPERATOR_NAME", "PROTOCOL_TAGS", "normalize_relay", "normalize_relays"]
