"""Canonical and raw data models for relays ingested from the upstream listing."""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Mapping, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator


class Ownership(str, Enum):
    MULLVAD = "Mullvad"
    RENTED = "Rented"


class Protocol(str, Enum):
    OPENVPN = "OpenVPN"
    WIREGUARD = "WireGuard"


class Coordinate(NamedTuple):
    """A resolved (lat, lon) pair in decimal degrees."""

    lat: float
    lon: float


class RelayParseError(ValueError):
    """Raised when an upstream entry cannot be read as a relay record."""


class RawRelayRecord(BaseModel):
    """Tolerant view of one upstream relay entry.

    Every field is optional. Blank strings collapse to ``None`` and the boolean
    flags only survive when upstream sent a real JSON boolean, so normalization
    never has to second-guess the upstream shape.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    hostname: Optional[str] = None
    fqdn: Optional[str] = None
    country_code: Optional[str] = None
    country_name: Optional[str] = None
    city_code: Optional[str] = None
    city_name: Optional[str] = None
    type: Optional[str] = None
    owned: Optional[bool] = None
    provider: Optional[str] = None
    active: Optional[bool] = None

    @model_validator(mode="before")
    @classmethod
    def _country_alias(cls, data: Any) -> Any:
        # Older listings carry the code under "country".
        if isinstance(data, Mapping) and not data.get("country_code") and data.get("country"):
            data = {**data, "country_code": data["country"]}
        return data

    @field_validator(
        "hostname",
        "fqdn",
        "country_code",
        "country_name",
        "city_code",
        "city_name",
        "type",
        "provider",
        mode="before",
    )
    @classmethod
    def _clean_text(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            value = str(value)
        if not isinstance(value, str):
            return None
        stripped = value.strip()
        return stripped or None

    @field_validator("owned", "active", mode="before")
    @classmethod
    def _strict_bool(cls, value: Any) -> Optional[bool]:
        return value if isinstance(value, bool) else None


def parse_raw_record(payload: Any) -> RawRelayRecord:
    """Parse one upstream entry, raising ``RelayParseError`` for unusable shapes."""

    if isinstance(payload, RawRelayRecord):
        return payload
    if not isinstance(payload, Mapping):
        raise RelayParseError(f"Expected a JSON object, got {type(payload).__name__}")
    try:
        return RawRelayRecord.model_validate(dict(payload))
    except ValidationError as exc:
        raise RelayParseError(str(exc)) from exc


class CanonicalRelay(BaseModel):
    """Normalized relay as served to the map frontend.

    ``lat`` and ``lon`` are both ``None`` when no coordinate could be resolved.
    They are never defaulted to zero.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., description="Relay hostname (or fqdn when no hostname is given).")
    country: str = Field("Unknown", description="Human-readable country name.")
    country_code: str = Field("XX", alias="countryCode", description="Upper-cased ISO country code.")
    city: str = Field("", description="Human-readable city name, possibly empty.")
    lat: Optional[float] = Field(None, description="Latitude, or null when unresolved.")
    lon: Optional[float] = Field(None, description="Longitude, or null when unresolved.")
    ownership: Ownership = Field(Ownership.MULLVAD, description="Whether Mullvad owns the server.")
    protocols: list[Protocol] = Field(default_factory=list, description="Tunnel protocols offered.")
    active: bool = Field(True, description="Whether the relay is online.")

    @field_validator("lat", "lon")
    @classmethod
    def _finite(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and not math.isfinite(value):
            raise ValueError("coordinates must be finite")
        return value

    @model_validator(mode="after")
    def _paired_coordinates(self) -> "CanonicalRelay":
        if (self.lat is None) != (self.lon is None):
            raise ValueError("lat and lon must be resolved or unresolved together")
        return self

    @property
    def coordinate(self) -> Coordinate | None:
        if self.lat is None or self.lon is None:
            return None
        return Coordinate(self.lat, self.lon)

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with the wire field names used by the relay artifact."""

        return self.model_dump(mode="json", by_alias=True)


__all__ = [
    "CanonicalRelay",
    "Coordinate",
    "Ownership",
    "Protocol",
    "RawRelayRecord",
    "RelayParseError",
    "parse_raw_record",
]
