import pytest
from pydantic import ValidationError

from pipelines.model import CanonicalRelay, Coordinate, Ownership, parse_raw_record


def test_canonical_relay_serializes_wire_names():
    relay = CanonicalRelay(
        id="se-got-wg-001",
        country="Sweden",
        country_code="SE",
        city="Gothenburg",
        lat=57.7089,
        lon=11.9746,
        ownership=Ownership.RENTED,
        protocols=["WireGuard"],
        active=False,
    )

    assert relay.coordinate == Coordinate(57.7089, 11.9746)
    assert relay.to_json_dict() == {
        "id": "se-got-wg-001",
        "country": "Sweden",
        "countryCode": "SE",
        "city": "Gothenburg",
        "lat": 57.7089,
        "lon": 11.9746,
        "ownership": "Rented",
        "protocols": ["WireGuard"],
        "active": False,
    }


def test_canonical_relay_accepts_wire_names():
    relay = CanonicalRelay.model_validate({"id": "x", "countryCode": "NL"})

    assert relay.country_code == "NL"
    assert relay.coordinate is None


def test_coordinates_must_be_paired():
    with pytest.raises(ValidationError):
        CanonicalRelay(id="x", lat=1.0, lon=None)


def test_coordinates_must_be_finite():
    with pytest.raises(ValidationError):
        CanonicalRelay(id="x", lat=float("inf"), lon=1.0)


def test_unknown_protocol_rejected():
    with pytest.raises(ValidationError):
        CanonicalRelay(id="x", protocols=["IKEv2"])


def test_raw_record_cleans_blank_strings_and_loose_booleans():
    record = parse_raw_record(
        {"hostname": "  ", "fqdn": " a.example ", "owned": 1, "active": "true", "extra": {"x": 1}}
    )

    assert record.hostname is None
    assert record.fqdn == "a.example"
    assert record.owned is None
    assert record.active is None
