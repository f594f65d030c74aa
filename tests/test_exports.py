import duckdb
import pytest

from storage.exports import export_relays

RELAYS = [
    {
        "id": "se-got-wg-001",
        "country": "Sweden",
        "countryCode": "SE",
        "city": "Gothenburg",
        "lat": 57.7089,
        "lon": 11.9746,
        "ownership": "Mullvad",
        "protocols": ["WireGuard"],
        "active": True,
    },
    {
        "id": "al-tia-ovpn-001",
        "country": "Unknown",
        "countryCode": "AL",
        "city": "Tirana",
        "lat": None,
        "lon": None,
        "ownership": "Rented",
        "protocols": [],
        "active": False,
    },
]


def test_export_csv(tmp_path):
    dest = export_relays(RELAYS, tmp_path / "out" / "relays.csv", fmt="csv")

    lines = dest.read_text(encoding="utf-8").splitlines()
    assert lines[0].split(",")[:3] == ["id", "country", "countryCode"]
    assert len(lines) == 3
    assert lines[1].startswith("al-tia-ovpn-001")


def test_export_parquet(tmp_path):
    dest = export_relays(RELAYS, tmp_path / "relays.parquet", fmt="parquet")

    con = duckdb.connect()
    try:
        rows = con.execute(
            "SELECT id, lat FROM read_parquet(?) ORDER BY id", [str(dest)]
        ).fetchall()
    finally:
        con.close()
    assert rows == [("al-tia-ovpn-001", None), ("se-got-wg-001", 57.7089)]


def test_export_rejects_unknown_format(tmp_path):
    with pytest.raises(ValueError):
        export_relays(RELAYS, tmp_path / "relays.xml", fmt="xml")
