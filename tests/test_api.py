import json

import pytest
from fastapi.testclient import TestClient

import api.main as api_main
from api.main import app
from pipelines.sources.nominatim import GeocodeError

RELAYS = [
    {
        "id": "gb-lon-wg-001",
        "country": "United Kingdom",
        "countryCode": "GB",
        "city": "London",
        "lat": 51.5072,
        "lon": -0.1276,
        "ownership": "Mullvad",
        "protocols": ["WireGuard"],
        "active": True,
    },
    {
        "id": "zz-unknown-br-001",
        "country": "Unknown",
        "countryCode": "XX",
        "city": "",
        "lat": None,
        "lon": None,
        "ownership": "Rented",
        "protocols": [],
        "active": True,
    },
]


@pytest.fixture()
def data_dir(monkeypatch, tmp_path):
    path = tmp_path / "data"
    monkeypatch.setenv("RELAYS_DATA_DIR", str(path))
    monkeypatch.setenv("RELAYS_TOOLS_DATA_DIR", str(tmp_path / "tools"))
    return path


@pytest.fixture()
def client(data_dir):
    with TestClient(app) as test_client:
        yield test_client


def _write_relays(data_dir, text):
    data_dir.mkdir(parents=True, exist_ok=True)
    (data_dir / "relays.json").write_text(text, encoding="utf-8")


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["uptime"] >= 0


def test_relays_passthrough(client, data_dir):
    _write_relays(data_dir, json.dumps(RELAYS))

    response = client.get("/api/relays")

    assert response.status_code == 200
    assert response.json() == RELAYS


def test_relays_empty_when_missing(client):
    response = client.get("/api/relays")

    assert response.status_code == 200
    assert response.json() == []


def test_relays_empty_when_unparsable(client, data_dir):
    _write_relays(data_dir, "{broken")

    response = client.get("/api/relays")

    assert response.status_code == 200
    assert response.json() == []


def test_relays_csv(client, data_dir):
    _write_relays(data_dir, json.dumps(RELAYS))

    response = client.get("/api/relays", params={"format": "csv"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    body = response.content.decode()
    assert "gb-lon-wg-001" in body
    assert "zz-unknown-br-001" in body


def test_relays_unknown_format(client):
    response = client.get("/api/relays", params={"format": "xml"})

    assert response.status_code == 400


def test_geocode_requires_city(client):
    assert client.get("/api/geocode").status_code == 400
    assert client.get("/api/geocode", params={"city": "  "}).status_code == 400


def _fake_query(result=None, error=None):
    async def query(candidate, **kwargs):
        if error is not None:
            raise error
        return result

    return query


def test_geocode_success(client, monkeypatch):
    monkeypatch.setattr(
        api_main,
        "query_nominatim",
        _fake_query([{"lat": "51.5073", "lon": "-0.1277", "display_name": "London, England"}]),
    )

    response = client.get("/api/geocode", params={"city": "London"})

    assert response.status_code == 200
    assert response.json() == {"lat": 51.5073, "lon": -0.1277, "display_name": "London, England"}


def test_geocode_not_found(client, monkeypatch):
    monkeypatch.setattr(api_main, "query_nominatim", _fake_query([]))

    assert client.get("/api/geocode", params={"city": "Atlantis"}).status_code == 404


def test_geocode_invalid_coordinates(client, monkeypatch):
    monkeypatch.setattr(api_main, "query_nominatim", _fake_query([{"lat": "north", "lon": "x"}]))

    assert client.get("/api/geocode", params={"city": "London"}).status_code == 502


def test_geocode_upstream_failure(client, monkeypatch):
    monkeypatch.setattr(api_main, "query_nominatim", _fake_query(error=GeocodeError("down")))

    assert client.get("/api/geocode", params={"city": "London"}).status_code == 502


def test_relays_empty_when_artifact_holds_non_finite_numbers(client, data_dir):
    _write_relays(data_dir, '[{"id": "x", "lat": NaN, "lon": 1}]')

    response = client.get("/api/relays")

    assert response.status_code == 200
    assert response.json() == []
