import asyncio
import json

import pytest

import jobs.update_city_coords as update_city_coords
from jobs.config import IngestSettings
from jobs.update_city_coords import (
    RateLimitedQueue,
    add_city_coordinate,
    build_candidates,
    collect_city_names,
    select_cities,
    update_city_coordinates,
)
from pipelines.sources.nominatim import GeocodeResult


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def _geocoder(known, calls):
    async def geocode(candidate):
        calls.append(candidate)
        if candidate in known:
            lat, lon = known[candidate]
            return GeocodeResult(lat=lat, lon=lon, display_name=candidate, candidate=candidate)
        return None

    return geocode


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("San Jose, CA", ["San Jose, CA", "San Jose", "San Jose, United States"]),
        ("St Louis, MO US", ["St Louis, MO US", "St Louis"]),
        ("Frankfurt, Hesse, Germany", ["Frankfurt, Hesse, Germany", "Frankfurt", "Frankfurt, Hesse"]),
        ("Tirana", ["Tirana"]),
        ("  ", []),
    ],
)
def test_build_candidates(raw, expected):
    assert build_candidates(raw) == expected


def test_collect_and_select_cities():
    relays = [{"city": "London"}, {"city": "Oslo"}, {"city": ""}, {"city": "London"}, "junk"]
    names = collect_city_names(relays)

    assert names == ["London", "Oslo"]
    assert select_cities(names, {"london": {"lat": 1, "lon": 2}}) == ["Oslo"]
    assert select_cities(names, {"london": {"lat": 1, "lon": 2}}, force=True) == ["London", "Oslo"]


def test_queue_waits_between_tasks():
    clock = FakeClock()
    queue = RateLimitedQueue(3.0, clock=clock, sleep=clock.sleep)
    started = []

    def task(name, duration):
        async def run():
            started.append((name, clock.now))
            clock.now += duration
            return name

        return run

    results = asyncio.run(queue.run([task("a", 0.5), task("b", 5.0), task("c", 0.0)]))

    assert results == ["a", "b", "c"]
    assert clock.sleeps == [3.0, 3.0]
    assert started == [("a", 0.0), ("b", 3.5), ("c", 11.5)]


def test_queue_rejects_negative_interval():
    with pytest.raises(ValueError):
        RateLimitedQueue(-1)


def test_update_persists_after_every_lookup(tmp_path, monkeypatch):
    table_path = tmp_path / "city-coordinates.json"
    table_path.write_text(json.dumps({"boston, ma": {"lat": 1.0, "lon": 1.0}}), encoding="utf-8")

    snapshots = []
    real_write = update_city_coords.write_json

    def recording_write(path, payload):
        snapshots.append(json.loads(json.dumps(payload)))
        return real_write(path, payload)

    monkeypatch.setattr(update_city_coords, "write_json", recording_write)

    calls = []
    clock = FakeClock()
    summary = asyncio.run(
        update_city_coordinates(
            ["Boston, MA", "Nowhere"],
            table_path,
            geocode=_geocoder({"Boston": (42.3601, -71.0589)}, calls),
            queue=RateLimitedQueue(3.0, clock=clock, sleep=clock.sleep),
        )
    )

    assert summary.resolved == ["Boston, MA"]
    assert summary.unresolved == ["Nowhere"]
    assert calls == ["Boston, MA", "Boston", "Nowhere"]
    assert clock.sleeps == [3.0]
    assert len(snapshots) == 2

    table = json.loads(table_path.read_text(encoding="utf-8"))
    assert table["Boston, MA"] == {"lat": 42.3601, "lon": -71.0589}
    assert table["boston, ma"] == {"lat": 1.0, "lon": 1.0}
    assert "Nowhere" not in table


def test_update_writes_lowercase_key_when_missing(tmp_path):
    table_path = tmp_path / "city-coordinates.json"
    clock = FakeClock()

    asyncio.run(
        update_city_coordinates(
            ["Oslo"],
            table_path,
            geocode=_geocoder({"Oslo": (59.9139, 10.7522)}, []),
            queue=RateLimitedQueue(3.0, clock=clock, sleep=clock.sleep),
        )
    )

    table = json.loads(table_path.read_text(encoding="utf-8"))
    assert table == {
        "Oslo": {"lat": 59.9139, "lon": 10.7522},
        "oslo": {"lat": 59.9139, "lon": 10.7522},
    }


def test_add_city_coordinate(tmp_path):
    table_path = tmp_path / "data" / "city-coordinates.json"

    add_city_coordinate(table_path, "tia", 41.32795, -19.81902)

    assert json.loads(table_path.read_text(encoding="utf-8")) == {
        "tia": {"lat": 41.32795, "lon": -19.81902}
    }
    with pytest.raises(ValueError):
        add_city_coordinate(table_path, "tia", float("nan"), 1.0)
    with pytest.raises(ValueError):
        add_city_coordinate(table_path, "  ", 1.0, 1.0)


def test_main_requires_ingested_relays(tmp_path):
    settings = IngestSettings(data_dir=tmp_path / "data", tools_data_dir=tmp_path / "tools")

    assert update_city_coords.main(settings=settings) == 1


def test_main_with_nothing_to_do(tmp_path):
    settings = IngestSettings(data_dir=tmp_path / "data", tools_data_dir=tmp_path / "tools")
    settings.data_dir.mkdir()
    settings.relays_path.write_text(json.dumps([{"id": "a", "city": "Oslo"}]), encoding="utf-8")
    settings.city_coordinates_path.write_text(
        json.dumps({"Oslo": {"lat": 59.9139, "lon": 10.7522}}), encoding="utf-8"
    )

    assert update_city_coords.main(settings=settings) == 0
