import json

import pytest

from fleetreplay.data_loader import (
    DEFAULT_TRIPS, DataLoadError, DataLoader, DataLoaderError, TripNotFoundError
)
from fleetreplay.models import TripMetadata

TRIPS = [
    TripMetadata(id="t1", file="t1.json", name="First"),
    TripMetadata(id="t2", file="t2.json", name="Second"),
]


@pytest.fixture()
def data_dir(tmp_path):
    (tmp_path / "t1.json").write_text(json.dumps([
        {"event_type": "trip_started", "timestamp": "2024-01-15T08:00:00Z"},
    ]))
    (tmp_path / "t2.json").write_text(json.dumps([
        {"event_type": "trip_started", "timestamp": "2024-01-15T09:00:00Z"},
        {"event_type": "trip_completed", "timestamp": "2024-01-15T10:00:00Z"},
    ]))
    return tmp_path


def test_default_catalogue():
    loader = DataLoader("data")
    assert [t.id for t in loader.get_trip_metadata()] == [t.id for t in DEFAULT_TRIPS]
    assert len(DEFAULT_TRIPS) == 5


def test_load_trip_data(data_dir):
    loader = DataLoader(data_dir, TRIPS)
    events = loader.load_trip_data("t2")
    assert [e["event_type"] for e in events] == ["trip_started", "trip_completed"]


def test_load_is_cached_until_cleared(data_dir):
    loader = DataLoader(data_dir, TRIPS)
    first = loader.load_trip_data("t1")

    (data_dir / "t1.json").write_text(json.dumps([]))
    assert loader.load_trip_data("t1") is first

    loader.clear_cache()
    assert loader.load_trip_data("t1") == []


def test_load_all_trips_in_catalogue_order(data_dir):
    loader = DataLoader(data_dir, list(reversed(TRIPS)))
    assert list(loader.load_all_trips()) == ["t2", "t1"]


def test_unknown_trip(data_dir):
    loader = DataLoader(data_dir, TRIPS)
    with pytest.raises(TripNotFoundError):
        loader.load_trip_data("t9")


def test_missing_file(tmp_path):
    loader = DataLoader(tmp_path, TRIPS)
    with pytest.raises(DataLoadError, match="t1.json"):
        loader.load_trip_data("t1")


@pytest.mark.parametrize("content", ["{not json", '{"event_type": "trip_started"}', "[1, 2]"])
def test_malformed_file(tmp_path, content):
    (tmp_path / "t1.json").write_text(content)
    loader = DataLoader(tmp_path, TRIPS)
    with pytest.raises(DataLoaderError):
        loader.load_trip_data("t1")


def test_metadata_is_a_copy(data_dir):
    loader = DataLoader(data_dir, TRIPS)
    loader.get_trip_metadata().clear()
    assert len(loader.get_trip_metadata()) == 2
