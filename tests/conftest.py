from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from fleetreplay import main as main_mod
from fleetreplay.scheduler import VirtualTickScheduler
from fleetreplay.session import FleetSession

BASE_TIME = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)


def iso_at(hours: float) -> str:
    return (BASE_TIME + timedelta(hours=hours)).isoformat()


@pytest.fixture()
def at():
    """ISO timestamp `hours` after the scenario start"""
    return iso_at


@pytest.fixture()
def scenario_trips():
    # A@0, B@0.5, A@1, B@1.5, A@2
    return {
        "A": [
            {"event_type": "trip_started", "timestamp": iso_at(0), "planned_distance_km": 100},
            {"event_type": "location_ping", "timestamp": iso_at(1), "distance_travelled_km": 50},
            {"event_type": "trip_completed", "timestamp": iso_at(2), "total_distance_km": 100},
        ],
        "B": [
            {"event_type": "trip_started", "timestamp": iso_at(0.5)},
            {
                "event_type": "trip_cancelled",
                "timestamp": iso_at(1.5),
                "cancellation_reason": "mechanical_failure",
            },
        ],
    }


@pytest.fixture()
def scheduler():
    return VirtualTickScheduler()


@pytest.fixture()
def session(scenario_trips, scheduler):
    s = FleetSession(scenario_trips, scheduler=scheduler, base_interval_ms=100, speed=1)
    yield s
    s.close()


@pytest.fixture()
def client(monkeypatch, scenario_trips):
    # Do not read trip files from disk during tests
    monkeypatch.setattr(main_mod.settings, "AUTOLOAD", False)
    monkeypatch.setattr(main_mod, "load_error", None)

    with TestClient(main_mod.app) as c:
        fleet = FleetSession(scenario_trips, scheduler=VirtualTickScheduler(), base_interval_ms=100)
        monkeypatch.setattr(main_mod, "fleet_session", fleet)
        yield c
