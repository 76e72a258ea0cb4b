"""
Tests for the fleet replay HTTP API
"""

from fleetreplay import main as main_mod
from fleetreplay.simulator import generate_trips


def step(client, times):
    for _ in range(times):
        response = client.post("/playback/step")
        assert response.status_code == 200
    return response.json()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "running"


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["components"]["playback"] == "stopped"


def test_health_starting(client, monkeypatch):
    monkeypatch.setattr(main_mod, "fleet_session", None)
    monkeypatch.setattr(main_mod, "load_error", None)

    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "starting"


def test_health_unhealthy_after_load_failure(client, monkeypatch):
    monkeypatch.setattr(main_mod, "fleet_session", None)
    monkeypatch.setattr(main_mod, "load_error", "Failed to load trip_1.json: file not found")

    response = client.get("/health")
    assert response.status_code == 503
    assert response.json()["components"]["fleet_session"] == "unhealthy"

    response = client.get("/fleet")
    assert response.status_code == 503
    assert "file not found" in response.json()["detail"]


def test_fleet_metrics(client):
    data = client.get("/fleet").json()
    assert data["totalTrips"] == 2
    assert data["completionRate"] == "0.0"
    assert data["avgFuelLevel"] is None

    step(client, 5)
    data = client.get("/fleet").json()
    assert data["completedTrips"] == 1
    assert data["cancelledTrips"] == 1
    assert data["completionRate"] == "50.0"
    assert data["totalAlerts"] == 1
    assert data["criticalAlerts"] == 0


def test_get_trips(client):
    step(client, 4)

    trips = client.get("/trips").json()
    assert [t["id"] for t in trips] == ["A", "B"]
    assert trips[0]["metrics"]["status"] == "in_progress"
    assert trips[0]["metrics"]["signalQuality"] == "unknown"
    assert trips[1]["metrics"]["alerts"][0]["message"] == "Trip cancelled: mechanical_failure"

    assert [t["id"] for t in client.get("/trips", params={"status": "active"}).json()] == ["A"]
    assert [t["id"] for t in client.get("/trips", params={"status": "cancelled"}).json()] == ["B"]
    assert [t["id"] for t in client.get("/trips", params={"with_alerts": "true"}).json()] == ["B"]


def test_get_trip(client):
    step(client, 5)

    data = client.get("/trips/A").json()
    assert data["tripId"] == "A"
    assert data["totalEvents"] == 3
    assert data["metrics"]["status"] == "completed"
    assert data["metrics"]["progress"] == 100
    assert data["eventTypeCounts"]["location_ping"] == 1


def test_get_trip_not_found(client):
    response = client.get("/trips/nope")
    assert response.status_code == 404
    assert client.get("/trips/nope/events").status_code == 404


def test_trip_events(client):
    step(client, 3)

    events = client.get("/trips/A/events").json()
    assert [e["event_type"] for e in events] == ["trip_started", "location_ping"]
    assert events[0]["tripId"] == "A"

    latest = client.get("/trips/A/events", params={"limit": 1}).json()
    assert [e["event_type"] for e in latest] == ["location_ping"]


def test_current_events(client):
    step(client, 2)
    events = client.get("/events").json()
    assert [e["tripId"] for e in events] == ["A", "B"]


def test_playback_controls(client):
    data = client.get("/playback").json()
    assert data == {
        "state": "stopped", "cursor": 0, "totalEvents": 5,
        "progress": 0, "speed": 1, "currentTime": None,
    }

    assert client.post("/playback/play").json()["state"] == "running"
    assert client.post("/playback/pause").json()["state"] == "paused"

    data = step(client, 2)
    assert data["cursor"] == 2
    assert data["progress"] == 40
    assert data["currentTime"] is not None

    data = client.post("/playback/reset").json()
    assert data["state"] == "stopped"
    assert data["cursor"] == 0


def test_skip_is_clamped(client):
    assert client.post("/playback/skip/3").json()["cursor"] == 3
    assert client.post("/playback/skip/42").json()["cursor"] == 5


def test_seek(client):
    data = client.post("/playback/seek", params={"progress": 60}).json()
    assert data["cursor"] == 3


def test_change_speed(client):
    response = client.post("/playback/speed", json={"speed": 10})
    assert response.status_code == 200
    assert response.json()["speed"] == 10

    assert client.post("/playback/speed", json={"speed": 0}).status_code == 422
    assert client.post("/playback/speed", json={"speed": -5}).status_code == 422

    speeds = client.get("/playback/speeds").json()
    assert speeds == {"presets": [1, 5, 10, 50, 100], "current": 10}


def test_reload_from_data_dir(client, monkeypatch, tmp_path):
    generate_trips(tmp_path, seed=7)
    monkeypatch.setattr(main_mod.settings, "DATA_DIR", str(tmp_path))

    response = client.post("/reload")
    assert response.status_code == 200
    assert response.json()["cursor"] == 0

    trips = client.get("/trips").json()
    assert [t["id"] for t in trips] == ["trip_1", "trip_2", "trip_3", "trip_4", "trip_5"]


def test_failed_reload_keeps_current_session(client, monkeypatch, tmp_path):
    step(client, 2)
    monkeypatch.setattr(main_mod.settings, "DATA_DIR", str(tmp_path))

    response = client.post("/reload")
    assert response.status_code == 500
    assert "file not found" in response.json()["detail"]

    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/fleet").status_code == 200
    assert client.get("/playback").json()["cursor"] == 2


def test_event_limit_returns_most_recent(client):
    step(client, 5)

    events = client.get("/trips/A/events", params={"limit": 2}).json()
    assert [e["event_type"] for e in events] == ["location_ping", "trip_completed"]

    events = client.get("/events", params={"limit": 3}).json()
    assert [(e["tripId"], e["event_type"]) for e in events] == [
        ("A", "location_ping"), ("B", "trip_cancelled"), ("A", "trip_completed")
    ]

    # More than available returns everything
    assert len(client.get("/trips/B/events", params={"limit": 10}).json()) == 2


def test_event_limit_must_be_positive(client):
    assert client.get("/trips/A/events", params={"limit": -2}).status_code == 422
    assert client.get("/trips/A/events", params={"limit": 0}).status_code == 422
    assert client.get("/events", params={"limit": -1}).status_code == 422
