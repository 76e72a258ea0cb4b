import json

import pytest

from fleetreplay.data_loader import DataLoader, TripNotFoundError
from fleetreplay.models import TripMetadata, TripStatus
from fleetreplay.playback import PlaybackState, UpdateType
from fleetreplay.scheduler import VirtualTickScheduler
from fleetreplay.session import FleetSession


def test_two_trip_replay(session):
    assert [(e.trip_id, e.original_index) for e in session.timeline] == [
        ("A", 0), ("B", 0), ("A", 1), ("B", 1), ("A", 2)
    ]

    for _ in range(5):
        session.step()

    trip_a = session.trip_metrics["A"]
    assert trip_a.status is TripStatus.COMPLETED
    assert trip_a.distance == 100
    assert trip_a.progress == 100

    trip_b = session.trip_metrics["B"]
    assert trip_b.status is TripStatus.CANCELLED
    assert [a.message for a in trip_b.alerts] == ["Trip cancelled: mechanical_failure"]

    fleet = session.fleet_metrics
    assert fleet.total_trips == 2
    assert fleet.completed_trips == 1
    assert fleet.cancelled_trips == 1
    assert fleet.completion_rate == "50.0"


def test_initial_snapshots_are_not_started(session):
    assert set(session.trip_metrics) == {"A", "B"}
    assert all(m.status is TripStatus.NOT_STARTED for m in session.trip_metrics.values())
    assert session.fleet_metrics.total_trips == 2
    assert session.fleet_metrics.completion_rate == "0.0"


def test_intermediate_snapshot(session):
    session.skip_to(3)

    assert session.trip_metrics["A"].status is TripStatus.IN_PROGRESS
    assert session.trip_metrics["A"].progress == 50
    assert session.trip_metrics["B"].status is TripStatus.STARTED
    assert session.fleet_metrics.active_trips == 2
    assert session.fleet_metrics.progress_50_plus == 1


def test_listeners_see_fresh_snapshots(session):
    seen = []

    def listener(update):
        seen.append((update.type, session.clock.cursor, session.trip_metrics["A"].status))

    session.subscribe(listener)
    session.step()
    session.reset()

    assert seen == [
        (UpdateType.EVENT, 1, TripStatus.STARTED),
        (UpdateType.RESET, 0, TripStatus.NOT_STARTED),
    ]


def test_unsubscribed_listener_is_not_called(session):
    calls = []
    unsubscribe = session.subscribe(calls.append)
    unsubscribe()
    session.step()
    assert calls == []


def test_only_changed_trip_is_recomputed(session):
    session.step()
    before = session.trip_metrics["B"]
    session.skip_to(1)  # same visible events for both trips
    assert session.trip_metrics["B"] is before

    session.step()  # reveals B's first event
    assert session.trip_metrics["B"] is not before


def test_skip_during_playback_keeps_playing(session, scheduler):
    session.play()
    scheduler.advance(100)
    session.skip_to(4)

    assert session.is_playing
    assert len(scheduler.active_handles) == 1
    scheduler.advance(100)
    assert session.clock.cursor == 5


def test_skip_while_paused_stays_paused(session):
    session.skip_to(2)
    assert not session.is_playing
    assert session.clock.state is PlaybackState.PAUSED


def test_seek_progress(session):
    session.seek_progress(50)
    assert session.clock.cursor == 2
    session.seek_progress(150)
    assert session.clock.cursor == 5
    session.seek_progress(-10)
    assert session.clock.cursor == 0


def test_reset_clears_metrics(session):
    for _ in range(5):
        session.step()
    session.reset()

    assert all(m.status is TripStatus.NOT_STARTED for m in session.trip_metrics.values())
    assert session.current_events() == []
    assert session.current_time is None


def test_change_speed(session):
    session.change_speed(50)
    assert session.playback_speed == 50
    with pytest.raises(ValueError):
        session.change_speed(0)


def test_trip_views(session):
    session.skip_to(4)

    assert [t.id for t in session.trips_with_metadata()] == ["A", "B"]
    assert [t.id for t in session.active_trips()] == ["A"]
    assert session.completed_trips() == []
    assert [t.id for t in session.trips_with_alerts()] == ["B"]

    session.step()
    assert [t.id for t in session.completed_trips()] == ["A"]


def test_trip_details(at):
    session = FleetSession({
        "A": [
            {"event_type": "trip_started", "timestamp": at(0), "location": {"lat": 40.7, "lng": -74.0}},
            {"event_type": "location_ping", "timestamp": at(1), "location": {"lat": 41.0, "lng": -75.0}},
            {"event_type": "location_ping", "timestamp": at(2)},
        ],
    }, scheduler=VirtualTickScheduler())
    session.skip_to(3)

    details = session.trip_details("A")
    assert details.trip_id == "A"
    assert details.total_events == 3
    assert details.event_type_counts == {"trip_started": 1, "location_ping": 2}
    assert details.latest_location == {"lat": 41.0, "lng": -75.0}
    assert details.metadata.name == "A"


def test_unknown_trip(session):
    with pytest.raises(TripNotFoundError):
        session.trip_details("Z")
    with pytest.raises(TripNotFoundError):
        session.trip_events("Z")


def test_playback_status(session):
    session.step()
    status = session.playback_status()

    assert status.state == "paused"
    assert status.cursor == 1
    assert status.total_events == 5
    assert status.progress == 20
    assert status.current_time == session.timeline[0].timestamp


def test_close_stops_playback(session, scheduler):
    session.play()
    session.close()

    assert not session.is_playing
    assert scheduler.active_handles == []


def test_from_loader(tmp_path, at):
    trips = [
        TripMetadata(id="north", file="north.json", name="Northern Route"),
        TripMetadata(id="south", file="south.json", name="Southern Route"),
    ]
    (tmp_path / "north.json").write_text(json.dumps([
        {"event_type": "trip_started", "timestamp": at(1)},
    ]))
    (tmp_path / "south.json").write_text(json.dumps([
        {"event_type": "trip_started", "timestamp": at(0)},
        {"event_type": "trip_completed", "timestamp": at(2), "total_distance_km": 12},
    ]))

    session = FleetSession.from_loader(DataLoader(tmp_path, trips), scheduler=VirtualTickScheduler())
    session.skip_to(session.total_events)

    assert [e.trip_id for e in session.current_events()] == ["south", "north", "south"]
    assert [t.name for t in session.trips_with_metadata()] == ["Northern Route", "Southern Route"]
    assert session.fleet_metrics.total_distance == 12
