"""
Fleet replay session

Owns the timeline, the playback clock and the current metric snapshots,
and republishes every clock notification to its own listeners once the
snapshots are up to date.
"""

import logging
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .config import settings
from .data_loader import DataLoader, TripNotFoundError
from .metrics import ACTIVE_STATUSES, calculate_fleet_metrics, calculate_trip_metrics
from .models import (
    FleetMetrics, PlaybackStatus, TripDetails, TripEvent, TripMetadata,
    TripMetrics, TripStatus, TripSummary
)
from .playback import PlaybackClock, PlaybackUpdate
from .scheduler import TickScheduler
from .timeline import Timeline, TripEventsView

logger = logging.getLogger(__name__)

Listener = Callable[[PlaybackUpdate], None]

class FleetSession:
    """Playback controls plus live trip and fleet metrics"""

    def __init__(
        self,
        trips: Mapping[str, Sequence],
        trip_metadata: Optional[Sequence[TripMetadata]] = None,
        scheduler: Optional[TickScheduler] = None,
        base_interval_ms: Optional[float] = None,
        speed: Optional[float] = None
    ):
        self.timeline = Timeline(trips)
        if trip_metadata is None:
            trip_metadata = [TripMetadata(id=trip_id, name=trip_id) for trip_id in self.timeline.trip_ids]
        self.trip_metadata: List[TripMetadata] = list(trip_metadata)

        self.clock = PlaybackClock(
            self.timeline,
            scheduler=scheduler,
            base_interval_ms=base_interval_ms if base_interval_ms is not None else settings.BASE_INTERVAL_MS,
            speed=speed if speed is not None else settings.DEFAULT_SPEED
        )

        self._listeners: List[Listener] = []
        # trip id -> (visible event count, snapshot at that count)
        self._snapshots: Dict[str, Tuple[int, TripMetrics]] = {}
        self.trip_metrics: Dict[str, TripMetrics] = {}
        self.fleet_metrics: FleetMetrics = FleetMetrics()

        self._unsubscribe = self.clock.subscribe(self._on_update)
        self._recompute()

    @classmethod
    def from_loader(cls, loader: DataLoader, **kwargs) -> "FleetSession":
        """Build a session from every trip in a loader's catalogue"""
        return cls(loader.load_all_trips(), trip_metadata=loader.get_trip_metadata(), **kwargs)

    # Snapshots

    def _on_update(self, update: PlaybackUpdate):
        self._recompute()
        for listener in tuple(self._listeners):
            listener(update)

    def _recompute(self):
        cursor = self.clock.cursor
        trip_metrics: Dict[str, TripMetrics] = {}

        for trip_id in self.timeline.trip_ids:
            count = self.timeline.visible_count(trip_id, cursor)
            cached = self._snapshots.get(trip_id)
            if cached is None or cached[0] != count:
                events = self.timeline.trip_events(trip_id, cursor)
                cached = (count, calculate_trip_metrics(events))
                self._snapshots[trip_id] = cached
            trip_metrics[trip_id] = cached[1]

        self.trip_metrics = trip_metrics
        self.fleet_metrics = calculate_fleet_metrics(trip_metrics)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Be told about every clock notification, after snapshots are refreshed"""
        if listener not in self._listeners:
            self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def close(self):
        """Stop playback and detach from the clock"""
        self.clock.pause()
        self._unsubscribe()
        self._listeners.clear()

    # Controls

    def play(self):
        self.clock.play()

    def pause(self):
        self.clock.pause()

    def reset(self):
        self.clock.reset()

    def step(self):
        return self.clock.step()

    def skip_to(self, index: int):
        """Seek without racing an active tick: pause, seek, then resume if playing"""
        was_playing = self.clock.is_running
        self.clock.pause()
        self.clock.skip_to(index)
        if was_playing:
            self.clock.play()

    def seek_progress(self, percent: float):
        """Seek to a share of the timeline, as a progress slider does"""
        percent = max(0.0, min(float(percent), 100.0))
        self.skip_to(int(percent / 100 * self.clock.total_events))

    def change_speed(self, speed: float):
        self.clock.set_speed(speed)

    # Read-outs

    @property
    def is_playing(self) -> bool:
        return self.clock.is_running

    @property
    def progress(self) -> float:
        return self.clock.progress

    @property
    def current_time(self) -> Optional[datetime]:
        return self.clock.current_time

    @property
    def playback_speed(self) -> float:
        return self.clock.speed

    @property
    def total_events(self) -> int:
        return self.clock.total_events

    def playback_status(self) -> PlaybackStatus:
        return PlaybackStatus(
            state=self.clock.state.value,
            cursor=self.clock.cursor,
            total_events=self.clock.total_events,
            progress=self.clock.progress,
            speed=self.clock.speed,
            current_time=self.clock.current_time
        )

    def current_events(self) -> List[TripEvent]:
        """All revealed events in timeline order"""
        return self.timeline.current_events(self.clock.cursor)

    def _require_trip(self, trip_id: str):
        if trip_id not in self.trip_metrics:
            raise TripNotFoundError(f"Trip {trip_id} not found")

    def trip_events(self, trip_id: str) -> TripEventsView:
        self._require_trip(trip_id)
        return self.timeline.trip_events(trip_id, self.clock.cursor)

    def get_trip_metadata(self) -> List[TripMetadata]:
        return list(self.trip_metadata)

    def trips_with_metadata(self) -> List[TripSummary]:
        """Catalogue entries joined with their current metrics"""
        return [
            TripSummary(
                **metadata.model_dump(),
                metrics=self.trip_metrics.get(metadata.id, TripMetrics())
            )
            for metadata in self.trip_metadata
        ]

    def active_trips(self) -> List[TripSummary]:
        return [t for t in self.trips_with_metadata() if t.metrics.status in ACTIVE_STATUSES]

    def completed_trips(self) -> List[TripSummary]:
        return [t for t in self.trips_with_metadata() if t.metrics.status is TripStatus.COMPLETED]

    def trips_with_alerts(self) -> List[TripSummary]:
        return [t for t in self.trips_with_metadata() if t.metrics.alerts]

    def trip_details(self, trip_id: str) -> TripDetails:
        """Metrics, event type counts and last known location of one trip"""
        events = self.trip_events(trip_id)
        latest_location: Optional[Dict[str, Any]] = None
        for event in reversed(events):
            if event.location:
                latest_location = event.location
                break

        metadata = next((m for m in self.trip_metadata if m.id == trip_id), None)
        return TripDetails(
            trip_id=trip_id,
            metadata=metadata,
            metrics=self.trip_metrics[trip_id],
            event_type_counts=dict(Counter(event.event_type for event in events)),
            latest_location=latest_location,
            total_events=len(events)
        )
