"""
Merged trip timeline

Merges independent per-trip event sequences into one globally ordered
timeline and answers "what is visible at cursor k" queries against it.
"""

import logging
from bisect import bisect_left
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from .models import TripEvent

logger = logging.getLogger(__name__)

RawEvent = Union[TripEvent, Mapping[str, Any]]

class TimelineError(Exception):
    """Raised when trip events cannot be merged into a trustworthy timeline"""
    pass

@dataclass(frozen=True)
class TimelineEntry:
    trip_id: str
    original_index: int
    timestamp: datetime
    event: TripEvent

class TripEventsView(Sequence):
    """Read-only prefix of a trip's events, without copying them."""

    def __init__(self, events: Tuple[TripEvent, ...], length: int):
        self._events = events
        self._length = length

    def __len__(self) -> int:
        return self._length

    def __getitem__(self, index):
        if isinstance(index, slice):
            return self._events[:self._length][index]
        if index < 0:
            index += self._length
        if not 0 <= index < self._length:
            raise IndexError("trip event index out of range")
        return self._events[index]

    def __repr__(self) -> str:
        return f"TripEventsView({list(self)!r})"

def _coerce_event(trip_id: str, index: int, raw: RawEvent) -> TripEvent:
    """Validate one raw event and stamp it with its trip id."""
    if isinstance(raw, TripEvent):
        if raw.trip_id == trip_id:
            return raw
        return raw.model_copy(update={"trip_id": trip_id})

    try:
        return TripEvent.model_validate({**raw, "tripId": trip_id})
    except ValidationError as e:
        fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in e.errors())
        raise TimelineError(
            f"Event {index} of trip {trip_id} is invalid ({fields}): timestamp={raw.get('timestamp')!r}"
        ) from e

def merge_trip_events(trips: Mapping[str, Sequence]) -> List[TimelineEntry]:
    """
    Merge per-trip event sequences into one timeline.

    Entries are ordered by timestamp; equal timestamps keep trip insertion
    order, then in-trip order. Python's sort is stable, so building the
    entries in that order and sorting on the timestamp alone is enough.
    """
    entries: List[TimelineEntry] = []
    for trip_id, events in trips.items():
        for index, raw in enumerate(events):
            event = _coerce_event(trip_id, index, raw)
            entries.append(TimelineEntry(trip_id, index, event.timestamp, event))

    try:
        entries.sort(key=lambda entry: entry.timestamp)
    except TypeError as e:
        raise TimelineError(f"Event timestamps cannot be ordered: {e}") from e
    return entries

class Timeline(Sequence):
    """Immutable merged timeline with per-trip position indexes"""

    def __init__(self, trips: Mapping[str, Sequence]):
        self._entries: Tuple[TimelineEntry, ...] = tuple(merge_trip_events(trips))
        self._trip_ids: Tuple[str, ...] = tuple(trips.keys())

        positions: Dict[str, List[int]] = {trip_id: [] for trip_id in self._trip_ids}
        events: Dict[str, List[TripEvent]] = {trip_id: [] for trip_id in self._trip_ids}
        for position, entry in enumerate(self._entries):
            positions[entry.trip_id].append(position)
            events[entry.trip_id].append(entry.event)

        # Per-trip events in timeline order, with their timeline positions
        self._positions = {trip_id: tuple(p) for trip_id, p in positions.items()}
        self._trip_events = {trip_id: tuple(e) for trip_id, e in events.items()}

        logger.info(f"Built timeline with {len(self._entries)} events across {len(self._trip_ids)} trips")

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index):
        return self._entries[index]

    @property
    def trip_ids(self) -> Tuple[str, ...]:
        return self._trip_ids

    def _clamp(self, cursor: int) -> int:
        return max(0, min(cursor, len(self._entries)))

    def visible(self, cursor: int) -> Tuple[TimelineEntry, ...]:
        """Entries revealed at the given cursor"""
        return self._entries[:self._clamp(cursor)]

    def visible_count(self, trip_id: str, cursor: int) -> int:
        """Number of a trip's events revealed at the given cursor"""
        return bisect_left(self._positions.get(trip_id, ()), self._clamp(cursor))

    def trip_events(self, trip_id: str, cursor: int) -> TripEventsView:
        """A trip's events revealed at the given cursor, in timeline order"""
        events = self._trip_events.get(trip_id, ())
        return TripEventsView(events, self.visible_count(trip_id, cursor))

    def latest_event(self, trip_id: str, cursor: int) -> Optional[TripEvent]:
        count = self.visible_count(trip_id, cursor)
        if count == 0:
            return None
        return self._trip_events[trip_id][count - 1]

    def latest_events(self, cursor: int) -> Dict[str, TripEvent]:
        """Latest revealed event of every trip that has one"""
        latest = {}
        for trip_id in self._trip_ids:
            event = self.latest_event(trip_id, cursor)
            if event is not None:
                latest[trip_id] = event
        return latest

    def current_events(self, cursor: int) -> List[TripEvent]:
        """Revealed events in timeline order, each tagged with its trip id"""
        return [entry.event for entry in self.visible(cursor)]

    def time_at(self, cursor: int) -> Optional[datetime]:
        """Timestamp of the last revealed entry"""
        cursor = self._clamp(cursor)
        if cursor == 0:
            return None
        return self._entries[cursor - 1].timestamp
