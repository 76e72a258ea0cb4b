"""
Playback clock over a merged trip timeline
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from .models import TripEvent
from .scheduler import AsyncioTickScheduler, TickHandle, TickScheduler
from .timeline import Timeline, TimelineEntry

logger = logging.getLogger(__name__)

DEFAULT_BASE_INTERVAL_MS = 100.0

class PlaybackState(str, Enum):
    STOPPED = "stopped"
    PAUSED = "paused"
    RUNNING = "running"

class UpdateType(str, Enum):
    EVENT = "event"
    RESET = "reset"
    SKIP = "skip"

@dataclass(frozen=True)
class PlaybackUpdate:
    """Notification delivered to clock subscribers"""
    type: UpdateType
    progress: float
    event: Optional[TripEvent] = None
    trip_id: Optional[str] = None

Observer = Callable[[PlaybackUpdate], None]

def _check_speed(multiplier: float) -> float:
    if isinstance(multiplier, bool) or not isinstance(multiplier, (int, float)):
        raise ValueError(f"Playback speed must be a number, got {multiplier!r}")
    if not math.isfinite(multiplier) or multiplier <= 0:
        raise ValueError(f"Playback speed must be a positive number, got {multiplier}")
    return float(multiplier)

class PlaybackClock:
    """
    Cursor over a timeline, advanced one entry per tick while running.

    The cursor counts revealed entries and lies in [0, len(timeline)].
    Every step/reset/skip_to notifies subscribers synchronously, in the
    order they subscribed.
    """

    def __init__(
        self,
        timeline: Timeline,
        scheduler: Optional[TickScheduler] = None,
        base_interval_ms: float = DEFAULT_BASE_INTERVAL_MS,
        speed: float = 1.0
    ):
        if base_interval_ms <= 0:
            raise ValueError(f"Base interval must be positive, got {base_interval_ms}")
        self.timeline = timeline
        self.scheduler = scheduler or AsyncioTickScheduler()
        self.base_interval_ms = float(base_interval_ms)

        self._speed = _check_speed(speed)
        self._cursor = 0
        self._state = PlaybackState.STOPPED
        self._tick_handle: Optional[TickHandle] = None
        self._observers: List[Observer] = []

    # Read-outs

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is PlaybackState.RUNNING

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def total_events(self) -> int:
        return len(self.timeline)

    @property
    def tick_interval_ms(self) -> float:
        return self.base_interval_ms / self._speed

    @property
    def progress(self) -> float:
        """Revealed share of the timeline, in percent"""
        if not self.timeline:
            return 0.0
        return self._cursor / len(self.timeline) * 100

    @property
    def current_time(self) -> Optional[datetime]:
        """Timestamp of the last revealed entry"""
        return self.timeline.time_at(self._cursor)

    # Controls

    def play(self):
        """Start ticking. No-op when already running."""
        if self._state is PlaybackState.RUNNING:
            return
        self._state = PlaybackState.RUNNING
        self._start_ticking()
        logger.info(f"Playback started at {self._cursor}/{self.total_events} ({self._speed:g}x)")

    def pause(self):
        """Stop ticking and hold the cursor. No-op unless running."""
        if self._state is not PlaybackState.RUNNING:
            return
        self._stop_ticking()
        self._state = PlaybackState.PAUSED
        logger.info(f"Playback paused at {self._cursor}/{self.total_events}")

    def reset(self):
        """Stop ticking and rewind to the start."""
        self._stop_ticking()
        self._state = PlaybackState.STOPPED
        self._cursor = 0
        logger.info("Playback reset")
        self._notify(PlaybackUpdate(UpdateType.RESET, 0.0))

    def skip_to(self, index: int):
        """
        Move the cursor to index, clamped to [0, total_events].

        Ticking is left as it is; callers that seek during playback should
        pause first and resume afterwards.
        """
        self._cursor = max(0, min(int(index), self.total_events))
        if self._state is PlaybackState.STOPPED and self._cursor > 0:
            self._state = PlaybackState.PAUSED
        logger.debug(f"Skipped to {self._cursor}/{self.total_events}")
        self._notify(PlaybackUpdate(UpdateType.SKIP, self.progress))

    def set_speed(self, multiplier: float):
        """Change the speed multiplier, retiming an active tick schedule."""
        self._speed = _check_speed(multiplier)
        if self._state is PlaybackState.RUNNING:
            self._stop_ticking()
            self._start_ticking()
        logger.info(f"Playback speed set to {self._speed:g}x")

    def step(self) -> Optional[TimelineEntry]:
        """
        Reveal the next entry.

        At the end of the timeline the clock pauses and None is returned
        without notifying anyone.
        """
        if self._cursor >= self.total_events:
            self._stop_ticking()
            if self._state is not PlaybackState.PAUSED:
                logger.info("Playback reached end of timeline")
            self._state = PlaybackState.PAUSED
            return None

        entry = self.timeline[self._cursor]
        self._cursor += 1
        if self._state is PlaybackState.STOPPED:
            self._state = PlaybackState.PAUSED

        self._notify(PlaybackUpdate(UpdateType.EVENT, self.progress, entry.event, entry.trip_id))
        return entry

    # Subscriptions

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer. Returns a function that unregisters it."""
        if observer not in self._observers:
            self._observers.append(observer)
        return lambda: self.unsubscribe(observer)

    def unsubscribe(self, observer: Observer):
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify(self, update: PlaybackUpdate):
        # Snapshot so observers may unsubscribe while being notified
        for observer in tuple(self._observers):
            observer(update)

    # Ticking

    def _start_ticking(self):
        self._tick_handle = self.scheduler.call_every(self.tick_interval_ms, self._on_tick)

    def _stop_ticking(self):
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _on_tick(self):
        self.step()
