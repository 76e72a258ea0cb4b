"""
Tick schedulers for the playback clock

A scheduler fires a callback repeatedly at a fixed interval until the
returned handle is cancelled. Cancelling is synchronous: once cancel()
returns, the callback will not fire again.
"""

import asyncio
import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

TickCallback = Callable[[], None]

class TickHandle:
    """Handle of one repeating schedule"""

    def cancel(self) -> None:
        raise NotImplementedError

    @property
    def active(self) -> bool:
        raise NotImplementedError

class TickScheduler:
    """Interface of a repeating-timer source"""

    def call_every(self, interval_ms: float, callback: TickCallback) -> TickHandle:
        raise NotImplementedError

class _AsyncioTickHandle(TickHandle):

    def __init__(self, loop: asyncio.AbstractEventLoop, interval_ms: float, callback: TickCallback):
        self._loop = loop
        self._interval_s = interval_ms / 1000.0
        self._callback = callback
        self._timer: Optional[asyncio.TimerHandle] = None
        self._active = True
        self._schedule()

    def _schedule(self):
        self._timer = self._loop.call_later(self._interval_s, self._fire)

    def _fire(self):
        if not self._active:
            return
        # Re-arm first so a failing callback does not silently end playback
        self._schedule()
        self._callback()

    def cancel(self) -> None:
        self._active = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def active(self) -> bool:
        return self._active

class AsyncioTickScheduler(TickScheduler):
    """Schedules ticks on an asyncio event loop"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_every(self, interval_ms: float, callback: TickCallback) -> TickHandle:
        loop = self._loop or asyncio.get_running_loop()
        logger.debug(f"Scheduling ticks every {interval_ms:.2f}ms")
        return _AsyncioTickHandle(loop, interval_ms, callback)

class _VirtualTickHandle(TickHandle):

    def __init__(self, scheduler: "VirtualTickScheduler", interval_ms: float,
                 callback: TickCallback, seq: int):
        self.scheduler = scheduler
        self.interval_ms = interval_ms
        self.callback = callback
        self.seq = seq
        self.next_fire_ms = scheduler.now_ms + interval_ms
        self._active = True

    def cancel(self) -> None:
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

class VirtualTickScheduler(TickScheduler):
    """
    Deterministic scheduler driven by advance() instead of a wall clock.

    Used by tests and by headless replays that should run as fast as
    possible while keeping the tick order of a real run.
    """

    def __init__(self):
        self.now_ms = 0.0
        self._handles: List[_VirtualTickHandle] = []
        self._seq = 0

    def call_every(self, interval_ms: float, callback: TickCallback) -> TickHandle:
        if interval_ms <= 0:
            raise ValueError(f"Tick interval must be positive, got {interval_ms}")
        self._seq += 1
        handle = _VirtualTickHandle(self, interval_ms, callback, self._seq)
        self._handles.append(handle)
        return handle

    @property
    def active_handles(self) -> List[TickHandle]:
        return [h for h in self._handles if h.active]

    def _next_due(self, until_ms: float) -> Optional[_VirtualTickHandle]:
        self._handles = [h for h in self._handles if h.active]
        due = [h for h in self._handles if h.next_fire_ms <= until_ms]
        if not due:
            return None
        return min(due, key=lambda h: (h.next_fire_ms, h.seq))

    def advance(self, ms: float) -> int:
        """Move virtual time forward, firing every tick that falls due. Returns ticks fired."""
        target = self.now_ms + ms
        fired = 0
        while True:
            handle = self._next_due(target)
            if handle is None:
                break
            self.now_ms = handle.next_fire_ms
            handle.next_fire_ms += handle.interval_ms
            handle.callback()
            fired += 1
        self.now_ms = target
        return fired

    def run_until_idle(self, max_ticks: int = 1_000_000) -> int:
        """Fire ticks until no schedule is active. Returns ticks fired."""
        fired = 0
        while fired < max_ticks:
            self._handles = [h for h in self._handles if h.active]
            if not self._handles:
                break
            handle = min(self._handles, key=lambda h: (h.next_fire_ms, h.seq))
            self.now_ms = handle.next_fire_ms
            handle.next_fire_ms += handle.interval_ms
            handle.callback()
            fired += 1
        return fired
