"""
Trip and fleet metrics

Pure functions of the events revealed at a playback position. They never
raise on missing data; every field has a default instead.
"""

import math
from collections.abc import Sequence
from typing import Any, List, Mapping, Optional

from .models import Alert, EventType, FleetMetrics, TripEvent, TripMetrics, TripStatus

# Plain string values: event types arrive as str, and str-enum members
# do not hash like their values
ALERT_TYPES = frozenset(t.value for t in (
    EventType.SPEED_VIOLATION,
    EventType.FUEL_LEVEL_LOW,
    EventType.BATTERY_LOW,
    EventType.DEVICE_ERROR,
    EventType.SIGNAL_LOST,
    EventType.TRIP_CANCELLED,
))

# Battery and device errors are alerts but not critical ones
CRITICAL_ALERT_TYPES = frozenset(t.value for t in (
    EventType.SPEED_VIOLATION,
    EventType.FUEL_LEVEL_LOW,
    EventType.SIGNAL_LOST,
))

ACTIVE_STATUSES = frozenset({TripStatus.IN_PROGRESS, TripStatus.STARTED})

DEFAULT_BATTERY_LEVEL = 100.0
DEFAULT_SIGNAL_QUALITY = "unknown"


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def _fmt(value: Any) -> str:
    """Render a message placeholder: 85.0 -> '85', None -> 'unknown'."""
    if value is None:
        return "unknown"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def alert_message(event: TripEvent) -> str:
    """Human-readable message for an alert event"""
    event_type = event.event_type
    if event_type == EventType.SPEED_VIOLATION:
        speed = event.movement.speed_kmh if event.movement else None
        return f"Speed violation: {_fmt(speed)}km/h (limit: {_fmt(event.speed_limit_kmh)}km/h)"
    if event_type == EventType.FUEL_LEVEL_LOW:
        return f"Low fuel: {_fmt(event.fuel_level_percent)}% remaining"
    if event_type == EventType.BATTERY_LOW:
        return f"Low battery: {_fmt(event.battery_level_percent)}% remaining"
    if event_type == EventType.DEVICE_ERROR:
        return event.error_message or "Device error occurred"
    if event_type == EventType.SIGNAL_LOST:
        return "GPS signal lost"
    if event_type == EventType.TRIP_CANCELLED:
        return f"Trip cancelled: {_fmt(event.cancellation_reason)}"
    return "Alert"


def extract_alerts(events: Sequence) -> List[Alert]:
    """One alert per alert-type event, in event order"""
    return [
        Alert(
            type=event.event_type,
            timestamp=event.timestamp,
            severity=event.severity or "warning",
            message=alert_message(event),
        )
        for event in events
        if event.event_type in ALERT_TYPES
    ]


def trip_status(events: Sequence) -> TripStatus:
    """
    Completed wins over cancelled, which wins over everything else,
    regardless of which came last.
    """
    if not events:
        return TripStatus.NOT_STARTED
    event_types = {event.event_type for event in events}
    if EventType.TRIP_COMPLETED.value in event_types:
        return TripStatus.COMPLETED
    if EventType.TRIP_CANCELLED.value in event_types:
        return TripStatus.CANCELLED
    if len(events) == 1 and events[0].event_type == EventType.TRIP_STARTED:
        return TripStatus.STARTED
    return TripStatus.IN_PROGRESS


def _fuel_level(events: Sequence) -> Optional[float]:
    # Whichever of a telemetry reading or a completed refuel came last
    for event in reversed(events):
        if event.telemetry is not None and event.telemetry.fuel_level_percent is not None:
            return event.telemetry.fuel_level_percent
        if event.event_type == EventType.REFUELING_COMPLETED and event.fuel_level_after_refuel is not None:
            return event.fuel_level_after_refuel
    return None


def calculate_trip_metrics(events: Sequence, latest_event: Optional[TripEvent] = None) -> TripMetrics:
    """
    Derive a trip's metrics from its revealed events.

    events is the trip's revealed subsequence in timeline order;
    latest_event defaults to its last element.
    """
    if not events:
        return TripMetrics()
    if latest_event is None:
        latest_event = events[-1]

    status = trip_status(events)

    if status is TripStatus.COMPLETED and latest_event.total_distance_km is not None:
        distance = latest_event.total_distance_km
    else:
        distance = latest_event.distance_travelled_km or 0.0

    start_event = next((e for e in events if e.event_type == EventType.TRIP_STARTED), None)
    duration = 0.0
    if start_event is not None:
        duration = (events[-1].timestamp - start_event.timestamp).total_seconds() / 60

    progress = 0.0
    planned = start_event.planned_distance_km if start_event is not None else None
    if planned and distance > 0:
        progress = max(0.0, min(distance / planned * 100, 100.0))

    movement = latest_event.movement
    current_speed = movement.speed_kmh if movement and movement.speed_kmh is not None else 0.0
    is_moving = bool(movement and movement.moving)

    device = latest_event.device
    battery_level = device.battery_level if device and device.battery_level is not None else DEFAULT_BATTERY_LEVEL

    return TripMetrics(
        status=status,
        progress=progress,
        distance=distance,
        duration=duration,
        alerts=extract_alerts(events),
        current_speed=current_speed,
        fuel_level=_fuel_level(events),
        battery_level=battery_level,
        signal_quality=latest_event.signal_quality or DEFAULT_SIGNAL_QUALITY,
        is_moving=is_moving,
        last_update=latest_event.timestamp,
    )


def calculate_fleet_metrics(trip_metrics: Mapping[str, TripMetrics]) -> FleetMetrics:
    """Aggregate trip snapshots into fleet-wide metrics"""
    trips = list(trip_metrics.values())
    total = len(trips)

    completed = sum(1 for t in trips if t.status is TripStatus.COMPLETED)
    cancelled = sum(1 for t in trips if t.status is TripStatus.CANCELLED)
    active = [t for t in trips if t.status in ACTIVE_STATUSES]

    fuel_levels = [t.fuel_level for t in trips if _is_number(t.fuel_level)]
    avg_fuel = round_half_up(sum(fuel_levels) / len(fuel_levels)) if fuel_levels else None

    return FleetMetrics(
        total_trips=total,
        completed_trips=completed,
        cancelled_trips=cancelled,
        active_trips=len(active),
        progress_50_plus=sum(1 for t in active if t.progress >= 50),
        progress_80_plus=sum(1 for t in active if t.progress >= 80),
        total_distance=round_half_up(sum(t.distance for t in trips if _is_number(t.distance))),
        total_alerts=sum(len(t.alerts) for t in trips),
        critical_alerts=sum(
            1 for t in trips for a in t.alerts if a.type in CRITICAL_ALERT_TYPES
        ),
        avg_fuel_level=avg_fuel,
        vehicles_moving=sum(1 for t in trips if t.is_moving),
        completion_rate=f"{completed / total * 100:.1f}" if total else 0,
    )
