"""
Data models for the fleet replay service
"""

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from typing import Optional, Dict, Any, List, Union
from datetime import datetime, timezone
from enum import Enum

class EventType(str, Enum):
    """Event types emitted by the trip simulator.

    Events with any other type are still accepted; they simply never match
    a status or alert rule.
    """
    TRIP_STARTED = "trip_started"
    TRIP_COMPLETED = "trip_completed"
    TRIP_CANCELLED = "trip_cancelled"
    LOCATION_PING = "location_ping"
    SIGNAL_LOST = "signal_lost"
    SIGNAL_RECOVERED = "signal_recovered"
    VEHICLE_STOPPED = "vehicle_stopped"
    VEHICLE_MOVING = "vehicle_moving"
    SPEED_VIOLATION = "speed_violation"
    VEHICLE_TELEMETRY = "vehicle_telemetry"
    DEVICE_ERROR = "device_error"
    BATTERY_LOW = "battery_low"
    FUEL_LEVEL_LOW = "fuel_level_low"
    REFUELING_STARTED = "refueling_started"
    REFUELING_COMPLETED = "refueling_completed"

class TripStatus(str, Enum):
    NOT_STARTED = "not_started"
    STARTED = "started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

def _drop_invalid(value, handler):
    # Partial data falls back to None instead of failing the event
    try:
        return handler(value)
    except ValidationError:
        return None

class EventBlock(BaseModel):
    """Nested block of an event; malformed values are dropped"""
    model_config = ConfigDict(extra="allow", frozen=True, allow_inf_nan=False)

    @field_validator("*", mode="wrap")
    @classmethod
    def drop_invalid(cls, value, handler):
        return _drop_invalid(value, handler)

class Movement(EventBlock):
    """Movement block of an event"""

    speed_kmh: Optional[float] = None
    moving: Optional[bool] = None

class Telemetry(EventBlock):
    """Vehicle telemetry block of an event"""

    fuel_level_percent: Optional[float] = None

class DeviceInfo(EventBlock):
    """Tracking device block of an event"""

    battery_level: Optional[float] = None

class TripEvent(BaseModel):
    """A single timestamped trip event. Immutable once built."""
    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True, allow_inf_nan=False)

    event_type: str = "unknown"
    timestamp: datetime
    trip_id: Optional[str] = Field(None, alias="tripId")

    movement: Optional[Movement] = None
    telemetry: Optional[Telemetry] = None
    device: Optional[DeviceInfo] = None
    location: Optional[Dict[str, Any]] = None

    distance_travelled_km: Optional[float] = None
    total_distance_km: Optional[float] = None
    planned_distance_km: Optional[float] = None
    signal_quality: Optional[str] = None
    severity: Optional[str] = None

    # Alert payloads
    speed_limit_kmh: Optional[float] = None
    fuel_level_percent: Optional[float] = None
    battery_level_percent: Optional[float] = None
    error_message: Optional[str] = None
    cancellation_reason: Optional[str] = None

    # Refueling
    fuel_level_after_refuel: Optional[float] = None
    refuel_duration_minutes: Optional[float] = None
    fuel_added_percent: Optional[float] = None

    # Only the timestamp is required to be valid
    @field_validator(
        "movement", "telemetry", "device", "location",
        "distance_travelled_km", "total_distance_km", "planned_distance_km",
        "signal_quality", "severity", "speed_limit_kmh", "fuel_level_percent",
        "battery_level_percent", "error_message", "cancellation_reason",
        "fuel_level_after_refuel", "refuel_duration_minutes", "fuel_added_percent",
        mode="wrap"
    )
    @classmethod
    def drop_invalid(cls, value, handler):
        return _drop_invalid(value, handler)

    @field_validator("event_type", mode="wrap")
    @classmethod
    def unknown_event_type(cls, value, handler):
        try:
            return handler(value)
        except ValidationError:
            return "unknown"

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        # Mixed naive/aware timestamps cannot be ordered
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

class Alert(BaseModel):
    """Alert derived from a trip event"""
    type: str
    timestamp: datetime
    severity: str = "warning"
    message: str

class TripMetrics(BaseModel):
    """Metrics snapshot of one trip at a playback position"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    status: TripStatus = TripStatus.NOT_STARTED
    progress: float = 0
    distance: float = 0
    duration: float = 0
    alerts: List[Alert] = Field(default_factory=list)
    current_speed: float = Field(0, alias="currentSpeed")
    fuel_level: Optional[float] = Field(None, alias="fuelLevel")
    battery_level: Optional[float] = Field(None, alias="batteryLevel")
    signal_quality: str = Field("unknown", alias="signalQuality")
    is_moving: bool = Field(False, alias="isMoving")
    last_update: Optional[datetime] = Field(None, alias="lastUpdate")

class FleetMetrics(BaseModel):
    """Aggregate metrics across all trips"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    total_trips: int = Field(0, alias="totalTrips")
    completed_trips: int = Field(0, alias="completedTrips")
    cancelled_trips: int = Field(0, alias="cancelledTrips")
    active_trips: int = Field(0, alias="activeTrips")
    progress_50_plus: int = Field(0, alias="progress50Plus")
    progress_80_plus: int = Field(0, alias="progress80Plus")
    total_distance: int = Field(0, alias="totalDistance")
    total_alerts: int = Field(0, alias="totalAlerts")
    critical_alerts: int = Field(0, alias="criticalAlerts")
    avg_fuel_level: Optional[int] = Field(None, alias="avgFuelLevel")
    vehicles_moving: int = Field(0, alias="vehiclesMoving")
    completion_rate: Union[str, int] = Field(0, alias="completionRate")

class TripMetadata(BaseModel):
    """Catalogue entry for a trip data file"""
    id: str
    file: Optional[str] = None
    name: str

class TripSummary(TripMetadata):
    """Trip metadata joined with its current metrics"""
    metrics: TripMetrics

class TripDetails(BaseModel):
    """Detailed view of one trip at the current playback position"""
    model_config = ConfigDict(populate_by_name=True)

    trip_id: str = Field(..., alias="tripId")
    metadata: Optional[TripMetadata] = None
    metrics: TripMetrics
    event_type_counts: Dict[str, int] = Field(default_factory=dict, alias="eventTypeCounts")
    latest_location: Optional[Dict[str, Any]] = Field(None, alias="latestLocation")
    total_events: int = Field(0, alias="totalEvents")

class PlaybackStatus(BaseModel):
    """Playback clock read-out"""
    model_config = ConfigDict(populate_by_name=True)

    state: str
    cursor: int
    total_events: int = Field(..., alias="totalEvents")
    progress: float
    speed: float
    current_time: Optional[datetime] = Field(None, alias="currentTime")

class SpeedRequest(BaseModel):
    """Body of a playback speed change"""
    speed: float = Field(..., gt=0)

class HealthStatus(BaseModel):
    """Service health status"""
    status: str  # healthy, starting
    timestamp: str
    components: Dict[str, str]
