"""
Text formatting for trip metrics
"""

from datetime import datetime
from typing import Optional

from .metrics import round_half_up

STATUS_COLORS = {
    "completed": "green",
    "in_progress": "cyan",
    "started": "yellow",
    "cancelled": "red",
    "not_started": "white",
}

SEVERITY_COLORS = {
    "critical": "red",
    "error": "red",
    "moderate": "yellow",
    "warning": "yellow",
    "info": "cyan",
}

ALERT_SEVERITIES = {
    "speed_violation": "error",
    "fuel_level_low": "warning",
    "battery_low": "warning",
    "device_error": "error",
    "signal_lost": "warning",
    "trip_cancelled": "error",
}

def format_distance(km: float) -> str:
    if km >= 1000:
        return f"{km / 1000:.1f}k km"
    return f"{round_half_up(km)} km"

def format_duration(minutes: float) -> str:
    if minutes < 60:
        return f"{round_half_up(minutes)}m"
    hours = int(minutes // 60)
    mins = round_half_up(minutes % 60)
    return f"{hours}h {mins}m"

def format_timestamp(timestamp: Optional[datetime]) -> str:
    """'Oct 5, 02:30 PM'"""
    if not timestamp:
        return "N/A"
    return f"{timestamp:%b} {timestamp.day}, {timestamp:%I:%M %p}"

def format_time(timestamp: Optional[datetime]) -> str:
    if not timestamp:
        return "N/A"
    return f"{timestamp:%I:%M:%S %p}"

def format_percentage(value: float) -> str:
    return f"{round_half_up(value)}%"

def format_speed(kmh: float) -> str:
    return f"{round_half_up(kmh)} km/h"

def status_color(status: str) -> str:
    # Accepts TripStatus members too
    return STATUS_COLORS.get(getattr(status, "value", status), "white")

def severity_color(severity: str) -> str:
    return SEVERITY_COLORS.get(severity, "white")

def alert_severity(alert_type: str) -> str:
    return ALERT_SEVERITIES.get(alert_type, "info")
