#!/usr/bin/env python3
"""
Trip Simulator for the fleet replay service
Generates per-trip event files that the data loader can replay
"""

import json
import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import click
from dotenv import load_dotenv
import logging

from .data_loader import DEFAULT_TRIPS
from .models import EventType, TripMetadata

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

def haversine(start: Point, end: Point) -> float:
    """Calculate distance between two lat/lon points using Haversine formula"""
    R = 6371000  # Earth radius in meters
    φ1, λ1 = map(math.radians, start)
    φ2, λ2 = map(math.radians, end)
    dφ = φ2 - φ1
    dλ = λ2 - λ1
    a = math.sin(dφ/2)**2 + math.cos(φ1)*math.cos(φ2)*math.sin(dλ/2)**2
    return 2*R*math.atan2(math.sqrt(a), math.sqrt(1-a))

def bearing(start: Point, end: Point) -> int:
    """Initial compass bearing from start to end, in whole degrees"""
    φ1, λ1 = map(math.radians, start)
    φ2, λ2 = map(math.radians, end)
    dλ = λ2 - λ1
    x = math.sin(dλ) * math.cos(φ2)
    y = math.cos(φ1)*math.sin(φ2) - math.sin(φ1)*math.cos(φ2)*math.cos(dλ)
    return int(math.degrees(math.atan2(x, y)) + 360) % 360

def route_length_km(route: List[Point]) -> float:
    return sum(haversine(a, b) for a, b in zip(route, route[1:])) / 1000

@dataclass
class TripProfile:
    """How one simulated trip behaves"""
    metadata: TripMetadata
    route: List[Point]
    speed_kmh: float
    speed_limit_kmh: float
    ping_interval_minutes: float
    start_offset_minutes: float = 0
    fuel_burn_per_km: float = 0.02  # percent of tank
    initial_fuel: float = 90.0
    refuels: bool = True
    stop_probability: float = 0.0
    signal_issues: bool = False
    device_issues: bool = False
    cancel_at_fraction: Optional[float] = None
    cancellation_reason: str = "mechanical_failure"
    telemetry_every: int = 4

DEFAULT_PROFILES = [
    TripProfile(
        metadata=DEFAULT_TRIPS[0],
        route=[(47.6062, -122.3321), (46.8721, -113.9940), (45.7833, -108.5007),
               (44.0805, -103.2310), (43.5460, -96.7313), (41.8781, -87.6298),
               (41.4993, -81.6944), (40.7128, -74.0060)],
        speed_kmh=95, speed_limit_kmh=105, ping_interval_minutes=15,
        fuel_burn_per_km=0.03,
    ),
    TripProfile(
        metadata=DEFAULT_TRIPS[1],
        route=[(40.7580, -73.9855), (40.7527, -73.9772), (40.7484, -73.9857),
               (40.7411, -73.9897), (40.7306, -73.9866), (40.7209, -73.9961),
               (40.7128, -74.0060), (40.7061, -74.0087)],
        speed_kmh=22, speed_limit_kmh=40, ping_interval_minutes=2,
        start_offset_minutes=30, fuel_burn_per_km=0.4, initial_fuel=60,
        stop_probability=0.25, telemetry_every=3,
    ),
    TripProfile(
        metadata=DEFAULT_TRIPS[2],
        route=[(39.7392, -104.9903), (39.7047, -105.3340), (39.6403, -106.3742),
               (39.5501, -107.3248), (39.0639, -108.5506)],
        speed_kmh=60, speed_limit_kmh=70, ping_interval_minutes=5,
        start_offset_minutes=10, signal_issues=True, cancel_at_fraction=0.55,
        cancellation_reason="mechanical_failure",
    ),
    TripProfile(
        metadata=DEFAULT_TRIPS[3],
        route=[(29.7604, -95.3698), (30.2672, -97.7431), (29.4241, -98.4936),
               (31.7619, -106.4850)],
        speed_kmh=85, speed_limit_kmh=95, ping_interval_minutes=10,
        start_offset_minutes=45, device_issues=True, signal_issues=True,
        fuel_burn_per_km=0.05,
    ),
    TripProfile(
        metadata=DEFAULT_TRIPS[4],
        route=[(41.8781, -87.6298), (42.3314, -83.0458), (41.6528, -83.5379),
               (39.9612, -82.9988), (39.1031, -84.5120), (39.7684, -86.1581)],
        speed_kmh=80, speed_limit_kmh=90, ping_interval_minutes=10,
        start_offset_minutes=20, fuel_burn_per_km=0.06, initial_fuel=70,
    ),
]

DEVICE_ERRORS = [
    "GPS module timeout",
    "Telemetry bus read failure",
    "Accelerometer calibration error",
    "Firmware watchdog reset",
]

class TripSimulator:
    """Simulates one vehicle driving a route and records its events"""

    def __init__(self, profile: TripProfile, start_time: datetime, rng: random.Random):
        self.profile = profile
        self.route_points = profile.route
        self.rng = rng
        self.now = start_time + timedelta(minutes=profile.start_offset_minutes)
        self.current_position_index = 0
        self.current_position = profile.route[0]
        self.heading = 0
        self.distance_km = 0.0
        self.fuel = profile.initial_fuel
        self.battery = 100.0
        self.signal_quality = "good"
        self.events: List[Dict[str, Any]] = []

    @property
    def finished(self) -> bool:
        return self.current_position_index >= len(self.route_points) - 1

    def calculate_next_position(self, time_delta_seconds: float, speed_kmh: float) -> float:
        """Advance along the route at speed_kmh; returns the distance moved in km."""
        speed_ms = (speed_kmh * 1000) / 3600  # km/h → m/s
        remaining_time = time_delta_seconds
        moved = 0.0

        # Keep moving until the time slice is used up or the route ends
        while remaining_time > 0 and not self.finished:
            next_idx = self.current_position_index + 1
            start = self.current_position
            end = self.route_points[next_idx]

            segment_dist = haversine(start, end)
            travel_dist = speed_ms * remaining_time
            self.heading = bearing(start, end)

            if travel_dist >= segment_dist:
                # Reach the waypoint and carry on with the leftover time
                self.current_position = end
                self.current_position_index = next_idx
                remaining_time -= segment_dist / speed_ms
                moved += segment_dist
            else:
                frac = travel_dist / segment_dist
                self.current_position = (
                    start[0] + (end[0] - start[0]) * frac,
                    start[1] + (end[1] - start[1]) * frac,
                )
                moved += travel_dist
                remaining_time = 0

        self.distance_km += moved / 1000
        return moved / 1000

    def _location(self) -> Dict[str, float]:
        return {
            "lat": round(self.current_position[0], 6),
            "lon": round(self.current_position[1], 6),
        }

    def _emit(self, event_type: EventType, **fields) -> Dict[str, Any]:
        event = {
            "event_id": f"{self.profile.metadata.id}_{len(self.events) + 1:05d}",
            "event_type": event_type.value,
            "timestamp": self.now.isoformat().replace("+00:00", "Z"),
            **fields,
        }
        self.events.append(event)
        return event

    def _movement(self, speed_kmh: float) -> Dict[str, Any]:
        return {
            "speed_kmh": round(speed_kmh, 1),
            "heading": self.heading,
            "moving": speed_kmh > 0,
        }

    def _refuel(self):
        self._emit(
            EventType.FUEL_LEVEL_LOW,
            fuel_level_percent=round(self.fuel, 1),
            severity="warning",
            location=self._location(),
        )
        if not self.profile.refuels:
            return

        self.now += timedelta(minutes=self.rng.randint(5, 20))
        self._emit(EventType.REFUELING_STARTED, location=self._location(),
                   movement=self._movement(0))
        duration = self.rng.randint(10, 25)
        self.now += timedelta(minutes=duration)
        after = round(self.rng.uniform(90, 100), 1)
        self._emit(
            EventType.REFUELING_COMPLETED,
            fuel_level_after_refuel=after,
            fuel_added_percent=round(after - self.fuel, 1),
            refuel_duration_minutes=duration,
            location=self._location(),
            movement=self._movement(0),
        )
        self.fuel = after

    def run(self) -> List[Dict[str, Any]]:
        """Drive the whole route and return the recorded events"""
        profile = self.profile
        planned_km = route_length_km(self.route_points)
        cancel_at_km = planned_km * profile.cancel_at_fraction if profile.cancel_at_fraction else None

        self._emit(
            EventType.TRIP_STARTED,
            planned_distance_km=round(planned_km, 1),
            location=self._location(),
            vehicle_id=f"vehicle_{profile.metadata.id[-1]}",
            device={"battery_level": round(self.battery, 1)},
        )

        step = 0
        signal_lost_steps = 0
        low_fuel_warned = False
        low_battery_warned = False
        stopped = False

        while not self.finished:
            step += 1
            self.now += timedelta(minutes=profile.ping_interval_minutes)

            if stopped:
                stopped = False
                self._emit(EventType.VEHICLE_MOVING, location=self._location(),
                           movement=self._movement(profile.speed_kmh * 0.5))
            elif profile.stop_probability and self.rng.random() < profile.stop_probability:
                stopped = True
                self._emit(EventType.VEHICLE_STOPPED, location=self._location(),
                           movement=self._movement(0), distance_travelled_km=round(self.distance_km, 2))
                continue

            speed = max(5.0, self.rng.gauss(profile.speed_kmh, profile.speed_kmh * 0.12))
            moved = self.calculate_next_position(profile.ping_interval_minutes * 60, speed)
            self.fuel = max(0.0, self.fuel - moved * profile.fuel_burn_per_km)
            self.battery = max(0.0, self.battery - self.rng.uniform(0.1, 0.4) * (4 if profile.device_issues else 1))

            if signal_lost_steps:
                signal_lost_steps -= 1
                if signal_lost_steps == 0:
                    self.signal_quality = "good"
                    self._emit(EventType.SIGNAL_RECOVERED, signal_quality=self.signal_quality,
                               location=self._location(), distance_travelled_km=round(self.distance_km, 2))
                continue
            if profile.signal_issues and self.rng.random() < 0.06:
                signal_lost_steps = self.rng.randint(1, 3)
                self.signal_quality = "none"
                self._emit(EventType.SIGNAL_LOST, signal_quality=self.signal_quality,
                           severity="warning", location=self._location())
                continue

            self.signal_quality = self.rng.choice(["good", "good", "good", "fair", "poor"])
            self._emit(
                EventType.LOCATION_PING,
                location=self._location(),
                movement=self._movement(speed),
                distance_travelled_km=round(self.distance_km, 2),
                signal_quality=self.signal_quality,
                device={"battery_level": round(self.battery, 1)},
            )

            if step % profile.telemetry_every == 0:
                self._emit(
                    EventType.VEHICLE_TELEMETRY,
                    telemetry={
                        "fuel_level_percent": round(self.fuel, 1),
                        "engine_temp_c": round(self.rng.uniform(85, 105), 1),
                        "odometer_km": round(self.distance_km, 2),
                    },
                    movement=self._movement(speed),
                    distance_travelled_km=round(self.distance_km, 2),
                    device={"battery_level": round(self.battery, 1)},
                )

            if speed > profile.speed_limit_kmh and self.rng.random() < 0.5:
                self._emit(
                    EventType.SPEED_VIOLATION,
                    movement=self._movement(speed),
                    speed_limit_kmh=profile.speed_limit_kmh,
                    severity="critical" if speed > profile.speed_limit_kmh * 1.2 else "moderate",
                    location=self._location(),
                )

            if profile.device_issues and self.rng.random() < 0.05:
                self._emit(EventType.DEVICE_ERROR, error_message=self.rng.choice(DEVICE_ERRORS),
                           severity="warning")

            if self.battery < 20 and not low_battery_warned:
                low_battery_warned = True
                self._emit(EventType.BATTERY_LOW, battery_level_percent=round(self.battery, 1),
                           device={"battery_level": round(self.battery, 1)})

            if self.fuel < 20 and not low_fuel_warned:
                self._refuel()
                low_fuel_warned = not profile.refuels

            if cancel_at_km is not None and self.distance_km >= cancel_at_km:
                self.now += timedelta(minutes=self.rng.randint(5, 30))
                self._emit(
                    EventType.TRIP_CANCELLED,
                    cancellation_reason=profile.cancellation_reason,
                    distance_travelled_km=round(self.distance_km, 2),
                    location=self._location(),
                    severity="critical",
                )
                return self.events

        self.now += timedelta(minutes=1)
        self._emit(
            EventType.TRIP_COMPLETED,
            total_distance_km=round(self.distance_km, 1),
            location=self._location(),
            movement=self._movement(0),
        )
        return self.events

def generate_trips(
    output_dir: Path,
    seed: int = 42,
    start_time: Optional[datetime] = None,
    profiles: Optional[List[TripProfile]] = None
) -> Dict[str, int]:
    """Simulate every profile and write one JSON file per trip. Returns event counts."""
    start_time = start_time or datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)
    rng = random.Random(seed)
    output_dir.mkdir(parents=True, exist_ok=True)

    counts = {}
    for profile in profiles or DEFAULT_PROFILES:
        events = TripSimulator(profile, start_time, rng).run()
        path = output_dir / profile.metadata.file
        with open(path, "w") as f:
            json.dump(events, f, indent=2)
        counts[profile.metadata.id] = len(events)
        logger.info(f"Wrote {len(events)} events to {path}")
    return counts

@click.command()
@click.option('--output-dir', envvar='DATA_DIR', default='data', type=click.Path(file_okay=False),
              help='Directory to write trip files to')
@click.option('--seed', envvar='SIM_SEED', default=42, help='Random seed')
@click.option('--start', envvar='SIM_START', default='2024-01-15T08:00:00+00:00',
              help='Start time of the earliest trip (ISO 8601)')
def simulate(output_dir, seed, start):
    """Generate simulated trip event files"""
    try:
        start_time = datetime.fromisoformat(start.replace("Z", "+00:00"))
    except ValueError:
        raise click.BadParameter(f"Not an ISO 8601 timestamp: {start}", param_hint="--start")
    if start_time.tzinfo is None:
        start_time = start_time.replace(tzinfo=timezone.utc)

    click.echo(f"Simulating {len(DEFAULT_PROFILES)} trips into {output_dir} (seed {seed})")
    counts = generate_trips(Path(output_dir), seed=seed, start_time=start_time)
    for trip_id, count in counts.items():
        click.echo(f"  {trip_id}: {count} events")

if __name__ == "__main__":
    simulate()
