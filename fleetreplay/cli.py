#!/usr/bin/env python3
"""
Command line entry point for the fleet replay service
"""

import asyncio
import logging
import click
import uvicorn

from .config import settings
from .data_loader import DataLoader, DataLoaderError
from .formatters import (
    alert_severity, format_distance, format_duration, format_percentage,
    format_speed, format_timestamp, severity_color, status_color
)
from .metrics import ALERT_TYPES, alert_message
from .playback import PlaybackUpdate, UpdateType
from .scheduler import AsyncioTickScheduler, VirtualTickScheduler
from .session import FleetSession
from .simulator import simulate
from .timeline import TimelineError

@click.group()
@click.option('--log-level', envvar='LOG_LEVEL', default=settings.LOG_LEVEL, help='Logging level')
def cli(log_level):
    """Replay simulated fleet trips and derive live metrics"""
    logging.basicConfig(
        level=log_level.upper(),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    )

def print_fleet_summary(session: FleetSession):
    """Print fleet metrics and one line per trip"""
    fleet = session.fleet_metrics
    click.echo("")
    click.echo(f"Simulation time: {format_timestamp(session.current_time)}"
               f"  ({format_percentage(session.progress)} of {session.total_events} events)")
    click.echo(f"Trips: {fleet.total_trips} total, {fleet.active_trips} active, "
               f"{fleet.completed_trips} completed, {fleet.cancelled_trips} cancelled "
               f"(completion rate {fleet.completion_rate}%)")
    avg_fuel = f"{fleet.avg_fuel_level}%" if fleet.avg_fuel_level is not None else "n/a"
    click.echo(f"Distance: {format_distance(fleet.total_distance)}  Moving: {fleet.vehicles_moving}  "
               f"Avg fuel: {avg_fuel}  Alerts: {fleet.total_alerts} ({fleet.critical_alerts} critical)")
    click.echo("")

    for trip in session.trips_with_metadata():
        metrics = trip.metrics
        status = click.style(f"{metrics.status.value:<12}", fg=status_color(metrics.status))
        fuel = format_percentage(metrics.fuel_level) if metrics.fuel_level is not None else "n/a"
        click.echo(
            f"  {trip.id:<8} {trip.name:<28} {status} "
            f"{format_percentage(metrics.progress):>5} {format_distance(metrics.distance):>10} "
            f"{format_duration(metrics.duration):>8} {format_speed(metrics.current_speed):>9} "
            f"fuel {fuel:>4}  alerts {len(metrics.alerts)}"
        )

def print_alert(update: PlaybackUpdate):
    """Echo an alert event as it is revealed"""
    if update.type is not UpdateType.EVENT:
        return
    event = update.event
    if event.event_type in ALERT_TYPES:
        color = severity_color(event.severity or alert_severity(event.event_type))
        click.echo(
            f"[{format_timestamp(event.timestamp)}] {update.trip_id}: "
            + click.style(alert_message(event), fg=color)
        )

async def _play_realtime(session: FleetSession, poll_interval: float = 0.05):
    session.play()
    while session.is_playing:
        await asyncio.sleep(poll_interval)

@cli.command()
@click.option('--data-dir', envvar='DATA_DIR', default=settings.DATA_DIR, type=click.Path(file_okay=False),
              help='Directory holding the trip files')
@click.option('--speed', default=settings.DEFAULT_SPEED, type=float, help='Playback speed multiplier')
@click.option('--interval', 'interval_ms', default=settings.BASE_INTERVAL_MS, type=float,
              help='Milliseconds per event at 1x')
@click.option('--until', 'until_percent', default=100.0, type=click.FloatRange(0, 100),
              help='Stop once this share of events has played')
@click.option('--realtime/--fast', default=False, help='Tick on the wall clock instead of virtual time')
@click.option('--alerts/--no-alerts', 'show_alerts', default=True, help='Print alerts as they happen')
def replay(data_dir, speed, interval_ms, until_percent, realtime, show_alerts):
    """Play back trip events and print the resulting fleet metrics"""
    scheduler = AsyncioTickScheduler() if realtime else VirtualTickScheduler()
    try:
        session = FleetSession.from_loader(
            DataLoader(data_dir),
            scheduler=scheduler,
            base_interval_ms=interval_ms,
            speed=speed
        )
    except (DataLoaderError, TimelineError) as e:
        raise click.ClickException(str(e))
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--speed")

    click.echo(f"Replaying {session.total_events} events from {len(session.trip_metadata)} trips "
               f"at {session.playback_speed:g}x")

    if show_alerts:
        session.subscribe(print_alert)

    def stop_at_target(update: PlaybackUpdate):
        if update.progress >= until_percent:
            session.pause()
    if until_percent < 100:
        session.subscribe(stop_at_target)

    if until_percent > 0:
        if realtime:
            asyncio.run(_play_realtime(session))
        else:
            session.play()
            scheduler.run_until_idle()

    print_fleet_summary(session)
    session.close()

@cli.command()
@click.option('--data-dir', envvar='DATA_DIR', default=settings.DATA_DIR, type=click.Path(file_okay=False),
              help='Directory holding the trip files')
@click.option('--host', default='0.0.0.0', help='Bind address')
@click.option('--port', default=8000, type=int, help='Bind port')
def serve(data_dir, host, port):
    """Run the HTTP service"""
    settings.DATA_DIR = data_dir
    uvicorn.run("fleetreplay.main:app", host=host, port=port, log_level=settings.LOG_LEVEL.lower())

cli.add_command(simulate)

if __name__ == "__main__":
    cli()
