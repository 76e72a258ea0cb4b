"""
Fleet Replay Service - Main Application
Replays recorded trip events and serves live fleet metrics
"""

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
from datetime import datetime, timezone
from typing import List, Optional

from .config import settings
from .data_loader import DataLoader, DataLoaderError, TripNotFoundError
from .models import (
    FleetMetrics, HealthStatus, PlaybackStatus, SpeedRequest, TripDetails,
    TripEvent, TripSummary
)
from .session import FleetSession
from .timeline import TimelineError

# Set up logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Global instances
fleet_session: Optional[FleetSession] = None
load_error: Optional[str] = None

def load_session(data_dir: Optional[str] = None) -> FleetSession:
    """Load every catalogued trip and install a fresh session"""
    global fleet_session, load_error

    # The running session keeps serving if the new one cannot be built
    try:
        loader = DataLoader(data_dir or settings.DATA_DIR)
        new_session = FleetSession.from_loader(loader)
    except (DataLoaderError, TimelineError) as e:
        load_error = str(e)
        logger.error(f"Failed to initialize fleet: {load_error}")
        raise

    if fleet_session:
        fleet_session.close()
    fleet_session = new_session
    load_error = None

    logger.info(f"Fleet session ready with {fleet_session.total_events} events")
    return fleet_session

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    global fleet_session

    # Startup
    logger.info(f"Starting {settings.SERVICE_NAME} service...")
    if settings.AUTOLOAD:
        try:
            load_session()
        except (DataLoaderError, TimelineError):
            # Keep serving so /health can report the failure
            pass

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.SERVICE_NAME} service...")
    if fleet_session:
        fleet_session.close()
        fleet_session = None

# Create FastAPI app
app = FastAPI(
    title="Fleet Replay Service",
    description="Trip event playback and fleet metrics",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

def get_session() -> FleetSession:
    if not fleet_session:
        raise HTTPException(status_code=503, detail=load_error or "Service not initialized")
    return fleet_session

@app.get("/", response_model=dict)
async def root():
    """Root endpoint"""
    return {
        "service": settings.SERVICE_NAME,
        "version": "1.0.0",
        "status": "running"
    }

@app.get("/health", response_model=HealthStatus)
async def health_check():
    """Health check endpoint"""
    health = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {}
    }

    if fleet_session:
        health["components"]["fleet_session"] = "healthy"
        health["components"]["playback"] = fleet_session.clock.state.value
    elif load_error:
        health["components"]["fleet_session"] = "unhealthy"
    else:
        health["components"]["fleet_session"] = "initializing"

    if "unhealthy" in health["components"].values():
        health["status"] = "unhealthy"
        return JSONResponse(content=health, status_code=503)
    elif "initializing" in health["components"].values():
        health["status"] = "starting"
        return JSONResponse(content=health, status_code=200)

    return HealthStatus(**health)

@app.get("/fleet", response_model=FleetMetrics)
async def get_fleet_metrics():
    """Fleet-wide metrics at the current playback position"""
    return get_session().fleet_metrics

@app.get("/trips", response_model=List[TripSummary])
async def get_trips(status: Optional[str] = None, with_alerts: bool = False):
    """All trips with their current metrics"""
    session = get_session()
    trips = session.trips_with_alerts() if with_alerts else session.trips_with_metadata()
    if status == "active":
        active_ids = {t.id for t in session.active_trips()}
        trips = [t for t in trips if t.id in active_ids]
    elif status:
        trips = [t for t in trips if t.metrics.status.value == status]
    return trips

@app.get("/trips/{trip_id}", response_model=TripDetails)
async def get_trip(trip_id: str):
    """Detailed view of one trip"""
    try:
        return get_session().trip_details(trip_id)
    except TripNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

@app.get("/trips/{trip_id}/events", response_model=List[TripEvent])
async def get_trip_events(trip_id: str, limit: Optional[int] = Query(None, ge=1)):
    """Revealed events of one trip, most recent last"""
    try:
        events = list(get_session().trip_events(trip_id))
    except TripNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return events[-limit:] if limit else events

@app.get("/events", response_model=List[TripEvent])
async def get_current_events(limit: Optional[int] = Query(None, ge=1)):
    """Revealed events of all trips, most recent last"""
    events = get_session().current_events()
    return events[-limit:] if limit else events

@app.get("/playback", response_model=PlaybackStatus)
async def get_playback():
    return get_session().playback_status()

@app.post("/playback/play", response_model=PlaybackStatus)
async def play():
    session = get_session()
    session.play()
    return session.playback_status()

@app.post("/playback/pause", response_model=PlaybackStatus)
async def pause():
    session = get_session()
    session.pause()
    return session.playback_status()

@app.post("/playback/reset", response_model=PlaybackStatus)
async def reset():
    session = get_session()
    session.reset()
    return session.playback_status()

@app.post("/playback/step", response_model=PlaybackStatus)
async def step():
    session = get_session()
    session.step()
    return session.playback_status()

@app.post("/playback/skip/{index}", response_model=PlaybackStatus)
async def skip_to(index: int):
    """Seek to a timeline position; out-of-range positions are clamped"""
    session = get_session()
    session.skip_to(index)
    return session.playback_status()

@app.post("/playback/seek", response_model=PlaybackStatus)
async def seek(progress: float):
    """Seek to a percentage of the timeline"""
    session = get_session()
    session.seek_progress(progress)
    return session.playback_status()

@app.get("/playback/speeds", response_model=dict)
async def get_speeds():
    """Preset speed multipliers and the current one"""
    return {
        "presets": settings.SPEED_PRESETS,
        "current": get_session().playback_speed
    }

@app.post("/playback/speed", response_model=PlaybackStatus)
async def change_speed(request: SpeedRequest):
    session = get_session()
    try:
        session.change_speed(request.speed)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return session.playback_status()

@app.post("/reload", response_model=PlaybackStatus)
async def reload_trips():
    """Reload trip files from disk and start over"""
    try:
        session = load_session()
    except DataLoaderError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except TimelineError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return session.playback_status()

# Error handlers
@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )
