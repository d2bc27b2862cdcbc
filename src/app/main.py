"""ONCALL-SIM - operational training simulator.

Main FastAPI application.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from app.config import settings
from app.routers import game_router, ws_router
from app.routers.ws import start_session_event_bridge
from oncall.comms import EventBus
from oncall.simulation import GameSession

VERSION = "0.1.0"


def _create_session() -> GameSession:
    """Build the game session described by ``settings``."""
    config = settings.session_config()
    session = GameSession(config=config, event_bus=EventBus())
    seed = "random" if config.rng_seed is None else config.rng_seed
    logger.info(
        f"Game session created: {config.total_days} days x {config.day_length} ticks, "
        f"up to {config.max_workers} workers, seed {seed}"
    )
    return session


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("=" * 60)
    logger.info(f"  {settings.app_name} v{VERSION} - INITIALIZING")
    logger.info("=" * 60)

    session = _create_session()
    app.state.game_session = session
    app.state.event_bridge = start_session_event_bridge(
        session.event_bus, asyncio.get_running_loop()
    )
    session.start()
    if settings.autostart:
        logger.info("Autostart enabled: game clock running")

    logger.info("=" * 60)
    logger.info(f"  {settings.app_name} ONLINE")
    logger.info("=" * 60)

    yield

    logger.info(f"{settings.app_name} shutting down...")
    session.stop()
    app.state.event_bridge.stop()


# Create FastAPI app
app = FastAPI(
    title="ONCALL-SIM",
    description="Operational training simulator for a fleet of orchestration workers",
    version=VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(game_router)
app.include_router(ws_router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "operational",
        "version": VERSION,
        "system": settings.app_name,
    }


@app.get("/api/status")
async def status():
    """System status endpoint."""
    session = getattr(app.state, "game_session", None)
    if session is None:
        return {"name": settings.app_name, "version": VERSION, "session": "unavailable"}
    state = session.state
    return {
        "name": settings.app_name,
        "version": VERSION,
        "session": "running" if state.is_running else "idle",
        "day": state.day,
        "total_days": session.rules.total_days,
        "workers": len(state.workers),
        "active_incidents": len(state.active_incidents()),
        "uptime": state.score.uptime,
        "timers_armed": session.timers_armed,
    }


def run() -> None:
    """Serve the app with uvicorn using the configured host/port."""
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port, reload=settings.debug)
