"""
FastAPI application entry point for the YouLess admin API.

The lifespan builds the meter session from ``YOULESS_*`` environment
variables, starts it when ``YOULESS_START_AUTOMATICALLY`` is set, and
closes it on shutdown. Run with
``uvicorn youless.src.api.main:app``.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-118)
- 2026-10-15: Register control router (STORY-119)

TODO:
- None
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from youless.src.api.admin import router as admin_router
from youless.src.api.control import router as control_router
from youless.src.api.deps import CurrentSession
from youless.src.config import AppSettings, MeterSettings
from youless.src.health import get_health_status
from youless.src.logging_config import setup_logging
from youless.src.session import MeterSession
from youless.src.sink import JsonLinesSink, LatestMessageSink

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Own the meter session for the lifetime of the application."""
    setup_logging(AppSettings().log_level)
    settings = MeterSettings()
    telemetry = LatestMessageSink(forward=JsonLinesSink())
    session = MeterSession(settings, telemetry)
    app.state.session = session
    app.state.telemetry = telemetry

    if settings.start_automatically:
        session.start()
    try:
        yield
    finally:
        session.close()
        logger.info("Meter session closed")


app = FastAPI(
    title="YouLess Edge API",
    description="Discovery and polling control for YouLess energy meters.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(admin_router)
app.include_router(control_router)


@app.get("/")
async def root() -> dict:
    """Liveness endpoint.

    Returns:
        dict: JSON object with application status.
    """
    return {"status": "ok"}


@app.get("/health")
def health_check(session: CurrentSession) -> JSONResponse:
    """Session health: HTTP 200 while polling without errors, else 503."""
    status = get_health_status(session)
    return JSONResponse(
        status_code=200 if status["healthy"] else 503,
        content=status,
    )
