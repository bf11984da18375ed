"""
FastAPI dependency injection providers.

The application lifespan stores the meter session and the latest-message
sink on ``app.state``; these providers hand them to route handlers.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-118)

TODO:
- None
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from youless.src.config import DiscoverySettings
from youless.src.session import MeterSession
from youless.src.sink import LatestMessageSink


def get_session(request: Request) -> MeterSession:
    """FastAPI dependency: the meter session owned by this app.

    Raises:
        HTTPException: 503 if the application has not finished starting.
    """
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Meter session not ready.")
    return session


def get_telemetry(request: Request) -> LatestMessageSink:
    """FastAPI dependency: the sink holding the latest telemetry message."""
    telemetry = getattr(request.app.state, "telemetry", None)
    if telemetry is None:
        raise HTTPException(status_code=503, detail="Meter session not ready.")
    return telemetry


def get_discovery_settings() -> DiscoverySettings:
    return DiscoverySettings()


# Annotated dependencies for use in route signatures:
#   def my_endpoint(session: CurrentSession): ...
CurrentSession = Annotated[MeterSession, Depends(get_session)]
Telemetry = Annotated[LatestMessageSink, Depends(get_telemetry)]
Discovery = Annotated[DiscoverySettings, Depends(get_discovery_settings)]
