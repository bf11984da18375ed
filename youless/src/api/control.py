"""
Control and status endpoints for the running meter session.

- ``POST /v1/control``: inbound control signal. ``start``, ``stop`` and
  ``restart`` drive the polling lifecycle; any other command fetches once.
- ``GET /v1/status``: current session status projection.
- ``GET /v1/telemetry/latest``: last emitted telemetry message.

Handlers are plain ``def`` so FastAPI runs the blocking fetch of a
"fetch once" command in its threadpool.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-119)

TODO:
- None
"""

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from youless.src.api.deps import CurrentSession, Telemetry
from youless.src.models import TelemetryMessage
from youless.src.session import MAX_ERRORS, MeterSession

router = APIRouter(prefix="/v1", tags=["control"])


class ControlRequest(BaseModel):
    """Schema for a control signal.

    Attributes:
        command: ``start``, ``stop``, ``restart``, or anything else to
            request a single fetch.
    """

    command: Any = None


class StatusResponse(BaseModel):
    """Schema for the session status projection."""

    state: str
    text: str
    running: bool
    error_count: int
    max_errors: int = MAX_ERRORS


def _status_response(session: MeterSession) -> StatusResponse:
    status = session.status
    return StatusResponse(
        state=status.state.value,
        text=status.text,
        running=status.running,
        error_count=status.error_count,
    )


@router.post("/control", response_model=StatusResponse)
def control(request: ControlRequest, session: CurrentSession) -> StatusResponse:
    """Apply a control signal and return the resulting status."""
    session.handle_command(request.command)
    return _status_response(session)


@router.get("/status", response_model=StatusResponse)
def get_status(session: CurrentSession) -> StatusResponse:
    return _status_response(session)


@router.get("/telemetry/latest", response_model=TelemetryMessage)
def get_latest_telemetry(telemetry: Telemetry) -> TelemetryMessage:
    """Return the last emitted telemetry message.

    Raises:
        HTTPException: 404 if no cycle has succeeded yet.
    """
    if telemetry.latest is None:
        raise HTTPException(status_code=404, detail="No telemetry received yet")
    return telemetry.latest
