"""
Administrative endpoints for the operator console.

- ``GET /v1/models``: static list of supported meter models.
- ``GET /v1/discover``: run a discovery scan now and return the meters
  found, or HTTP 500 with an ``error`` message.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-118)

TODO:
- None
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from youless.src.api.deps import Discovery
from youless.src.discovery import discover
from youless.src.models import MODEL_LABELS, MeterModel, ProbeResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic response schemas
# ---------------------------------------------------------------------------


class ModelOption(BaseModel):
    """One entry of the model picker.

    Attributes:
        value: Model identifier used in configuration.
        label: Human-readable description.
    """

    value: str
    label: str


class DiscoveryResponse(BaseModel):
    """Schema for the discovery response.

    Attributes:
        devices: Meters found on the local networks.
    """

    devices: list[ProbeResult]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/models", response_model=list[ModelOption])
async def list_models() -> list[ModelOption]:
    """Return the meter models the edge can poll."""
    return [ModelOption(value=m.value, label=MODEL_LABELS[m]) for m in MeterModel]


@router.get("/discover", response_model=DiscoveryResponse)
async def run_discovery(settings: Discovery) -> DiscoveryResponse | JSONResponse:
    """Scan the local networks for meters.

    Returns:
        DiscoveryResponse with the devices found, or a 500 JSON response
        ``{"error": message}`` when the scan itself failed.
    """
    try:
        devices = await discover(settings)
    except Exception as exc:
        logger.exception("Discovery failed")
        return JSONResponse(status_code=500, content={"error": str(exc)})
    return DiscoveryResponse(devices=devices)
