"""
Health reporting for a polling session.

Exposes ``get_health_status()`` which summarizes a session's state for the
admin API and ``write_health_file()`` for Docker healthcheck integration
via a JSON file on disk.

CHANGELOG:
- 2026-10-14: Initial creation (STORY-116)
- 2026-10-17: Elapsed time comes from the session clock (STORY-121)

TODO:
- None
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from youless.src.session import MeterSession

logger = logging.getLogger(__name__)


def get_health_status(session: MeterSession) -> dict[str, Any]:
    """Build a health status dict for *session*.

    Fields:
    - **state** / **text**: the session status projection.
    - **running**: whether the recurring schedule is active.
    - **error_count**: consecutive failed cycles.
    - **last_success_elapsed_s**: seconds since the last successful
      cycle (``None`` if there has been none).
    - **healthy**: polling with no outstanding errors.
    """
    status = session.status
    elapsed = session.last_success_age_s
    if elapsed is not None:
        elapsed = round(elapsed, 1)

    return {
        "state": status.state.value,
        "text": status.text,
        "running": status.running,
        "error_count": status.error_count,
        "last_success_elapsed_s": elapsed,
        "healthy": status.running and status.error_count == 0,
        "checked_at": datetime.now(tz=UTC).isoformat(),
    }


def write_health_file(session: MeterSession, path: str) -> None:
    """Write the health status of *session* as JSON to *path*.

    Errors during write are logged but not raised.
    """
    try:
        status = get_health_status(session)
        Path(path).write_text(json.dumps(status), encoding="utf-8")
    except Exception:
        logger.warning("Health check: failed to write health file", exc_info=True)
