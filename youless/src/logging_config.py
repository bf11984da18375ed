"""
Structured JSON logging for the YouLess edge daemon and admin API.

Each log record becomes one JSON line with ``timestamp``, ``level``,
``logger`` and ``message``. Records logged with ``extra={"host": ...}``
or ``extra={"model": ...}`` carry those keys too, and exceptions are
rendered into an ``exc_info`` string.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-103)

TODO:
- None
"""

import json
import logging
from datetime import UTC, datetime

# Optional ``extra=`` attributes copied into the JSON line when present.
_EXTRA_FIELDS: tuple[str, ...] = ("host", "model", "topic")


class JSONFormatter(logging.Formatter):
    """Logging formatter that outputs a single JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in _EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value
        if record.exc_info:
            log_entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(level: int | str = logging.INFO) -> None:
    """Configure the root logger with structured JSON output.

    Removes any existing handlers on the root logger and installs
    a single ``StreamHandler`` using :class:`JSONFormatter`.

    Args:
        level: Logging level (number or name) for the root logger.
    """
    root = logging.getLogger()
    root.setLevel(level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)

    # httpx logs every request at INFO; discovery alone makes hundreds.
    logging.getLogger("httpx").setLevel(logging.WARNING)
