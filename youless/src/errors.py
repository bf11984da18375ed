"""
Exception hierarchy for the YouLess meter edge.

Fetch failures (transport or response shape) count toward a session's
consecutive-error budget. Configuration errors block a session from
polling but never consume that budget.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-102)

TODO:
- None
"""


class YoulessError(Exception):
    """Base exception for all YouLess edge errors."""


class ConfigurationError(YoulessError):
    """Meter configuration is missing or invalid.

    Args:
        field: The offending setting (``"host"`` or ``"model"``).
        message: Human-readable description.
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(message)


class MeterError(YoulessError):
    """A fetch cycle could not produce a telemetry record."""


class MeterTransportError(MeterError):
    """HTTP call failed: timeout, connection refused/reset, or bad status."""


class MeterResponseError(MeterError):
    """Response parsed but lacks the fields a record needs.

    Args:
        url: The URL whose body was rejected.
        reason: Human-readable description of what was missing.
    """

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Unexpected response from {url}: {reason}")
