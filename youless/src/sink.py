"""
Telemetry sinks: where emitted ``{topic, payload}`` messages go.

CHANGELOG:
- 2026-10-14: Initial creation (STORY-113)

TODO:
- None
"""

import sys
import threading
from collections.abc import Callable
from typing import TextIO

from youless.src.models import TelemetryMessage


class JsonLinesSink:
    """Write each message as one JSON line to a text stream (stdout)."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self._lock = threading.Lock()

    def __call__(self, message: TelemetryMessage) -> None:
        line = message.model_dump_json()
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()


class LatestMessageSink:
    """Keep the most recent message and optionally forward every message.

    Args:
        forward: Downstream sink that also receives each message.
    """

    def __init__(
        self, forward: Callable[[TelemetryMessage], None] | None = None
    ) -> None:
        self._forward = forward
        self._latest: TelemetryMessage | None = None

    @property
    def latest(self) -> TelemetryMessage | None:
        return self._latest

    def __call__(self, message: TelemetryMessage) -> None:
        self._latest = message
        if self._forward is not None:
            self._forward(message)
