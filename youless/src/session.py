"""
Polling session for one configured YouLess meter.

``MeterSession`` owns the polling lifecycle: start/stop/restart, single
fetch cycles, the consecutive-error counter, and the scheduler that fires
recurring cycles. After ``MAX_ERRORS`` consecutive failed cycles the
session stops itself and stays stopped until an explicit start/restart.

Cycles of one session never overlap: the scheduler runs them on a single
thread and a cycle lock serializes them against ``fetch_once()``. A cycle
that is still in flight when the session is stopped (or restarted) is
allowed to finish, but its outcome is discarded. A cycle that had not yet
started when the session was stopped never sends a request.

CHANGELOG:
- 2026-10-13: Initial creation (STORY-110)
- 2026-10-15: Discard outcomes of cycles from a previous generation (STORY-114)
- 2026-10-17: Skip queued cycles of a stopped session before any request;
  expose last_success_age_s (STORY-121)

TODO:
- None
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from functools import partial
from typing import Protocol

import httpx

from youless.src.client import create_client
from youless.src.config import MeterSettings, check_configuration
from youless.src.errors import ConfigurationError, MeterError
from youless.src.fetchers import detect_model, fetch_record
from youless.src.models import TelemetryMessage, TelemetryRecord
from youless.src.normalizer import round_record

logger = logging.getLogger(__name__)

# Consecutive failed cycles after which polling stops itself.
MAX_ERRORS: int = 10


class SessionState(StrEnum):
    """Operator-facing projection of the session state."""

    NOT_RUNNING = "not-running"
    POLLING = "polling"
    ERROR = "error"
    STOPPED_AFTER_ERRORS = "stopped-after-errors"
    MISSING_CONFIGURATION = "missing-configuration"


@dataclass(frozen=True)
class SessionStatus:
    """Snapshot of a session for status displays and health checks."""

    state: SessionState
    text: str
    running: bool
    error_count: int


class Scheduler(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


SchedulerFactory = Callable[[float, Callable[[], None]], Scheduler]
TelemetrySink = Callable[[TelemetryMessage], None]


class IntervalScheduler:
    """Run *callback* now and then every *interval_s* seconds on a thread.

    ``cancel()`` returns immediately; once it has been called no new
    callback starts, although one already running is not interrupted.
    """

    def __init__(
        self,
        interval_s: float,
        callback: Callable[[], None],
        *,
        name: str = "youless-poll",
    ) -> None:
        self._interval_s = interval_s
        self._callback = callback
        self._cancelled = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name=name)

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._cancelled.set()

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout)

    def _run(self) -> None:
        if self._cancelled.is_set():
            return
        self._callback()
        while not self._cancelled.wait(timeout=self._interval_s):
            self._callback()


class MeterSession:
    """Polling state machine for one meter.

    Args:
        settings: Meter configuration (immutable for the session's life).
        sink: Receives a :class:`TelemetryMessage` per successful cycle.
        client_factory: Builds the HTTP client used by one cycle.
            Defaults to a client with the configured password and timeout.
        scheduler_factory: Builds the recurring scheduler from an interval
            and a callback. Defaults to :class:`IntervalScheduler`.
        clock: Monotonic clock used for the last-success timestamp.
    """

    def __init__(
        self,
        settings: MeterSettings,
        sink: TelemetrySink,
        *,
        client_factory: Callable[[], httpx.Client] | None = None,
        scheduler_factory: SchedulerFactory = IntervalScheduler,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._sink = sink
        self._client_factory = client_factory or partial(
            create_client, password=settings.password, timeout=settings.timeout_s
        )
        self._scheduler_factory = scheduler_factory
        self._clock = clock

        self._lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._scheduler: Scheduler | None = None
        # Bumped on every start/stop so late cycles can tell they are stale.
        self._generation = 0
        self._error_count = 0
        self._state = SessionState.NOT_RUNNING
        self._text = "not running"
        self._last_success: float | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def settings(self) -> MeterSettings:
        return self._settings

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    @property
    def error_count(self) -> int:
        return self._error_count

    @property
    def last_success(self) -> float | None:
        """Clock value of the last successful cycle, if any."""
        return self._last_success

    @property
    def last_success_age_s(self) -> float | None:
        """Seconds since the last successful cycle on the session clock."""
        last = self._last_success
        if last is None:
            return None
        return self._clock() - last

    @property
    def status(self) -> SessionStatus:
        with self._lock:
            return SessionStatus(
                state=self._state,
                text=self._text,
                running=self._scheduler is not None,
                error_count=self._error_count,
            )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def validate(self) -> bool:
        """Check the configuration, reporting a problem via the status."""
        try:
            check_configuration(self._settings)
        except ConfigurationError as exc:
            logger.error("%s", exc, extra={"host": self._settings.host or None})
            with self._lock:
                self._state = SessionState.MISSING_CONFIGURATION
                self._text = f"missing {exc.field} configuration"
            return False
        return True

    def start(self) -> bool:
        """Start polling; no-op when already polling.

        Returns:
            ``True`` if the session is polling afterwards, ``False`` when
            the configuration is invalid.
        """
        with self._lock:
            if self._scheduler is not None:
                return True
        if not self.validate():
            return False

        with self._lock:
            if self._scheduler is not None:
                return True
            self._generation += 1
            self._error_count = 0
            self._state = SessionState.POLLING
            self._text = "polling..."
            scheduler = self._scheduler_factory(
                self._settings.interval_s,
                partial(self._run_cycle, self._generation),
            )
            self._scheduler = scheduler
            scheduler.start()

        logger.info(
            "Started polling host %s at interval %ds",
            self._settings.host,
            self._settings.interval_s,
            extra={"host": self._settings.host},
        )
        return True

    def stop(self) -> None:
        """Stop polling; idempotent."""
        with self._lock:
            if not self._halt(SessionState.NOT_RUNNING, "not running"):
                return
        logger.info("Stopped polling", extra={"host": self._settings.host})

    def restart(self) -> bool:
        self.stop()
        return self.start()

    def fetch_once(self) -> None:
        """Run a single fetch cycle without touching the schedule."""
        if not self.validate():
            return
        with self._lock:
            generation = self._generation
        self._run_cycle(generation)

    def handle_command(self, command: object) -> None:
        """Apply an inbound control signal.

        ``"start"``, ``"stop"`` and ``"restart"`` drive the lifecycle; any
        other value requests a single fetch.
        """
        if command == "start":
            self.start()
        elif command == "stop":
            self.stop()
        elif command == "restart":
            self.restart()
        else:
            self.fetch_once()

    def close(self) -> None:
        """Tear the session down (unconditional stop)."""
        self.stop()

    def _halt(self, state: SessionState, text: str) -> bool:
        # Caller holds self._lock.
        if self._scheduler is None:
            return False
        self._scheduler.cancel()
        self._scheduler = None
        self._generation += 1
        self._state = state
        self._text = text
        return True

    # ------------------------------------------------------------------
    # Fetch cycle
    # ------------------------------------------------------------------

    def _run_cycle(self, generation: int) -> None:
        with self._cycle_lock:
            with self._lock:
                if generation != self._generation:
                    logger.debug("Skipping cycle of a stopped session")
                    return
            self._cycle(generation)

    def _cycle(self, generation: int) -> None:
        settings = self._settings
        if not self.validate():
            with self._lock:
                if self._scheduler is not None:
                    self._scheduler.cancel()
                    self._scheduler = None
                    self._generation += 1
            return

        try:
            with self._client_factory() as client:
                model = self._detect_model(client)
                record = fetch_record(
                    client,
                    settings.host,
                    model,
                    show_negative_current=settings.show_negative_current,
                )
            record = round_record(record, settings.decimal_places)
        except MeterError as exc:
            self._record_failure(generation, exc)
            return
        except Exception as exc:
            logger.exception(
                "Unexpected error in fetch cycle", extra={"host": settings.host}
            )
            self._record_failure(generation, exc)
            return

        self._record_success(generation, record)

    def _detect_model(self, client: httpx.Client) -> str:
        try:
            return detect_model(client, self._settings.host)
        except MeterError as exc:
            logger.warning(
                "Couldn't detect model: %s, using configured model: %s",
                exc,
                self._settings.model,
                extra={"host": self._settings.host},
            )
            return self._settings.model

    def _record_success(self, generation: int, record: TelemetryRecord) -> None:
        with self._lock:
            if generation != self._generation:
                logger.debug("Discarding reading from a stopped session")
                return
            self._error_count = 0
            self._last_success = self._clock()
            self._state = (
                SessionState.POLLING
                if self._scheduler is not None
                else SessionState.NOT_RUNNING
            )
            sign = "-" if record.is_generating else ""
            self._text = f"{sign}{record.power_absolute} W"

        message = TelemetryMessage(
            topic=self._settings.topic, payload=record.to_payload()
        )
        try:
            self._sink(message)
        except Exception:
            logger.exception(
                "Telemetry sink failed", extra={"topic": message.topic}
            )

    def _record_failure(self, generation: int, exc: Exception) -> None:
        with self._lock:
            if generation != self._generation:
                logger.debug("Discarding failure from a stopped session: %s", exc)
                return
            self._error_count += 1
            count = self._error_count
            self._state = SessionState.ERROR
            self._text = f"error ({count}/{MAX_ERRORS})"
            if count >= MAX_ERRORS:
                self._halt(SessionState.STOPPED_AFTER_ERRORS, "stopped after errors")
                # _halt is a no-op for an already stopped session.
                self._state = SessionState.STOPPED_AFTER_ERRORS
                self._text = "stopped after errors"

        logger.warning(
            "Error fetching YouLess data (%d/%d): %s",
            count,
            MAX_ERRORS,
            exc,
            extra={"host": self._settings.host},
        )
        if count >= MAX_ERRORS:
            logger.error(
                "Stopped polling due to multiple consecutive errors",
                extra={"host": self._settings.host},
            )
