"""
Shared test fixtures for the YouLess edge tests.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-101)
- 2026-10-13: Add mock meter transport and manual scheduler (STORY-110)

TODO:
- None
"""

import os
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from youless.src.config import MeterSettings


@pytest.fixture(autouse=True)
def _clean_youless_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all YOULESS_* env vars and isolate from .env files.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in list(os.environ):
        if var.startswith("YOULESS_"):
            monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


# ---------------------------------------------------------------------------
# Fake meter over httpx.MockTransport
# ---------------------------------------------------------------------------


def _respond(value: Any) -> httpx.Response:
    if isinstance(value, Exception):
        raise value
    if isinstance(value, httpx.Response):
        return value
    return httpx.Response(200, json=value)


@pytest.fixture()
def meter_transport() -> Callable[[dict[str, Any]], httpx.MockTransport]:
    """Build a MockTransport answering from a ``{url: reply}`` mapping.

    A reply is an ``httpx.Response``, an exception to raise, or any
    JSON-serializable value served with HTTP 200. Unknown URLs get 404.
    The mapping is read on every request, so tests may mutate it.
    """

    def factory(routes: dict[str, Any]) -> httpx.MockTransport:
        def handler(request: httpx.Request) -> httpx.Response:
            key = str(request.url)
            if key not in routes:
                return httpx.Response(404)
            return _respond(routes[key])

        return httpx.MockTransport(handler)

    return factory


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------


class ManualScheduler:
    """Scheduler fake: cycles only run when a test calls ``fire()``."""

    def __init__(self, interval_s: float, callback: Callable[[], None]) -> None:
        self.interval_s = interval_s
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.started and not self.cancelled:
            self.callback()


@pytest.fixture()
def schedulers() -> list[ManualScheduler]:
    """Every ManualScheduler created through ``scheduler_factory``."""
    return []


@pytest.fixture()
def scheduler_factory(
    schedulers: list[ManualScheduler],
) -> Callable[[float, Callable[[], None]], ManualScheduler]:
    def factory(interval_s: float, callback: Callable[[], None]) -> ManualScheduler:
        scheduler = ManualScheduler(interval_s, callback)
        schedulers.append(scheduler)
        return scheduler

    return factory


@pytest.fixture()
def meter_settings() -> MeterSettings:
    """A valid LS120 configuration for host 192.168.1.50."""
    return MeterSettings(host="192.168.1.50", model="LS120", interval_s=10)
