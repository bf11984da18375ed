"""
Headless daemon entry point: poll one YouLess meter, print telemetry.

Builds a :class:`MeterSession` from ``YOULESS_*`` environment variables
and writes every telemetry message as a JSON line to stdout. Logs go to
stderr as structured JSON. With ``--discover`` the daemon instead runs a
single discovery scan, prints the devices found, and exits.

Handles SIGTERM and SIGINT for graceful shutdown inside Docker: the
signal sets ``shutdown_event``, after which the session is closed so no
further fetch cycle starts.

CHANGELOG:
- 2026-10-14: Initial creation (STORY-117)

TODO:
- None
"""

import argparse
import json
import logging
import signal
import sys
import threading
from types import FrameType

from youless.src.config import AppSettings, DiscoverySettings, MeterSettings
from youless.src.discovery import discover_blocking
from youless.src.health import write_health_file
from youless.src.logging_config import setup_logging
from youless.src.session import MeterSession
from youless.src.sink import JsonLinesSink

logger = logging.getLogger(__name__)

# Module-level shutdown event shared between signal handlers and main().
shutdown_event = threading.Event()

# Seconds between health file refreshes.
_HEALTH_INTERVAL_S: float = 5.0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="youless-edge",
        description="Poll a YouLess energy meter over its local JSON API",
    )
    parser.add_argument(
        "--discover",
        action="store_true",
        help="Scan the local networks for meters, print them and exit",
    )
    return parser


def _signal_handler(
    signum: int,
    _frame: FrameType | None,
) -> None:
    """Handle SIGTERM/SIGINT by signalling shutdown."""
    sig_name = signal.Signals(signum).name
    logger.info("Received %s, initiating graceful shutdown", sig_name)
    shutdown_event.set()


def run_discovery() -> int:
    """Run one discovery scan and print ``{"devices": [...]}`` to stdout."""
    devices = discover_blocking(DiscoverySettings())
    print(json.dumps({"devices": [d.model_dump() for d in devices]}))
    return 0


def run_daemon(app_settings: AppSettings) -> int:
    """Poll until a signal arrives.

    Returns:
        Process exit code: 0 on clean shutdown, 1 when the configuration
        does not allow polling to start.
    """
    settings = MeterSettings()
    session = MeterSession(settings, JsonLinesSink())

    signal.signal(signal.SIGTERM, _signal_handler)
    signal.signal(signal.SIGINT, _signal_handler)

    if settings.start_automatically:
        if not session.start():
            return 1
    else:
        logger.info("Automatic start disabled; session idle")

    while not shutdown_event.wait(timeout=_HEALTH_INTERVAL_S):
        if app_settings.health_file:
            write_health_file(session, app_settings.health_file)

    session.close()
    logger.info("YouLess daemon shut down cleanly")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    app_settings = AppSettings()
    setup_logging(app_settings.log_level)

    if args.discover:
        return run_discovery()
    return run_daemon(app_settings)


if __name__ == "__main__":
    sys.exit(main())
