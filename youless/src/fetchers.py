"""
Per-model fetch strategies for a configured meter.

Each fetcher performs the HTTP calls its model needs and hands the raw
bodies to the normalizer. ``FETCHERS`` is the closed dispatch table keyed
by :class:`MeterModel`; :func:`fetch_record` picks an entry from a detected
model string and, for a model outside that table, tries LS120 first and
falls back to LS110.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-108)

TODO:
- None
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

import httpx

from youless.src.client import (
    LS110_PATH,
    LS120_PATH,
    MODEL_INFO_PATH,
    PHASE_PATH,
    get_json,
    meter_url,
    parse_model_info,
)
from youless.src.errors import MeterError, MeterResponseError
from youless.src.models import Ls110Record, Ls120Record, MeterModel, TelemetryRecord
from youless.src.normalizer import normalize_ls110, normalize_ls120

logger = logging.getLogger(__name__)

Fetcher = Callable[..., TelemetryRecord]


def detect_model(client: httpx.Client, host: str) -> str:
    """Ask the meter which model it is via the model-info endpoint.

    Returns:
        The ``model`` string the meter reports.

    Raises:
        MeterError: If the call fails or the body names no model.
    """
    body = parse_model_info(get_json(client, host, MODEL_INFO_PATH))
    if not body or not body.get("model"):
        raise MeterResponseError(
            meter_url(host, MODEL_INFO_PATH), "no model field"
        )
    return str(body["model"])


def fetch_ls110(
    client: httpx.Client,
    host: str,
    *,
    show_negative_current: bool = False,  # noqa: ARG001
) -> Ls110Record:
    """Fetch and normalize one LS110 reading from ``/a?f=j``.

    Raises:
        MeterError: On transport failure or a body without ``pwr``.
    """
    url = meter_url(host, LS110_PATH)
    data = get_json(client, host, LS110_PATH)
    logger.debug("Raw LS110 data: %s", data, extra={"host": host})
    if not isinstance(data, dict):
        raise MeterResponseError(url, "expected a JSON object")
    try:
        return normalize_ls110(data, datetime.now(tz=UTC))
    except ValueError as exc:
        raise MeterResponseError(url, str(exc)) from exc


def fetch_ls120(
    client: httpx.Client,
    host: str,
    *,
    show_negative_current: bool = False,
) -> Ls120Record:
    """Fetch and normalize one LS120 reading.

    The energy endpoint ``/e?f=j`` must return a non-empty list. Phase data
    from ``/f?f=j`` is only requested after that succeeded and is
    best-effort: its failure is logged and the record simply has no
    phase fields.

    Raises:
        MeterError: On transport failure of the energy call or an energy
            body without a usable first element.
    """
    url = meter_url(host, LS120_PATH)
    data = get_json(client, host, LS120_PATH)
    logger.debug("Raw LS120 energy data: %s", data, extra={"host": host})
    if not isinstance(data, list) or not data:
        raise MeterResponseError(url, "expected a non-empty JSON array")
    if not isinstance(data[0], dict):
        raise MeterResponseError(url, "first element is not an object")

    phase = _fetch_phase_data(client, host)
    try:
        return normalize_ls120(
            data[0],
            datetime.now(tz=UTC),
            phase,
            show_negative_current=show_negative_current,
        )
    except ValueError as exc:
        raise MeterResponseError(url, str(exc)) from exc


def _fetch_phase_data(client: httpx.Client, host: str) -> dict | None:
    try:
        phase = get_json(client, host, PHASE_PATH)
    except MeterError as exc:
        logger.warning("Error getting phase data: %s", exc, extra={"host": host})
        return None
    logger.debug("Raw phase data: %s", phase, extra={"host": host})
    return phase if isinstance(phase, dict) else None


FETCHERS: dict[MeterModel, Fetcher] = {
    MeterModel.LS110: fetch_ls110,
    MeterModel.LS120: fetch_ls120,
}


def fetch_record(
    client: httpx.Client,
    host: str,
    model: str,
    *,
    show_negative_current: bool = False,
) -> TelemetryRecord:
    """Fetch one record using the strategy for *model*.

    A model outside :class:`MeterModel` (e.g. a newer firmware string) is
    ambiguous: LS120 is tried first, then LS110.

    Raises:
        MeterError: If the chosen strategy (or both, when ambiguous) fails.
    """
    try:
        fetcher = FETCHERS[MeterModel(model)]
    except ValueError:
        fetcher = None

    if fetcher is not None:
        return fetcher(client, host, show_negative_current=show_negative_current)

    try:
        return fetch_ls120(client, host, show_negative_current=show_negative_current)
    except MeterError as exc:
        logger.info(
            "LS120 fetch failed for model %r (%s), trying LS110",
            model,
            exc,
            extra={"host": host},
        )
        return fetch_ls110(client, host)
