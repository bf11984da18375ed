"""
Telemetry normalizer for raw YouLess readings.

Pure functions that turn the raw JSON bodies of the LS110 and LS120 APIs
into canonical telemetry records, plus the optional numeric rounding
applied to a finished record. No I/O and no internal clock: the record
timestamp is always injected via parameter for testability.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-105)
- 2026-10-14: Round records with a typed walk instead of a dict walk (STORY-111)

TODO:
- None
"""

import math
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, TypeVar

from pydantic import BaseModel

from youless.src.config import ROUNDING_DISABLED
from youless.src.models import (
    Ls110Record,
    Ls120Record,
    PhaseReading,
    Phases,
    PulseCounter,
    TariffCounters,
    UtilityCounter,
)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Raw LS110 key -> Ls110Record passthrough field.
_LS110_PASSTHROUGH: dict[str, str] = {
    "dev": "device",
    "det": "details",
    "con": "connection",
    "sts": "status",
    "raw": "raw_value",
}


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------


def parse_numeric_string(value: Any) -> float | None:
    """Parse a meter number that may use a comma as decimal separator.

    The LS110 reports its counter as a padded string such as
    ``" 1234,56"``. Numbers pass through as floats; anything that cannot
    be read as a number yields ``None``.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = value.strip().replace(",", ".", 1)
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def unix_to_iso(seconds: Any) -> str | None:
    """Convert a Unix timestamp in seconds to ISO-8601 UTC.

    Missing, zero, or out-of-range values yield ``None``.
    """
    if not seconds or isinstance(seconds, bool):
        return None
    try:
        return datetime.fromtimestamp(float(seconds), tz=UTC).isoformat()
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _number(value: Any, field: str) -> int | float:
    if isinstance(value, bool):
        raise ValueError(f"Field {field!r} is not numeric: {value!r}")
    if isinstance(value, (int, float)):
        return value
    parsed = parse_numeric_string(value)
    if parsed is None:
        raise ValueError(f"Field {field!r} is not numeric: {value!r}")
    return parsed


def _number_or_zero(value: Any) -> int | float:
    if isinstance(value, bool) or not value:
        return 0
    if isinstance(value, (int, float)):
        return value
    return parse_numeric_string(value) or 0


# ---------------------------------------------------------------------------
# Record assembly
# ---------------------------------------------------------------------------


def normalize_ls110(raw: dict, ts: datetime) -> Ls110Record:
    """Build an LS110 record from a ``/a?f=j`` body.

    Args:
        raw: Parsed JSON object. Must contain ``pwr``.
        ts: UTC timestamp to attach to the record.

    Returns:
        The canonical LS110 telemetry record.

    Raises:
        ValueError: If ``pwr`` is missing or not numeric.
    """
    if "pwr" not in raw:
        raise ValueError("Raw LS110 reading is missing required field: pwr")
    power = _number(raw["pwr"], "pwr")

    fields: dict[str, Any] = {
        "timestamp": ts.isoformat(),
        "power": power,
        "power_absolute": abs(power),
        "is_generating": power < 0,
        "counter": parse_numeric_string(raw.get("cnt")),
    }
    if raw.get("lvl") is not None:
        fields["signal_level"] = raw["lvl"]
    for raw_key, field in _LS110_PASSTHROUGH.items():
        # Empty strings are what the meter sends for "not applicable".
        if raw.get(raw_key):
            fields[field] = raw[raw_key]
    return Ls110Record(**fields)


def normalize_ls120(
    raw: dict,
    ts: datetime,
    phase: dict | None = None,
    *,
    show_negative_current: bool = False,
) -> Ls120Record:
    """Build an LS120 record from a ``/e?f=j`` element and ``/f?f=j`` body.

    ``p1``/``p2`` are the delivery (consumption) tariff counters and
    ``n1``/``n2`` the return (generation) counters; missing counters count
    as zero. S0, gas and water sub-records are only present when the meter
    reports them.

    Args:
        raw: First element of the energy response. Must contain ``pwr``.
        ts: UTC timestamp to attach to the record.
        phase: Parsed phase-data object, or ``None`` when unavailable.
        show_negative_current: Negate positive phase currents whose phase
            power is negative.

    Returns:
        The canonical LS120 telemetry record.

    Raises:
        ValueError: If ``pwr`` is missing or not numeric.
    """
    if "pwr" not in raw:
        raise ValueError("Raw LS120 reading is missing required field: pwr")
    power = _number(raw["pwr"], "pwr")

    p1, p2 = _number_or_zero(raw.get("p1")), _number_or_zero(raw.get("p2"))
    n1, n2 = _number_or_zero(raw.get("n1")), _number_or_zero(raw.get("n2"))

    fields: dict[str, Any] = {
        "timestamp": ts.isoformat(),
        "power": power,
        "power_absolute": abs(power),
        "is_generating": power < 0,
        "net": raw.get("net"),
        "delivered": TariffCounters(total=p1 + p2, tariff1=p1, tariff2=p2),
        "returned": TariffCounters(total=n1 + n2, tariff1=n1, tariff2=n2),
    }

    if raw.get("cs0") is not None:
        fields["s0"] = PulseCounter(
            counter=raw["cs0"],
            power=_number_or_zero(raw.get("ps0")),
            timestamp=unix_to_iso(raw.get("ts0")),
        )
    if raw.get("gas") is not None:
        fields["gas"] = UtilityCounter(
            counter=raw["gas"], timestamp=unix_to_iso(raw.get("gts"))
        )
    if raw.get("wtr") is not None:
        fields["water"] = UtilityCounter(
            counter=raw["wtr"], timestamp=unix_to_iso(raw.get("wts"))
        )

    if phase:
        fields.update(_phase_fields(phase, show_negative_current))

    return Ls120Record(**fields)


def _phase_fields(phase: dict, show_negative_current: bool) -> dict[str, Any]:
    def reading(n: int) -> PhaseReading:
        current = _number_or_zero(phase.get(f"i{n}"))
        power = _number_or_zero(phase.get(f"l{n}"))
        if show_negative_current and power < 0 and current > 0:
            current = -current
        return PhaseReading(
            current=current,
            voltage=_number_or_zero(phase.get(f"v{n}")),
            power=power,
        )

    fields: dict[str, Any] = {
        "phases": Phases(l1=reading(1), l2=reading(2), l3=reading(3)),
    }
    if phase.get("tr") is not None:
        fields["tariff"] = phase["tr"]
    if phase.get("pa") is not None:
        fields["active_power"] = phase["pa"]
    if phase.get("pp") is not None:
        fields["peak_power"] = phase["pp"]
    if phase.get("pts") is not None:
        fields["peak_timestamp"] = unix_to_iso(phase["pts"])
    return fields


# ---------------------------------------------------------------------------
# Rounding
# ---------------------------------------------------------------------------


def round_value(value: Any, places: int) -> Any:
    """Round a numeric leaf half away from zero to *places* decimals.

    Non-numbers, bools, integers and non-finite floats are returned
    unchanged, as is everything when *places* is negative. Decimal
    arithmetic on the shortest repr avoids binary artefacts, so
    ``round_value(2.675, 2) == 2.68``.
    """
    if places < 0 or isinstance(value, bool) or not isinstance(value, float):
        return value
    if not math.isfinite(value):
        return value
    try:
        rounded = Decimal(repr(value)).quantize(
            Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP
        )
    except InvalidOperation:
        # Too many digits for the decimal context; nothing to round.
        return value
    return float(rounded)


def round_record(record: ModelT, places: int = ROUNDING_DISABLED) -> ModelT:
    """Return *record* with every numeric field rounded to *places*.

    Walks the record's declared fields: nested records are recursed into,
    lists are handled element-wise, and everything else goes through
    :func:`round_value`. With *places* of -1 the record is returned as-is.
    """
    if places < 0:
        return record
    updates = {
        name: _round_field(getattr(record, name), places)
        for name in type(record).model_fields
    }
    return record.model_copy(update=updates)


def _round_field(value: Any, places: int) -> Any:
    if isinstance(value, BaseModel):
        return round_record(value, places)
    if isinstance(value, list):
        return [_round_field(item, places) for item in value]
    return round_value(value, places)
