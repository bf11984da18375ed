"""
Data model for discovery results and canonical telemetry records.

Telemetry records are frozen Pydantic models: one per supported meter
model (``Ls110Record``, ``Ls120Record``) sharing the common power fields.
They serialize with camelCase keys (``powerAbsolute``, ``isGenerating``)
and drop absent optional fields, which is the payload shape consumers of
the telemetry topic receive.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-104)
- 2026-10-14: Add passthrough fields to Ls110Record (STORY-109)

TODO:
- None
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Scalar JSON values passed through from the meter unchanged.
Passthrough = str | int | float | None


class MeterModel(StrEnum):
    """Meter models whose telemetry layout is known."""

    LS110 = "LS110"
    LS120 = "LS120"


MODEL_LABELS: dict[MeterModel, str] = {
    MeterModel.LS110: "LS110 (Basic model)",
    MeterModel.LS120: "LS120 (with S0 pulse counter)",
}

UNKNOWN_MODEL = "Unknown"


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class SubnetCandidate(BaseModel):
    """A local /24 network to scan.

    Attributes:
        base: First three octets of an interface address (``"192.168.1"``).
        netmask: Netmask reported for that interface, if any.
    """

    model_config = ConfigDict(frozen=True)

    base: str
    netmask: str | None = None

    def hosts(self) -> list[str]:
        """All scannable host addresses ``base.1`` .. ``base.254``."""
        return [f"{self.base}.{i}" for i in range(1, 255)]


class ProbeResult(BaseModel):
    """A host confirmed to be a meter.

    Attributes:
        ip: IPv4 address that answered.
        name: Reverse-DNS hostname, when one could be resolved.
        model: Reported or inferred model, ``"Unknown"`` if neither.
        mac: MAC address from the model-info endpoint, or ``""``.
    """

    ip: str
    name: str | None = None
    model: str = UNKNOWN_MODEL
    mac: str = ""


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class TariffCounters(_Record):
    """Delivered or returned energy per tariff (kWh)."""

    total: int | float
    tariff1: int | float
    tariff2: int | float


class PulseCounter(_Record):
    """S0 pulse input reading."""

    counter: int | float
    power: int | float = 0
    timestamp: str | None = None


class UtilityCounter(_Record):
    """Gas or water meter reading relayed through the P1 port."""

    counter: int | float
    timestamp: str | None = None


class PhaseReading(_Record):
    """Electrical values of a single phase."""

    current: int | float = 0
    voltage: int | float = 0
    power: int | float = 0


class Phases(_Record):
    """Per-phase readings, serialized as ``L1``/``L2``/``L3``."""

    l1: PhaseReading = Field(alias="L1")
    l2: PhaseReading = Field(alias="L2")
    l3: PhaseReading = Field(alias="L3")


class TelemetryBase(_Record):
    """Fields every canonical telemetry record carries.

    Attributes:
        timestamp: ISO-8601 UTC time the record was assembled.
        model: Model whose fetcher produced the record.
        power: Signed power in watts; negative while generating.
        power_absolute: ``abs(power)``.
        is_generating: ``power < 0``.
    """

    timestamp: str
    model: str
    power: int | float
    power_absolute: int | float
    is_generating: bool

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the emitted payload shape (camelCase, no nulls)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Ls110Record(TelemetryBase):
    """Telemetry from an LS110 (basic electricity meter reader)."""

    model: str = MeterModel.LS110.value
    counter: float | None = None
    signal_level: Passthrough = None
    device: Passthrough = None
    details: Passthrough = None
    connection: Passthrough = None
    status: Passthrough = None
    raw_value: Passthrough = None


class Ls120Record(TelemetryBase):
    """Telemetry from an LS120 (P1 smart meter reader with S0 input)."""

    model: str = MeterModel.LS120.value
    net: int | float | None = None
    delivered: TariffCounters
    returned: TariffCounters
    s0: PulseCounter | None = None
    gas: UtilityCounter | None = None
    water: UtilityCounter | None = None
    phases: Phases | None = None
    tariff: int | None = None
    active_power: int | float | None = None
    peak_power: int | float | None = None
    peak_timestamp: str | None = None


TelemetryRecord = Ls110Record | Ls120Record


class TelemetryMessage(BaseModel):
    """One outbound telemetry event.

    Attributes:
        topic: Custom topic when configured, else ``"youless"``.
        payload: Serialized telemetry record.
    """

    model_config = ConfigDict(frozen=True)

    topic: str
    payload: dict[str, Any]
