"""
Unit tests for the per-model fetch strategies (STORY-108).

Tests verify:
- LS110 and LS120 fetchers build records from mocked meter responses.
- LS120 phase data is best-effort: its failure never fails the fetch,
  and it is not requested when the energy call fails.
- Transport failures and wrong shapes raise MeterError subclasses.
- detect_model() reads /d (object or JSON string).
- fetch_record() dispatches by model and falls back LS120 -> LS110 for
  unknown models.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-108)

TODO:
- None
"""

import logging
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from youless.src.errors import MeterResponseError, MeterTransportError
from youless.src.fetchers import (
    FETCHERS,
    detect_model,
    fetch_ls110,
    fetch_ls120,
    fetch_record,
)
from youless.src.models import Ls110Record, Ls120Record, MeterModel

_HOST = "192.168.1.50"
_BASE = f"http://{_HOST}"

TransportFactory = Callable[[dict[str, Any]], httpx.MockTransport]

LS110_BODY = {"cnt": "1234,56", "pwr": 250, "lvl": 90, "dev": "", "det": "", "con": "*", "sts": "(33)", "raw": 0}
LS120_BODY = [{"pwr": -500, "net": 120.5, "p1": 10, "p2": 5, "n1": 0, "n2": 0}]
PHASE_BODY = {"tr": 1, "i1": 2.1, "i2": 0, "i3": 0, "v1": 230, "v2": 231, "v3": 229, "l1": -480, "l2": 0, "l3": 0}


def _client(transport: httpx.MockTransport) -> httpx.Client:
    return httpx.Client(transport=transport)


class TestFetchLs110:
    """fetch_ls110() reads /a?f=j."""

    def test_builds_record(self, meter_transport: TransportFactory) -> None:
        """Power and counter are parsed from the reading."""
        transport = meter_transport({f"{_BASE}/a?f=j": {"pwr": 250, "cnt": "1234,56"}})
        with _client(transport) as client:
            record = fetch_ls110(client, _HOST)

        assert isinstance(record, Ls110Record)
        assert record.power == 250
        assert record.is_generating is False
        assert record.counter == pytest.approx(1234.56)

    def test_passthrough_fields(self, meter_transport: TransportFactory) -> None:
        """Signal level, connection and status are carried through."""
        transport = meter_transport({f"{_BASE}/a?f=j": LS110_BODY})
        with _client(transport) as client:
            payload = fetch_ls110(client, _HOST).to_payload()

        assert payload["signalLevel"] == 90
        assert payload["connection"] == "*"
        assert payload["status"] == "(33)"

    def test_transport_failure(self, meter_transport: TransportFactory) -> None:
        """A refused connection is a transport error."""
        transport = meter_transport(
            {f"{_BASE}/a?f=j": httpx.ConnectError("Connection refused")}
        )
        with _client(transport) as client, pytest.raises(MeterTransportError):
            fetch_ls110(client, _HOST)

    @pytest.mark.parametrize("body", [[LS110_BODY], {"cnt": "1,0"}, "text"])
    def test_wrong_shape(self, meter_transport: TransportFactory, body: Any) -> None:
        """Anything but an object with power is a response error."""
        transport = meter_transport({f"{_BASE}/a?f=j": body})
        with _client(transport) as client, pytest.raises(MeterResponseError):
            fetch_ls110(client, _HOST)


class TestFetchLs120:
    """fetch_ls120() reads /e?f=j and, best-effort, /f?f=j."""

    def test_builds_record_without_phase_data(
        self, meter_transport: TransportFactory
    ) -> None:
        """Energy fields are parsed and phases stay empty."""
        transport = meter_transport({f"{_BASE}/e?f=j": LS120_BODY})
        with _client(transport) as client:
            record = fetch_ls120(client, _HOST)

        assert isinstance(record, Ls120Record)
        assert record.power == -500
        assert record.is_generating is True
        assert record.power_absolute == 500
        assert record.net == 120.5
        assert record.delivered.total == 15
        assert record.delivered.tariff1 == 10
        assert record.delivered.tariff2 == 5
        assert record.returned.total == 0
        assert record.phases is None

    def test_phase_failure_is_logged_and_swallowed(
        self, meter_transport: TransportFactory, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A failed phase request is logged and the record still returned."""
        transport = meter_transport(
            {
                f"{_BASE}/e?f=j": LS120_BODY,
                f"{_BASE}/f?f=j": httpx.ReadTimeout("timed out"),
            }
        )
        with caplog.at_level(logging.WARNING, logger="youless.src.fetchers"):
            with _client(transport) as client:
                record = fetch_ls120(client, _HOST)

        assert record.phases is None
        assert "phase data" in caplog.text

    def test_phase_data_and_negative_current(
        self, meter_transport: TransportFactory
    ) -> None:
        """Phase readings are attached with current signed by power."""
        transport = meter_transport(
            {f"{_BASE}/e?f=j": LS120_BODY, f"{_BASE}/f?f=j": PHASE_BODY}
        )
        with _client(transport) as client:
            record = fetch_ls120(client, _HOST, show_negative_current=True)

        assert record.phases is not None
        assert record.phases.l1.current == -2.1
        assert record.phases.l1.power == -480
        assert record.tariff == 1

    def test_phase_not_requested_when_energy_fails(self) -> None:
        """/f is not requested after /e failed."""
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(request.url.path)
            return httpx.Response(503)

        with _client(httpx.MockTransport(handler)) as client:
            with pytest.raises(MeterTransportError):
                fetch_ls120(client, _HOST)

        assert requested == ["/e"]

    @pytest.mark.parametrize("body", [[], {"pwr": 1}, None, [1], [{"net": 3.0}]])
    def test_wrong_shape(self, meter_transport: TransportFactory, body: Any) -> None:
        """Anything but a non-empty array with power is a response error."""
        transport = meter_transport({f"{_BASE}/e?f=j": body})
        with _client(transport) as client, pytest.raises(MeterResponseError):
            fetch_ls120(client, _HOST)


class TestDetectModel:
    """detect_model() reads the model from /d."""

    def test_object_body(self, meter_transport: TransportFactory) -> None:
        """A JSON object reports its model."""
        transport = meter_transport({f"{_BASE}/d": {"model": "LS120", "mac": "72:b8:ad:14:16:2c"}})
        with _client(transport) as client:
            assert detect_model(client, _HOST) == "LS120"

    def test_json_string_body(self, meter_transport: TransportFactory) -> None:
        """A JSON string body is parsed a second time."""
        transport = meter_transport({f"{_BASE}/d": '{"model": "LS110"}'})
        with _client(transport) as client:
            assert detect_model(client, _HOST) == "LS110"

    def test_no_model_field(self, meter_transport: TransportFactory) -> None:
        """A body without a model is a response error."""
        transport = meter_transport({f"{_BASE}/d": {"mac": "x"}})
        with _client(transport) as client, pytest.raises(MeterResponseError):
            detect_model(client, _HOST)


class TestFetchRecord:
    """fetch_record() dispatches on the configured model."""

    def test_dispatch_table_is_closed(self) -> None:
        """Every known model has exactly one fetcher."""
        assert set(FETCHERS) == set(MeterModel)

    def test_known_model_uses_its_fetcher(self, meter_transport: TransportFactory) -> None:
        """Known models use their own endpoint."""
        transport = meter_transport(
            {f"{_BASE}/a?f=j": LS110_BODY, f"{_BASE}/e?f=j": LS120_BODY}
        )
        with _client(transport) as client:
            assert isinstance(fetch_record(client, _HOST, "LS110"), Ls110Record)
            assert isinstance(fetch_record(client, _HOST, "LS120"), Ls120Record)

    def test_unknown_model_prefers_ls120(self, meter_transport: TransportFactory) -> None:
        """An unknown model tries LS120 first."""
        transport = meter_transport(
            {f"{_BASE}/a?f=j": LS110_BODY, f"{_BASE}/e?f=j": LS120_BODY}
        )
        with _client(transport) as client:
            assert isinstance(fetch_record(client, _HOST, "LS120S"), Ls120Record)

    def test_unknown_model_falls_back_to_ls110(
        self, meter_transport: TransportFactory
    ) -> None:
        """An unknown model falls back to LS110 when LS120 fails."""
        transport = meter_transport({f"{_BASE}/a?f=j": LS110_BODY})
        with _client(transport) as client:
            assert isinstance(fetch_record(client, _HOST, "Unknown"), Ls110Record)

    def test_unknown_model_both_fail(self, meter_transport: TransportFactory) -> None:
        """The LS110 error surfaces when both attempts fail."""
        transport = meter_transport({})
        with _client(transport) as client, pytest.raises(MeterTransportError):
            fetch_record(client, _HOST, "LS999")
