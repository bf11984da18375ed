"""
Tests for the admin and control API (STORY-118, STORY-119).

Tests verify:
- GET / liveness and GET /v1/models.
- GET /v1/discover returns the devices found, or 500 with an error.
- POST /v1/control drives the session and returns its status.
- GET /v1/status and GET /v1/telemetry/latest projections.
- GET /health is 200 only while polling without errors.
- The lifespan reports missing configuration instead of crashing.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-118)
- 2026-10-16: Control and telemetry endpoints (STORY-119)

TODO:
- None
"""

from collections.abc import Iterator
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from youless.src.api.deps import get_discovery_settings, get_session, get_telemetry
from youless.src.api.main import app
from youless.src.config import DiscoverySettings
from youless.src.models import ProbeResult
from youless.src.session import MAX_ERRORS, MeterSession
from youless.src.sink import LatestMessageSink

_BASE = "http://192.168.1.50"


@pytest.fixture()
def routes() -> dict:
    return {
        f"{_BASE}/d": {"model": "LS120"},
        f"{_BASE}/e?f=j": [{"pwr": 321, "net": 10.5}],
    }


@pytest.fixture()
def telemetry() -> LatestMessageSink:
    return LatestMessageSink()


@pytest.fixture()
def session(
    meter_settings, meter_transport, routes, scheduler_factory, telemetry
) -> MeterSession:
    transport = meter_transport(routes)
    return MeterSession(
        meter_settings,
        telemetry,
        client_factory=lambda: httpx.Client(transport=transport),
        scheduler_factory=scheduler_factory,
    )


@pytest.fixture()
def client(session: MeterSession, telemetry: LatestMessageSink) -> Iterator[TestClient]:
    """TestClient wired to a test session; the lifespan does not run."""
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_telemetry] = lambda: telemetry
    app.dependency_overrides[get_discovery_settings] = lambda: DiscoverySettings(
        resolve_names=False
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


# ===========================================================================
# Admin endpoints
# ===========================================================================


def test_root_returns_ok(client: TestClient) -> None:
    """GET / answers with a static ok."""
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_models_lists_supported_models(client: TestClient) -> None:
    """GET /v1/models lists both supported models with labels."""
    response = client.get("/v1/models")
    assert response.status_code == 200
    assert response.json() == [
        {"value": "LS110", "label": "LS110 (Basic model)"},
        {"value": "LS120", "label": "LS120 (with S0 pulse counter)"},
    ]


class TestDiscoverEndpoint:
    """GET /v1/discover runs a LAN scan."""

    @patch("youless.src.api.admin.discover", new_callable=AsyncMock)
    def test_returns_devices(self, mock_discover: AsyncMock, client: TestClient) -> None:
        """Found meters are returned under ``devices``."""
        mock_discover.return_value = [
            ProbeResult(ip="192.168.1.50", name="youless", model="LS120", mac="AA:BB")
        ]

        response = client.get("/v1/discover")

        assert response.status_code == 200
        assert response.json() == {
            "devices": [
                {"ip": "192.168.1.50", "name": "youless", "model": "LS120", "mac": "AA:BB"}
            ]
        }
        (settings,), _ = mock_discover.call_args
        assert settings.resolve_names is False

    @patch("youless.src.api.admin.discover", new_callable=AsyncMock, return_value=[])
    def test_nothing_found(self, mock_discover: AsyncMock, client: TestClient) -> None:
        """An empty scan yields an empty device list."""
        assert client.get("/v1/discover").json() == {"devices": []}

    @patch(
        "youless.src.api.admin.discover",
        new_callable=AsyncMock,
        side_effect=RuntimeError("no interfaces"),
    )
    def test_failure_is_500_with_error(
        self, mock_discover: AsyncMock, client: TestClient
    ) -> None:
        """A failed scan is a 500 carrying the error message."""
        response = client.get("/v1/discover")
        assert response.status_code == 500
        assert response.json() == {"error": "no interfaces"}


# ===========================================================================
# Control endpoints
# ===========================================================================


class TestControlEndpoint:
    """POST /v1/control drives the session."""

    def test_start_and_stop(self, client: TestClient, schedulers) -> None:
        """start schedules polling and stop halts it."""
        response = client.post("/v1/control", json={"command": "start"})
        assert response.status_code == 200
        assert response.json() == {
            "state": "polling",
            "text": "polling...",
            "running": True,
            "error_count": 0,
            "max_errors": MAX_ERRORS,
        }
        assert schedulers[0].started is True

        data = client.post("/v1/control", json={"command": "stop"}).json()
        assert data["running"] is False
        assert data["state"] == "not-running"

    def test_other_command_fetches_once(
        self, client: TestClient, telemetry: LatestMessageSink
    ) -> None:
        """Any other command runs a single cycle."""
        data = client.post("/v1/control", json={"command": "refresh"}).json()

        assert data["running"] is False
        assert data["text"] == "321 W"
        assert telemetry.latest is not None
        assert telemetry.latest.payload["power"] == 321

    def test_empty_body_fetches_once(
        self, client: TestClient, telemetry: LatestMessageSink
    ) -> None:
        """A body without a command also runs a single cycle."""
        assert client.post("/v1/control", json={}).status_code == 200
        assert telemetry.latest is not None

    def test_status(self, client: TestClient, schedulers, routes) -> None:
        """GET /v1/status reflects a failed cycle."""
        routes[f"{_BASE}/e?f=j"] = httpx.ConnectError("Connection refused")
        client.post("/v1/control", json={"command": "start"})
        schedulers[0].fire()

        data = client.get("/v1/status").json()
        assert data["state"] == "error"
        assert data["text"] == f"error (1/{MAX_ERRORS})"
        assert data["error_count"] == 1


class TestLatestTelemetry:
    """GET /v1/telemetry/latest serves the last published message."""

    def test_404_before_first_reading(self, client: TestClient) -> None:
        """Nothing published yet is a 404."""
        response = client.get("/v1/telemetry/latest")
        assert response.status_code == 404

    def test_returns_latest_message(self, client: TestClient, session) -> None:
        """The most recent message is returned with its topic."""
        session.fetch_once()

        response = client.get("/v1/telemetry/latest")

        assert response.status_code == 200
        data = response.json()
        assert data["topic"] == "youless"
        assert data["payload"]["model"] == "LS120"
        assert data["payload"]["powerAbsolute"] == 321


# ===========================================================================
# Health
# ===========================================================================


class TestHealthEndpoint:
    """GET /health maps session health to a status code."""

    def test_idle_session_is_503(self, client: TestClient) -> None:
        """A session that is not polling is a 503."""
        response = client.get("/health")
        assert response.status_code == 503
        assert response.json()["healthy"] is False

    def test_polling_session_is_200(self, client: TestClient, session) -> None:
        """A polling session is a 200."""
        session.start()
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["healthy"] is True
        assert data["state"] == "polling"


# ===========================================================================
# Lifespan
# ===========================================================================


@patch("youless.src.api.main.setup_logging", new=MagicMock())
def test_lifespan_reports_missing_configuration() -> None:
    """Without YOULESS_HOST the app starts and reports the problem."""
    with TestClient(app) as client:
        data = client.get("/v1/status").json()
        assert data["state"] == "missing-configuration"
        assert data["text"] == "missing host configuration"
        assert client.get("/health").status_code == 503


def test_session_not_ready_is_503(monkeypatch: pytest.MonkeyPatch) -> None:
    """Without the lifespan there is no session on app.state."""
    monkeypatch.delattr(app.state, "session", raising=False)
    client = TestClient(app)
    assert client.get("/v1/status").status_code == 503
