"""
HTTP plumbing for the YouLess local JSON API.

Every request is a GET with ``Accept: application/json`` and, when a
password is configured, ``Authorization: Basic base64(":" + password)``
(the meter has no user name). Transport failures and non-2xx statuses
become :class:`MeterTransportError`; undecodable bodies become
:class:`MeterResponseError`.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-107)

TODO:
- None
"""

import base64
import json
import logging
from typing import Any

import httpx

from youless.src.errors import MeterResponseError, MeterTransportError

logger = logging.getLogger(__name__)

# Endpoint paths of the meter's local API.
MODEL_INFO_PATH = "/d"
LS110_PATH = "/a?f=j"
LS120_PATH = "/e?f=j"
PHASE_PATH = "/f?f=j"

_DEFAULT_TIMEOUT: float = 10.0


def build_headers(password: str = "") -> dict[str, str]:
    """Request headers for the meter, with basic auth when *password* is set."""
    headers = {"Accept": "application/json"}
    if password:
        token = base64.b64encode(f":{password}".encode()).decode("ascii")
        headers["Authorization"] = f"Basic {token}"
    return headers


def create_client(
    *,
    password: str = "",
    timeout: float = _DEFAULT_TIMEOUT,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Create a synchronous client preconfigured for one meter.

    Args:
        password: Optional meter password.
        timeout: Per-request timeout in seconds.
        transport: Optional transport override (tests use
            ``httpx.MockTransport``).
    """
    return httpx.Client(
        timeout=timeout,
        headers=build_headers(password),
        transport=transport,
    )


def meter_url(host: str, path: str) -> str:
    return f"http://{host}{path}"


def get_json(client: httpx.Client, host: str, path: str) -> Any:
    """GET ``http://{host}{path}`` and return the decoded JSON body.

    Raises:
        MeterTransportError: On timeout, connection failure, or a
            non-2xx status.
        MeterResponseError: If the body is not JSON.
    """
    url = meter_url(host, path)
    try:
        response = client.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise MeterTransportError(
            f"HTTP {exc.response.status_code} from {url}"
        ) from exc
    except httpx.TimeoutException as exc:
        raise MeterTransportError(f"Timeout requesting {url}") from exc
    except (httpx.TransportError, httpx.InvalidURL) as exc:
        raise MeterTransportError(f"Connection error for {url}: {exc}") from exc

    try:
        return response.json()
    except ValueError as exc:
        raise MeterResponseError(url, "body is not valid JSON") from exc


def parse_model_info(body: Any) -> dict | None:
    """Interpret a ``/d`` body that may be an object or a JSON string.

    Some firmware serves the model-info document as text, so a string body
    gets a second JSON parse. Returns the object, or ``None`` if the body
    is neither an object nor a string holding one.
    """
    if isinstance(body, (str, bytes)):
        try:
            body = json.loads(body)
        except ValueError:
            logger.debug("Model info body is not JSON: %.80r", body)
            return None
    return body if isinstance(body, dict) else None


def read_body(response: httpx.Response) -> Any:
    """Decoded JSON body of *response*, or its raw text when not JSON."""
    try:
        return response.json()
    except ValueError:
        return response.text
