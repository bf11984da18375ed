"""
YouLess edge configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading. Loading is
deliberately lenient for the meter section: a missing host or an
unsupported model is not a startup crash but a session status the
operator can see (see ``MeterSession.start``). Numeric options that
cannot be used are coerced to their documented fallbacks.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-101)
- 2026-10-13: Add DiscoverySettings and AppSettings (STORY-106)

TODO:
- None
"""

import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings

from youless.src.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Models whose field layout the fetchers know.
SUPPORTED_MODELS: tuple[str, ...] = ("LS110", "LS120")

DEFAULT_INTERVAL_S: int = 10
DEFAULT_TOPIC: str = "youless"

# Sentinel for "do not round".
ROUNDING_DISABLED: int = -1


class MeterSettings(BaseSettings):
    """Configuration for one polled meter.

    Attributes:
        host: IP address or hostname of the meter on the local LAN.
        interval_s: Seconds between fetch cycles (>= 1, default 10).
        model: Configured model, ``LS110`` or ``LS120``.
        password: Optional basic-auth password for the meter web UI.
        start_automatically: Start polling as soon as the session exists.
        show_negative_current: Negate phase currents whose phase power is
            negative (display convenience).
        custom_topic: Topic for emitted telemetry; empty means default.
        decimal_places: Round numeric telemetry to this many decimals,
            or -1 to disable rounding.
        timeout_s: Per-request HTTP timeout while polling.
    """

    host: str = ""
    interval_s: int = DEFAULT_INTERVAL_S
    model: str = "LS110"
    password: str = ""
    start_automatically: bool = True
    show_negative_current: bool = False
    custom_topic: str = ""
    decimal_places: int = ROUNDING_DISABLED
    timeout_s: float = 10.0

    model_config = {
        "env_prefix": "YOULESS_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("host", "custom_topic", mode="before")
    @classmethod
    def _strip(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @field_validator("model", mode="before")
    @classmethod
    def _normalize_model(cls, v: object) -> object:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("interval_s", mode="before")
    @classmethod
    def _coerce_interval(cls, v: object) -> int:
        """Fall back to the default interval when *v* is unusable."""
        try:
            interval = int(v)  # type: ignore[call-overload]
        except (TypeError, ValueError):
            interval = 0
        if interval < 1:
            logger.warning(
                "Invalid interval %r, using default of %d seconds",
                v,
                DEFAULT_INTERVAL_S,
            )
            return DEFAULT_INTERVAL_S
        return interval

    @field_validator("decimal_places", mode="before")
    @classmethod
    def _coerce_decimal_places(cls, v: object) -> int:
        """Collapse negative or non-integer values to ROUNDING_DISABLED."""
        try:
            places = int(v)  # type: ignore[call-overload]
        except (TypeError, ValueError):
            return ROUNDING_DISABLED
        return places if places >= 0 else ROUNDING_DISABLED

    @property
    def topic(self) -> str:
        """Topic attached to every emitted telemetry message."""
        return self.custom_topic or DEFAULT_TOPIC


def check_configuration(settings: MeterSettings) -> None:
    """Verify *settings* describe a meter that can be polled.

    Raises:
        ConfigurationError: If the host is empty or the model unsupported.
    """
    if not settings.host:
        raise ConfigurationError(
            "host", "Host/IP address is required but not configured"
        )
    if settings.model not in SUPPORTED_MODELS:
        raise ConfigurationError(
            "model",
            f"Valid model ({'/'.join(SUPPORTED_MODELS)}) is required "
            f"but not configured (got {settings.model!r})",
        )


class DiscoverySettings(BaseSettings):
    """Local network discovery options.

    Attributes:
        timeout_s: Per-request HTTP timeout for a probe.
        max_concurrency: Upper bound on in-flight probes.
        resolve_names: Attempt reverse DNS for discovered meters.
    """

    timeout_s: float = 2.0
    max_concurrency: int = 64
    resolve_names: bool = True

    model_config = {
        "env_prefix": "YOULESS_DISCOVERY_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("max_concurrency")
    @classmethod
    def max_concurrency_must_be_positive(cls, v: int) -> int:
        """Validate the probe concurrency cap is at least 1."""
        if v < 1:
            raise ValueError("YOULESS_DISCOVERY_MAX_CONCURRENCY must be >= 1")
        return v


class AppSettings(BaseSettings):
    """Process-level options shared by the daemon and the admin API.

    Attributes:
        log_level: Root logging level name.
        health_file: Path of the JSON health file ("" disables it).
    """

    log_level: str = "INFO"
    health_file: str = ""

    model_config = {
        "env_prefix": "YOULESS_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        """Validate the log level is a standard level name."""
        level = v.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"YOULESS_LOG_LEVEL is not a log level: {v!r}")
        return level
