"""Device configuration loaded from LEAVENOW_* environment variables."""

from __future__ import annotations

from typing import Self

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from leavenow.agent.models.enums import TransitMode, TravelMode


class LeaveNowSettings(BaseSettings):
    """Agent settings.

    All fields are read from environment variables with the ``LEAVENOW_``
    prefix.  For example, ``LEAVENOW_LOG_LEVEL=DEBUG`` maps to ``log_level``.

    Provider API keys (Geolocation, Distance Matrix) are **not** managed here --
    they live with the relay bridge that performs the HTTP calls.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEAVENOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"

    # -- Relay -----------------------------------------------------------------
    device_id: str = "leavenow-device"
    """Identity used to scope response channels to this device."""

    redis_url: str | None = None
    """Redis connection string.  Required for the relay transport."""

    relay_prefix: str = "hooks/"
    """Channel prefix for outbound publishes (``hooks/calendar_event``)."""

    response_timeout: float = 60.0
    """Seconds to wait for a relay response before the call is failed."""

    tick_interval: float = 0.2
    """Seconds the driver waits for inbound messages between ticks."""

    # -- Token storage ---------------------------------------------------------
    data_root: str = "./data"

    # -- Google OAuth2 ---------------------------------------------------------
    client_id: str = ""
    client_secret: SecretStr = SecretStr("")
    calendar_id: str = "primary"
    lookahead_hours: int = 3
    """Upper bound of the calendar search window, in hours from now."""

    # -- Geolocation -----------------------------------------------------------
    geolocation_enabled: bool = True
    min_accuracy: int = 50
    """Largest acceptable fix radius, in metres."""

    fixed_latitude: float | None = None
    fixed_longitude: float | None = None
    """Used instead of the Geolocation API when it is disabled."""

    # -- Distance Matrix -------------------------------------------------------
    travel_mode: TravelMode = TravelMode.DRIVING
    transit_mode: TransitMode = TransitMode.BUS

    # -- Decision --------------------------------------------------------------
    leave_now_epsilon: int = 0
    """Arrival within this many seconds of the start counts as "leave now"."""

    repeat: bool = False
    """Start a new cycle right after announcing instead of waiting for a trigger."""

    # -- Server ----------------------------------------------------------------
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8000

    @model_validator(mode="after")
    def _check_fixed_location(self) -> Self:
        if not self.geolocation_enabled and (self.fixed_latitude is None or self.fixed_longitude is None):
            msg = "fixed_latitude and fixed_longitude are required when geolocation is disabled"
            raise ValueError(msg)
        return self


def get_settings() -> LeaveNowSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``_get_settings_cached.cache_clear()`` in tests to
    force a re-read after overriding env vars.
    """
    return _get_settings_cached()


def _get_settings_cached() -> LeaveNowSettings:
    """Inner function wrapped by lru_cache (allows type-safe cache_clear)."""
    return LeaveNowSettings()


# Apply lru_cache at runtime so the function is only called once.
from functools import lru_cache  # noqa: E402

_get_settings_cached = lru_cache(maxsize=1)(_get_settings_cached)
