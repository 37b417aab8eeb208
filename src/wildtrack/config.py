"""Client configuration for wildtrack."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from wildtrack.exceptions import WildtrackConfigError

_SPEED_UNITS = frozenset({"mps", "kmh", "mph"})


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env: Mapping[str, str], key: str, cast: type[int] | type[float]) -> Any:
    raw = env.get(key)
    if raw is None:
        return None
    try:
        return cast(raw)
    except ValueError as exc:
        raise WildtrackConfigError(f"{key} must be a number, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class PathLayout:
    """Store path templates.

    Every template is formatted with ``device_id``. The defaults follow the
    layout the field devices write to.
    """

    devices: str = "devices"
    info: str = "devices/{device_id}/info"
    locations: str = "devices/{device_id}/locations"
    alerts: str = "devices/{device_id}/alerts"
    motion_last: str = "devices/{device_id}/motion_status/last"
    motion_history: str = "devices/{device_id}/motion_status/history"
    connected: str = "devices/{device_id}/connected"

    def resolve(self, template: str, device_id: str) -> str:
        return template.format(device_id=device_id)


@dataclasses.dataclass(frozen=True)
class WildtrackConfig:
    """Client configuration.

    Parameters
    ----------
    database_url : str
        Root URL of the realtime database (e.g.
        ``"https://example-default-rtdb.firebaseio.com"``).
    auth_token : str or None
        Database secret or ID token appended as ``auth=`` to every request.
    history_limit : int
        Number of entries fetched by history subscriptions and kept in
        location and motion timelines.
    alert_limit : int
        Number of entries fetched and kept for the alerts timeline.
    min_track_distance_m : float
        Minimum movement, in meters, before a tracking session records a new point.
    max_track_points : int
        Upper bound on points kept in a live tracking path.
    reconnect_initial_delay : float
        Seconds to wait before the first reconnect after a stream failure.
    reconnect_max_delay : float
        Upper bound for the exponential reconnect backoff.
    request_timeout : float
        Total timeout, in seconds, for one-shot REST reads.
    speed_unit : str
        Default unit for derived speed: ``"mps"``, ``"kmh"`` or ``"mph"``.
    api_trace_enabled : bool
        Log (redacted) request URLs and stream events at DEBUG level.
    paths : PathLayout
        Store path templates.
    """

    database_url: str
    auth_token: str | None = None
    history_limit: int = 50
    alert_limit: int = 10
    min_track_distance_m: float = 10.0
    max_track_points: int = 5000
    reconnect_initial_delay: float = 1.0
    reconnect_max_delay: float = 30.0
    request_timeout: float = 30.0
    speed_unit: str = "kmh"
    api_trace_enabled: bool = False
    paths: PathLayout = dataclasses.field(default_factory=PathLayout)

    def __post_init__(self) -> None:
        if not self.database_url or not self.database_url.strip():
            raise WildtrackConfigError("database_url must be set")
        if self.history_limit < 1 or self.alert_limit < 1:
            raise WildtrackConfigError("history_limit and alert_limit must be positive")
        if self.min_track_distance_m < 0:
            raise WildtrackConfigError("min_track_distance_m must not be negative")
        if self.max_track_points < 1:
            raise WildtrackConfigError("max_track_points must be positive")
        if self.reconnect_initial_delay < 0 or self.reconnect_max_delay < self.reconnect_initial_delay:
            raise WildtrackConfigError("reconnect delays must satisfy 0 <= initial <= max")
        if self.speed_unit not in _SPEED_UNITS:
            raise WildtrackConfigError(f"speed_unit must be one of {sorted(_SPEED_UNITS)}, got {self.speed_unit!r}")
        # Normalise trailing slash so path joins stay predictable.
        object.__setattr__(self, "database_url", self.database_url.strip().rstrip("/"))

    @classmethod
    def from_env(cls, **overrides: Any) -> WildtrackConfig:
        """Create configuration from environment variables.

        Reads ``WILDTRACK_DATABASE_URL`` and optional ``WILDTRACK_*``
        variables. Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        WildtrackConfig
            Populated configuration.
        """
        env = os.environ

        path_kwargs: dict[str, str] = {}
        _ENV_PATH_MAP = {
            "WILDTRACK_PATH_DEVICES": "devices",
            "WILDTRACK_PATH_INFO": "info",
            "WILDTRACK_PATH_LOCATIONS": "locations",
            "WILDTRACK_PATH_ALERTS": "alerts",
            "WILDTRACK_PATH_MOTION_LAST": "motion_last",
            "WILDTRACK_PATH_MOTION_HISTORY": "motion_history",
            "WILDTRACK_PATH_CONNECTED": "connected",
        }
        for env_key, field_name in _ENV_PATH_MAP.items():
            val = env.get(env_key)
            if val is not None:
                path_kwargs[field_name] = val

        # Allow overriding path templates via a nested dict
        path_overrides = overrides.pop("paths", None)
        if isinstance(path_overrides, dict):
            path_kwargs.update(path_overrides)
        elif isinstance(path_overrides, PathLayout):
            path_kwargs = dataclasses.asdict(path_overrides)

        paths = PathLayout(**path_kwargs) if path_kwargs else PathLayout()

        config_kwargs: dict[str, Any] = {"paths": paths}
        for env_key, field_name in {
            "WILDTRACK_DATABASE_URL": "database_url",
            "WILDTRACK_AUTH_TOKEN": "auth_token",
            "WILDTRACK_SPEED_UNIT": "speed_unit",
        }.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type[int] | type[float]]] = {
            "WILDTRACK_HISTORY_LIMIT": ("history_limit", int),
            "WILDTRACK_ALERT_LIMIT": ("alert_limit", int),
            "WILDTRACK_MIN_TRACK_DISTANCE_M": ("min_track_distance_m", float),
            "WILDTRACK_MAX_TRACK_POINTS": ("max_track_points", int),
            "WILDTRACK_RECONNECT_INITIAL_DELAY": ("reconnect_initial_delay", float),
            "WILDTRACK_RECONNECT_MAX_DELAY": ("reconnect_max_delay", float),
            "WILDTRACK_REQUEST_TIMEOUT": ("request_timeout", float),
        }
        for env_key, (field_name, cast) in _ENV_NUMERIC_MAP.items():
            if field_name in overrides:
                continue
            parsed = _env_number(env, env_key, cast)
            if parsed is not None:
                config_kwargs[field_name] = parsed

        if "api_trace_enabled" not in overrides:
            config_kwargs["api_trace_enabled"] = _env_bool(
                env.get("WILDTRACK_API_TRACE_ENABLED"),
                False,
            )

        config_kwargs.update(overrides)

        if "database_url" not in config_kwargs:
            raise WildtrackConfigError("WILDTRACK_DATABASE_URL is not set")

        return cls(**config_kwargs)
