"""GPS location sample model."""

from __future__ import annotations

from typing import Any, ClassVar

from wildtrack.ingestion.normalize import in_range, non_negative, safe_float, safe_str
from wildtrack.models._base import UNKNOWN, FieldRule, TelemetryRecord


def _latitude(value: Any) -> float | None:
    return in_range(safe_float(value), -90.0, 90.0)


def _longitude(value: Any) -> float | None:
    return in_range(safe_float(value), -180.0, 180.0)


def _non_negative(value: Any) -> float | None:
    return non_negative(safe_float(value))


class LocationSample(TelemetryRecord):
    """A single GPS fix pushed by a device.

    Parameters
    ----------
    latitude : float
        Latitude in degrees. ``0.0`` when missing or malformed.
    longitude : float
        Longitude in degrees. ``0.0`` when missing or malformed.
    accuracy : float
        Horizontal accuracy radius in meters (>= 0).
    speed : float or None
        Device-reported ground speed in m/s (>= 0), if any.
    source : str
        Positioning source tag (e.g. ``"gps"``, ``"gsm"``).
    """

    _FIELD_RULES: ClassVar[dict[str, FieldRule]] = {
        "latitude": FieldRule(("lat", "latitude"), _latitude, 0.0, required=True),
        "longitude": FieldRule(("lng", "lon", "longitude"), _longitude, 0.0, required=True),
        "accuracy": FieldRule(("accuracy", "acc"), _non_negative, 0.0, required=True),
        "speed": FieldRule(("speed", "gpsSpeed"), _non_negative, None),
        "source": FieldRule(("source",), safe_str, UNKNOWN),
    }

    latitude: float = 0.0
    longitude: float = 0.0
    accuracy: float = 0.0
    speed: float | None = None
    source: str = UNKNOWN

    @property
    def has_position(self) -> bool:
        """Whether the coordinates came from the device rather than defaults."""
        return "latitude" not in self.defaulted_fields and "longitude" not in self.defaulted_fields
