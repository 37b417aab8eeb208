"""Data models for device telemetry."""

from wildtrack.models._base import UNKNOWN, FieldRule, TelemetryRecord
from wildtrack.models.device import Device
from wildtrack.models.events import MOTION_CLEAR, MOTION_DETECTED, AlertEvent, MotionEvent
from wildtrack.models.location import LocationSample
from wildtrack.models.metrics import DerivedMetrics, SpeedUnit
from wildtrack.models.tracking import TrackingSession, TrackPoint

__all__ = [
    "AlertEvent",
    "DerivedMetrics",
    "Device",
    "FieldRule",
    "LocationSample",
    "MOTION_CLEAR",
    "MOTION_DETECTED",
    "MotionEvent",
    "SpeedUnit",
    "TelemetryRecord",
    "TrackPoint",
    "TrackingSession",
    "UNKNOWN",
]
