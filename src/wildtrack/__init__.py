"""wildtrack - Async Python client for live wildlife-device telemetry."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("wildtrack")
except PackageNotFoundError:
    __version__ = "0+local"
from wildtrack.client import TelemetryClient
from wildtrack.config import PathLayout, WildtrackConfig
from wildtrack.exceptions import (
    ErrorKind,
    TrackingStateError,
    WildtrackConfigError,
    WildtrackError,
    WildtrackStoreError,
    WildtrackTransportError,
)
from wildtrack.ingestion.normalize import FixedUnitPolicy, MagnitudeThresholdPolicy, TimestampUnit
from wildtrack.ingestion.store import MemoryStore, RealtimeDatabaseStore, TelemetryStore
from wildtrack.models import (
    AlertEvent,
    DerivedMetrics,
    Device,
    LocationSample,
    MotionEvent,
    SpeedUnit,
    TelemetryRecord,
    TrackingSession,
    TrackPoint,
)
from wildtrack.state import DeviceStatus, Feed, TelemetryObserver
from wildtrack.tracking import PathTracker, TrackingManager

__all__ = [
    "__version__",
    "AlertEvent",
    "DerivedMetrics",
    "Device",
    "DeviceStatus",
    "ErrorKind",
    "Feed",
    "FixedUnitPolicy",
    "LocationSample",
    "MagnitudeThresholdPolicy",
    "MemoryStore",
    "MotionEvent",
    "PathLayout",
    "PathTracker",
    "RealtimeDatabaseStore",
    "SpeedUnit",
    "TelemetryClient",
    "TelemetryObserver",
    "TelemetryRecord",
    "TelemetryStore",
    "TimestampUnit",
    "TrackingManager",
    "TrackingSession",
    "TrackingStateError",
    "TrackPoint",
    "WildtrackConfig",
    "WildtrackConfigError",
    "WildtrackError",
    "WildtrackStoreError",
    "WildtrackTransportError",
]
