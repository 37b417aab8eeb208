"""State layer.

This package is the single source of truth for how live and history
subscriptions are merged into deterministic per-device timelines.
"""

from wildtrack.state.events import Feed, FeedUpdate, IngestionSource, StatusKind, StatusUpdate
from wildtrack.state.reconciler import DeviceReconciler, TelemetryObserver
from wildtrack.state.store import ApplyResult, DeviceStatus, TimelineStore
from wildtrack.state.timeline import Timeline

__all__ = [
    "ApplyResult",
    "DeviceReconciler",
    "DeviceStatus",
    "Feed",
    "FeedUpdate",
    "IngestionSource",
    "StatusKind",
    "StatusUpdate",
    "TelemetryObserver",
    "Timeline",
    "TimelineStore",
]
