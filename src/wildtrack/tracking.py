"""User-initiated path recording.

A :class:`PathTracker` is a two-state machine (idle/tracking) that turns a
stream of location samples into a thinned path and archives finished paths
as :class:`TrackingSession` objects. Everything lives in memory.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from collections.abc import Callable
from enum import StrEnum

from wildtrack.exceptions import TrackingStateError
from wildtrack.metrics import haversine_m
from wildtrack.models import LocationSample, TrackingSession, TrackPoint

_logger = logging.getLogger(__name__)


class TrackingState(StrEnum):
    IDLE = "idle"
    TRACKING = "tracking"


def _point(sample: LocationSample) -> TrackPoint:
    return TrackPoint(latitude=sample.latitude, longitude=sample.longitude, timestamp=sample.timestamp)


class PathTracker:
    """Records one live path at a time for a single tracking context."""

    def __init__(
        self,
        *,
        min_distance_m: float = 10.0,
        max_points: int = 5000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._min_distance_m = min_distance_m
        self._clock = clock
        self._state = TrackingState.IDLE
        self._path: deque[TrackPoint] = deque(maxlen=max_points)
        self._started_at: float | None = None
        self._sessions: list[TrackingSession] = []

    @property
    def state(self) -> TrackingState:
        return self._state

    @property
    def is_tracking(self) -> bool:
        return self._state == TrackingState.TRACKING

    @property
    def path(self) -> tuple[TrackPoint, ...]:
        return tuple(self._path)

    def start(self, current: LocationSample | None = None) -> None:
        """Begin recording, seeded with *current* when it has a position fix."""
        if self._state != TrackingState.IDLE:
            raise TrackingStateError("tracking already started")
        self._state = TrackingState.TRACKING
        self._started_at = self._clock()
        self._path.clear()
        if current is not None and current.has_position:
            self._path.append(_point(current))
        _logger.debug("Tracking started with %d seed point(s)", len(self._path))

    def on_new_location(self, sample: LocationSample) -> bool:
        """Offer a sample to the path. Returns whether a point was recorded.

        Ignored while idle or when the sample has no position fix.
        """
        if self._state != TrackingState.TRACKING or not sample.has_position:
            return False
        point = _point(sample)
        if self._path and haversine_m(self._path[-1], point) <= self._min_distance_m:
            return False
        self._path.append(point)
        return True

    def save(self) -> TrackingSession | None:
        """Archive the current path and keep tracking with a fresh one.

        Returns ``None`` (and archives nothing) when the path is empty.
        """
        if self._state != TrackingState.TRACKING:
            raise TrackingStateError("not tracking")
        if not self._path:
            return None
        session = self._archive()
        self._path.clear()
        self._started_at = self._clock()
        return session

    def stop(self, *, archive: bool = True) -> TrackingSession | None:
        """Stop recording; archive the path unless ``archive`` is false."""
        if self._state != TrackingState.TRACKING:
            raise TrackingStateError("not tracking")
        session = self._archive() if archive else None
        self._path.clear()
        self._started_at = None
        self._state = TrackingState.IDLE
        _logger.debug("Tracking stopped (archived=%s)", session is not None)
        return session

    def sessions(self) -> list[TrackingSession]:
        """Archived sessions, oldest first."""
        return list(self._sessions)

    def _archive(self) -> TrackingSession:
        start = self._path[0].timestamp if self._path else self._started_at
        session = TrackingSession(
            session_id=uuid.uuid4().hex,
            points=tuple(self._path),
            start_time=start if start is not None else self._clock(),
            end_time=self._clock(),
        )
        self._sessions.append(session)
        return session


class TrackingManager:
    """One :class:`PathTracker` per tracking context (device id by default)."""

    def __init__(
        self,
        *,
        min_distance_m: float = 10.0,
        max_points: int = 5000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._min_distance_m = min_distance_m
        self._max_points = max_points
        self._clock = clock
        self._trackers: dict[str, PathTracker] = {}

    def tracker(self, context: str) -> PathTracker:
        tracker = self._trackers.get(context)
        if tracker is None:
            tracker = PathTracker(min_distance_m=self._min_distance_m, max_points=self._max_points, clock=self._clock)
            self._trackers[context] = tracker
        return tracker

    def start(self, context: str, current: LocationSample | None = None) -> None:
        self.tracker(context).start(current)

    def stop(self, context: str, *, archive: bool = True) -> TrackingSession | None:
        return self.tracker(context).stop(archive=archive)

    def save(self, context: str) -> TrackingSession | None:
        return self.tracker(context).save()

    def is_tracking(self, context: str) -> bool:
        tracker = self._trackers.get(context)
        return tracker is not None and tracker.is_tracking

    def on_new_location(self, context: str, sample: LocationSample) -> bool:
        tracker = self._trackers.get(context)
        if tracker is None:
            return False
        return tracker.on_new_location(sample)

    def sessions(self, context: str) -> list[TrackingSession]:
        tracker = self._trackers.get(context)
        return tracker.sessions() if tracker is not None else []
