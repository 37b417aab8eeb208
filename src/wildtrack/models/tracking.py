"""Tracking session models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class TrackPoint(BaseModel):
    """One recorded point of a live path."""

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    timestamp: float
    """Epoch seconds."""


class TrackingSession(BaseModel):
    """A user-initiated path recording.

    ``end_time`` is ``None`` while the session is still open.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    points: tuple[TrackPoint, ...] = Field(default_factory=tuple)
    start_time: float
    end_time: float | None = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def duration_s(self) -> float:
        if self.end_time is None:
            return 0.0
        return max(0.0, self.end_time - self.start_time)

    @property
    def distance_m(self) -> float:
        # Lazy import: metrics depends on the model package.
        from wildtrack.metrics import path_distance_m

        return path_distance_m(self.points)
