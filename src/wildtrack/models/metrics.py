"""Derived metrics model."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class SpeedUnit(StrEnum):
    METERS_PER_SECOND = "mps"
    KILOMETERS_PER_HOUR = "kmh"
    MILES_PER_HOUR = "mph"


class DerivedMetrics(BaseModel):
    """Quantities computed from a reconciled location timeline.

    Parameters
    ----------
    distance_m : float
        Cumulative great-circle path length in meters.
    average_speed : float
        Distance over elapsed time between first and last sample, in ``speed_unit``.
    speed_unit : SpeedUnit
        Unit of ``average_speed``.
    freshness_s : float or None
        Age of the newest sample in seconds, ``None`` without samples.
    sample_count : int
        Number of samples with a usable position that went into the path.
    """

    model_config = ConfigDict(frozen=True)

    distance_m: float = 0.0
    average_speed: float = 0.0
    speed_unit: SpeedUnit = SpeedUnit.KILOMETERS_PER_HOUR
    freshness_s: float | None = None
    sample_count: int = 0
