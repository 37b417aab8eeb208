"""Derived metrics over location timelines.

All functions are pure. Points are anything with ``latitude``,
``longitude`` and ``timestamp`` attributes (:class:`LocationSample`,
:class:`TrackPoint`).
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Protocol

from wildtrack.ingestion.normalize import DEFAULT_TIMESTAMP_POLICY, TimestampUnitPolicy, normalize_timestamp_seconds
from wildtrack.models import DerivedMetrics, LocationSample, SpeedUnit

EARTH_RADIUS_M = 6_371_000.0

_MPS_FACTORS: dict[SpeedUnit, float] = {
    SpeedUnit.METERS_PER_SECOND: 1.0,
    SpeedUnit.KILOMETERS_PER_HOUR: 3.6,
    SpeedUnit.MILES_PER_HOUR: 3600.0 / 1609.344,
}


class GeoPoint(Protocol):
    @property
    def latitude(self) -> float: ...

    @property
    def longitude(self) -> float: ...


class TimedPoint(GeoPoint, Protocol):
    @property
    def timestamp(self) -> float: ...


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points, in meters."""
    phi1, phi2 = math.radians(a.latitude), math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlambda = math.radians(b.longitude - a.longitude)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Rounding can leave h a hair outside [0, 1] for near-antipodal points.
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def path_distance_m(points: Sequence[GeoPoint]) -> float:
    """Sum of distances between consecutive points; 0 for fewer than two."""
    return sum((haversine_m(a, b) for a, b in zip(points, points[1:])), 0.0)


def convert_speed(mps: float, unit: SpeedUnit | str) -> float:
    return mps * _MPS_FACTORS[SpeedUnit(unit)]


def average_speed(points: Sequence[TimedPoint], unit: SpeedUnit | str = SpeedUnit.KILOMETERS_PER_HOUR) -> float:
    """Path distance over the time between the first and last point.

    Returns 0 when the elapsed time is not positive.
    """
    if len(points) < 2:
        return 0.0
    elapsed = points[-1].timestamp - points[0].timestamp
    if elapsed <= 0:
        return 0.0
    return convert_speed(path_distance_m(points) / elapsed, unit)


def freshness_s(
    sample: TimedPoint | LocationSample | float,
    now: float,
    policy: TimestampUnitPolicy = DEFAULT_TIMESTAMP_POLICY,
) -> float | None:
    """Seconds elapsed between *sample* and *now*.

    *sample* may be a record (already in seconds) or a raw epoch value,
    which is normalized with *policy* first. Returns ``None`` for a raw
    value that is not a usable timestamp.
    """
    if isinstance(sample, (int, float)):
        seconds = normalize_timestamp_seconds(sample, policy)
        if seconds is None:
            return None
    else:
        seconds = sample.timestamp
    return now - seconds


def compute_metrics(
    samples: Sequence[LocationSample],
    now: float,
    unit: SpeedUnit | str = SpeedUnit.KILOMETERS_PER_HOUR,
) -> DerivedMetrics:
    """Bundle distance, speed and freshness for a location timeline (oldest first).

    Samples without a position fix are left out of distance and speed.
    """
    fixes = [sample for sample in samples if sample.has_position]
    newest = samples[-1] if samples else None
    return DerivedMetrics(
        distance_m=path_distance_m(fixes),
        average_speed=average_speed(fixes, unit),
        speed_unit=SpeedUnit(unit),
        freshness_s=freshness_s(newest, now) if newest is not None else None,
        sample_count=len(fixes),
    )
