from __future__ import annotations

import math

import pytest

from wildtrack.metrics import average_speed, compute_metrics, freshness_s, haversine_m, path_distance_m
from wildtrack.models import LocationSample, SpeedUnit, TrackPoint


def _pt(lat: float, lng: float, ts: float = 0.0) -> TrackPoint:
    return TrackPoint(latitude=lat, longitude=lng, timestamp=ts)


def test_distance_of_short_paths_is_zero() -> None:
    p = _pt(-1.29, 36.82)

    assert path_distance_m([]) == 0
    assert path_distance_m([p]) == 0
    assert path_distance_m([p, p]) == 0


def test_haversine_matches_expected_value() -> None:
    # 0.01 degree of latitude is R * 0.01 * pi / 180.
    expected = 6_371_000.0 * math.radians(0.01)

    assert haversine_m(_pt(0.0, 0.0), _pt(0.01, 0.0)) == pytest.approx(expected, rel=1e-9)
    assert haversine_m(_pt(10.0, 20.0), _pt(10.01, 20.0)) == pytest.approx(expected, rel=1e-6)


@pytest.mark.parametrize("lat", [-74.6, -66.2, -64.8, -26.3, -20.7, -2.5, 0.0, 45.0, 90.0])
def test_haversine_near_antipodal_points_is_half_circumference(lat: float) -> None:
    half_circumference = math.pi * 6_371_000.0

    distance = haversine_m(_pt(lat, 0.0), _pt(-lat, 180.0))

    assert distance == pytest.approx(half_circumference, rel=1e-6)


def test_haversine_never_fails_across_latitudes() -> None:
    for tenth in range(-900, 901):
        lat = tenth / 10
        assert 0.0 <= haversine_m(_pt(lat, 0.0), _pt(-lat, 180.0)) <= math.pi * 6_371_000.0 + 1e-6


def test_path_distance_sums_segments() -> None:
    points = [_pt(0.0, 0.0), _pt(0.0, 0.01), _pt(0.0, 0.02)]

    assert path_distance_m(points) == pytest.approx(2 * haversine_m(points[0], points[1]))


def test_average_speed_zero_elapsed_returns_zero() -> None:
    points = [_pt(0.0, 0.0, ts=100.0), _pt(0.0, 0.01, ts=100.0)]

    speed = average_speed(points)

    assert speed == 0.0
    assert not math.isnan(speed)


def test_average_speed_units() -> None:
    points = [_pt(0.0, 0.0, ts=0.0), _pt(0.0, 0.01, ts=100.0)]
    mps = haversine_m(points[0], points[1]) / 100.0

    assert average_speed(points, SpeedUnit.METERS_PER_SECOND) == pytest.approx(mps)
    assert average_speed(points, "kmh") == pytest.approx(mps * 3.6)
    assert average_speed(points, SpeedUnit.MILES_PER_HOUR) == pytest.approx(mps * 3600 / 1609.344)


def test_freshness_normalizes_raw_milliseconds() -> None:
    now = 1_700_000_060.0

    assert freshness_s(1_700_000_000_000, now) == pytest.approx(60.0)
    assert freshness_s(1_700_000_000, now) == pytest.approx(60.0)
    assert freshness_s(_pt(0.0, 0.0, ts=1_700_000_030.0), now) == pytest.approx(30.0)
    assert freshness_s(0, now) is None


def test_compute_metrics_skips_samples_without_fix() -> None:
    samples = [
        LocationSample(device_id="d", timestamp=0.0, latitude=0.0, longitude=0.0),
        LocationSample(
            device_id="d",
            timestamp=50.0,
            latitude=0.0,
            longitude=0.0,
            was_defaulted=True,
            defaulted_fields=frozenset({"latitude", "longitude"}),
        ),
        LocationSample(device_id="d", timestamp=100.0, latitude=0.0, longitude=0.01),
    ]

    metrics = compute_metrics(samples, now=130.0, unit=SpeedUnit.METERS_PER_SECOND)

    assert metrics.sample_count == 2
    assert metrics.distance_m == pytest.approx(6_371_000.0 * math.radians(0.01))
    assert metrics.average_speed == pytest.approx(metrics.distance_m / 100.0)
    assert metrics.freshness_s == pytest.approx(30.0)
    assert metrics.speed_unit == SpeedUnit.METERS_PER_SECOND


def test_compute_metrics_without_samples() -> None:
    metrics = compute_metrics([], now=0.0)

    assert metrics.distance_m == 0.0
    assert metrics.average_speed == 0.0
    assert metrics.freshness_s is None
