from __future__ import annotations

import math

import pytest

from wildtrack.exceptions import TrackingStateError
from wildtrack.models import LocationSample
from wildtrack.tracking import PathTracker, TrackingManager, TrackingState

_METERS_PER_DEGREE = 6_371_000.0 * math.pi / 180.0


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _north(meters: float, ts: float) -> LocationSample:
    return LocationSample(device_id="d", timestamp=ts, latitude=meters / _METERS_PER_DEGREE, longitude=0.0)


def test_only_moves_beyond_threshold_are_recorded() -> None:
    tracker = PathTracker(min_distance_m=10.0, clock=FakeClock())
    tracker.start(_north(0.0, 1.0))

    assert tracker.on_new_location(_north(2.0, 2.0)) is False
    assert tracker.on_new_location(_north(15.0, 3.0)) is True
    assert tracker.on_new_location(_north(18.0, 4.0)) is False

    assert [point.timestamp for point in tracker.path] == [1.0, 3.0]


def test_first_point_is_unconditional_without_seed() -> None:
    tracker = PathTracker(clock=FakeClock())
    tracker.start()

    assert tracker.on_new_location(_north(0.0, 1.0)) is True
    assert len(tracker.path) == 1


def test_samples_without_fix_and_idle_updates_are_ignored() -> None:
    tracker = PathTracker(clock=FakeClock())
    assert tracker.on_new_location(_north(0.0, 1.0)) is False

    tracker.start()
    no_fix = LocationSample(device_id="d", timestamp=2.0, defaulted_fields=frozenset({"latitude", "longitude"}))
    assert tracker.on_new_location(no_fix) is False
    assert tracker.path == ()


def test_stop_archives_path() -> None:
    clock = FakeClock(500.0)
    tracker = PathTracker(clock=clock)
    tracker.start(_north(0.0, 100.0))
    tracker.on_new_location(_north(50.0, 200.0))

    clock.now = 900.0
    session = tracker.stop()

    assert session is not None
    assert session.start_time == 100.0
    assert session.end_time == 900.0
    assert len(session.points) == 2
    assert session.distance_m == pytest.approx(50.0, rel=1e-6)
    assert tracker.state == TrackingState.IDLE
    assert tracker.path == ()
    assert tracker.sessions() == [session]


def test_stop_without_archive_discards() -> None:
    tracker = PathTracker(clock=FakeClock())
    tracker.start(_north(0.0, 1.0))

    assert tracker.stop(archive=False) is None
    assert tracker.sessions() == []


def test_empty_path_archives_with_session_start_time() -> None:
    clock = FakeClock(42.0)
    tracker = PathTracker(clock=clock)
    tracker.start()
    clock.now = 50.0

    session = tracker.stop()

    assert session is not None
    assert session.points == ()
    assert session.start_time == 42.0
    assert session.duration_s == 8.0


def test_save_archives_and_keeps_tracking() -> None:
    tracker = PathTracker(clock=FakeClock())
    tracker.start(_north(0.0, 1.0))
    tracker.on_new_location(_north(20.0, 2.0))

    saved = tracker.save()

    assert saved is not None and len(saved.points) == 2
    assert tracker.is_tracking is True
    assert tracker.path == ()
    assert tracker.save() is None
    assert len(tracker.sessions()) == 1


def test_state_machine_rejects_invalid_transitions() -> None:
    tracker = PathTracker(clock=FakeClock())

    with pytest.raises(TrackingStateError):
        tracker.stop()
    with pytest.raises(TrackingStateError):
        tracker.save()

    tracker.start()
    with pytest.raises(TrackingStateError):
        tracker.start()


def test_live_path_is_capped() -> None:
    tracker = PathTracker(min_distance_m=1.0, max_points=3, clock=FakeClock())
    tracker.start()
    for step in range(5):
        tracker.on_new_location(_north(step * 10.0, float(step)))

    assert [point.timestamp for point in tracker.path] == [2.0, 3.0, 4.0]


def test_manager_keeps_one_tracker_per_context() -> None:
    manager = TrackingManager(clock=FakeClock())
    manager.start("a", _north(0.0, 1.0))

    assert manager.is_tracking("a") is True
    assert manager.is_tracking("b") is False
    assert manager.on_new_location("b", _north(100.0, 2.0)) is False
    assert manager.on_new_location("a", _north(100.0, 2.0)) is True

    session = manager.stop("a")
    assert session is not None
    assert manager.sessions("a") == [session]
    assert manager.sessions("b") == []
