from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest

from wildtrack.exceptions import ErrorKind
from wildtrack.models import LocationSample, TelemetryRecord
from wildtrack.state.events import Feed, FeedUpdate, IngestionSource, StatusKind, StatusUpdate
from wildtrack.state.reconciler import DeviceReconciler, TelemetryObserver
from wildtrack.state.store import DeviceStatus, TimelineStore

DEVICE = "collar-1"


@dataclass
class RecordingObserver(TelemetryObserver):
    calls: list[tuple[str, Any]] = field(default_factory=list)

    def on_timeline_change(self, device_id: str, feed: Feed, timeline: tuple[TelemetryRecord, ...]) -> None:
        self.calls.append(("timeline", [record.timestamp for record in timeline]))

    def on_current_change(self, device_id: str, feed: Feed, record: TelemetryRecord | None) -> None:
        self.calls.append(("current", record.timestamp if record is not None else None))

    def on_error(self, device_id: str, kind: ErrorKind) -> None:
        self.calls.append(("error", kind))

    def on_status_change(self, device_id: str, status: DeviceStatus) -> None:
        self.calls.append(("status", status.stale))


class ExplodingObserver(TelemetryObserver):
    def on_current_change(self, device_id: str, feed: Feed, record: TelemetryRecord | None) -> None:
        raise RuntimeError("consumer bug")


def _store() -> TimelineStore:
    return TimelineStore({Feed.LOCATIONS: 50, Feed.ALERTS: 10, Feed.MOTION: 50})


def _update(ts: float, *, generation: int = 1, device_id: str = DEVICE, exists: bool = True) -> FeedUpdate:
    records = (LocationSample(device_id=device_id, timestamp=ts, key=f"k{ts}", latitude=1.0, longitude=2.0),)
    return FeedUpdate(
        device_id=device_id,
        feed=Feed.LOCATIONS,
        source=IngestionSource.HISTORY,
        generation=generation,
        records=records if exists else (),
        exists=exists,
    )


def test_handle_notifies_timeline_then_current() -> None:
    observer = RecordingObserver()
    reconciler = DeviceReconciler(DEVICE, _store(), [observer], generation=1)

    reconciler.handle(_update(10.0))

    assert observer.calls[0] == ("timeline", [10.0])
    assert observer.calls[1] == ("current", 10.0)


def test_stale_generation_is_dropped() -> None:
    store = _store()
    observer = RecordingObserver()
    reconciler = DeviceReconciler(DEVICE, store, [observer], generation=2)

    assert reconciler.handle(_update(10.0, generation=1)) is None
    assert reconciler.handle(_update(10.0, device_id="other", generation=2)) is None

    assert reconciler.dropped == 2
    assert observer.calls == []
    assert store.timeline(DEVICE, Feed.LOCATIONS) == ()


def test_no_data_is_not_reported_as_error() -> None:
    observer = RecordingObserver()
    reconciler = DeviceReconciler(DEVICE, _store(), [observer], generation=1)

    reconciler.handle(_update(0.0, exists=False))

    assert not any(name == "error" for name, _ in observer.calls)
    assert ("status", False) in observer.calls


def test_transport_error_is_reported() -> None:
    observer = RecordingObserver()
    reconciler = DeviceReconciler(DEVICE, _store(), [observer], generation=1)

    reconciler.handle(StatusUpdate(device_id=DEVICE, kind=StatusKind.TRANSPORT_ERROR, generation=1))

    assert ("error", ErrorKind.TRANSPORT_ERROR) in observer.calls
    assert ("status", True) in observer.calls


def test_failing_observer_does_not_block_others() -> None:
    observer = RecordingObserver()
    reconciler = DeviceReconciler(DEVICE, _store(), [ExplodingObserver(), observer], generation=1)

    reconciler.handle(_update(10.0))

    assert ("current", 10.0) in observer.calls


@pytest.mark.asyncio
async def test_mailbox_applies_updates_in_order() -> None:
    store = _store()
    observer = RecordingObserver()
    reconciler = DeviceReconciler(DEVICE, store, [observer], generation=1)
    reconciler.start()
    try:
        for ts in (30.0, 10.0, 20.0):
            reconciler.submit(_update(ts))
        await reconciler.drain()
    finally:
        await reconciler.stop()

    assert [record.timestamp for record in store.timeline(DEVICE, Feed.LOCATIONS)] == [10.0, 20.0, 30.0]
    currents = [value for name, value in observer.calls if name == "current"]
    assert currents == [30.0]
    assert reconciler.running is False
