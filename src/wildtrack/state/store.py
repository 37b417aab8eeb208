"""Deterministic in-memory timeline store.

This is the only component allowed to merge feed updates. Given the same
sequence of updates it produces the same timelines; it never awaits and
never performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict

from wildtrack.exceptions import ErrorKind
from wildtrack.models import Device, TelemetryRecord
from wildtrack.state.events import Feed, FeedUpdate, StatusKind, StatusUpdate
from wildtrack.state.timeline import Timeline


class DeviceStatus(BaseModel):
    """Connectivity and freshness of one device, as seen by this client."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    connected: bool | None = None
    """Value of the device's ``connected`` flag, ``None`` until read."""
    stale: bool = False
    """A transport error occurred and no fresh data has arrived since."""
    empty_feeds: frozenset[Feed] = frozenset()
    """Feeds whose last snapshot was empty."""
    last_error: ErrorKind | None = None
    last_update_at: float | None = None
    """Arrival time (epoch seconds) of the last applied update."""


@dataclass
class ApplyResult:
    """What changed when one update was applied."""

    device_id: str
    feed: Feed | None = None
    timeline_changed: bool = False
    current_changed: bool = False
    current: TelemetryRecord | None = None
    status_changed: bool = False
    status: DeviceStatus | None = None
    notices: list[ErrorKind] = field(default_factory=list)


@dataclass
class _DeviceState:
    device: Device
    status: DeviceStatus
    timelines: dict[Feed, Timeline]


class TimelineStore:
    """Per-device timelines, device registry and status."""

    def __init__(self, windows: dict[Feed, int]) -> None:
        missing = set(Feed) - set(windows)
        if missing:
            raise ValueError(f"missing window sizes for {sorted(missing)}")
        self._windows = dict(windows)
        self._devices: dict[str, _DeviceState] = {}

    def _state(self, device_id: str) -> _DeviceState:
        state = self._devices.get(device_id)
        if state is None:
            state = _DeviceState(
                device=Device(device_id=device_id),
                status=DeviceStatus(device_id=device_id),
                timelines={feed: Timeline(window) for feed, window in self._windows.items()},
            )
            self._devices[device_id] = state
        return state

    # -- registry ------------------------------------------------------------

    def register_device(self, device: Device) -> Device:
        """Record a device sighting, keeping the earliest/latest seen times."""
        state = self._state(device.device_id)
        known = state.device
        merged = device
        if known.first_seen is not None:
            merged = merged.seen(known.first_seen)
        if known.last_seen is not None:
            merged = merged.seen(known.last_seen)
        state.device = merged
        return merged

    def device(self, device_id: str) -> Device | None:
        state = self._devices.get(device_id)
        return state.device if state is not None else None

    # -- reads ---------------------------------------------------------------

    def timeline(self, device_id: str, feed: Feed) -> tuple[TelemetryRecord, ...]:
        state = self._devices.get(device_id)
        if state is None:
            return ()
        return state.timelines[feed].entries()

    def current(self, device_id: str, feed: Feed) -> TelemetryRecord | None:
        state = self._devices.get(device_id)
        if state is None:
            return None
        return state.timelines[feed].current()

    def status(self, device_id: str) -> DeviceStatus:
        state = self._devices.get(device_id)
        if state is None:
            return DeviceStatus(device_id=device_id)
        return state.status

    # -- writes --------------------------------------------------------------

    def apply(self, update: FeedUpdate) -> ApplyResult:
        """Merge one feed update."""
        state = self._state(update.device_id)
        result = ApplyResult(device_id=update.device_id, feed=update.feed)
        timeline = state.timelines[update.feed]
        previous = timeline.current()
        status = state.status

        if not update.exists or not update.records:
            # Valid state, never clears what we already know.
            result.notices.append(ErrorKind.NO_DATA)
            status = status.model_copy(
                update={
                    "empty_feeds": status.empty_feeds | {update.feed},
                    "stale": False,
                    "last_update_at": update.observed_at,
                }
            )
        else:
            result.timeline_changed = timeline.merge(update.records)
            if any(record.was_defaulted for record in update.records):
                result.notices.append(ErrorKind.MALFORMED_RECORD)
            if any(record.timestamp_ambiguous for record in update.records):
                result.notices.append(ErrorKind.AMBIGUOUS_TIMESTAMP_UNIT)
            status = status.model_copy(
                update={
                    "empty_feeds": status.empty_feeds - {update.feed},
                    "stale": False,
                    "last_update_at": update.observed_at,
                }
            )
            if result.timeline_changed:
                newest = max(record.timestamp for record in update.records)
                state.device = state.device.seen(newest)

        current = timeline.current()
        result.current = current
        result.current_changed = current is not previous
        self._set_status(state, status, result)
        return result

    def apply_status(self, update: StatusUpdate) -> ApplyResult:
        """Apply a connectivity change or a transport fault."""
        state = self._state(update.device_id)
        result = ApplyResult(device_id=update.device_id)
        status = state.status
        if update.kind == StatusKind.TRANSPORT_ERROR:
            result.notices.append(ErrorKind.TRANSPORT_ERROR)
            status = status.model_copy(update={"stale": True, "last_error": ErrorKind.TRANSPORT_ERROR})
        else:
            status = status.model_copy(update={"connected": update.connected})
        self._set_status(state, status, result)
        return result

    @staticmethod
    def _set_status(state: _DeviceState, status: DeviceStatus, result: ApplyResult) -> None:
        # last_update_at alone moving is not worth a notification.
        result.status_changed = status.model_copy(update={"last_update_at": None}) != state.status.model_copy(
            update={"last_update_at": None}
        )
        state.status = status
        result.status = status
