"""Per-device reconciliation actor.

Subscription callbacks never touch state directly. They enqueue updates on
the device's mailbox; a single worker task drains it, merges each update
through the :class:`~wildtrack.state.store.TimelineStore` and notifies
observers. Per-device state therefore has exactly one writer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from wildtrack.exceptions import ErrorKind
from wildtrack.models import TelemetryRecord
from wildtrack.state.events import Feed, FeedUpdate, StatusUpdate
from wildtrack.state.store import ApplyResult, DeviceStatus, TimelineStore

_logger = logging.getLogger(__name__)

# Informational notices; NO_DATA is reflected in DeviceStatus.empty_feeds only.
_REPORTED_NOTICES = frozenset(
    {ErrorKind.TRANSPORT_ERROR, ErrorKind.MALFORMED_RECORD, ErrorKind.AMBIGUOUS_TIMESTAMP_UNIT}
)


class TelemetryObserver:
    """Consumer callbacks. Override the ones you need; the rest are no-ops.

    Callbacks run on the reconciler's worker task and must not block.
    """

    def on_timeline_change(self, device_id: str, feed: Feed, timeline: tuple[TelemetryRecord, ...]) -> None:
        """The ordered entries of a feed changed."""

    def on_current_change(self, device_id: str, feed: Feed, record: TelemetryRecord | None) -> None:
        """The newest entry of a feed changed."""

    def on_error(self, device_id: str, kind: ErrorKind) -> None:
        """A non-fatal condition was observed for the device."""

    def on_status_change(self, device_id: str, status: DeviceStatus) -> None:
        """Connectivity, staleness or empty feeds changed."""


class DeviceReconciler:
    """Serializes all updates for one device under one watch generation."""

    def __init__(
        self,
        device_id: str,
        store: TimelineStore,
        observers: Sequence[TelemetryObserver],
        *,
        generation: int,
    ) -> None:
        self._device_id = device_id
        self._store = store
        self._observers = list(observers)
        self._generation = generation
        self._queue: asyncio.Queue[FeedUpdate | StatusUpdate] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._dropped = 0

    @property
    def device_id(self) -> str:
        return self._device_id

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def dropped(self) -> int:
        """Updates discarded for carrying another generation or device."""
        return self._dropped

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.get_running_loop().create_task(
            self._run(), name=f"wildtrack-reconciler:{self._device_id}"
        )
        _logger.debug("Reconciler for %s started (generation %d)", self._device_id, self._generation)

    async def stop(self) -> None:
        worker = self._worker
        self._worker = None
        if worker is None:
            return
        worker.cancel()
        await asyncio.gather(worker, return_exceptions=True)
        _logger.debug("Reconciler for %s stopped (generation %d)", self._device_id, self._generation)

    def submit(self, update: FeedUpdate | StatusUpdate) -> None:
        """Enqueue an update. Safe to call from any callback on the loop."""
        self._queue.put_nowait(update)

    async def drain(self) -> None:
        """Wait until every update submitted so far has been handled."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            update = await self._queue.get()
            try:
                self.handle(update)
            except Exception:
                _logger.error("Reconciler for %s failed to apply update", self._device_id, exc_info=True)
            finally:
                self._queue.task_done()

    def handle(self, update: FeedUpdate | StatusUpdate) -> ApplyResult | None:
        """Apply one update synchronously and notify observers.

        Returns ``None`` when the update was dropped.
        """
        if update.device_id != self._device_id or update.generation != self._generation:
            self._dropped += 1
            _logger.debug(
                "Dropping update for %s generation %d (reconciler %s generation %d)",
                update.device_id,
                update.generation,
                self._device_id,
                self._generation,
            )
            return None

        if isinstance(update, FeedUpdate):
            result = self._store.apply(update)
        else:
            result = self._store.apply_status(update)
        self._dispatch(result)
        return result

    def _dispatch(self, result: ApplyResult) -> None:
        device_id = result.device_id
        feed = result.feed
        if feed is not None and result.timeline_changed:
            timeline = self._store.timeline(device_id, feed)
            self._notify("on_timeline_change", device_id, feed, timeline)
        if feed is not None and result.current_changed:
            self._notify("on_current_change", device_id, feed, result.current)
        for kind in result.notices:
            if kind in _REPORTED_NOTICES:
                self._notify("on_error", device_id, kind)
        if result.status_changed and result.status is not None:
            self._notify("on_status_change", device_id, result.status)

    def _notify(self, method: str, *args: Any) -> None:
        for observer in self._observers:
            try:
                getattr(observer, method)(*args)
            except Exception:
                # A faulty consumer must not stall reconciliation.
                _logger.warning("Observer %r failed in %s", observer, method, exc_info=True)
