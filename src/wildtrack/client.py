"""High-level async client for realtime device telemetry."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

import aiohttp

from wildtrack._transport import RestTransport
from wildtrack.config import WildtrackConfig
from wildtrack.exceptions import WildtrackError, WildtrackStoreError
from wildtrack.ingestion.normalize import DEFAULT_TIMESTAMP_POLICY, TimestampUnitPolicy
from wildtrack.ingestion.records import feed_update_from_snapshot, normalize_records
from wildtrack.ingestion.store import Query, RealtimeDatabaseStore, Snapshot, Subscription, TelemetryStore
from wildtrack.metrics import compute_metrics
from wildtrack.models import (
    DerivedMetrics,
    Device,
    LocationSample,
    SpeedUnit,
    TelemetryRecord,
    TrackingSession,
    TrackPoint,
)
from wildtrack.state.events import Feed, FeedUpdate, IngestionSource, StatusKind, StatusUpdate
from wildtrack.state.reconciler import DeviceReconciler, TelemetryObserver
from wildtrack.state.store import DeviceStatus, TimelineStore
from wildtrack.tracking import TrackingManager

_logger = logging.getLogger(__name__)

ORDER_KEY = "timestamp"


class _TrackingFeeder(TelemetryObserver):
    """Pushes every new current location into the tracking manager."""

    def __init__(self, tracking: TrackingManager) -> None:
        self._tracking = tracking

    def on_current_change(self, device_id: str, feed: Feed, record: TelemetryRecord | None) -> None:
        if feed == Feed.LOCATIONS and isinstance(record, LocationSample):
            self._tracking.on_new_location(device_id, record)


class TelemetryClient:
    """Async client that keeps a reconciled view of one watched device.

    Usage::

        async with TelemetryClient(config, observer=my_observer) as client:
            devices = await client.list_devices()
            await client.watch(devices[0].device_id)
    """

    def __init__(
        self,
        config: WildtrackConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        store: TelemetryStore | None = None,
        observer: TelemetryObserver | None = None,
        timestamp_policy: TimestampUnitPolicy = DEFAULT_TIMESTAMP_POLICY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._store = store
        self._external_store = store is not None
        self._policy = timestamp_policy
        self._clock = clock
        self._timelines = TimelineStore(
            {
                Feed.LOCATIONS: config.history_limit,
                Feed.ALERTS: config.alert_limit,
                Feed.MOTION: config.history_limit,
            }
        )
        self._tracking = TrackingManager(
            min_distance_m=config.min_track_distance_m,
            max_points=config.max_track_points,
            clock=clock,
        )
        self._observers: list[TelemetryObserver] = [_TrackingFeeder(self._tracking)]
        if observer is not None:
            self._observers.append(observer)
        self._device_id: str | None = None
        self._generation = 0
        self._reconciler: DeviceReconciler | None = None
        self._subscriptions: list[Subscription] = []
        self._watch_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TelemetryClient:
        if self._store is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            transport = RestTransport(self._config, self._http_session)
            self._store = RealtimeDatabaseStore(transport, self._config)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.unwatch()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if not self._external_store:
            self._store = None

    def _require_store(self) -> TelemetryStore:
        if self._store is None:
            raise WildtrackError("Client not initialized; use 'async with TelemetryClient(...)'")
        return self._store

    def add_observer(self, observer: TelemetryObserver) -> None:
        """Register another observer; takes effect on the next :meth:`watch`."""
        self._observers.append(observer)

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    async def list_devices(self) -> list[Device]:
        """List devices known to the store, with their info when available."""
        store = self._require_store()
        listing = await store.fetch(self._config.paths.devices, shallow=True)
        if not listing.exists:
            return []
        if not isinstance(listing.value, dict):
            raise WildtrackStoreError(
                f"Expected an object at {listing.path}, got {type(listing.value).__name__}",
                path=listing.path,
            )
        device_ids = sorted(str(key) for key in listing.value)
        infos = await asyncio.gather(*(self._fetch_info(device_id) for device_id in device_ids))
        return [
            self._timelines.register_device(Device.from_info(device_id, info))
            for device_id, info in zip(device_ids, infos, strict=True)
        ]

    async def get_device(self, device_id: str) -> Device:
        info = await self._fetch_info(device_id)
        return self._timelines.register_device(Device.from_info(device_id, info))

    async def _fetch_info(self, device_id: str) -> Any:
        store = self._require_store()
        snapshot = await store.fetch(self._config.paths.resolve(self._config.paths.info, device_id))
        return snapshot.value

    # ------------------------------------------------------------------
    # Watching
    # ------------------------------------------------------------------

    @property
    def device_id(self) -> str | None:
        """Currently watched device."""
        return self._device_id

    @property
    def generation(self) -> int:
        return self._generation

    async def watch(self, device_id: str) -> None:
        """Switch the live view to *device_id*.

        Every subscription of the previously watched device is cancelled
        before the new ones are opened; late deliveries from them carry an
        older generation and are dropped.
        """
        async with self._watch_lock:
            await self._unwatch_locked()
            store = self._require_store()
            self._generation += 1
            generation = self._generation
            self._device_id = device_id
            reconciler = DeviceReconciler(device_id, self._timelines, self._observers, generation=generation)
            self._reconciler = reconciler
            reconciler.start()

            paths = self._config.paths
            locations = paths.resolve(paths.locations, device_id)
            alerts = paths.resolve(paths.alerts, device_id)
            plan: list[tuple[str, Feed, IngestionSource, Query | None, bool]] = [
                (locations, Feed.LOCATIONS, IngestionSource.LIVE, Query(ORDER_KEY, 1), False),
                (
                    locations,
                    Feed.LOCATIONS,
                    IngestionSource.HISTORY,
                    Query(ORDER_KEY, self._config.history_limit),
                    False,
                ),
                (alerts, Feed.ALERTS, IngestionSource.LIVE, Query(ORDER_KEY, 1), False),
                (alerts, Feed.ALERTS, IngestionSource.HISTORY, Query(ORDER_KEY, self._config.alert_limit), False),
                (paths.resolve(paths.motion_last, device_id), Feed.MOTION, IngestionSource.LIVE, None, True),
                (
                    paths.resolve(paths.motion_history, device_id),
                    Feed.MOTION,
                    IngestionSource.HISTORY,
                    Query(ORDER_KEY, self._config.history_limit),
                    False,
                ),
            ]
            for path, feed, source, query, single in plan:
                self._subscriptions.append(
                    store.subscribe(
                        path,
                        self._feed_callback(device_id, generation, feed, source, single),
                        self._error_callback(device_id, generation),
                        query=query,
                    )
                )
            self._subscriptions.append(
                store.subscribe(
                    paths.resolve(paths.connected, device_id),
                    self._connected_callback(device_id, generation),
                    self._error_callback(device_id, generation),
                )
            )
            _logger.debug("Watching %s (generation %d)", device_id, generation)

    async def unwatch(self) -> None:
        """Cancel every subscription of the watched device."""
        async with self._watch_lock:
            await self._unwatch_locked()

    async def _unwatch_locked(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        if subscriptions:
            await asyncio.gather(*(subscription.unsubscribe() for subscription in subscriptions))
        reconciler, self._reconciler = self._reconciler, None
        if reconciler is not None:
            await reconciler.stop()
            _logger.debug("Stopped watching %s", reconciler.device_id)
        self._device_id = None

    async def drain(self) -> None:
        """Wait until every delivered update has been reconciled."""
        if self._reconciler is not None:
            await self._reconciler.drain()

    def _submit(self, update: FeedUpdate | StatusUpdate) -> None:
        reconciler = self._reconciler
        if reconciler is None:
            _logger.debug("No active watch; dropping update for %s", update.device_id)
            return
        reconciler.submit(update)

    def _feed_callback(
        self,
        device_id: str,
        generation: int,
        feed: Feed,
        source: IngestionSource,
        single: bool,
    ) -> Callable[[Snapshot], None]:
        def on_data(snapshot: Snapshot) -> None:
            self._submit(
                feed_update_from_snapshot(
                    snapshot,
                    device_id=device_id,
                    feed=feed,
                    source=source,
                    generation=generation,
                    single=single,
                    policy=self._policy,
                    clock=self._clock,
                )
            )

        return on_data

    def _connected_callback(self, device_id: str, generation: int) -> Callable[[Snapshot], None]:
        def on_data(snapshot: Snapshot) -> None:
            connected = snapshot.value if isinstance(snapshot.value, bool) else None
            self._submit(
                StatusUpdate(
                    device_id=device_id,
                    kind=StatusKind.CONNECTED,
                    generation=generation,
                    connected=connected,
                    observed_at=self._clock(),
                )
            )

        return on_data

    def _error_callback(self, device_id: str, generation: int) -> Callable[[Exception], None]:
        def on_error(error: Exception) -> None:
            self._submit(
                StatusUpdate(
                    device_id=device_id,
                    kind=StatusKind.TRANSPORT_ERROR,
                    generation=generation,
                    detail=str(error),
                    observed_at=self._clock(),
                )
            )

        return on_error

    # ------------------------------------------------------------------
    # Reconciled view
    # ------------------------------------------------------------------

    def _resolve_device(self, device_id: str | None) -> str:
        resolved = device_id or self._device_id
        if resolved is None:
            raise WildtrackError("No device given and none is being watched")
        return resolved

    def timeline(self, feed: Feed, device_id: str | None = None) -> tuple[TelemetryRecord, ...]:
        return self._timelines.timeline(self._resolve_device(device_id), feed)

    def current(self, feed: Feed, device_id: str | None = None) -> TelemetryRecord | None:
        return self._timelines.current(self._resolve_device(device_id), feed)

    def status(self, device_id: str | None = None) -> DeviceStatus:
        return self._timelines.status(self._resolve_device(device_id))

    def metrics(
        self,
        device_id: str | None = None,
        *,
        unit: SpeedUnit | str | None = None,
        now: float | None = None,
    ) -> DerivedMetrics:
        """Distance, average speed and freshness of the location timeline."""
        samples = [
            record
            for record in self.timeline(Feed.LOCATIONS, device_id)
            if isinstance(record, LocationSample)
        ]
        return compute_metrics(
            samples,
            now if now is not None else self._clock(),
            unit or self._config.speed_unit,
        )

    async def get_history(
        self,
        device_id: str,
        feed: Feed = Feed.LOCATIONS,
        *,
        limit: int | None = None,
    ) -> list[TelemetryRecord]:
        """One-shot read of a feed's last *limit* records, newest first."""
        store = self._require_store()
        paths = self._config.paths
        template = {
            Feed.LOCATIONS: paths.locations,
            Feed.ALERTS: paths.alerts,
            Feed.MOTION: paths.motion_history,
        }[feed]
        if limit is None:
            limit = self._config.alert_limit if feed == Feed.ALERTS else self._config.history_limit
        raw = await store.fetch_last(paths.resolve(template, device_id), ORDER_KEY, limit)
        records = normalize_records(feed, raw, device_id=device_id, policy=self._policy, clock=self._clock)
        return sorted(records, key=lambda record: record.timestamp, reverse=True)

    # ------------------------------------------------------------------
    # Path tracking
    # ------------------------------------------------------------------

    @property
    def tracking(self) -> TrackingManager:
        return self._tracking

    def start_tracking(self, device_id: str | None = None) -> None:
        """Start recording a path, seeded with the device's current location."""
        resolved = self._resolve_device(device_id)
        current = self._timelines.current(resolved, Feed.LOCATIONS)
        self._tracking.start(resolved, current if isinstance(current, LocationSample) else None)

    def stop_tracking(self, device_id: str | None = None, *, archive: bool = True) -> TrackingSession | None:
        return self._tracking.stop(self._resolve_device(device_id), archive=archive)

    def save_track(self, device_id: str | None = None) -> TrackingSession | None:
        return self._tracking.save(self._resolve_device(device_id))

    def tracked_path(self, device_id: str | None = None) -> tuple[TrackPoint, ...]:
        return self._tracking.tracker(self._resolve_device(device_id)).path

    def tracking_sessions(self, device_id: str | None = None) -> list[TrackingSession]:
        return self._tracking.sessions(self._resolve_device(device_id))
