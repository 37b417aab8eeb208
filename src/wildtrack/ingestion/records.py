"""Turn store snapshots into typed records and feed updates.

This module centralizes the pattern shared by live subscriptions, history
subscriptions and one-shot history reads:

- pick the record model for the feed
- normalize every child of the snapshot (junk children are skipped)
- wrap the result in a :class:`~wildtrack.state.events.FeedUpdate`
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable

from wildtrack.ingestion.normalize import DEFAULT_TIMESTAMP_POLICY, TimestampUnitPolicy
from wildtrack.ingestion.store import RawRecord, Snapshot
from wildtrack.models import AlertEvent, LocationSample, MotionEvent, TelemetryRecord
from wildtrack.state.events import Feed, FeedUpdate, IngestionSource

_logger = logging.getLogger(__name__)

RECORD_TYPES: dict[Feed, type[TelemetryRecord]] = {
    Feed.LOCATIONS: LocationSample,
    Feed.ALERTS: AlertEvent,
    Feed.MOTION: MotionEvent,
}


def normalize_location(
    payload: object,
    *,
    device_id: str,
    key: str | None = None,
    policy: TimestampUnitPolicy = DEFAULT_TIMESTAMP_POLICY,
    clock: Callable[[], float] = time.time,
) -> LocationSample | None:
    return LocationSample.from_raw(payload, device_id=device_id, key=key, policy=policy, clock=clock)


def normalize_motion(
    payload: object,
    *,
    device_id: str,
    key: str | None = None,
    policy: TimestampUnitPolicy = DEFAULT_TIMESTAMP_POLICY,
    clock: Callable[[], float] = time.time,
) -> MotionEvent | None:
    return MotionEvent.from_raw(payload, device_id=device_id, key=key, policy=policy, clock=clock)


def normalize_alert(
    payload: object,
    *,
    device_id: str,
    key: str | None = None,
    policy: TimestampUnitPolicy = DEFAULT_TIMESTAMP_POLICY,
    clock: Callable[[], float] = time.time,
) -> AlertEvent | None:
    return AlertEvent.from_raw(payload, device_id=device_id, key=key, policy=policy, clock=clock)


def normalize_records(
    feed: Feed,
    raw_records: Iterable[RawRecord],
    *,
    device_id: str,
    policy: TimestampUnitPolicy = DEFAULT_TIMESTAMP_POLICY,
    clock: Callable[[], float] = time.time,
) -> list[TelemetryRecord]:
    """Normalize raw children in order, skipping the ones that are not mappings."""
    model = RECORD_TYPES[feed]
    records: list[TelemetryRecord] = []
    for raw in raw_records:
        record = model.from_raw(raw.value, device_id=device_id, key=raw.key, policy=policy, clock=clock)
        if record is None:
            _logger.debug("Skipping non-record child %s of %s feed for %s", raw.key, feed, device_id)
            continue
        records.append(record)
    return records


def feed_update_from_snapshot(
    snapshot: Snapshot,
    *,
    device_id: str,
    feed: Feed,
    source: IngestionSource,
    generation: int,
    single: bool = False,
    policy: TimestampUnitPolicy = DEFAULT_TIMESTAMP_POLICY,
    clock: Callable[[], float] = time.time,
) -> FeedUpdate:
    """Build the update for one subscription delivery.

    ``single`` marks paths that hold one record (e.g. the last motion
    status) rather than a keyed collection.
    """
    if single:
        record = snapshot.as_record()
        raw_records = [record] if record is not None else []
    else:
        raw_records = snapshot.children()
    records = normalize_records(feed, raw_records, device_id=device_id, policy=policy, clock=clock)
    return FeedUpdate(
        device_id=device_id,
        feed=feed,
        source=source,
        generation=generation,
        records=tuple(records),
        exists=snapshot.exists,
        observed_at=clock(),
    )
