"""Deterministic merge policy.

This module contains no payload parsing. The ingestion/pydantic boundary
produces normalized records; the rules here only decide identity and
which of two records for the same identity survives.
"""

from __future__ import annotations

from collections.abc import Iterable

from wildtrack.models import TelemetryRecord


def fallback_key(timestamp: float, occurrence: int) -> str:
    return f"ts:{timestamp!r}#{occurrence}"


def identity_keys(records: Iterable[TelemetryRecord]) -> list[str]:
    """Identity key for each record of one snapshot, in order.

    The store key wins when present. Otherwise the key is derived from the
    timestamp plus the number of earlier records in the same snapshot that
    share it, so identical re-deliveries map to identical keys.
    """
    seen: dict[float, int] = {}
    keys: list[str] = []
    for record in records:
        if record.key is not None:
            keys.append(record.key)
            continue
        occurrence = seen.get(record.timestamp, 0)
        seen[record.timestamp] = occurrence + 1
        keys.append(fallback_key(record.timestamp, occurrence))
    return keys


def should_replace(existing: TelemetryRecord, incoming: TelemetryRecord) -> bool:
    """Last write by arrival wins; an identical re-delivery is a no-op."""
    return existing != incoming


_EVENT_EXCLUDE = frozenset({"key", "raw"})


def same_event(a: TelemetryRecord, b: TelemetryRecord) -> bool:
    """Whether two records describe the same event, ignoring store key and raw payload.

    A single-value source (such as the last motion event) re-publishes a
    record that also lives, under its own key, in the history collection.
    """
    if type(a) is not type(b) or a.timestamp != b.timestamp:
        return False
    return a.model_dump(exclude=_EVENT_EXCLUDE) == b.model_dump(exclude=_EVENT_EXCLUDE)
