"""Bounded, time-ordered record timeline for one device feed."""

from __future__ import annotations

import bisect
import itertools
import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from wildtrack.models import TelemetryRecord
from wildtrack.state.policy import identity_keys, same_event, should_replace


@dataclass(frozen=True)
class _Entry:
    timestamp: float
    seq: int
    key: str
    record: TelemetryRecord
    synthetic: bool = False
    """The key was derived from the timestamp, not assigned by the store."""

    @property
    def order(self) -> tuple[float, int]:
        return (self.timestamp, self.seq)


class Timeline:
    """Ordered records for one device feed.

    Entries are unique by identity key, non-decreasing by timestamp, and
    capped at ``window`` entries (oldest dropped first). Among equal
    timestamps, entries keep arrival order, so the last entry is always
    the current value.
    """

    def __init__(self, window: int) -> None:
        if window < 1:
            raise ValueError("window must be positive")
        self._window = window
        self._entries: list[_Entry] = []
        self._order: list[tuple[float, int]] = []
        self._by_key: dict[str, _Entry] = {}
        self._seq = itertools.count()

    @property
    def window(self) -> int:
        return self._window

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TelemetryRecord]:
        return (entry.record for entry in self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def get(self, key: str) -> TelemetryRecord | None:
        entry = self._by_key.get(key)
        return entry.record if entry is not None else None

    def keys(self) -> list[str]:
        return [entry.key for entry in self._entries]

    def entries(self) -> tuple[TelemetryRecord, ...]:
        """Records oldest first."""
        return tuple(entry.record for entry in self._entries)

    def current(self) -> TelemetryRecord | None:
        return self._entries[-1].record if self._entries else None

    def merge(self, records: Sequence[TelemetryRecord]) -> bool:
        """Merge one snapshot worth of records. Returns whether anything changed."""
        before = [(entry.key, entry.seq) for entry in self._entries]
        for key, record in zip(identity_keys(records), records, strict=True):
            existing = self._by_key.get(key)
            if existing is None:
                existing = self._equivalent(record)
                if existing is not None and record.key is None:
                    # Keyless copy of an event we already hold.
                    continue
            elif not should_replace(existing.record, record):
                continue
            if existing is not None:
                self._remove(existing)
            self._insert(_Entry(record.timestamp, next(self._seq), key, record, synthetic=record.key is None))
        self._truncate()
        return before != [(entry.key, entry.seq) for entry in self._entries]

    def _equivalent(self, record: TelemetryRecord) -> _Entry | None:
        """An entry holding the same event under another identity.

        A keyless record matches any entry. A keyed record only matches a
        synthetic one, which it then takes over.
        """
        lo = bisect.bisect_left(self._order, (record.timestamp, -1))
        hi = bisect.bisect_right(self._order, (record.timestamp, math.inf))
        for entry in self._entries[lo:hi]:
            if record.key is not None and not entry.synthetic:
                continue
            if same_event(entry.record, record):
                return entry
        return None

    def _insert(self, entry: _Entry) -> None:
        # seq only grows, so bisect_right-equivalent placement puts ties last.
        index = bisect.bisect_left(self._order, entry.order)
        self._entries.insert(index, entry)
        self._order.insert(index, entry.order)
        self._by_key[entry.key] = entry

    def _remove(self, entry: _Entry) -> None:
        index = bisect.bisect_left(self._order, entry.order)
        del self._entries[index]
        del self._order[index]
        del self._by_key[entry.key]

    def _truncate(self) -> None:
        overflow = len(self._entries) - self._window
        if overflow <= 0:
            return
        for entry in self._entries[:overflow]:
            del self._by_key[entry.key]
        del self._entries[:overflow]
        del self._order[:overflow]
