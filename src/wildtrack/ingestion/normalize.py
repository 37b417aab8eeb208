"""Normalization helpers.

Centralizes defensive parsing and the timestamp-unit policy.

Timestamps pushed by field devices are sometimes epoch seconds and
sometimes epoch milliseconds, with nothing in the payload saying which.
:class:`MagnitudeThresholdPolicy` resolves this by magnitude. That is a
best-effort heuristic, not a certainty: every resolution reports whether
it was confident so callers can flag the record instead of silently
trusting the guess. Swap in :class:`FixedUnitPolicy` once the true unit
convention of a deployment is known.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

# Values above this are read as milliseconds.
MS_THRESHOLD = 1_000_000_000_000

# 2000-01-01T00:00:00Z and 2100-01-01T00:00:00Z
_PLAUSIBLE_MIN_S = 946_684_800.0
_PLAUSIBLE_MAX_S = 4_102_444_800.0


class TimestampUnit(StrEnum):
    SECONDS = "s"
    MILLISECONDS = "ms"


@dataclass(frozen=True)
class TimestampResolution:
    """Outcome of resolving a raw numeric timestamp."""

    seconds: float
    unit: TimestampUnit
    ambiguous: bool = False


class TimestampUnitPolicy(Protocol):
    """Pluggable rule that turns a raw epoch number into seconds."""

    def resolve(self, value: float) -> TimestampResolution: ...


def _plausible(seconds: float) -> bool:
    return _PLAUSIBLE_MIN_S <= seconds <= _PLAUSIBLE_MAX_S


@dataclass(frozen=True)
class MagnitudeThresholdPolicy:
    """Read values above ``threshold`` as milliseconds, everything else as seconds.

    A resolution is flagged ambiguous when neither interpretation lands
    in a plausible date range (2000-2100), or both do.
    """

    threshold: float = MS_THRESHOLD

    def resolve(self, value: float) -> TimestampResolution:
        as_seconds_plausible = _plausible(value)
        as_ms_plausible = _plausible(value / 1000.0)
        ambiguous = as_seconds_plausible == as_ms_plausible
        if value > self.threshold:
            return TimestampResolution(value / 1000.0, TimestampUnit.MILLISECONDS, ambiguous)
        return TimestampResolution(value, TimestampUnit.SECONDS, ambiguous)


@dataclass(frozen=True)
class FixedUnitPolicy:
    """Policy for deployments whose timestamp unit is known."""

    unit: TimestampUnit = TimestampUnit.SECONDS

    def resolve(self, value: float) -> TimestampResolution:
        if self.unit == TimestampUnit.MILLISECONDS:
            return TimestampResolution(value / 1000.0, self.unit)
        return TimestampResolution(value, self.unit)


DEFAULT_TIMESTAMP_POLICY: TimestampUnitPolicy = MagnitudeThresholdPolicy()


def safe_float(value: Any) -> float | None:
    # bool is an int subclass; a flag is never a measurement.
    if value is None or isinstance(value, bool) or value == "" or value == "--":
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text if text else None


def in_range(value: float | None, low: float, high: float) -> float | None:
    if value is None:
        return None
    return value if low <= value <= high else None


def non_negative(value: float | None) -> float | None:
    if value is None:
        return None
    return value if value >= 0 else None


def normalize_timestamp(
    value: Any,
    policy: TimestampUnitPolicy = DEFAULT_TIMESTAMP_POLICY,
) -> TimestampResolution | None:
    """Normalize a raw epoch timestamp to seconds.

    - Empty/missing/non-numeric -> None
    - <= 0 -> None
    - Otherwise the unit is decided by *policy*
    """

    ts = safe_float(value)
    if ts is None or ts <= 0:
        return None
    return policy.resolve(ts)


def normalize_timestamp_seconds(
    value: Any,
    policy: TimestampUnitPolicy = DEFAULT_TIMESTAMP_POLICY,
) -> float | None:
    resolution = normalize_timestamp(value, policy)
    return resolution.seconds if resolution is not None else None
