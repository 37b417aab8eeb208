"""Base model for telemetry records.

Every record pushed by a device inherits from :class:`TelemetryRecord`,
which provides:

* a per-field rule table (``_FIELD_RULES``) listing accepted aliases, a
  coercer and a documented default;
* a ``model_validator(mode="before")`` that, when the model is built via
  :meth:`TelemetryRecord.from_raw`, applies those rules and records which
  fields had to be defaulted (``was_defaulted`` / ``defaulted_fields``);
* timestamp normalization through a pluggable unit policy;
* a ``raw`` dict that captures the original payload.

Malformed input is data, not an error: :meth:`from_raw` only returns
``None`` when the payload is not a mapping at all.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, ClassVar, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, model_validator

from wildtrack.ingestion.normalize import (
    DEFAULT_TIMESTAMP_POLICY,
    TimestampUnitPolicy,
    normalize_timestamp,
)

UNKNOWN = "Unknown"
"""Default for string fields that are missing or of the wrong type."""

TIMESTAMP_ALIASES: tuple[str, ...] = ("timestamp", "time", "ts")

TRecord = TypeVar("TRecord", bound="TelemetryRecord")

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldRule:
    """How one record field is read from a raw payload.

    ``coerce`` returns ``None`` for unusable values. A missing value falls
    back to ``default`` silently unless the field is ``required``; a present
    but unusable value always falls back to ``default`` and is flagged.
    """

    aliases: tuple[str, ...]
    coerce: Callable[[Any], Any]
    default: Any
    required: bool = False


def _first_present(values: Mapping[str, Any], aliases: tuple[str, ...]) -> tuple[bool, Any]:
    for alias in aliases:
        if alias in values and values[alias] is not None:
            return True, values[alias]
    return False, None


class TelemetryRecord(BaseModel):
    """Common fields of every normalized telemetry record."""

    _FIELD_RULES: ClassVar[dict[str, FieldRule]] = {}
    """Per-field read rules, overridden by subclasses."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    device_id: str
    timestamp: float
    """Epoch seconds, after unit normalization."""
    key: str | None = None
    """Store-assigned key, when the record came from a keyed collection."""
    was_defaulted: bool = False
    defaulted_fields: frozenset[str] = frozenset()
    timestamp_ambiguous: bool = False
    """The unit policy could not tell seconds from milliseconds with confidence."""
    raw: dict[str, Any] = Field(default_factory=dict)
    """Original payload."""

    @model_validator(mode="before")
    @classmethod
    def _apply_field_rules(cls, values: Any, info: ValidationInfo) -> Any:
        context = info.context
        if not isinstance(values, Mapping) or not isinstance(context, dict) or not context.get("normalize"):
            return values

        original = dict(values)
        defaulted: set[str] = set()
        cleaned: dict[str, Any] = {}

        for field_name, rule in cls._FIELD_RULES.items():
            present, value = _first_present(original, rule.aliases)
            coerced = rule.coerce(value) if present else None
            if coerced is None:
                coerced = rule.default
                if present or rule.required:
                    defaulted.add(field_name)
            cleaned[field_name] = coerced

        key = context.get("key")
        policy: TimestampUnitPolicy = context.get("policy") or DEFAULT_TIMESTAMP_POLICY
        _, raw_ts = _first_present(original, TIMESTAMP_ALIASES)
        resolution = normalize_timestamp(raw_ts, policy)
        if resolution is None and key is not None:
            # Some feeds are keyed by their own epoch timestamp.
            resolution = normalize_timestamp(key, policy)
        if resolution is None:
            now: Callable[[], float] = context.get("clock") or time.time
            cleaned["timestamp"] = now()
            cleaned["timestamp_ambiguous"] = False
            defaulted.add("timestamp")
        else:
            cleaned["timestamp"] = resolution.seconds
            cleaned["timestamp_ambiguous"] = resolution.ambiguous

        cleaned["device_id"] = context.get("device_id") or original.get("device_id") or UNKNOWN
        cleaned["key"] = key
        cleaned["was_defaulted"] = bool(defaulted)
        cleaned["defaulted_fields"] = frozenset(defaulted)
        cleaned["raw"] = original
        return cleaned

    @classmethod
    def from_raw(
        cls: type[TRecord],
        payload: Any,
        *,
        device_id: str,
        key: str | None = None,
        policy: TimestampUnitPolicy | None = None,
        clock: Callable[[], float] | None = None,
    ) -> TRecord | None:
        """Normalize an untyped payload into a record.

        Returns ``None`` only when *payload* is not a mapping. Never raises.
        """
        if not isinstance(payload, Mapping):
            return None
        context = {
            "normalize": True,
            "device_id": device_id,
            "key": key,
            "policy": policy,
            "clock": clock,
        }
        try:
            return cls.model_validate(dict(payload), context=context)
        except ValidationError:
            # Rules above default every field, so this only triggers on a
            # rule table bug. Keep the no-throw contract regardless.
            _logger.warning("Could not normalize %s for device %s", cls.__name__, device_id, exc_info=True)
            return None
