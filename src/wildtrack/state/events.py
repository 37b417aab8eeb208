"""Normalized ingestion events.

Subscription callbacks convert store snapshots into these events and hand
them to a device's reconciler. Only the state layer is allowed to merge
them into timelines.
"""

from __future__ import annotations

import time
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from wildtrack.models import TelemetryRecord


class Feed(StrEnum):
    LOCATIONS = "locations"
    ALERTS = "alerts"
    MOTION = "motion"


class IngestionSource(StrEnum):
    LIVE = "live"
    """The "last known value" subscription."""
    HISTORY = "history"
    """The "last N" subscription or a one-shot history read."""


class StatusKind(StrEnum):
    CONNECTED = "connected"
    TRANSPORT_ERROR = "transport_error"


def _device_id(value: str) -> str:
    device_id = value.strip()
    if not device_id:
        raise ValueError("device_id must be non-empty")
    return device_id


class FeedUpdate(BaseModel):
    """Normalized records from one delivery of one subscription."""

    model_config = ConfigDict(frozen=True)

    device_id: str = Field(..., description="Store key of the device")
    feed: Feed
    source: IngestionSource
    generation: int = 0
    records: tuple[TelemetryRecord, ...] = ()
    exists: bool = True
    observed_at: float = Field(default_factory=time.time, description="Epoch seconds of arrival")

    @field_validator("device_id")
    @classmethod
    def _normalize_device_id(cls, value: str) -> str:
        return _device_id(value)


class StatusUpdate(BaseModel):
    """A connectivity change or transport fault for one device."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    kind: StatusKind
    generation: int = 0
    connected: bool | None = None
    detail: str | None = None
    observed_at: float = Field(default_factory=time.time)

    @field_validator("device_id")
    @classmethod
    def _normalize_device_id(cls, value: str) -> str:
        return _device_id(value)
