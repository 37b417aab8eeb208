"""Device model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from wildtrack.ingestion.normalize import safe_str
from wildtrack.models._base import UNKNOWN


class Device(BaseModel):
    """A remote sensing device known to the store.

    Devices are created on first sighting and never deleted by this
    library; retention is the store's business.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    device_id: str = Field(validation_alias=AliasChoices("device_id", "deviceId", "id"))
    """Opaque store key."""
    name: str = Field(default=UNKNOWN, validation_alias=AliasChoices("name", "displayName", "label"))
    """Display name."""
    device_type: str = Field(default=UNKNOWN, validation_alias=AliasChoices("device_type", "deviceType", "type"))
    """Type tag (e.g. ``"collar"``, ``"camera_trap"``)."""
    first_seen: float | None = None
    """Epoch seconds of the first applied telemetry update."""
    last_seen: float | None = None
    """Epoch seconds of the most recent applied telemetry update."""

    raw: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _ensure_raw(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        merged.setdefault("raw", values)
        return merged

    @field_validator("name", "device_type", mode="before")
    @classmethod
    def _coerce_label(cls, value: Any) -> str:
        return safe_str(value) or UNKNOWN

    @classmethod
    def from_info(cls, device_id: str, info: Any) -> Device:
        """Build a device from its ``info`` node, tolerating junk."""
        payload = dict(info) if isinstance(info, dict) else {}
        payload["device_id"] = device_id
        return cls.model_validate(payload)

    def seen(self, timestamp: float) -> Device:
        """Return a copy with the sighting window extended to *timestamp*."""
        first = self.first_seen if self.first_seen is not None else timestamp
        last = timestamp if self.last_seen is None else max(self.last_seen, timestamp)
        return self.model_copy(update={"first_seen": min(first, timestamp), "last_seen": last})
