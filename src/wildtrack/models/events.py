"""Motion and alert event models."""

from __future__ import annotations

from typing import Any, ClassVar

from wildtrack.ingestion.normalize import safe_str
from wildtrack.models._base import UNKNOWN, FieldRule, TelemetryRecord

MOTION_DETECTED = "motion_detected"
MOTION_CLEAR = "clear"


def _motion_status(value: Any) -> str | None:
    # PIR sensors publish a bare boolean.
    if isinstance(value, bool):
        return MOTION_DETECTED if value else MOTION_CLEAR
    return safe_str(value)


class MotionEvent(TelemetryRecord):
    """A motion sensor status change."""

    _FIELD_RULES: ClassVar[dict[str, FieldRule]] = {
        "status": FieldRule(("status", "motion", "state"), _motion_status, UNKNOWN, required=True),
        "severity": FieldRule(("severity", "level"), safe_str, UNKNOWN),
        "source": FieldRule(("source",), safe_str, UNKNOWN),
        "message": FieldRule(("message", "msg"), safe_str, None),
    }

    status: str = UNKNOWN
    severity: str = UNKNOWN
    source: str = UNKNOWN
    message: str | None = None

    @property
    def is_motion(self) -> bool:
        return self.status == MOTION_DETECTED


class AlertEvent(TelemetryRecord):
    """An alert raised by a device (intrusion, low battery, ...)."""

    _FIELD_RULES: ClassVar[dict[str, FieldRule]] = {
        "status": FieldRule(("status",), safe_str, UNKNOWN, required=True),
        "alert_type": FieldRule(("type", "alert_type", "alertType"), safe_str, UNKNOWN),
        "source": FieldRule(("source",), safe_str, UNKNOWN),
        "message": FieldRule(("message", "msg"), safe_str, None),
    }

    status: str = UNKNOWN
    alert_type: str = UNKNOWN
    source: str = UNKNOWN
    message: str | None = None
