"""Custom exception hierarchy and error kinds for wildtrack."""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Non-fatal conditions reported to observers for a single device.

    None of these ever stop reconciliation; they degrade the affected
    device to a "stale/unknown" display state.
    """

    TRANSPORT_ERROR = "transport_error"
    """Store unreachable. The adapter reconnects and re-delivers the full value."""

    MALFORMED_RECORD = "malformed_record"
    """One or more fields were replaced by defaults during normalization."""

    AMBIGUOUS_TIMESTAMP_UNIT = "ambiguous_timestamp_unit"
    """A timestamp could not be resolved to seconds or milliseconds with confidence."""

    NO_DATA = "no_data"
    """A snapshot was empty. Valid state, not a failure."""


class WildtrackError(Exception):
    """Base exception for all wildtrack errors."""


class WildtrackConfigError(WildtrackError):
    """Invalid or missing configuration."""


class WildtrackTransportError(WildtrackError):
    """HTTP/stream-level failure (network, non-200, invalid JSON, revoked stream)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        path: str = "",
    ) -> None:
        self.status_code = status_code
        self.path = path
        super().__init__(message)


class WildtrackStoreError(WildtrackError):
    """The store rejected a request or returned data of an unexpected shape."""

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class TrackingStateError(WildtrackError):
    """Tracking operation not allowed in the tracker's current state."""
