"""Scrub credentials out of values headed for DEBUG logs.

The realtime database takes its credential as the ``auth`` query parameter,
so both request parameter maps and full URLs can carry secrets.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

REDACTED = "<redacted>"
_MAX_DEPTH = 20

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "auth",
        "access_token",
        "id_token",
        "idtoken",
        "refresh_token",
        "token",
        "apikey",
        "api_key",
        "authorization",
        "password",
        "secret",
    }
)

_QUERY_SECRET = re.compile(r"([?&][A-Za-z_]+)=[^&\s'\"]*")


def is_secret_key(key: object) -> bool:
    return str(key).lower() in _SECRET_KEYS


def redact_url(text: str) -> str:
    """Replace secret query parameter values in any URL inside *text*."""

    def _mask(match: re.Match[str]) -> str:
        name = match.group(1)
        return f"{name}={REDACTED}" if is_secret_key(name[1:]) else match.group(0)

    return _QUERY_SECRET.sub(_mask, text)


def _scrub_text(text: str, max_string: int) -> str:
    if "=" in text:
        text = redact_url(text)
    if len(text) > max_string:
        return f"{text[:max_string]}…<truncated>"
    return text


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a copy of *value* with secrets masked and long strings cut."""
    if _depth > _MAX_DEPTH:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return _scrub_text(value, max_string)
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    depth = _depth + 1
    if isinstance(value, Mapping):
        return {
            str(key): REDACTED if is_secret_key(key) else redact_for_log(item, max_string=max_string, _depth=depth)
            for key, item in value.items()
        }
    if isinstance(value, Sequence):
        return [redact_for_log(item, max_string=max_string, _depth=depth) for item in value]
    return repr(value)
