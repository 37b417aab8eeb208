"""HTTP transport for the realtime database REST API.

Two primitives are exposed: one-shot JSON reads and a server-sent event
stream (``Accept: text/event-stream``) that yields ``put``/``patch``
notifications for a path.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp

from wildtrack._redact import redact_for_log, redact_url
from wildtrack.config import WildtrackConfig
from wildtrack.exceptions import WildtrackTransportError

_logger = logging.getLogger(__name__)

# The server sends keep-alive events every ~30s; three missed ones means the
# connection is dead even if the socket has not noticed yet.
STREAM_READ_TIMEOUT = 90.0


@dataclass(frozen=True)
class StreamEvent:
    """One decoded server-sent event."""

    event: str
    data: Any


class Transport(Protocol):
    """Structural transport interface used by the store adapter.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`RestTransport`) concrete.
    """

    async def get_json(self, path: str, params: Mapping[str, str] | None = None) -> Any: ...

    def stream(self, path: str, params: Mapping[str, str] | None = None) -> AsyncIterator[StreamEvent]: ...


async def iter_sse_events(lines: AsyncIterable[bytes], *, path: str = "") -> AsyncIterator[StreamEvent]:
    """Decode an event-stream body into :class:`StreamEvent` objects.

    Event payloads are JSON; ``null`` decodes to ``None``.
    """
    event_name = ""
    data_lines: list[str] = []
    async for raw_line in lines:
        line = raw_line.decode("utf-8", errors="replace").rstrip("\r\n")
        if not line:
            if event_name:
                text = "\n".join(data_lines)
                try:
                    data = json.loads(text) if text else None
                except json.JSONDecodeError as exc:
                    raise WildtrackTransportError(
                        f"Invalid JSON in {event_name!r} event for {path}: {text[:200]}",
                        path=path,
                    ) from exc
                yield StreamEvent(event=event_name, data=data)
            event_name = ""
            data_lines = []
            continue
        if line.startswith(":"):
            continue
        field_name, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if field_name == "event":
            event_name = value
        elif field_name == "data":
            data_lines.append(value)


class RestTransport:
    """REST transport for a Firebase-style realtime database."""

    def __init__(self, config: WildtrackConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    def _url(self, path: str) -> str:
        clean = path.strip("/")
        return f"{self._config.database_url}/{clean}.json" if clean else f"{self._config.database_url}/.json"

    def _params(self, params: Mapping[str, str] | None) -> dict[str, str]:
        merged = dict(params or {})
        if self._config.auth_token:
            merged["auth"] = self._config.auth_token
        return merged

    def _trace(self, method: str, url: str, params: Mapping[str, str]) -> None:
        if self._config.api_trace_enabled:
            _logger.debug("%s %s params=%s", method, url, redact_for_log(params))

    async def get_json(self, path: str, params: Mapping[str, str] | None = None) -> Any:
        """Read the JSON value stored at *path*."""
        url = self._url(path)
        query = self._params(params)
        self._trace("GET", url, query)
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)

        try:
            async with self._http.get(
                url,
                params=query,
                headers={"accept": "application/json"},
                timeout=timeout,
            ) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise WildtrackTransportError(
                        f"HTTP {resp.status} from {path}: {text[:200]}",
                        status_code=resp.status,
                        path=path,
                    )
        except WildtrackTransportError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise WildtrackTransportError(f"Request to {path} failed: {redact_url(str(exc))}", path=path) from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise WildtrackTransportError(f"Invalid JSON from {path}: {text[:200]}", path=path) from exc

    async def stream(self, path: str, params: Mapping[str, str] | None = None) -> AsyncIterator[StreamEvent]:
        """Open an event stream on *path* and yield its events until it closes."""
        url = self._url(path)
        query = self._params(params)
        self._trace("STREAM", url, query)
        timeout = aiohttp.ClientTimeout(
            total=None,
            sock_connect=self._config.request_timeout,
            sock_read=STREAM_READ_TIMEOUT,
        )

        try:
            async with self._http.get(
                url,
                params=query,
                headers={"accept": "text/event-stream"},
                timeout=timeout,
            ) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise WildtrackTransportError(
                        f"HTTP {resp.status} opening stream on {path}: {text[:200]}",
                        status_code=resp.status,
                        path=path,
                    )
                async for event in iter_sse_events(resp.content, path=path):
                    if self._config.api_trace_enabled:
                        _logger.debug("Stream %s event=%s data=%s", path, event.event, redact_for_log(event.data))
                    yield event
        except WildtrackTransportError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise WildtrackTransportError(f"Stream on {path} failed: {redact_url(str(exc))}", path=path) from exc
