from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from typing import Any

import pytest

from wildtrack._transport import RestTransport, StreamEvent, iter_sse_events
from wildtrack.config import WildtrackConfig
from wildtrack.exceptions import WildtrackTransportError
from wildtrack.ingestion.store import Query, RealtimeDatabaseStore, Snapshot


async def _lines(*lines: str) -> AsyncIterator[bytes]:
    for line in lines:
        yield f"{line}\n".encode()


async def _collect(lines: AsyncIterator[bytes]) -> list[StreamEvent]:
    return [event async for event in iter_sse_events(lines, path="p")]


@pytest.fixture
def config() -> WildtrackConfig:
    return WildtrackConfig(
        database_url="https://example-default-rtdb.firebaseio.com/",
        auth_token="secret-token",
        reconnect_initial_delay=0.0,
        reconnect_max_delay=0.0,
    )


@dataclass
class FakeStreamTransport:
    """Scripted event streams, one list per connection attempt."""

    connections: list[list[StreamEvent]]
    opened: list[Mapping[str, str] | None] = field(default_factory=list)
    documents: dict[str, Any] = field(default_factory=dict)
    requests: list[tuple[str, Mapping[str, str] | None]] = field(default_factory=list)

    async def get_json(self, path: str, params: Mapping[str, str] | None = None) -> Any:
        self.requests.append((path, params))
        return self.documents.get(path)

    async def stream(self, path: str, params: Mapping[str, str] | None = None) -> AsyncIterator[StreamEvent]:
        attempt = len(self.opened)
        self.opened.append(params)
        if attempt >= len(self.connections):
            await asyncio.Event().wait()
        for event in self.connections[attempt]:
            yield event
        if attempt == len(self.connections) - 1:
            await asyncio.Event().wait()
        raise WildtrackTransportError("connection reset", path=path)


async def _wait_for(predicate: Any, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.mark.asyncio
async def test_sse_parser_decodes_events_and_skips_comments() -> None:
    events = await _collect(
        _lines(
            ": hello",
            "event: put",
            'data: {"path": "/", "data": {"a": 1}}',
            "",
            "event: keep-alive",
            "data: null",
            "",
        )
    )

    assert events == [
        StreamEvent(event="put", data={"path": "/", "data": {"a": 1}}),
        StreamEvent(event="keep-alive", data=None),
    ]


@pytest.mark.asyncio
async def test_sse_parser_rejects_invalid_json() -> None:
    with pytest.raises(WildtrackTransportError):
        await _collect(_lines("event: put", "data: {nope", ""))


def test_rest_transport_builds_urls_and_adds_auth(config: WildtrackConfig) -> None:
    transport = RestTransport(config, http_session=None)  # type: ignore[arg-type]

    base = "https://example-default-rtdb.firebaseio.com"
    assert transport._url("/devices/d/locations") == f"{base}/devices/d/locations.json"
    assert transport._url("") == f"{base}/.json"
    assert transport._params({"limitToLast": "1"}) == {"limitToLast": "1", "auth": "secret-token"}


def test_query_params_quote_order_key() -> None:
    assert Query("timestamp", 50).params() == {"orderBy": '"timestamp"', "limitToLast": "50"}


@pytest.mark.asyncio
async def test_stream_applies_put_and_patch_to_local_tree(config: WildtrackConfig) -> None:
    transport = FakeStreamTransport(
        connections=[
            [
                StreamEvent("put", {"path": "/", "data": {"a": {"timestamp": 1}}}),
                StreamEvent("put", {"path": "/b", "data": {"timestamp": 2}}),
                StreamEvent("patch", {"path": "/a", "data": {"lat": 5}}),
                StreamEvent("keep-alive", None),
                StreamEvent("put", {"path": "/b", "data": None}),
            ]
        ]
    )
    store = RealtimeDatabaseStore(transport, config)
    seen: list[Snapshot] = []

    subscription = store.subscribe("devices/d/locations", seen.append, lambda exc: None)
    await _wait_for(lambda: len(seen) == 4)
    await subscription.unsubscribe()

    assert seen[1].value == {"a": {"timestamp": 1}, "b": {"timestamp": 2}}
    assert seen[2].value == {"a": {"timestamp": 1, "lat": 5}, "b": {"timestamp": 2}}
    assert seen[3].value == {"a": {"timestamp": 1, "lat": 5}}
    assert subscription.active is False


@pytest.mark.asyncio
async def test_stream_failure_reports_error_and_redelivers_full_value(config: WildtrackConfig) -> None:
    transport = FakeStreamTransport(
        connections=[
            [StreamEvent("put", {"path": "/", "data": {"a": {"timestamp": 1}}})],
            [StreamEvent("put", {"path": "/", "data": {"a": {"timestamp": 1}, "b": {"timestamp": 2}}})],
        ]
    )
    store = RealtimeDatabaseStore(transport, config)
    seen: list[Snapshot] = []
    errors: list[Exception] = []

    subscription = store.subscribe("p", seen.append, errors.append, query=Query("timestamp", 1))
    await _wait_for(lambda: len(seen) == 2)
    await subscription.unsubscribe()

    assert len(errors) == 1
    assert isinstance(errors[0], WildtrackTransportError)
    assert seen[0].value == {"a": {"timestamp": 1}}
    assert seen[1].value == {"b": {"timestamp": 2}}
    assert transport.opened == [{"orderBy": '"timestamp"', "limitToLast": "1"}] * 2


@pytest.mark.asyncio
async def test_cancel_event_triggers_reconnect(config: WildtrackConfig) -> None:
    transport = FakeStreamTransport(
        connections=[
            [StreamEvent("cancel", None)],
            [StreamEvent("put", {"path": "/", "data": True})],
        ]
    )
    store = RealtimeDatabaseStore(transport, config)
    seen: list[Snapshot] = []
    errors: list[Exception] = []

    subscription = store.subscribe("devices/d/connected", seen.append, errors.append)
    await _wait_for(lambda: len(seen) == 1)
    await subscription.unsubscribe()

    assert "cancel" in str(errors[0])
    assert seen[0].value is True


@pytest.mark.asyncio
async def test_fetch_last_orders_server_result(config: WildtrackConfig) -> None:
    transport = FakeStreamTransport(connections=[])
    transport.documents["devices/d/alerts"] = {"x": {"timestamp": 20}, "y": {"timestamp": 10}}
    store = RealtimeDatabaseStore(transport, config)

    records = await store.fetch_last("devices/d/alerts", "timestamp", 10)

    assert [record.key for record in records] == ["y", "x"]
    assert transport.requests == [("devices/d/alerts", {"orderBy": '"timestamp"', "limitToLast": "10"})]
