"""Telemetry store adapters.

The adapter abstracts the remote key-value/document store behind two
primitives: subscribe-by-path and fetch-last-N. It keeps no state between
calls beyond what an active subscription needs to rebuild the value it
delivers; callers are responsible for holding at most one subscription
per path.

Delivery contract for subscriptions:

- ``on_data`` always receives the *full* current value (a
  :class:`Snapshot`), never a diff.
- A transport failure invokes ``on_error`` instead of stalling silently.
- After reconnecting, the full current value is delivered again so
  downstream reconciliation can self-heal.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from wildtrack._transport import Transport
from wildtrack.config import WildtrackConfig
from wildtrack.exceptions import WildtrackStoreError, WildtrackTransportError
from wildtrack.ingestion.normalize import safe_float

_logger = logging.getLogger(__name__)

DataCallback = Callable[["Snapshot"], None]
ErrorCallback = Callable[[Exception], None]


# ---------------------------------------------------------------------------
# Snapshot primitives
# ---------------------------------------------------------------------------


def split_path(path: str) -> list[str]:
    return [segment for segment in path.strip("/").split("/") if segment]


def get_node(tree: Any, segments: list[str]) -> Any:
    node = tree
    for segment in segments:
        if not isinstance(node, dict):
            return None
        node = node.get(segment)
    return node


def set_node(tree: Any, segments: list[str], value: Any) -> Any:
    """Write *value* at *segments* below *tree* and return the new root.

    ``None`` deletes the node; parents left empty are pruned, mirroring how
    the database never stores empty objects.
    """
    if not segments:
        return copy.deepcopy(value) if value not in ({}, []) else None
    root = tree if isinstance(tree, dict) else {}
    head, rest = segments[0], segments[1:]
    child = set_node(root.get(head), rest, value)
    if child is None:
        root.pop(head, None)
    else:
        root[head] = child
    return root or None


@dataclass(frozen=True)
class RawRecord:
    """One child of a snapshot: store key plus untyped value."""

    key: str | None
    value: Any


@dataclass(frozen=True)
class Query:
    """Ordering/limit applied to a collection path."""

    order_by: str | None = None
    limit_to_last: int | None = None

    def params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.order_by is not None:
            params["orderBy"] = json.dumps(self.order_by)
        if self.limit_to_last is not None:
            params["limitToLast"] = str(self.limit_to_last)
        return params

    def sort_key(self, item: tuple[str, Any]) -> tuple[int, float, str]:
        key, value = item
        if self.order_by is not None:
            order_value = safe_float(value.get(self.order_by)) if isinstance(value, dict) else None
        else:
            order_value = safe_float(key)
        # Children without an order value sort first, then by key.
        if order_value is None:
            return (0, 0.0, key)
        return (1, order_value, key)

    def apply(self, value: Any) -> Any:
        """Apply the ordering/limit to a collection value (dicts only)."""
        if not isinstance(value, dict):
            return value
        ordered = sorted(value.items(), key=self.sort_key)
        if self.limit_to_last is not None:
            ordered = ordered[-self.limit_to_last :] if self.limit_to_last > 0 else []
        return dict(ordered)


@dataclass(frozen=True)
class Snapshot:
    """Full value at a path as of one delivery."""

    path: str
    value: Any
    query: Query | None = None

    @property
    def exists(self) -> bool:
        return self.value is not None and self.value != {} and self.value != []

    def children(self) -> list[RawRecord]:
        """Children as records, in query order (or key order)."""
        value = self.value
        if isinstance(value, list):
            # Arrays come back for integer-keyed collections.
            value = {str(index): item for index, item in enumerate(value) if item is not None}
        if not isinstance(value, dict):
            return []
        query = self.query or Query()
        return [RawRecord(key=key, value=child) for key, child in sorted(value.items(), key=query.sort_key)]

    def as_record(self) -> RawRecord | None:
        """The snapshot itself as a single keyless record."""
        if not self.exists:
            return None
        return RawRecord(key=None, value=self.value)


# ---------------------------------------------------------------------------
# Adapter contract
# ---------------------------------------------------------------------------


class Subscription(Protocol):
    @property
    def path(self) -> str: ...

    @property
    def active(self) -> bool: ...

    async def unsubscribe(self) -> None: ...


class TelemetryStore(Protocol):
    """Structural interface shared by every store adapter."""

    def subscribe(
        self,
        path: str,
        on_data: DataCallback,
        on_error: ErrorCallback,
        *,
        query: Query | None = None,
    ) -> Subscription: ...

    async def fetch(self, path: str, *, shallow: bool = False) -> Snapshot: ...

    async def fetch_last(self, path: str, order_key: str, limit: int) -> list[RawRecord]: ...


def _deliver(callback: Callable[[Any], None], payload: Any, path: str) -> None:
    try:
        callback(payload)
    except Exception:
        _logger.warning("Subscriber callback for %s failed", path, exc_info=True)


# ---------------------------------------------------------------------------
# Realtime database (REST + event stream)
# ---------------------------------------------------------------------------


class _StreamSubscription:
    """Background task that keeps one event stream open and re-opens it on failure."""

    def __init__(
        self,
        *,
        transport: Transport,
        path: str,
        query: Query | None,
        on_data: DataCallback,
        on_error: ErrorCallback,
        initial_delay: float,
        max_delay: float,
    ) -> None:
        self._transport = transport
        self._path = path
        self._query = query
        self._on_data = on_data
        self._on_error = on_error
        self._initial_delay = initial_delay
        self._max_delay = max_delay
        self._task: asyncio.Task[None] | None = None

    @property
    def path(self) -> str:
        return self._path

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"wildtrack-stream:{self._path}")

    async def unsubscribe(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        _logger.debug("Unsubscribed from %s", self._path)

    def _snapshot(self, value: Any) -> Snapshot:
        shaped = self._query.apply(value) if self._query is not None else value
        return Snapshot(path=self._path, value=copy.deepcopy(shaped), query=self._query)

    async def _run(self) -> None:
        delay = self._initial_delay
        params = self._query.params() if self._query is not None else None
        while True:
            # The first `put` after (re)connecting carries the full value, so
            # each connection starts from an empty local copy.
            value: Any = None
            try:
                async for event in self._transport.stream(self._path, params):
                    if event.event in ("put", "patch"):
                        value = self._apply_event(value, event.event, event.data)
                        _deliver(self._on_data, self._snapshot(value), self._path)
                        delay = self._initial_delay
                    elif event.event == "keep-alive":
                        continue
                    elif event.event in ("cancel", "auth_revoked"):
                        raise WildtrackTransportError(
                            f"Stream on {self._path} ended by server: {event.event}",
                            path=self._path,
                        )
                raise WildtrackTransportError(f"Stream on {self._path} closed", path=self._path)
            except WildtrackTransportError as exc:
                _logger.warning("Subscription on %s lost: %s; retrying in %.1fs", self._path, exc, delay)
                _deliver(self._on_error, exc, self._path)
            await asyncio.sleep(delay)
            delay = min(max(delay * 2, self._initial_delay), self._max_delay)

    def _apply_event(self, value: Any, kind: str, data: Any) -> Any:
        if not isinstance(data, dict) or "path" not in data:
            raise WildtrackTransportError(f"Malformed {kind} event on {self._path}: {data!r}", path=self._path)
        segments = split_path(str(data["path"]))
        body = data.get("data")
        if kind == "put":
            return set_node(value, segments, body)
        if not isinstance(body, dict):
            raise WildtrackTransportError(f"Malformed patch body on {self._path}: {body!r}", path=self._path)
        for child_key, child_value in body.items():
            value = set_node(value, [*segments, *split_path(child_key)], child_value)
        return value


class RealtimeDatabaseStore:
    """Store adapter for a Firebase-style realtime database over REST."""

    def __init__(self, transport: Transport, config: WildtrackConfig) -> None:
        self._transport = transport
        self._config = config

    def subscribe(
        self,
        path: str,
        on_data: DataCallback,
        on_error: ErrorCallback,
        *,
        query: Query | None = None,
    ) -> Subscription:
        subscription = _StreamSubscription(
            transport=self._transport,
            path=path,
            query=query,
            on_data=on_data,
            on_error=on_error,
            initial_delay=self._config.reconnect_initial_delay,
            max_delay=self._config.reconnect_max_delay,
        )
        subscription.start()
        _logger.debug("Subscribed to %s query=%s", path, query)
        return subscription

    async def fetch(self, path: str, *, shallow: bool = False) -> Snapshot:
        params = {"shallow": "true"} if shallow else None
        value = await self._transport.get_json(path, params)
        return Snapshot(path=path, value=value)

    async def fetch_last(self, path: str, order_key: str, limit: int) -> list[RawRecord]:
        query = Query(order_by=order_key, limit_to_last=limit)
        value = await self._transport.get_json(path, query.params())
        if value is not None and not isinstance(value, (dict, list)):
            raise WildtrackStoreError(f"Expected a collection at {path}, got {type(value).__name__}", path=path)
        # The server filters but does not order the JSON object it returns.
        return Snapshot(path=path, value=query.apply(value), query=query).children()


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class _MemorySubscription:
    def __init__(
        self,
        store: MemoryStore,
        path: str,
        query: Query | None,
        on_data: DataCallback,
        on_error: ErrorCallback,
    ) -> None:
        self._store = store
        self._path = path
        self._segments = split_path(path)
        self.query = query
        self.on_data = on_data
        self.on_error = on_error
        self.last_delivered: Any = None
        self._active = True

    @property
    def path(self) -> str:
        return self._path

    @property
    def segments(self) -> list[str]:
        return self._segments

    @property
    def active(self) -> bool:
        return self._active

    async def unsubscribe(self) -> None:
        self._active = False
        self._store._detach(self)


class MemoryStore:
    """In-process store with the same contract as :class:`RealtimeDatabaseStore`.

    Writes notify every subscription whose (query-shaped) view changed.
    :meth:`disconnect` and :meth:`reconnect` simulate transport loss.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._root: Any = None
        self._subscriptions: list[_MemorySubscription] = []
        self._connected = True
        self._clock = clock
        self._push_counter = itertools.count()

    @property
    def connected(self) -> bool:
        return self._connected

    # -- writes ------------------------------------------------------------

    def get(self, path: str) -> Any:
        return copy.deepcopy(get_node(self._root, split_path(path)))

    def set(self, path: str, value: Any) -> None:
        self._root = set_node(self._root, split_path(path), value)
        self._notify()

    def update(self, path: str, values: Mapping[str, Any]) -> None:
        segments = split_path(path)
        for key, value in values.items():
            self._root = set_node(self._root, [*segments, *split_path(key)], value)
        self._notify()

    def push(self, path: str, value: Any) -> str:
        """Append *value* under a new, time-ordered key and return the key."""
        key = f"-{int(self._clock() * 1000):013d}{next(self._push_counter):06d}"
        self.set(f"{path.rstrip('/')}/{key}", value)
        return key

    def remove(self, path: str) -> None:
        self.set(path, None)

    # -- connectivity ------------------------------------------------------

    def disconnect(self, reason: str = "connection lost") -> None:
        self._connected = False
        for subscription in list(self._subscriptions):
            error = WildtrackTransportError(
                f"Subscription on {subscription.path} lost: {reason}",
                path=subscription.path,
            )
            _deliver(subscription.on_error, error, subscription.path)

    def reconnect(self) -> None:
        self._connected = True
        for subscription in list(self._subscriptions):
            self._deliver_view(subscription, force=True)

    # -- adapter contract ----------------------------------------------------

    def subscribe(
        self,
        path: str,
        on_data: DataCallback,
        on_error: ErrorCallback,
        *,
        query: Query | None = None,
    ) -> Subscription:
        subscription = _MemorySubscription(self, path, query, on_data, on_error)
        self._subscriptions.append(subscription)
        if self._connected:
            self._deliver_view(subscription, force=True)
        return subscription

    async def fetch(self, path: str, *, shallow: bool = False) -> Snapshot:
        self._require_connection(path)
        value = self.get(path)
        if shallow and isinstance(value, dict):
            value = {key: True for key in value}
        return Snapshot(path=path, value=value)

    async def fetch_last(self, path: str, order_key: str, limit: int) -> list[RawRecord]:
        self._require_connection(path)
        query = Query(order_by=order_key, limit_to_last=limit)
        return Snapshot(path=path, value=query.apply(self.get(path)), query=query).children()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    # -- internals -----------------------------------------------------------

    def _require_connection(self, path: str) -> None:
        if not self._connected:
            raise WildtrackTransportError(f"Store unreachable while reading {path}", path=path)

    def _detach(self, subscription: _MemorySubscription) -> None:
        self._subscriptions = [sub for sub in self._subscriptions if sub is not subscription]

    def _view(self, subscription: _MemorySubscription) -> Any:
        value = get_node(self._root, subscription.segments)
        if subscription.query is not None:
            value = subscription.query.apply(value)
        return copy.deepcopy(value)

    def _deliver_view(self, subscription: _MemorySubscription, *, force: bool = False) -> None:
        view = self._view(subscription)
        if not force and view == subscription.last_delivered:
            return
        subscription.last_delivered = view
        _deliver(
            subscription.on_data,
            Snapshot(path=subscription.path, value=copy.deepcopy(view), query=subscription.query),
            subscription.path,
        )

    def _notify(self) -> None:
        if not self._connected:
            return
        for subscription in list(self._subscriptions):
            if subscription.active:
                self._deliver_view(subscription)
