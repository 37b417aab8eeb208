from __future__ import annotations

import pytest

from wildtrack.exceptions import WildtrackTransportError
from wildtrack.ingestion.store import MemoryStore, Query, Snapshot, set_node


def test_set_node_prunes_empty_parents() -> None:
    tree = set_node(None, ["a", "b", "c"], 1)
    assert tree == {"a": {"b": {"c": 1}}}

    assert set_node(tree, ["a", "b", "c"], None) is None


def test_query_orders_by_child_and_limits_to_last() -> None:
    value = {
        "x": {"timestamp": 30},
        "y": {"timestamp": 10},
        "z": {"timestamp": 20},
        "junk": "not a record",
    }

    shaped = Query(order_by="timestamp", limit_to_last=2).apply(value)

    assert list(shaped) == ["z", "x"]


def test_snapshot_children_and_existence() -> None:
    snapshot = Snapshot(path="p", value={"b": {"timestamp": 2}, "a": {"timestamp": 1}}, query=Query("timestamp"))

    assert snapshot.exists is True
    assert [child.key for child in snapshot.children()] == ["a", "b"]
    assert Snapshot(path="p", value=None).exists is False
    assert Snapshot(path="p", value={}).children() == []
    assert Snapshot(path="p", value=None).as_record() is None


def test_array_values_become_indexed_children() -> None:
    snapshot = Snapshot(path="p", value=[None, {"timestamp": 5}])

    children = snapshot.children()

    assert [(child.key, child.value) for child in children] == [("1", {"timestamp": 5})]


def test_subscribe_delivers_full_value_immediately_and_on_change() -> None:
    store = MemoryStore()
    store.set("devices/d/locations/a", {"timestamp": 1})
    seen: list[Snapshot] = []

    store.subscribe("devices/d/locations", seen.append, lambda exc: None, query=Query("timestamp", 1))
    store.push("devices/d/locations", {"timestamp": 2})

    assert len(seen) == 2
    assert [child.value["timestamp"] for child in seen[-1].children()] == [2]


def test_unrelated_writes_do_not_redeliver() -> None:
    store = MemoryStore()
    seen: list[Snapshot] = []
    store.subscribe("devices/d/alerts", seen.append, lambda exc: None)

    store.set("devices/other/alerts/a", {"timestamp": 1})

    assert len(seen) == 1
    assert seen[0].exists is False


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery() -> None:
    store = MemoryStore()
    seen: list[Snapshot] = []
    subscription = store.subscribe("p", seen.append, lambda exc: None)

    await subscription.unsubscribe()
    store.set("p/a", 1)

    assert subscription.active is False
    assert store.subscription_count == 0
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_disconnect_reports_error_and_reconnect_redelivers() -> None:
    store = MemoryStore()
    seen: list[Snapshot] = []
    errors: list[Exception] = []
    store.subscribe("p", seen.append, errors.append)

    store.disconnect()
    store.set("p/a", {"timestamp": 1})

    assert len(errors) == 1
    assert isinstance(errors[0], WildtrackTransportError)
    assert len(seen) == 1
    with pytest.raises(WildtrackTransportError):
        await store.fetch("p")

    store.reconnect()

    assert len(seen) == 2
    assert seen[-1].value == {"a": {"timestamp": 1}}


@pytest.mark.asyncio
async def test_fetch_last_and_shallow_fetch() -> None:
    store = MemoryStore()
    for ts in (3, 1, 2):
        store.set(f"devices/d/locations/k{ts}", {"timestamp": ts})

    records = await store.fetch_last("devices/d/locations", "timestamp", 2)
    listing = await store.fetch("devices", shallow=True)

    assert [record.key for record in records] == ["k2", "k3"]
    assert listing.value == {"d": True}


def test_callback_failure_is_contained() -> None:
    store = MemoryStore()

    def boom(snapshot: Snapshot) -> None:
        raise RuntimeError("consumer bug")

    store.subscribe("p", boom, lambda exc: None)
    store.set("p/a", 1)

    assert store.get("p") == {"a": 1}
