"""Tests for the bounded event store."""

from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from event_store import EventStore, utc_timestamp


def _append(store: EventStore, n: int) -> None:
    for i in range(n):
        store.append(received_at=utc_timestamp(), source_ip="10.0.0.1", headers={}, body={"n": i})


@pytest.mark.parametrize("count", [0, 1, 99, 100, 101, 250])
def test_retains_most_recent_events_in_arrival_order(count: int) -> None:
    store = EventStore(capacity=100)
    _append(store, count)

    snapshot = store.snapshot()

    assert len(snapshot) == min(count, 100)
    assert [e.body["n"] for e in snapshot] == list(range(max(0, count - 100), count))


def test_ids_start_at_one_and_increase_without_gaps() -> None:
    store = EventStore(capacity=5)
    _append(store, 12)

    assert [e.id for e in store.snapshot()] == [8, 9, 10, 11, 12]
    assert store.last_id == 12


def test_append_past_capacity_evicts_only_the_oldest() -> None:
    store = EventStore(capacity=100)
    _append(store, 100)
    before = store.snapshot()

    newest = store.append(received_at=utc_timestamp(), source_ip="", headers={}, body="x")
    after = store.snapshot()

    assert after[:-1] == before[1:]
    assert after[-1] == newest
    assert newest.id == 101


def test_snapshot_is_a_copy() -> None:
    store = EventStore(capacity=3)
    _append(store, 2)
    snapshot = store.snapshot()

    _append(store, 1)

    assert len(snapshot) == 2
    assert len(store) == 3


def test_concurrent_appends_assign_unique_sequential_ids() -> None:
    store = EventStore(capacity=1000)
    ids: list[int] = []
    ids_lock = threading.Lock()

    def worker() -> None:
        for _ in range(100):
            event = store.append(received_at="", source_ip="", headers={}, body=None)
            with ids_lock:
                ids.append(event.id)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(ids) == list(range(1, 801))
    assert [e.id for e in store.snapshot()] == list(range(1, 801))


def test_rejects_non_positive_capacity() -> None:
    with pytest.raises(ValueError):
        EventStore(capacity=0)


def test_event_wire_form() -> None:
    store = EventStore()
    event = store.append(
        received_at="2024-05-01T10:00:00.000Z",
        source_ip="192.0.2.7",
        headers={"content-type": "application/json"},
        body={"severity": "critical"},
    )

    assert event.to_dict() == {
        "id": 1,
        "receivedAt": "2024-05-01T10:00:00.000Z",
        "sourceIp": "192.0.2.7",
        "headers": {"content-type": "application/json"},
        "body": {"severity": "critical"},
    }


def test_utc_timestamp_format() -> None:
    ts = utc_timestamp(datetime(2024, 5, 1, 10, 0, 0, 123456, tzinfo=timezone.utc))

    assert ts == "2024-05-01T10:00:00.123Z"
