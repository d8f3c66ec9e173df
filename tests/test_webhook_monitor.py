"""Tests for the fan-out hub and its subscribers."""

from __future__ import annotations

import pytest

from event_store import Event, EventStore
from webhook_monitor import Subscriber, SubscriberClosed, WebhookEventHub


@pytest.fixture
def store() -> EventStore:
    return EventStore(capacity=100)


def _event(store: EventStore, n: int = 0) -> Event:
    return store.append(received_at="", source_ip="", headers={}, body={"n": n})


def _drain(sub: Subscriber) -> list[int]:
    ids = []
    while True:
        event = sub.get(timeout=0)
        if event is None:
            return ids
        ids.append(event.id)


def test_publish_reaches_every_subscriber_in_order(store: EventStore) -> None:
    hub = WebhookEventHub()
    first, second = hub.subscribe(), hub.subscribe()

    events = [_event(store, n) for n in range(5)]
    for event in events:
        assert hub.publish(event) == 2

    assert _drain(first) == [1, 2, 3, 4, 5]
    assert _drain(second) == [1, 2, 3, 4, 5]


def test_subscribers_are_kept_in_subscription_order() -> None:
    hub = WebhookEventHub()
    subs = [hub.subscribe() for _ in range(4)]

    hub.unsubscribe(subs[1])

    assert hub.subscribers() == [subs[0], subs[2], subs[3]]


def test_unsubscribe_is_idempotent(store: EventStore) -> None:
    hub = WebhookEventHub()
    sub = hub.subscribe()

    hub.unsubscribe(sub)
    hub.unsubscribe(sub)

    assert hub.subscriber_count == 0
    assert hub.publish(_event(store)) == 0
    assert sub.get(timeout=0) is None


def test_full_queue_drops_only_that_subscriber(store: EventStore) -> None:
    hub = WebhookEventHub(max_queue_size=2)
    slow, fast = hub.subscribe(), hub.subscribe()

    for n in range(2):
        hub.publish(_event(store, n))
    assert _drain(fast) == [1, 2]

    # slow never read; its queue is full now
    assert hub.publish(_event(store, 2)) == 1

    assert hub.subscribers() == [fast]
    assert slow.closed
    assert _drain(fast) == [3]


def test_dropped_subscriber_drains_then_reports_closed(store: EventStore) -> None:
    hub = WebhookEventHub(max_queue_size=1)
    sub = hub.subscribe()
    hub.publish(_event(store, 0))
    hub.publish(_event(store, 1))

    first = sub.get(timeout=0)
    assert first is not None and first.id == 1
    with pytest.raises(SubscriberClosed):
        sub.get(timeout=0)


def test_close_wakes_blocked_reader_and_refuses_new_subscribers(store: EventStore) -> None:
    hub = WebhookEventHub()
    sub = hub.subscribe()

    hub.close()

    with pytest.raises(SubscriberClosed):
        sub.get(timeout=1)
    assert hub.subscriber_count == 0

    late = hub.subscribe()
    assert late.closed
    assert hub.subscriber_count == 0
    assert late.offer(_event(store)) is False


def test_get_times_out_with_none() -> None:
    sub = Subscriber(max_queue_size=1)

    assert sub.get(timeout=0.01) is None
