"""
relay.py

The relay service: one event store plus one fan-out hub, owned together.

Ingestion goes through `record` (append, then publish) and new streams through `attach`
(snapshot, then subscribe). Both run under the same lock, so every event lands either in a
stream's snapshot or in its live queue, never in both and never in neither.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Tuple

from event_store import Event, EventStore, HeaderValue
from webhook_monitor import Subscriber, WebhookEventHub


class Relay:
    def __init__(self, store: EventStore, hub: WebhookEventHub) -> None:
        self.store = store
        self.hub = hub
        self._seam = threading.Lock()

    @classmethod
    def create(cls, max_cache: int = 100, max_queue_size: int = 200) -> "Relay":
        return cls(EventStore(capacity=max_cache), WebhookEventHub(max_queue_size=max_queue_size))

    def record(
        self,
        received_at: str,
        source_ip: str,
        headers: Dict[str, HeaderValue],
        body: Any,
    ) -> Event:
        with self._seam:
            event = self.store.append(received_at, source_ip, headers, body)
            # publish only enqueues, so holding the seam here never waits on a client
            self.hub.publish(event)
        return event

    def attach(self) -> Tuple[List[Event], Subscriber]:
        with self._seam:
            return self.store.snapshot(), self.hub.subscribe()

    def detach(self, sub: Subscriber) -> None:
        sub.close()
        self.hub.unsubscribe(sub)

    def snapshot(self) -> List[Event]:
        return self.store.snapshot()

    def close(self) -> None:
        self.hub.close()
