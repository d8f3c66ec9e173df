"""
webhook_monitor.py

In-memory fan-out hub for live webhook monitoring.

Requirements:
- Publishing must never block webhook ingestion, whatever the state of the connected clients.
- One slow client must not delay delivery to any other client.
- Events reach each client in publish order, with no silent gaps: a client that falls too far
  behind is disconnected (it reconnects and catches up from a fresh snapshot) rather than
  having events skipped.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Dict, List, Optional

from event_store import Event

logger = logging.getLogger(__name__)

# Wakes a reader blocked on an empty queue once its subscriber is closed.
_CLOSED = object()


class SubscriberClosed(Exception):
    """Raised by `Subscriber.get` once the subscriber is closed and fully drained."""


class Subscriber:
    """
    One connected client: a bounded queue fed by the hub and drained by the client's own stream.

    The subscriber carries no identity; the hub tracks it by object.
    """

    def __init__(self, max_queue_size: int = 200) -> None:
        self._queue: queue.Queue[object] = queue.Queue(maxsize=max_queue_size)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def offer(self, event: Event) -> bool:
        """
        Enqueue without blocking.

        Returns False when the event was not accepted: the subscriber is already closed, or its
        queue is full, in which case it closes itself so the reader ends after draining.
        """
        if self._closed.is_set():
            return False
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self._closed.set()
            return False
        return True

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        try:
            self._queue.put_nowait(_CLOSED)
        except queue.Full:
            # A full queue never blocks the reader, which sees the flag once drained.
            pass

    def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """
        Next queued event, or None when `timeout` elapses first.

        Events queued before closure are still returned; after that SubscriberClosed is raised.
        """
        if self._closed.is_set() and self._queue.empty():
            raise SubscriberClosed()
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            if self._closed.is_set():
                raise SubscriberClosed() from None
            return None
        if item is _CLOSED:
            raise SubscriberClosed()
        return item  # type: ignore[return-value]


class WebhookEventHub:
    """
    Thread-safe fan-out hub.

    Subscribers are kept in a dict used as an insertion-ordered set: `publish` offers each event
    to subscribers in the order they subscribed. Offers never block; a subscriber whose queue is
    full is closed and removed.
    """

    def __init__(self, max_queue_size: int = 200) -> None:
        self._lock = threading.Lock()
        self._clients: Dict[Subscriber, None] = {}
        self._max_queue_size = max_queue_size
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def subscribers(self) -> List[Subscriber]:
        """Active subscribers in delivery (subscription) order."""
        with self._lock:
            return list(self._clients)

    def subscribe(self) -> Subscriber:
        sub = Subscriber(max_queue_size=self._max_queue_size)
        with self._lock:
            if self._closed:
                sub.close()
                return sub
            self._clients[sub] = None
            count = len(self._clients)
        logger.info("Subscriber connected (active=%d)", count)
        return sub

    def unsubscribe(self, sub: Subscriber) -> None:
        with self._lock:
            if sub not in self._clients:
                return
            del self._clients[sub]
            count = len(self._clients)
        logger.info("Subscriber disconnected (active=%d)", count)

    def publish(self, event: Event) -> int:
        """Offer `event` to every active subscriber; returns how many accepted it."""
        with self._lock:
            clients = list(self._clients)
        delivered = 0
        for sub in clients:
            if sub.offer(event):
                delivered += 1
                continue
            logger.warning("Dropping subscriber that fell behind (event id=%d)", event.id)
            self.unsubscribe(sub)
        return delivered

    def close(self) -> None:
        """Close every subscriber (process shutdown). Later subscriptions start out closed."""
        with self._lock:
            self._closed = True
            clients = list(self._clients)
            self._clients.clear()
        for sub in clients:
            sub.close()
        if clients:
            logger.info("Closed %d subscriber(s)", len(clients))
