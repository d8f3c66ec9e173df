"""
event_store.py

Bounded in-memory store for received webhook events.

- Keeps only the most recent `capacity` events (oldest evicted first).
- Ids start at 1 and are never reused for the lifetime of the store (no persistence:
  a process restart starts over at 1).
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Union

HeaderValue = Union[str, List[str]]


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-05-01T10:00:00.123Z."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Event:
    id: int
    received_at: str
    source_ip: str
    headers: Dict[str, HeaderValue]
    body: Any

    def to_dict(self) -> Dict[str, Any]:
        # Wire keys are what the monitoring page (and any other consumer) reads.
        return {
            "id": self.id,
            "receivedAt": self.received_at,
            "sourceIp": self.source_ip,
            "headers": self.headers,
            "body": self.body,
        }


class EventStore:
    """
    Thread-safe bounded FIFO of events.

    `append` and `snapshot` are both taken under the same lock, so a reader never sees a
    half-applied append (id assigned but event missing, or eviction without the new entry).
    """

    def __init__(self, capacity: int = 100) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._lock = threading.Lock()
        self._events: Deque[Event] = deque(maxlen=capacity)
        self._next_id = 1

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def last_id(self) -> int:
        """Id of the most recently appended event (0 before the first append)."""
        with self._lock:
            return self._next_id - 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def append(
        self,
        received_at: str,
        source_ip: str,
        headers: Dict[str, HeaderValue],
        body: Any,
    ) -> Event:
        with self._lock:
            event = Event(
                id=self._next_id,
                received_at=received_at,
                source_ip=source_ip,
                headers=headers,
                body=body,
            )
            self._next_id += 1
            # deque(maxlen=...) drops the leftmost (oldest) entry once full.
            self._events.append(event)
            return event

    def snapshot(self) -> List[Event]:
        """Copy of the retained events, oldest first."""
        with self._lock:
            return list(self._events)
