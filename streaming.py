"""
streaming.py

Server-Sent Events session for one connected monitoring client.

Lifecycle:
- CONNECTING: take the coupled (snapshot, subscription) pair from the relay and send it as one
  `snapshot` frame.
- STREAMING: forward each published event as an `alarm` frame tagged with the event id, and send
  a `: ping <millis>` comment every `ping_interval` seconds so proxies keep the connection open.
- CLOSED: the WSGI server closed our iterator (client gone), the subscriber was closed (client fell
  behind, or shutdown), or something failed. The subscription is dropped; nothing more is sent.

There is no retry: the browser's EventSource reconnects and gets a fresh snapshot.
"""

from __future__ import annotations

import enum
import json
import logging
import time
from typing import Any, Callable, Iterator, Optional

from relay import Relay
from webhook_monitor import Subscriber, SubscriberClosed

logger = logging.getLogger(__name__)

SNAPSHOT_EVENT = "snapshot"
ALARM_EVENT = "alarm"


def format_sse(event: str, data: Any, event_id: Optional[int] = None) -> str:
    """
    Encode one SSE frame.

    Multi-line JSON is split over several `data:` lines, which the client joins back with newlines.
    """
    lines = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event}")
    payload = json.dumps(data, ensure_ascii=False)
    lines.extend(f"data: {line}" for line in payload.split("\n"))
    return "\n".join(lines) + "\n\n"


def format_ping(now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f": ping {now_ms}\n\n"


class SessionState(enum.Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"


class StreamingSession:
    def __init__(
        self,
        relay: Relay,
        ping_interval: float = 25.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._relay = relay
        self._ping_interval = ping_interval
        self._clock = clock
        self._subscriber: Optional[Subscriber] = None
        self.state = SessionState.CONNECTING

    def frames(self) -> Iterator[str]:
        """
        Yield SSE frames until the session closes.

        Meant to be handed to a streaming Response; the server calls `close()` on the generator when
        the client disconnects, which lands in the `finally` below.
        """
        try:
            snapshot, self._subscriber = self._relay.attach()
            self.state = SessionState.STREAMING
            next_ping = self._clock() + self._ping_interval
            yield format_sse(SNAPSHOT_EVENT, {"items": [e.to_dict() for e in snapshot]})

            while True:
                now = self._clock()
                remaining = next_ping - now
                if remaining <= 0:
                    # missed pings are skipped, not sent in a burst
                    while next_ping <= now:
                        next_ping += self._ping_interval
                    yield format_ping()
                    continue
                try:
                    event = self._subscriber.get(timeout=remaining)
                except SubscriberClosed:
                    logger.debug("Subscriber closed, ending stream")
                    return
                if event is None:
                    continue
                yield format_sse(ALARM_EVENT, event.to_dict(), event_id=event.id)
        except GeneratorExit:
            logger.debug("Client disconnected")
            raise
        except Exception:
            # Headers are already sent; all we can do is end the stream.
            logger.exception("Streaming session failed")
        finally:
            self.close()

    def close(self) -> None:
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        if self._subscriber is not None:
            self._relay.detach(self._subscriber)
