"""
ingest.py

Webhook ingestion: read the request body (size-limited), decode it best-effort, record it.

Payload content never makes ingestion fail. Invalid JSON is stored as a parse-error record.
Only an oversized body is rejected (HTTP 413), and it is rejected before it is fully read.
"""

from __future__ import annotations

import json
import logging
from typing import IO, Any, Dict, Iterable, List, Optional, Tuple

from werkzeug.exceptions import RequestEntityTooLarge

from event_store import Event, HeaderValue, utc_timestamp
from relay import Relay

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024

# Bodies nested deeper than this are stored as parse errors; they could not be re-encoded
# into snapshot and alarm frames.
MAX_JSON_DEPTH = 200

# Never stored with the event, since every observer receives the stored headers.
DROPPED_HEADERS = frozenset({"authorization"})


class PayloadTooLarge(RequestEntityTooLarge):
    def __init__(self, limit: int) -> None:
        super().__init__(description=f"Payload exceeds {limit} bytes")
        self.limit = limit


def read_body(
    stream: IO[bytes],
    limit: int,
    content_length: Optional[int] = None,
    chunk_size: int = READ_CHUNK_SIZE,
) -> bytes:
    """
    Read the whole body from `stream`, refusing anything larger than `limit` bytes.

    A declared Content-Length above the limit is refused without reading; otherwise reading stops
    at the first chunk that takes the total past the limit.
    """
    if content_length is not None and content_length > limit:
        raise PayloadTooLarge(limit)
    chunks: List[bytes] = []
    total = 0
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise PayloadTooLarge(limit)
        chunks.append(chunk)
    return b"".join(chunks)


def is_json_content_type(content_type: Optional[str]) -> bool:
    # application/json, application/json; charset=utf-8, application/problem+json, ...
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _reject_constant(name: str) -> Any:
    # NaN, Infinity and -Infinity are not JSON; browsers refuse them in the frames we send
    raise ValueError(f"invalid JSON constant {name}")


def _nesting_depth(value: Any) -> int:
    depth = 0
    level = [value]
    while level:
        containers = [v for v in level if isinstance(v, (dict, list))]
        if not containers:
            break
        depth += 1
        if depth > MAX_JSON_DEPTH:
            break
        level = [child for c in containers for child in (c.values() if isinstance(c, dict) else c)]
    return depth


def parse_body(raw: bytes, content_type: Optional[str]) -> Any:
    text = raw.decode("utf-8", errors="replace")
    if not is_json_content_type(content_type):
        return text
    try:
        body = json.loads(text or "null", parse_constant=_reject_constant)
    except (ValueError, RecursionError):
        return {"parseError": "invalid json", "rawText": text}
    if _nesting_depth(body) > MAX_JSON_DEPTH:
        return {"parseError": "invalid json", "rawText": text}
    return body


def client_address(headers: Dict[str, HeaderValue], remote_addr: Optional[str]) -> str:
    """First hop of X-Forwarded-For when present, else the socket peer address."""
    forwarded = headers.get("x-forwarded-for")
    if isinstance(forwarded, list):
        forwarded = forwarded[0] if forwarded else None
    if forwarded and forwarded.strip():
        first = forwarded.split(",", 1)[0].strip()
        if first:
            return first
    return remote_addr or ""


def header_metadata(items: Iterable[Tuple[str, str]]) -> Dict[str, HeaderValue]:
    """
    Collapse (name, value) header pairs into a dict keyed by lower-cased name.

    A header seen once maps to its string value; a repeated header maps to the list of its values.
    Credentials (`Authorization`) are left out.
    """
    grouped: Dict[str, List[str]] = {}
    for name, value in items:
        if name.lower() in DROPPED_HEADERS:
            continue
        grouped.setdefault(name.lower(), []).append(value)
    return {name: values[0] if len(values) == 1 else values for name, values in grouped.items()}


class IngestionHandler:
    def __init__(self, relay: Relay, max_body_bytes: int = 2 * 1024 * 1024) -> None:
        self._relay = relay
        self.max_body_bytes = max_body_bytes

    def ingest(
        self,
        raw: bytes,
        content_type: Optional[str],
        source_address: str,
        metadata: Dict[str, HeaderValue],
    ) -> Event:
        if len(raw) > self.max_body_bytes:
            raise PayloadTooLarge(self.max_body_bytes)
        event = self._relay.record(
            received_at=utc_timestamp(),
            source_ip=source_address,
            headers=metadata,
            body=parse_body(raw, content_type),
        )
        logger.info("Stored event id=%d from %s (%d bytes)", event.id, source_address, len(raw))
        return event

    def handle_request(self, request: Any) -> Event:
        """Ingest a Flask/Werkzeug request."""
        raw = read_body(request.stream, self.max_body_bytes, content_length=request.content_length)
        metadata = header_metadata(request.headers.items())
        return self.ingest(
            raw,
            request.headers.get("Content-Type"),
            client_address(metadata, request.remote_addr),
            metadata,
        )
