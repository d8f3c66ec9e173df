"""
app.py

Flask entrypoint for the SD-WAN webhook relay.

This file intentionally focuses on:
- Flask routing (webhook endpoint, JSON snapshot, SSE stream, demo page)
- Wiring the relay service (event store + fan-out hub) into the request handlers
- Process lifecycle (logging setup, graceful shutdown on SIGTERM/SIGINT)

Storage and fan-out live in `event_store.py`, `webhook_monitor.py` and `relay.py`;
body handling in `ingest.py`; the SSE session protocol in `streaming.py`.
"""

import logging
import signal
import sys
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, redirect, request, send_from_directory
from werkzeug.exceptions import HTTPException, InternalServerError, RequestEntityTooLarge

from auth import check_basic_auth
from config import RelayConfig
from ingest import IngestionHandler
from relay import Relay
from streaming import StreamingSession

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)s in %(name)s: %(message)s"

NO_CACHE = "no-cache, no-transform"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def _accepts(mimetype: str) -> bool:
    return mimetype in (request.headers.get("Accept", "") or "").lower()


def create_app(config: Optional[RelayConfig] = None, relay: Optional[Relay] = None) -> Flask:
    if config is None:
        load_dotenv()
        config = RelayConfig.from_env()
    if relay is None:
        relay = Relay.create(max_cache=config.max_cache, max_queue_size=config.subscriber_queue_size)

    app = Flask(__name__, static_folder="static", static_url_path="/static")
    app.config["RELAY_CONFIG"] = config
    app.extensions["relay"] = relay
    ingestion = IngestionHandler(relay, max_body_bytes=config.max_body_bytes)
    path = config.webhook_path

    @app.before_request
    def basic_auth_gate():
        return check_basic_auth(config.basic_user, config.basic_pass)

    @app.errorhandler(RequestEntityTooLarge)
    def payload_too_large(e: RequestEntityTooLarge):
        logger.warning("Rejected webhook from %s: %s", request.remote_addr, e.description)
        return jsonify({"error": "Payload too large", "detail": e.description}), 413

    @app.errorhandler(InternalServerError)
    def internal_error(e: InternalServerError):
        return jsonify({"error": "Internal Server Error"}), 500

    @app.get("/")
    def index():
        return redirect(path, code=302)

    @app.get("/api/health")
    def health():
        return jsonify({"status": "ok", "events": len(relay.store), "subscribers": relay.hub.subscriber_count})

    @app.post(path)
    def receive_webhook():
        """
        Webhook endpoint for vManage alarm notifications.

        Always acknowledges with 204 once stored (invalid JSON is stored as a parse-error record);
        only an oversized body is refused, with 413.
        """
        try:
            ingestion.handle_request(request)
            return "", 204
        except HTTPException:
            raise
        except Exception as e:
            logger.exception("Webhook handler failed")
            return jsonify({"error": "Webhook handler failed", "detail": str(e)}), 500

    @app.get(path)
    def read_events():
        """
        Same URL, three views chosen by the Accept header:
        - text/event-stream: live SSE stream (snapshot first, then one frame per alarm)
        - application/json: current snapshot as {"items": [...]}, oldest first
        - anything else: the monitoring demo page
        """
        if _accepts("text/event-stream"):
            session = StreamingSession(relay, ping_interval=config.ping_interval)
            headers = {
                "Cache-Control": NO_CACHE,
                "X-Accel-Buffering": "no",
                "Connection": "keep-alive",
            }
            return Response(
                session.frames(),
                headers=headers,
                content_type="text/event-stream; charset=utf-8",
            )

        if _accepts("application/json"):
            try:
                resp = jsonify({"items": [e.to_dict() for e in relay.snapshot()]})
                resp.headers["Cache-Control"] = NO_CACHE
                return resp
            except Exception as e:
                logger.exception("Failed to build snapshot")
                return jsonify({"error": "Failed to load events", "detail": str(e)}), 500

        resp = send_from_directory(app.static_folder, "index.html")
        resp.headers["Cache-Control"] = NO_CACHE
        return resp

    return app


def install_shutdown_handlers(relay: Relay) -> None:
    """Close every SSE session before the process exits."""

    def _shutdown(signum, _frame):
        logger.info("Received %s, closing %d stream(s)", signal.Signals(signum).name, relay.hub.subscriber_count)
        relay.close()
        sys.exit(0)

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)


if __name__ == "__main__":
    load_dotenv()
    config = RelayConfig.from_env()
    configure_logging(config.log_level)
    app = create_app(config)
    install_shutdown_handlers(app.extensions["relay"])
    logger.info("Listening on http://%s:%d%s", config.host, config.port, config.webhook_path)
    app.run(host=config.host, port=config.port, debug=config.debug, threaded=True, use_reloader=False)
