"""
config.py

Environment-backed configuration for the webhook relay.

Values are read from the process environment (a local `.env` is loaded by the app factory first).
Everything has a sane default so `python app.py` works out of the box; only the optional
Basic Auth gate needs credentials to be switched on.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_WEBHOOK_PATH = "/v1/webhook/sdwan"
DEFAULT_MAX_CACHE = 100
DEFAULT_MAX_BODY_BYTES = 2 * 1024 * 1024
DEFAULT_PING_INTERVAL = 25.0
DEFAULT_SUBSCRIBER_QUEUE_SIZE = 200


def _env_str(env: Mapping[str, str], key: str, default: str = "") -> str:
    return (env.get(key, default) or default).strip()


def _env_int(env: Mapping[str, str], key: str, default: int, minimum: int = 1) -> int:
    raw = _env_str(env, key)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {value}")
    return value


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = _env_str(env, key)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{key} must be > 0, got {value}")
    return value


@dataclass(frozen=True)
class RelayConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False
    webhook_path: str = DEFAULT_WEBHOOK_PATH
    max_cache: int = DEFAULT_MAX_CACHE
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    ping_interval: float = DEFAULT_PING_INTERVAL
    subscriber_queue_size: int = DEFAULT_SUBSCRIBER_QUEUE_SIZE
    basic_user: str = ""
    basic_pass: str = ""
    log_level: str = "INFO"

    @property
    def auth_enabled(self) -> bool:
        # Either value being set switches the gate on (an empty user with a password is valid).
        return bool(self.basic_user or self.basic_pass)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RelayConfig":
        """
        Build the config from environment variables.

        Raises ValueError (naming the variable) when a numeric setting cannot be parsed,
        so a typo fails at startup rather than at the first request.
        """
        env = os.environ if environ is None else environ

        path = _env_str(env, "WEBHOOK_PATH", DEFAULT_WEBHOOK_PATH)
        if not path.startswith("/"):
            path = "/" + path

        port_default = _env_int(env, "PORT", 3000)
        return cls(
            host=_env_str(env, "APP_HOST", "0.0.0.0"),
            port=_env_int(env, "APP_PORT", port_default),
            debug=_env_str(env, "FLASK_DEBUG", "0") == "1",
            webhook_path=path,
            max_cache=_env_int(env, "MAX_CACHE", DEFAULT_MAX_CACHE),
            max_body_bytes=_env_int(env, "MAX_BODY_BYTES", DEFAULT_MAX_BODY_BYTES),
            ping_interval=_env_float(env, "PING_INTERVAL_SECONDS", DEFAULT_PING_INTERVAL),
            subscriber_queue_size=_env_int(env, "SUBSCRIBER_QUEUE_SIZE", DEFAULT_SUBSCRIBER_QUEUE_SIZE),
            # Credentials are compared verbatim, so they are not stripped.
            basic_user=env.get("BASIC_USER", "") or "",
            basic_pass=env.get("BASIC_PASS", "") or "",
            log_level=_env_str(env, "LOG_LEVEL", "INFO").upper(),
        )
