"""
auth.py

Optional HTTP Basic Auth gate for the whole relay.

The gate is off unless BASIC_USER or BASIC_PASS is configured; when on, every request
(webhook POST, JSON snapshot, SSE stream, static files) must carry matching credentials.
"""

import base64
import hmac
from typing import Optional, Tuple

from flask import Response, request

REALM = "sdwan-webhook"


def _unauthorized() -> Response:
    # Basic Auth challenge
    return Response("Unauthorized", 401, {"WWW-Authenticate": f'Basic realm="{REALM}"'})


def parse_basic_auth(header: str) -> Optional[Tuple[str, str]]:
    """Return (user, password) from an `Authorization: Basic ...` value, or None if unusable."""
    if not header.lower().startswith("basic "):
        return None
    try:
        raw = base64.b64decode(header[6:].strip(), validate=True).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return None
    if ":" not in raw:
        return None
    user, pwd = raw.split(":", 1)
    return user, pwd


def check_basic_auth(expected_user: str, expected_pass: str) -> Optional[Response]:
    """
    Check the current request; returns a 401 challenge on failure and None when access is allowed.

    With no credentials configured every request is allowed.
    """
    if not expected_user and not expected_pass:
        return None

    cred = parse_basic_auth(request.headers.get("Authorization", "") or "")
    if cred is None:
        return _unauthorized()

    user, pwd = cred
    user_ok = hmac.compare_digest(user.encode("utf-8"), expected_user.encode("utf-8"))
    pass_ok = hmac.compare_digest(pwd.encode("utf-8"), expected_pass.encode("utf-8"))
    if not (user_ok and pass_ok):
        return _unauthorized()
    return None
