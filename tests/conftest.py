"""Shared fixtures for the relay tests."""

from __future__ import annotations

import pytest

from app import create_app
from config import DEFAULT_WEBHOOK_PATH, RelayConfig
from relay import Relay


@pytest.fixture
def config() -> RelayConfig:
    """Default config with a short ping interval so idle streams do not stall tests."""
    return RelayConfig(webhook_path=DEFAULT_WEBHOOK_PATH, ping_interval=0.05)


@pytest.fixture
def relay(config: RelayConfig) -> Relay:
    return Relay.create(max_cache=config.max_cache, max_queue_size=config.subscriber_queue_size)


@pytest.fixture
def app(config: RelayConfig, relay: Relay):
    flask_app = create_app(config, relay)
    flask_app.testing = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()
