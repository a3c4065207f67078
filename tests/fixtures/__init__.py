"""Centralized test fixtures.

This module re-exports all fixtures from fixture modules so conftest can
pull them in with a single star import.
"""

from .client import client, cron_headers
from .database import db_session, session_factory, test_engine
from .mocks import avoid_external_requests, clear_redis, mock_setup_trigger, patch_redis
from .webhooks import (
    inbound_message,
    public_key_pem,
    sign,
    signed_delivery,
    signing_key,
    use_test_verifier,
    webhook_verifier,
)

__all__ = [
    "test_engine",
    "session_factory",
    "db_session",
    "client",
    "cron_headers",
    "avoid_external_requests",
    "patch_redis",
    "clear_redis",
    "mock_setup_trigger",
    "signing_key",
    "public_key_pem",
    "webhook_verifier",
    "sign",
    "use_test_verifier",
    "signed_delivery",
    "inbound_message",
]
