"""Tests for webhook signature and replay-window verification."""

import base64
from collections.abc import Callable
from datetime import timedelta

import pytest

from crm_webhooks.core.config import CRM_WEBHOOK_PUBLIC_KEY
from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.services.webhooks.verifier import TimestampCheck, WebhookVerifier

BODY = b'{"type":"ContactCreate","locationId":"loc_1","id":"c_1"}'


def test_valid_signature_accepted(webhook_verifier: WebhookVerifier, sign: Callable[[bytes], str]):
    assert webhook_verifier.verify_signature(BODY, sign(BODY)) is True


def test_signature_over_different_bytes_rejected(
    webhook_verifier: WebhookVerifier, sign: Callable[[bytes], str]
):
    """Signature covers the exact body; re-serialized JSON does not verify."""
    signature = sign(BODY)
    reformatted = b'{"type": "ContactCreate", "locationId": "loc_1", "id": "c_1"}'

    assert webhook_verifier.verify_signature(reformatted, signature) is False


@pytest.mark.parametrize(
    "signature", [None, "", "not base64 !!", base64.b64encode(b"x" * 256).decode()]
)
def test_missing_or_malformed_signature_rejected(
    webhook_verifier: WebhookVerifier, signature: str | None
):
    assert webhook_verifier.verify_signature(BODY, signature) is False


def test_unusable_public_key_fails_closed(sign: Callable[[bytes], str]):
    verifier = WebhookVerifier("-----BEGIN PUBLIC KEY-----\ngarbage\n-----END PUBLIC KEY-----\n")

    assert verifier.verify_signature(BODY, sign(BODY)) is False


def test_default_crm_key_loads():
    verifier = WebhookVerifier(CRM_WEBHOOK_PUBLIC_KEY)

    # Loadable key, but our test signature was not made with the CRM's private key.
    assert verifier._public_key is not None
    assert verifier.verify_signature(BODY, base64.b64encode(b"\x00" * 512).decode()) is False


def test_timestamp_within_window(webhook_verifier: WebhookVerifier):
    now = utcnow()
    recent = (now - timedelta(minutes=2)).isoformat()

    assert webhook_verifier.check_timestamp(recent, now=now) is TimestampCheck.OK


def test_timestamp_outside_window_expired(webhook_verifier: WebhookVerifier):
    now = utcnow()
    stale = (now - timedelta(minutes=10)).isoformat()

    assert webhook_verifier.check_timestamp(stale, now=now) is TimestampCheck.EXPIRED


def test_future_timestamp_outside_window_expired(webhook_verifier: WebhookVerifier):
    now = utcnow()
    ahead = (now + timedelta(minutes=6)).isoformat()

    assert webhook_verifier.check_timestamp(ahead, now=now) is TimestampCheck.EXPIRED


def test_epoch_millis_and_zulu_formats(webhook_verifier: WebhookVerifier):
    now = utcnow()
    millis = int(now.timestamp() * 1000)
    zulu = now.replace(tzinfo=None).isoformat() + "Z"

    assert webhook_verifier.check_timestamp(millis, now=now) is TimestampCheck.OK
    assert webhook_verifier.check_timestamp(zulu, now=now) is TimestampCheck.OK


def test_absent_and_invalid_timestamps(webhook_verifier: WebhookVerifier):
    assert webhook_verifier.check_timestamp(None) is TimestampCheck.ABSENT
    assert webhook_verifier.check_timestamp("yesterday-ish") is TimestampCheck.INVALID
