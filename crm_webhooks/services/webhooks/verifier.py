"""Signature and replay-window checks for inbound CRM webhooks."""

import base64
import binascii
import logging
from datetime import datetime, timedelta
from enum import Enum
from functools import lru_cache
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

from crm_webhooks.core.config import get_settings
from crm_webhooks.core.time_utils import parse_datetime, utcnow

logger = logging.getLogger(__name__)


class TimestampCheck(str, Enum):
    """Outcome of the replay-window check."""

    OK = "ok"
    ABSENT = "absent"
    EXPIRED = "expired"
    INVALID = "invalid"


class WebhookVerifier:
    """Verifies RSA-SHA256 signatures over the exact request body.

    Verification fails closed: a malformed signature, an unusable key or any
    unexpected error during verification counts as an invalid signature.
    """

    def __init__(self, public_key_pem: str, replay_window_seconds: int = 300):
        self.replay_window = timedelta(seconds=replay_window_seconds)
        self._public_key = self._load_public_key(public_key_pem)

    @staticmethod
    def _load_public_key(public_key_pem: str) -> RSAPublicKey | None:
        try:
            key = serialization.load_pem_public_key(public_key_pem.encode())
        except (ValueError, TypeError) as e:
            logger.error(f"Webhook public key could not be loaded: {e}")
            return None

        if not isinstance(key, RSAPublicKey):
            logger.error(f"Webhook public key is not an RSA key: {type(key).__name__}")
            return None
        return key

    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        """
        Check a base64 signature against the raw request body.

        Args:
            body: Request body bytes exactly as received
            signature: Base64-encoded signature from the signature header

        Returns:
            True only if the signature is present, well-formed and valid
        """
        if not signature or self._public_key is None:
            return False

        try:
            signature_bytes = base64.b64decode(signature, validate=True)
            self._public_key.verify(signature_bytes, body, padding.PKCS1v15(), hashes.SHA256())
            return True
        except (InvalidSignature, binascii.Error):
            return False
        except Exception as e:
            logger.error(f"Signature verification error, rejecting: {e}", exc_info=True)
            return False

    def check_timestamp(self, timestamp: Any, now: datetime | None = None) -> TimestampCheck:
        """Reject timestamps further than the replay window from now, in either direction."""
        try:
            claimed = parse_datetime(timestamp)
        except (TypeError, ValueError, OverflowError, OSError):
            return TimestampCheck.INVALID

        if claimed is None:
            return TimestampCheck.ABSENT

        now = now or utcnow()
        if abs(now - claimed) > self.replay_window:
            return TimestampCheck.EXPIRED
        return TimestampCheck.OK


@lru_cache
def get_webhook_verifier() -> WebhookVerifier:
    """Return the verifier configured from application settings."""
    settings = get_settings()
    return WebhookVerifier(
        public_key_pem=settings.WEBHOOK_PUBLIC_KEY,
        replay_window_seconds=settings.REPLAY_WINDOW_SECONDS,
    )
