"""Webhook intake: normalize, screen, route and enqueue one delivery."""

import logging
from dataclasses import dataclass
from typing import Any

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from crm_webhooks.core.config import Settings
from crm_webhooks.schemas.webhook import WebhookAck, WebhookEnvelope
from crm_webhooks.services.webhooks.dedup import DedupFilter, is_test_payload
from crm_webhooks.services.webhooks.normalizer import normalize_webhook
from crm_webhooks.services.webhooks.queue_store import QueueStore
from crm_webhooks.services.webhooks.router import SystemHealthChecker, classify, record_discovery
from crm_webhooks.services.webhooks.verifier import TimestampCheck, WebhookVerifier

logger = logging.getLogger(__name__)


@dataclass
class IngestionOutcome:
    ack: WebhookAck
    # Set when the caller should run the direct fast path after responding.
    direct_envelope: WebhookEnvelope | None = None


class WebhookIngestionService:
    """Runs a signature-verified delivery up to the durable queue.

    Every failure past the signature check is turned into an acknowledgement
    body; nothing here raises to the caller.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        settings: Settings,
        verifier: WebhookVerifier,
        redis_client: Redis | None = None,
    ):
        self.db = db_session
        self.settings = settings
        self.verifier = verifier
        self.redis = redis_client

    async def ingest(self, body: Any) -> IngestionOutcome:
        """
        Accept one decoded webhook body.

        Args:
            body: JSON-decoded request body

        Returns:
            IngestionOutcome with the acknowledgement and, if the event should
            also be applied right away, its envelope
        """
        try:
            envelope = normalize_webhook(body)
        except ValueError as e:
            logger.warning(f"Rejecting webhook with invalid payload: {e}")
            return IngestionOutcome(ack=WebhookAck(success=False, error="Invalid payload"))

        try:
            return await self._accept(envelope)
        except Exception as e:
            logger.error(f"Error ingesting webhook {envelope.webhook_id}: {e}", exc_info=True)
            await self.db.rollback()
            return IngestionOutcome(
                ack=WebhookAck(
                    success=False, webhook_id=envelope.webhook_id, error="Internal error"
                )
            )

    async def _accept(self, envelope: WebhookEnvelope) -> IngestionOutcome:
        webhook_id = envelope.webhook_id

        timestamp_check = self.verifier.check_timestamp(envelope.timestamp)
        if timestamp_check is TimestampCheck.EXPIRED:
            logger.warning(f"Webhook {webhook_id} timestamp outside replay window, dropping")
            return IngestionOutcome(ack=WebhookAck(success=False, error="Timestamp expired"))
        if timestamp_check is TimestampCheck.INVALID:
            logger.warning(f"Webhook {webhook_id} has an unparseable timestamp, dropping")
            return IngestionOutcome(ack=WebhookAck(success=False, error="Invalid timestamp"))

        dedup = DedupFilter(
            self.db,
            window_seconds=self.settings.DEDUP_WINDOW_SECONDS,
            record_ttl_seconds=self.settings.DEDUP_RECORD_TTL_SECONDS,
        )
        if await dedup.is_duplicate(envelope.payload):
            return IngestionOutcome(
                ack=WebhookAck(success=True, webhook_id=webhook_id, duplicate=True)
            )

        if is_test_payload(envelope.payload):
            logger.info(f"Webhook {webhook_id} is flagged as a test delivery, skipping")
            return IngestionOutcome(
                ack=WebhookAck(success=True, webhook_id=webhook_id, skipped=True)
            )

        route = classify(envelope.event_type, self.settings.direct_process_event_types)
        if not route.recognized:
            await record_discovery(self.db, envelope.event_type, envelope.payload)

        store = QueueStore(
            self.db,
            lease_seconds=self.settings.LEASE_SECONDS,
            base_delay_seconds=self.settings.RETRY_BASE_DELAY_SECONDS,
            max_delay_seconds=self.settings.RETRY_MAX_DELAY_SECONDS,
            max_attempts=self.settings.MAX_ATTEMPTS,
            item_ttl_days=self.settings.QUEUE_ITEM_TTL_DAYS,
        )
        enqueued = await store.enqueue(envelope, route)
        if enqueued.duplicate:
            return IngestionOutcome(
                ack=WebhookAck(success=True, webhook_id=webhook_id, duplicate=True)
            )

        direct = route.direct_eligible and await self._healthy()
        return IngestionOutcome(
            ack=WebhookAck(
                success=True,
                webhook_id=webhook_id,
                type=envelope.event_type,
                queued=True,
                direct=direct,
            ),
            direct_envelope=envelope if direct else None,
        )

    async def _healthy(self) -> bool:
        checker = SystemHealthChecker(
            self.db,
            redis_client=self.redis,
            max_critical_pending=self.settings.HEALTH_MAX_CRITICAL_PENDING,
            max_messages_pending=self.settings.HEALTH_MAX_MESSAGES_PENDING,
            max_error_rate=self.settings.HEALTH_MAX_ERROR_RATE,
            error_window_seconds=self.settings.HEALTH_ERROR_WINDOW_SECONDS,
            cache_ttl_seconds=self.settings.HEALTH_CACHE_TTL_SECONDS,
            cache_prefix=self.settings.CACHE_PREFIX,
        )
        return await checker.is_healthy()
