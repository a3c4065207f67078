"""Best-effort synchronous path for latency-sensitive message events."""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm_webhooks.db.models.message import MessageDirection
from crm_webhooks.db.models.webhook_error import ErrorKind
from crm_webhooks.db.models.webhook_metric import ProcessingType
from crm_webhooks.schemas.events import MessageEvent
from crm_webhooks.schemas.webhook import WebhookEnvelope
from crm_webhooks.services.processors.messages import MessageWriter
from crm_webhooks.services.webhooks.metrics import MetricsRecorder

logger = logging.getLogger(__name__)

DIRECTIONS = {
    MessageEvent.INBOUND_MESSAGE.value: MessageDirection.INBOUND,
    MessageEvent.OUTBOUND_MESSAGE.value: MessageDirection.OUTBOUND,
}


class DirectProcessor:
    """Applies a message webhook right after it was queued.

    The queued copy stays authoritative: this path never raises, never
    creates contacts and never touches the queue item. Whatever it manages to
    write is written through the same idempotent ``MessageWriter`` the
    messages queue uses, so the later queued run is a no-op for the message.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def process(self, envelope: WebhookEnvelope) -> bool:
        """
        Try to write the message now.

        A message left to the queue records no metric here; the queued run
        opens and completes it.

        Args:
            envelope: Normalized webhook already accepted by the queue

        Returns:
            True if the message was written (or already present), False if it was
            left to the queue or the write failed
        """
        direction = DIRECTIONS.get(envelope.event_type)
        if direction is None:
            logger.debug(f"Event {envelope.event_type} has no direct handler")
            return False

        try:
            async with self.session_factory() as session:
                writer = MessageWriter(session)
                contact_id = await self._resolve_contact(writer, envelope)
                if contact_id is None and direction is MessageDirection.INBOUND:
                    # Contact creation belongs to the queued run.
                    logger.info(
                        f"Contact {envelope.payload.get('contactId')} unknown, leaving webhook "
                        f"{envelope.webhook_id} to the messages queue"
                    )
                    return False

                metrics = MetricsRecorder(session)
                await metrics.record_started(
                    envelope.webhook_id,
                    envelope.event_type,
                    ProcessingType.DIRECT,
                    location_id=envelope.location_id,
                    received_at=envelope.received_at,
                )
                try:
                    await self._write(session, writer, envelope, direction, contact_id)
                except Exception as e:
                    await session.rollback()
                    logger.warning(
                        f"Direct processing failed for webhook {envelope.webhook_id}: {e}"
                    )
                    await metrics.record_completed(
                        envelope.webhook_id, success=False, error=str(e)
                    )
                    await metrics.record_error(
                        envelope.webhook_id, envelope.event_type, ErrorKind.DIRECT, str(e)
                    )
                    return False

                await metrics.record_completed(envelope.webhook_id, success=True)
                return True
        except Exception as e:
            logger.error(
                f"Direct processing bookkeeping failed for webhook {envelope.webhook_id}: {e}",
                exc_info=True,
            )
            return False

    @staticmethod
    async def _resolve_contact(writer: MessageWriter, envelope: WebhookEnvelope) -> UUID | None:
        contact_external_id = envelope.payload.get("contactId")
        if not contact_external_id or not envelope.location_id:
            return None
        return await writer.find_contact_id(envelope.location_id, str(contact_external_id))

    async def _write(
        self,
        session: AsyncSession,
        writer: MessageWriter,
        envelope: WebhookEnvelope,
        direction: MessageDirection,
        contact_id: UUID | None,
    ) -> None:
        result = await writer.write(
            envelope.event_type,
            envelope.payload,
            envelope.webhook_id,
            direction,
            "direct",
            contact_id,
        )
        await session.commit()
        logger.info(
            f"Direct processed webhook {envelope.webhook_id} inserted={result.inserted}"
        )
