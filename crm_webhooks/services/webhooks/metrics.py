"""ProcessorMetric lifecycle and classified error records."""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.models.webhook_error import ErrorKind, WebhookError
from crm_webhooks.db.models.webhook_metric import ProcessingType, ProcessorMetric
from crm_webhooks.db.upsert import insert_for

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


class MetricsRecorder:
    """Writes webhook metrics and errors. Each call commits on its own."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def record_started(
        self,
        webhook_id: str,
        event_type: str,
        processing_type: ProcessingType,
        queue_name: str | None = None,
        location_id: str | None = None,
        received_at: datetime | None = None,
    ) -> None:
        """Create the metric record unless the other path already did."""
        stmt = (
            insert_for(self.db, ProcessorMetric)
            .values(
                webhook_id=webhook_id,
                event_type=event_type,
                queue_name=queue_name,
                location_id=location_id,
                processing_type=processing_type.value,
                received_at=received_at,
                processing_started_at=utcnow(),
            )
            .on_conflict_do_nothing(index_elements=[ProcessorMetric.webhook_id])
        )
        await self.db.execute(stmt)
        await self.db.commit()

    async def record_completed(
        self, webhook_id: str, success: bool, error: str | None = None
    ) -> None:
        """Stamp the outcome on the metric record; the last finisher wins."""
        result = await self.db.execute(
            select(ProcessorMetric).where(ProcessorMetric.webhook_id == webhook_id)
        )
        metric = result.scalar_one_or_none()
        if metric is None:
            logger.debug(f"No metric record for webhook {webhook_id}")
            return

        now = utcnow()
        metric.processing_completed_at = now
        metric.duration_ms = int((now - metric.processing_started_at).total_seconds() * 1000)
        metric.success = success
        metric.error = error[:MAX_ERROR_LENGTH] if error else None
        await self.db.commit()

    async def record_error(
        self,
        webhook_id: str,
        event_type: str,
        kind: ErrorKind,
        message: str,
        queue_name: str | None = None,
        attempts: int = 0,
        dead_letter: bool = False,
    ) -> None:
        self.db.add(
            WebhookError(
                webhook_id=webhook_id,
                event_type=event_type,
                queue_name=queue_name,
                error_kind=kind.value,
                message=message[:MAX_ERROR_LENGTH],
                attempts=attempts,
                dead_letter=dead_letter,
            )
        )
        await self.db.commit()
