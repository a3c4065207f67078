"""Bounded batch processing of one queue per scheduler trigger."""

import asyncio
import logging
import secrets
from time import monotonic

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm_webhooks.core.config import Settings, get_settings
from crm_webhooks.db.models.webhook_error import ErrorKind
from crm_webhooks.db.models.webhook_metric import ProcessingType
from crm_webhooks.db.models.webhook_queue import QueueItem
from crm_webhooks.schemas.webhook import ProcessorRunResult, WorkerConfig
from crm_webhooks.services.processors.registry import ProcessorFactory
from crm_webhooks.services.webhooks.errors import MissingCorrelationError, UnknownEventTypeError
from crm_webhooks.services.webhooks.metrics import MetricsRecorder
from crm_webhooks.services.webhooks.queue_store import QueueStore

logger = logging.getLogger(__name__)


def classify_error(error: Exception) -> ErrorKind:
    if isinstance(error, UnknownEventTypeError):
        return ErrorKind.UNKNOWN_EVENT_TYPE
    if isinstance(error, MissingCorrelationError):
        return ErrorKind.MISSING_CORRELATION
    return ErrorKind.PROCESSING


class BatchProcessor:
    """Drains one queue until it is empty-handed for the time budget.

    Each invocation leases batches from the queue store and fans every batch
    out to at most ``concurrency`` items at once. Every item runs in its own
    session, since one ``AsyncSession`` cannot be shared between tasks. The
    wall-clock budget is checked between batches, so a started batch always
    finishes before ``run`` returns.
    """

    def __init__(
        self,
        queue_name: str,
        session_factory: async_sessionmaker[AsyncSession],
        processor_factory: ProcessorFactory,
        config: WorkerConfig,
        settings: Settings | None = None,
    ):
        self.queue_name = queue_name
        self.session_factory = session_factory
        self.processor_factory = processor_factory
        self.config = config
        self.settings = settings or get_settings()
        self.worker_id = f"{queue_name}-{secrets.token_hex(4)}"

    def _store(self, session: AsyncSession) -> QueueStore:
        return QueueStore(
            session,
            lease_seconds=self.config.lease_seconds,
            base_delay_seconds=self.settings.RETRY_BASE_DELAY_SECONDS,
            max_delay_seconds=self.settings.RETRY_MAX_DELAY_SECONDS,
            max_attempts=self.settings.MAX_ATTEMPTS,
            item_ttl_days=self.settings.QUEUE_ITEM_TTL_DAYS,
            worker_id=self.worker_id,
        )

    async def run(self) -> ProcessorRunResult:
        """
        Process the queue until the time budget runs out.

        Returns:
            ProcessorRunResult with item and batch counts; ``success`` is False
            only when the loop itself failed
        """
        result = ProcessorRunResult(queue_name=self.queue_name)
        started = monotonic()
        deadline = started + self.config.max_runtime_seconds
        semaphore = asyncio.Semaphore(self.config.concurrency)

        logger.info(f"Starting {self.queue_name} processor {self.worker_id}")

        try:
            while monotonic() < deadline:
                async with self.session_factory() as session:
                    store = self._store(session)
                    abandoned = await store.reclaim_expired(self.queue_name)
                    items = await store.lease_batch(self.queue_name, self.config.batch_size)

                for item in abandoned:
                    result.errors += 1
                    await self._record_abandoned(item)

                if not items:
                    remaining = deadline - monotonic()
                    if remaining <= 0:
                        break
                    await asyncio.sleep(min(self.config.idle_sleep_seconds, remaining))
                    continue

                result.batches += 1
                outcomes = await asyncio.gather(
                    *(self._process_guarded(semaphore, item) for item in items),
                    return_exceptions=True,
                )
                for outcome in outcomes:
                    if outcome is True:
                        result.processed += 1
                    else:
                        result.errors += 1
                        if isinstance(outcome, BaseException):
                            logger.error(f"Unexpected item failure in {self.queue_name}: {outcome}")
        except Exception as e:
            logger.error(f"{self.queue_name} processor loop failed: {e}", exc_info=True)
            result.success = False

        result.runtime_seconds = round(monotonic() - started, 3)
        logger.info(
            f"{self.queue_name} processor finished: processed={result.processed} "
            f"errors={result.errors} batches={result.batches} runtime={result.runtime_seconds}s"
        )
        return result

    async def _process_guarded(self, semaphore: asyncio.Semaphore, item: QueueItem) -> bool:
        async with semaphore:
            return await self.process_item(item)

    async def process_item(self, item: QueueItem) -> bool:
        """Run one leased item through its type processor. Never raises."""
        try:
            async with self.session_factory() as session:
                await MetricsRecorder(session).record_started(
                    item.webhook_id,
                    item.event_type,
                    ProcessingType.QUEUE,
                    queue_name=item.queue_name,
                    location_id=item.location_id,
                    received_at=item.received_at,
                )

            async with self.session_factory() as session:
                processor = self.processor_factory(session, self.config.slow_event_seconds)
                await processor.handle(item.event_type, item.payload, item.webhook_id)

            async with self.session_factory() as session:
                await self._store(session).mark_completed(item)
                await MetricsRecorder(session).record_completed(item.webhook_id, success=True)
            return True
        except Exception as e:
            await self._record_failure(item, e)
            return False

    async def _record_failure(self, item: QueueItem, error: Exception) -> None:
        kind = classify_error(error)
        message = f"{type(error).__name__}: {error}"
        attempts = item.attempts + 1
        dead_letter = attempts >= item.max_attempts

        if kind is ErrorKind.UNKNOWN_EVENT_TYPE:
            logger.error(
                f"Taxonomy gap in {self.queue_name} for webhook {item.webhook_id}: {error}"
            )
        else:
            logger.warning(f"Webhook {item.webhook_id} failed in {self.queue_name}: {message}")

        try:
            async with self.session_factory() as session:
                if not await self._store(session).mark_failed(item, message):
                    return

                await self._write_error_rows(session, item, kind, message, attempts, dead_letter)
        except Exception as e:
            logger.error(
                f"Failed to record failure of webhook {item.webhook_id}: {e}", exc_info=True
            )

    async def _record_abandoned(self, item: QueueItem) -> None:
        """Record an attempt that ended with an expired lease instead of a result."""
        try:
            async with self.session_factory() as session:
                await self._write_error_rows(
                    session,
                    item,
                    ErrorKind.LEASE_EXPIRED,
                    item.last_error or "Lease expired",
                    item.attempts,
                    item.is_dead_letter,
                )
        except Exception as e:
            logger.error(
                f"Failed to record expired lease of webhook {item.webhook_id}: {e}", exc_info=True
            )

    async def _write_error_rows(
        self,
        session: AsyncSession,
        item: QueueItem,
        kind: ErrorKind,
        message: str,
        attempts: int,
        dead_letter: bool,
    ) -> None:
        metrics = MetricsRecorder(session)
        await metrics.record_completed(item.webhook_id, success=False, error=message)
        await metrics.record_error(
            item.webhook_id,
            item.event_type,
            kind,
            message,
            queue_name=item.queue_name,
            attempts=attempts,
        )
        if dead_letter:
            logger.error(f"Webhook {item.webhook_id} dead-lettered after {attempts} attempts")
            await metrics.record_error(
                item.webhook_id,
                item.event_type,
                ErrorKind.DEAD_LETTER,
                message,
                queue_name=item.queue_name,
                attempts=attempts,
                dead_letter=True,
            )
