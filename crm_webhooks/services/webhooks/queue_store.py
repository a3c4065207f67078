"""Durable, priority-ordered, leasable webhook queue.

Lease policy: a worker claims an item by writing ``locked_until`` and a fresh
``lease_token``. The lease is time-bounded rather than a held lock. An item
still ``processing`` after ``locked_until`` passed was abandoned by its worker;
``reclaim_expired`` counts that run as a failed attempt and makes the item
leasable again, or dead-letters it once attempts are exhausted. The original
holder's completion or failure write is then rejected because its token no
longer matches. Handlers therefore have to tolerate at-least-once execution.
"""

import logging
import secrets
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import ColumnElement, and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.models.webhook_queue import QueueItem, QueueStatus
from crm_webhooks.db.upsert import insert_for
from crm_webhooks.schemas.webhook import EnqueueResult, RouteDecision, WebhookEnvelope

logger = logging.getLogger(__name__)

LEASABLE_STATUSES = (QueueStatus.PENDING.value, QueueStatus.FAILED.value)
MAX_ERROR_LENGTH = 2000
LEASE_EXPIRED_ERROR = "Lease expired before the item was completed"


def compute_backoff(
    attempts: int, base_delay_seconds: int = 60, max_delay_seconds: int = 3600
) -> timedelta:
    """Exponential retry delay: ``min(base * 2**attempts, max)``.

    ``attempts`` is the count before the failing attempt is added, so the first
    failure waits ``base`` and the second ``2 * base``.
    """
    if attempts < 0:
        raise ValueError("attempts must be non-negative")
    # Cap the exponent so huge attempt counts cannot overflow.
    exponent = min(attempts, 32)
    return timedelta(seconds=min(base_delay_seconds * 2**exponent, max_delay_seconds))


def _eligible(now: datetime) -> ColumnElement[bool]:
    return and_(
        QueueItem.status.in_(LEASABLE_STATUSES),
        QueueItem.attempts < QueueItem.max_attempts,
        QueueItem.process_after <= now,
        or_(QueueItem.locked_until.is_(None), QueueItem.locked_until <= now),
    )


class QueueStore:
    """Queue operations over ``webhook_queue``.

    Every mutating call commits its own transaction.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        lease_seconds: int = 300,
        base_delay_seconds: int = 60,
        max_delay_seconds: int = 3600,
        max_attempts: int = 3,
        item_ttl_days: int = 7,
        worker_id: str | None = None,
    ):
        self.db = db_session
        self.lease_duration = timedelta(seconds=lease_seconds)
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.max_attempts = max_attempts
        self.item_ttl = timedelta(days=item_ttl_days)
        self.worker_id = worker_id or f"worker-{secrets.token_hex(4)}"

    def backoff(self, attempts: int) -> timedelta:
        return compute_backoff(attempts, self.base_delay_seconds, self.max_delay_seconds)

    async def enqueue(self, envelope: WebhookEnvelope, route: RouteDecision) -> EnqueueResult:
        """
        Insert a pending item for the envelope unless one already exists.

        An expired item holding the same webhook id is purged first so the id
        can be reused after the TTL.

        Args:
            envelope: Normalized webhook
            route: Queue and priority from the router

        Returns:
            EnqueueResult with the new item id, or duplicate=True
        """
        now = utcnow()

        await self.db.execute(
            delete(QueueItem).where(
                QueueItem.webhook_id == envelope.webhook_id,
                QueueItem.expires_at <= now,
            )
        )

        stmt = (
            insert_for(self.db, QueueItem)
            .values(
                webhook_id=envelope.webhook_id,
                event_type=envelope.event_type,
                queue_name=route.queue_name,
                priority=route.priority,
                payload=envelope.payload,
                location_id=envelope.location_id,
                company_id=envelope.company_id,
                status=QueueStatus.PENDING.value,
                attempts=0,
                max_attempts=self.max_attempts,
                received_at=envelope.received_at,
                process_after=envelope.received_at,
                expires_at=envelope.received_at + self.item_ttl,
            )
            .on_conflict_do_nothing(index_elements=[QueueItem.webhook_id])
            .returning(QueueItem.id)
        )
        result = await self.db.execute(stmt)
        item_id = result.scalar_one_or_none()
        await self.db.commit()

        if item_id is None:
            logger.info(f"Webhook {envelope.webhook_id} already queued, skipping")
            return EnqueueResult(duplicate=True)

        logger.info(
            f"Queued webhook {envelope.webhook_id} type={envelope.event_type} "
            f"queue={route.queue_name} priority={route.priority}"
        )
        return EnqueueResult(item_id=item_id)

    async def reclaim_expired(self, queue_name: str) -> list[QueueItem]:
        """
        Count abandoned leases as failed attempts.

        Items still ``processing`` past ``locked_until`` become ``failed`` with one
        more attempt and are due again right away, since the lease already delayed
        them. Items that reach ``max_attempts`` this way stay failed for good.

        Args:
            queue_name: Queue to reclaim in

        Returns:
            The reclaimed items with their updated attempt counts
        """
        now = utcnow()

        result = await self.db.execute(
            update(QueueItem)
            .where(
                QueueItem.queue_name == queue_name,
                QueueItem.status == QueueStatus.PROCESSING.value,
                QueueItem.locked_until <= now,
            )
            .values(
                status=QueueStatus.FAILED.value,
                attempts=QueueItem.attempts + 1,
                last_error=LEASE_EXPIRED_ERROR,
                failed_at=now,
                process_after=now,
                locked_until=None,
                locked_by=None,
                lease_token=None,
            )
            .returning(QueueItem.id)
            .execution_options(synchronize_session=False)
        )
        reclaimed_ids = list(result.scalars())
        await self.db.commit()

        if not reclaimed_ids:
            return []

        reclaimed = await self.db.execute(
            select(QueueItem)
            .where(QueueItem.id.in_(reclaimed_ids))
            .execution_options(populate_existing=True)
        )
        items = list(reclaimed.scalars())
        for item in items:
            logger.warning(
                f"Lease on webhook {item.webhook_id} expired, counted as attempt "
                f"{item.attempts}/{item.max_attempts}"
            )
        return items

    async def lease_batch(self, queue_name: str, limit: int) -> list[QueueItem]:
        """
        Claim up to ``limit`` eligible items, lowest priority value first, then FIFO.

        Expired ``processing`` items are not eligible until ``reclaim_expired``
        has counted the abandoned attempt.

        Candidates are selected with ``FOR UPDATE SKIP LOCKED`` where the backend
        supports it; the claiming UPDATE repeats the eligibility predicate, so a
        row another leaser claimed in between is simply not returned.

        Args:
            queue_name: Queue to lease from
            limit: Maximum number of items

        Returns:
            Items now leased by this store's worker, in lease order
        """
        now = utcnow()

        candidates = await self.db.execute(
            select(QueueItem.id)
            .where(QueueItem.queue_name == queue_name, _eligible(now))
            .order_by(QueueItem.priority.asc(), QueueItem.received_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        candidate_ids = list(candidates.scalars())
        if not candidate_ids:
            await self.db.commit()
            return []

        lease_token = secrets.token_hex(16)
        claimed = await self.db.execute(
            update(QueueItem)
            .where(QueueItem.id.in_(candidate_ids), _eligible(now))
            .values(
                status=QueueStatus.PROCESSING.value,
                locked_until=now + self.lease_duration,
                locked_by=self.worker_id,
                lease_token=lease_token,
                processing_started_at=now,
            )
            .returning(QueueItem.id)
            .execution_options(synchronize_session=False)
        )
        claimed_ids = list(claimed.scalars())
        await self.db.commit()

        if not claimed_ids:
            return []

        result = await self.db.execute(
            select(QueueItem)
            .where(QueueItem.id.in_(claimed_ids), QueueItem.lease_token == lease_token)
            .order_by(QueueItem.priority.asc(), QueueItem.received_at.asc())
            .execution_options(populate_existing=True)
        )
        items = list(result.scalars())
        logger.debug(f"Leased {len(items)} item(s) from queue {queue_name} as {self.worker_id}")
        return items

    async def mark_completed(self, item: QueueItem) -> bool:
        """Complete a leased item. Returns False if the lease was lost."""
        now = utcnow()
        started = item.processing_started_at or now
        duration_ms = int((now - started).total_seconds() * 1000)

        result = await self.db.execute(
            update(QueueItem)
            .where(QueueItem.id == item.id, QueueItem.lease_token == item.lease_token)
            .values(
                status=QueueStatus.COMPLETED.value,
                processing_completed_at=now,
                processing_duration_ms=duration_ms,
                locked_until=None,
                locked_by=None,
                lease_token=None,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        if not result.rowcount:
            logger.warning(f"Lease lost before completing webhook {item.webhook_id}")
            return False
        return True

    async def mark_failed(self, item: QueueItem, error: str) -> bool:
        """
        Record a failed attempt and schedule the retry.

        Args:
            item: Leased item
            error: Error description stored as ``last_error``

        Returns:
            False if the lease was lost and nothing was written
        """
        now = utcnow()
        next_attempt_at = now + self.backoff(item.attempts)

        result = await self.db.execute(
            update(QueueItem)
            .where(QueueItem.id == item.id, QueueItem.lease_token == item.lease_token)
            .values(
                status=QueueStatus.FAILED.value,
                attempts=QueueItem.attempts + 1,
                last_error=error[:MAX_ERROR_LENGTH],
                failed_at=now,
                process_after=next_attempt_at,
                locked_until=None,
                locked_by=None,
                lease_token=None,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        if not result.rowcount:
            logger.warning(f"Lease lost before failing webhook {item.webhook_id}")
            return False

        logger.info(
            f"Webhook {item.webhook_id} failed attempt {item.attempts + 1}/{item.max_attempts}, "
            f"next attempt at {next_attempt_at.isoformat()}"
        )
        return True

    async def get(self, item_id: UUID) -> QueueItem | None:
        result = await self.db.execute(
            select(QueueItem)
            .where(QueueItem.id == item_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def depth(self, queue_name: str, status: QueueStatus = QueueStatus.PENDING) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(QueueItem)
            .where(QueueItem.queue_name == queue_name, QueueItem.status == status.value)
        )
        return result.scalar_one()

    async def purge_expired(self) -> int:
        """Delete items past their TTL. Returns the number removed."""
        result = await self.db.execute(delete(QueueItem).where(QueueItem.expires_at <= utcnow()))
        await self.db.commit()
        return result.rowcount or 0
