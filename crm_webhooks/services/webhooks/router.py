"""Event classification, discovery of unknown types and system health gating."""

import json
import logging
from collections.abc import Iterable
from datetime import timedelta
from enum import Enum
from typing import Any

from redis.asyncio import Redis
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.models.webhook_discovery import WebhookDiscovery
from crm_webhooks.db.models.webhook_metric import ProcessorMetric
from crm_webhooks.db.models.webhook_queue import QueueItem, QueueStatus
from crm_webhooks.db.upsert import insert_for
from crm_webhooks.schemas.events import FALLBACK_ROUTE, QUEUE_ROUTES, QueueName
from crm_webhooks.schemas.webhook import RouteDecision

logger = logging.getLogger(__name__)

DEFAULT_DIRECT_EVENT_TYPES = frozenset({"InboundMessage", "OutboundMessage"})

_ROUTE_TABLE: dict[str, tuple[QueueName, int]] = {
    member.value: route for enum_cls, route in QUEUE_ROUTES.items() for member in enum_cls
}


def known_event_types() -> frozenset[str]:
    return frozenset(_ROUTE_TABLE)


def classify(
    event_type: str, direct_event_types: Iterable[str] = DEFAULT_DIRECT_EVENT_TYPES
) -> RouteDecision:
    """Map an event type to its queue, priority and direct-processing eligibility.

    Unrecognized types land on the general queue rather than being dropped.
    """
    route = _ROUTE_TABLE.get(event_type)
    recognized = route is not None
    queue_name, priority = route or FALLBACK_ROUTE

    return RouteDecision(
        event_type=event_type,
        queue_name=queue_name.value,
        priority=priority,
        direct_eligible=recognized and event_type in set(direct_event_types),
        recognized=recognized,
    )


async def record_discovery(
    db_session: AsyncSession, event_type: str, payload: dict[str, Any]
) -> None:
    """Count an unrecognized event type and keep the latest sample payload."""
    now = utcnow()
    stmt = insert_for(db_session, WebhookDiscovery).values(
        event_type=event_type,
        first_seen=now,
        last_seen=now,
        count=1,
        sample_payload=payload,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[WebhookDiscovery.event_type],
        set_={
            "last_seen": now,
            "count": WebhookDiscovery.count + 1,
            "sample_payload": stmt.excluded.sample_payload,
        },
    )
    await db_session.execute(stmt)
    await db_session.commit()
    logger.warning(f"Unrecognized webhook type '{event_type}' routed to general queue")


class HealthReason(str, Enum):
    HEALTHY = "healthy"
    CRITICAL_BACKLOG = "critical_backlog"
    MESSAGES_BACKLOG = "messages_backlog"
    ERROR_RATE = "error_rate"
    CHECK_FAILED = "check_failed"


class SystemHealthChecker:
    """Decides whether the direct fast path may run.

    The verdict is cached in Redis for a few seconds so bursts of message
    webhooks do not each run the depth and error-rate queries. Cache failures
    are logged and ignored; without a Redis client there is no caching.
    """

    CACHE_KEY = "webhooks:system_health"

    def __init__(
        self,
        db_session: AsyncSession,
        redis_client: Redis | None = None,
        max_critical_pending: int = 100,
        max_messages_pending: int = 500,
        max_error_rate: float = 0.1,
        error_window_seconds: int = 300,
        cache_ttl_seconds: int = 5,
        cache_prefix: str = "",
    ):
        self.db = db_session
        self.redis = redis_client
        self.max_critical_pending = max_critical_pending
        self.max_messages_pending = max_messages_pending
        self.max_error_rate = max_error_rate
        self.error_window = timedelta(seconds=error_window_seconds)
        self.cache_ttl_seconds = cache_ttl_seconds
        self.cache_key = f"{cache_prefix}:{self.CACHE_KEY}" if cache_prefix else self.CACHE_KEY

    async def _pending(self, queue_name: QueueName) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(QueueItem)
            .where(
                QueueItem.queue_name == queue_name.value,
                QueueItem.status == QueueStatus.PENDING.value,
            )
        )
        return result.scalar_one()

    async def _error_rate(self) -> float:
        since = utcnow() - self.error_window
        result = await self.db.execute(
            select(ProcessorMetric.success, func.count())
            .where(ProcessorMetric.processing_completed_at >= since)
            .group_by(ProcessorMetric.success)
        )
        counts = {success: count for success, count in result.all()}
        total = sum(counts.values())
        if total == 0:
            return 0.0
        return counts.get(False, 0) / total

    async def evaluate(self) -> HealthReason:
        """Run the health queries. Any exception counts as unhealthy."""
        try:
            if await self._pending(QueueName.CRITICAL) > self.max_critical_pending:
                return HealthReason.CRITICAL_BACKLOG
            if await self._pending(QueueName.MESSAGES) > self.max_messages_pending:
                return HealthReason.MESSAGES_BACKLOG
            if await self._error_rate() > self.max_error_rate:
                return HealthReason.ERROR_RATE
        except Exception as e:
            logger.error(f"System health check failed: {e}", exc_info=True)
            return HealthReason.CHECK_FAILED
        return HealthReason.HEALTHY

    async def _get_cached(self) -> HealthReason | None:
        if self.redis is None:
            return None
        try:
            data = await self.redis.get(self.cache_key)
            if data:
                return HealthReason(json.loads(data)["reason"])
        except Exception as exc:
            logger.warning(f"Failed to read health verdict from cache: {exc}")
        return None

    async def _set_cached(self, reason: HealthReason) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.set(
                self.cache_key, json.dumps({"reason": reason.value}), ex=self.cache_ttl_seconds
            )
        except Exception as exc:
            logger.warning(f"Failed to cache health verdict: {exc}")

    async def is_healthy(self) -> bool:
        reason = await self._get_cached()
        if reason is None:
            reason = await self.evaluate()
            await self._set_cached(reason)

        if reason is not HealthReason.HEALTHY:
            logger.warning(f"System unhealthy ({reason.value}), skipping direct processing")
        return reason is HealthReason.HEALTHY
