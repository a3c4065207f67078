"""Scheduler-triggered queue processing and housekeeping."""

import logging
import secrets
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm_webhooks.core.config import get_settings
from crm_webhooks.db.session import get_db, get_session_factory
from crm_webhooks.schemas.webhook import CleanupResult, WorkerConfig
from crm_webhooks.services.processors.registry import get_processor_factory
from crm_webhooks.services.webhooks.batch_processor import BatchProcessor
from crm_webhooks.services.webhooks.dedup import DedupFilter
from crm_webhooks.services.webhooks.queue_store import QueueStore

router = APIRouter(prefix="/api/cron", tags=["cron"])
logger = logging.getLogger(__name__)


async def verify_cron_secret(authorization: str | None = Header(None)) -> None:
    """Require ``Authorization: Bearer <CRON_SECRET>``."""
    expected = f"Bearer {get_settings().CRON_SECRET.get_secret_value()}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        logger.warning("Cron request rejected: invalid authorization")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.api_route(
    "/process/{queue_name}",
    methods=["GET", "POST"],
    dependencies=[Depends(verify_cron_secret)],
)
async def process_queue(
    queue_name: str,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict[str, Any]:
    """Run one bounded batch-processor invocation over ``queue_name``."""
    processor_factory = get_processor_factory(queue_name)
    if processor_factory is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown queue: {queue_name}"
        )

    settings = get_settings()
    processor = BatchProcessor(
        queue_name,
        session_factory,
        processor_factory,
        WorkerConfig.from_settings(settings),
        settings,
    )
    result = await processor.run()

    return {
        "success": result.success,
        "processor": result.queue_name,
        "processed": result.processed,
        "errors": result.errors,
        "batches": result.batches,
        "runtime": result.runtime_seconds,
    }


@router.api_route(
    "/cleanup",
    methods=["GET", "POST"],
    response_model=CleanupResult,
    dependencies=[Depends(verify_cron_secret)],
)
async def cleanup(db_session: AsyncSession = Depends(get_db)) -> CleanupResult:
    """Purge expired queue items and dedup records."""
    settings = get_settings()
    queue_store = QueueStore(db_session, item_ttl_days=settings.QUEUE_ITEM_TTL_DAYS)
    queue_items = await queue_store.purge_expired()
    dedup_records = await DedupFilter(db_session).purge_expired()

    logger.info(f"Cleanup purged {queue_items} queue item(s) and {dedup_records} dedup record(s)")
    return CleanupResult(queue_items_purged=queue_items, dedup_records_purged=dedup_records)
