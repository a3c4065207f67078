"""Tests for the time-bounded batch processor."""

from datetime import timedelta
from typing import Any

import pytest
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.models.contact import Contact
from crm_webhooks.db.models.webhook_error import ErrorKind, WebhookError
from crm_webhooks.db.models.webhook_metric import ProcessorMetric
from crm_webhooks.db.models.webhook_queue import QueueItem, QueueStatus
from crm_webhooks.schemas.webhook import WebhookEnvelope, WorkerConfig
from crm_webhooks.services.processors.contacts import ContactsProcessor
from crm_webhooks.services.webhooks.batch_processor import BatchProcessor, classify_error
from crm_webhooks.services.webhooks.errors import MissingCorrelationError, UnknownEventTypeError
from crm_webhooks.services.webhooks.queue_store import QueueStore
from crm_webhooks.services.webhooks.router import classify

FAST_CONFIG = WorkerConfig(
    batch_size=10,
    concurrency=1,
    max_runtime_seconds=0.3,
    idle_sleep_seconds=0.05,
    lease_seconds=60,
)


async def enqueue(
    db_session: AsyncSession,
    webhook_id: str,
    payload: dict[str, Any],
    event_type: str = "ContactCreate",
    max_attempts: int = 3,
) -> None:
    envelope = WebhookEnvelope(
        webhook_id=webhook_id,
        event_type=event_type,
        received_at=utcnow(),
        payload=payload,
        location_id=payload.get("locationId"),
    )
    # Route by the contacts taxonomy even for event types it does not know.
    route = classify("ContactCreate")
    await QueueStore(db_session, max_attempts=max_attempts).enqueue(envelope, route)


async def load_all(db_session: AsyncSession, model: Any) -> list[Any]:
    db_session.expire_all()
    return list((await db_session.execute(select(model))).scalars())


def contacts_batch(session_factory: async_sessionmaker[AsyncSession]) -> BatchProcessor:
    return BatchProcessor("contacts", session_factory, ContactsProcessor, FAST_CONFIG)


def test_classify_error():
    assert classify_error(UnknownEventTypeError("contacts", "X")) is ErrorKind.UNKNOWN_EVENT_TYPE
    assert classify_error(MissingCorrelationError("X", "id")) is ErrorKind.MISSING_CORRELATION
    assert classify_error(RuntimeError("boom")) is ErrorKind.PROCESSING


def test_worker_config_requires_lease_longer_than_runtime():
    with pytest.raises(ValueError):
        WorkerConfig(max_runtime_seconds=60, lease_seconds=30)


@pytest.mark.asyncio
async def test_run_processes_pending_items(
    db_session: AsyncSession, session_factory: async_sessionmaker[AsyncSession]
):
    await enqueue(db_session, "wh_1", {"locationId": "loc_1", "id": "c_1", "firstName": "Ana"})
    await enqueue(db_session, "wh_2", {"locationId": "loc_1", "id": "c_2", "firstName": "Bia"})

    result = await contacts_batch(session_factory).run()

    assert result.success is True
    assert result.processed == 2
    assert result.errors == 0
    assert result.batches == 1
    assert result.runtime_seconds >= 0

    items = await load_all(db_session, QueueItem)
    assert {item.status for item in items} == {QueueStatus.COMPLETED.value}
    assert all(item.lease_token is None for item in items)
    assert len(await load_all(db_session, Contact)) == 2

    metrics = await load_all(db_session, ProcessorMetric)
    assert {metric.processing_type for metric in metrics} == {"queue"}
    assert all(metric.success for metric in metrics)


@pytest.mark.asyncio
async def test_empty_queue_returns_after_budget(
    session_factory: async_sessionmaker[AsyncSession],
):
    result = await contacts_batch(session_factory).run()

    assert result.success is True
    assert result.processed == 0
    assert result.batches == 0
    assert result.runtime_seconds >= FAST_CONFIG.max_runtime_seconds


@pytest.mark.asyncio
async def test_failures_are_classified_and_scheduled_for_retry(
    db_session: AsyncSession, session_factory: async_sessionmaker[AsyncSession]
):
    await enqueue(db_session, "wh_ok", {"locationId": "loc_1", "id": "c_1"})
    await enqueue(db_session, "wh_no_location", {"id": "c_2"})
    await enqueue(
        db_session, "wh_unknown", {"locationId": "loc_1", "id": "c_3"}, event_type="ContactMerged"
    )

    result = await contacts_batch(session_factory).run()

    assert result.processed == 1
    assert result.errors == 2

    items = {item.webhook_id: item for item in await load_all(db_session, QueueItem)}
    assert items["wh_ok"].status == QueueStatus.COMPLETED.value
    for webhook_id in ("wh_no_location", "wh_unknown"):
        assert items[webhook_id].status == QueueStatus.FAILED.value
        assert items[webhook_id].attempts == 1
        assert items[webhook_id].process_after > utcnow()
        assert items[webhook_id].is_dead_letter is False

    errors = await load_all(db_session, WebhookError)
    kinds = {error.webhook_id: error.error_kind for error in errors}
    assert kinds == {
        "wh_no_location": ErrorKind.MISSING_CORRELATION.value,
        "wh_unknown": ErrorKind.UNKNOWN_EVENT_TYPE.value,
    }


@pytest.mark.asyncio
async def test_last_attempt_is_dead_lettered(
    db_session: AsyncSession, session_factory: async_sessionmaker[AsyncSession]
):
    await enqueue(db_session, "wh_bad", {"id": "c_1"}, max_attempts=1)

    result = await contacts_batch(session_factory).run()

    assert result.errors == 1
    [item] = await load_all(db_session, QueueItem)
    assert item.is_dead_letter is True

    errors = await load_all(db_session, WebhookError)
    assert sorted(error.error_kind for error in errors) == [
        ErrorKind.DEAD_LETTER.value,
        ErrorKind.MISSING_CORRELATION.value,
    ]
    assert [error.dead_letter for error in errors if error.error_kind == "dead_letter"] == [True]


@pytest.mark.asyncio
async def test_processor_crash_does_not_stop_the_batch(
    db_session: AsyncSession, session_factory: async_sessionmaker[AsyncSession]
):
    class ExplodingProcessor(ContactsProcessor):
        async def contact_create(self, payload: dict[str, Any], webhook_id: str) -> None:
            if payload["id"] == "c_boom":
                raise RuntimeError("database on fire")
            await super().contact_create(payload, webhook_id)

    await enqueue(db_session, "wh_boom", {"locationId": "loc_1", "id": "c_boom"})
    await enqueue(db_session, "wh_fine", {"locationId": "loc_1", "id": "c_fine"})

    result = await BatchProcessor(
        "contacts", session_factory, ExplodingProcessor, FAST_CONFIG
    ).run()

    assert result.processed == 1
    assert result.errors == 1
    [error] = await load_all(db_session, WebhookError)
    assert error.error_kind == ErrorKind.PROCESSING.value
    assert "database on fire" in error.message
    [contact] = await load_all(db_session, Contact)
    assert contact.external_id == "c_fine"


async def abandon_lease(db_session: AsyncSession) -> QueueItem:
    """Lease the only item as a worker that then disappears."""
    [item] = await QueueStore(db_session, worker_id="crashed-worker").lease_batch(
        "contacts", limit=1
    )
    await db_session.execute(
        update(QueueItem)
        .where(QueueItem.id == item.id)
        .values(locked_until=utcnow() - timedelta(seconds=1))
    )
    await db_session.commit()
    return item


@pytest.mark.asyncio
async def test_abandoned_lease_counts_as_attempt_and_is_retried(
    db_session: AsyncSession, session_factory: async_sessionmaker[AsyncSession]
):
    await enqueue(db_session, "wh_stuck", {"locationId": "loc_1", "id": "c_1"})
    await abandon_lease(db_session)

    result = await contacts_batch(session_factory).run()

    assert result.processed == 1
    assert result.errors == 1
    [item] = await load_all(db_session, QueueItem)
    assert item.status == QueueStatus.COMPLETED.value
    assert item.attempts == 1
    [error] = await load_all(db_session, WebhookError)
    assert error.error_kind == ErrorKind.LEASE_EXPIRED.value
    assert error.attempts == 1


@pytest.mark.asyncio
async def test_abandoned_last_attempt_is_dead_lettered(
    db_session: AsyncSession, session_factory: async_sessionmaker[AsyncSession]
):
    await enqueue(db_session, "wh_stuck", {"locationId": "loc_1", "id": "c_1"}, max_attempts=1)
    await abandon_lease(db_session)

    result = await contacts_batch(session_factory).run()

    assert result.processed == 0
    assert result.errors == 1
    [item] = await load_all(db_session, QueueItem)
    assert item.is_dead_letter is True
    assert await load_all(db_session, Contact) == []

    errors = await load_all(db_session, WebhookError)
    assert sorted(error.error_kind for error in errors) == [
        ErrorKind.DEAD_LETTER.value,
        ErrorKind.LEASE_EXPIRED.value,
    ]
