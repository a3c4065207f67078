"""Tests for the short-window duplicate filter."""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.models.webhook_hash import DedupRecord
from crm_webhooks.services.webhooks.dedup import DedupFilter, fingerprint_payload, is_test_payload


def test_fingerprint_ignores_key_order():
    a = {"id": "c_1", "email": "a@b.co", "customX": 1, "customY": 2}
    b = {"customY": 2, "customX": 1, "email": "a@b.co", "id": "c_1"}

    assert fingerprint_payload(a) == fingerprint_payload(b)


def test_fingerprint_changes_with_unknown_fields():
    base = {"id": "c_1", "email": "a@b.co"}

    assert fingerprint_payload(base) != fingerprint_payload({**base, "customField": "new"})


def test_fingerprint_hashes_message_body():
    first = {"message": {"type": 1, "direction": "inbound", "body": "one"}}
    second = {"message": {"type": 1, "direction": "inbound", "body": "two"}}

    assert fingerprint_payload(first) != fingerprint_payload(second)


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"id": "c_1"}, False),
        ({"id": "c_1", "test": True}, True),
        ({"id": "c_1", "is_test": True}, True),
        ({"id": "c_1", "test": False, "is_test": 0}, False),
    ],
)
def test_is_test_payload(payload, expected):
    assert is_test_payload(payload) is expected


@pytest.mark.asyncio
async def test_second_sighting_within_window_is_duplicate(db_session: AsyncSession):
    dedup = DedupFilter(db_session, window_seconds=60, record_ttl_seconds=300)
    payload = {"id": "c_1", "email": "a@b.co", "type": "ContactUpdate"}

    assert await dedup.is_duplicate(payload) is False
    assert await dedup.is_duplicate(payload) is True


@pytest.mark.asyncio
async def test_sighting_after_window_is_not_duplicate(db_session: AsyncSession):
    dedup = DedupFilter(db_session, window_seconds=60)
    payload = {"id": "c_2", "type": "ContactUpdate"}
    await dedup.is_duplicate(payload)

    record = (await db_session.execute(select(DedupRecord))).scalar_one()
    record.created_at = utcnow() - timedelta(seconds=120)
    await db_session.commit()

    assert await dedup.is_duplicate(payload) is False


@pytest.mark.asyncio
async def test_record_refreshed_on_every_sighting(db_session: AsyncSession):
    dedup = DedupFilter(db_session)
    payload = {"id": "c_3"}

    await dedup.is_duplicate(payload)
    await dedup.is_duplicate(payload)

    records = (await db_session.execute(select(DedupRecord))).scalars().all()
    assert len(records) == 1


@pytest.mark.asyncio
async def test_purge_expired(db_session: AsyncSession):
    dedup = DedupFilter(db_session)
    now = utcnow()
    db_session.add(DedupRecord(hash="a" * 64, created_at=now, expire_at=now - timedelta(seconds=1)))
    db_session.add(DedupRecord(hash="b" * 64, created_at=now, expire_at=now + timedelta(minutes=5)))
    await db_session.commit()

    assert await dedup.purge_expired() == 1

    remaining = (await db_session.execute(select(DedupRecord.hash))).scalars().all()
    assert remaining == ["b" * 64]
