"""Tests for the CRM webhook intake endpoint."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.models.contact import Contact
from crm_webhooks.db.models.message import Message
from crm_webhooks.db.models.webhook_discovery import WebhookDiscovery
from crm_webhooks.db.models.webhook_queue import QueueItem

WEBHOOK_URL = "/api/webhooks/crm"


async def queue_items(db_session: AsyncSession) -> list[QueueItem]:
    db_session.expire_all()
    return list((await db_session.execute(select(QueueItem))).scalars())


@pytest.mark.asyncio
async def test_missing_signature_is_rejected(
    client: AsyncClient, db_session: AsyncSession, inbound_message
):
    response = await client.post(WEBHOOK_URL, json=inbound_message())

    assert response.status_code == 401
    assert await queue_items(db_session) == []


@pytest.mark.asyncio
async def test_invalid_signature_is_rejected(
    client: AsyncClient, db_session: AsyncSession, signed_delivery, inbound_message
):
    body, headers = signed_delivery(inbound_message())

    response = await client.post(WEBHOOK_URL, content=body + b" ", headers=headers)

    assert response.status_code == 401
    assert await queue_items(db_session) == []


@pytest.mark.asyncio
async def test_contact_event_is_queued(
    client: AsyncClient, db_session: AsyncSession, signed_delivery
):
    body, headers = signed_delivery(
        {"type": "ContactCreate", "webhookId": "wh_c1", "locationId": "loc_1", "id": "c_1"}
    )

    response = await client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "webhookId": "wh_c1",
        "type": "ContactCreate",
        "queued": True,
        "direct": False,
    }
    [item] = await queue_items(db_session)
    assert item.queue_name == "contacts"
    assert item.priority == 4
    assert item.status == "pending"


@pytest.mark.asyncio
async def test_inbound_message_is_queued_and_applied_directly(
    client: AsyncClient, db_session: AsyncSession, signed_delivery, inbound_message
):
    db_session.add(Contact(location_id="loc_1", external_id="contact_1", full_name="Ana"))
    await db_session.commit()
    body, headers = signed_delivery(inbound_message())

    response = await client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200
    data = response.json()
    assert data["queued"] is True
    assert data["direct"] is True

    [item] = await queue_items(db_session)
    assert item.queue_name == "messages"
    assert item.priority == 2

    message = (await db_session.execute(select(Message))).scalar_one()
    assert message.processed_by == "direct"
    assert message.external_id == "msg_1"


@pytest.mark.asyncio
async def test_expired_timestamp_is_acknowledged_but_dropped(
    client: AsyncClient, db_session: AsyncSession, signed_delivery, inbound_message
):
    stale = (utcnow() - timedelta(minutes=10)).isoformat()
    body, headers = signed_delivery(inbound_message(timestamp=stale))

    response = await client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200
    assert response.json() == {"success": False, "error": "Timestamp expired"}
    assert await queue_items(db_session) == []


@pytest.mark.asyncio
async def test_unparseable_timestamp_is_dropped(
    client: AsyncClient, db_session: AsyncSession, signed_delivery, inbound_message
):
    body, headers = signed_delivery(inbound_message(timestamp="yesterday-ish"))

    response = await client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200
    assert response.json()["error"] == "Invalid timestamp"
    assert await queue_items(db_session) == []


@pytest.mark.asyncio
async def test_redelivery_is_reported_as_duplicate(
    client: AsyncClient, db_session: AsyncSession, signed_delivery
):
    payload = {"type": "ContactUpdate", "webhookId": "wh_c2", "locationId": "loc_1", "id": "c_2"}
    body, headers = signed_delivery(payload)

    first = await client.post(WEBHOOK_URL, content=body, headers=headers)
    second = await client.post(WEBHOOK_URL, content=body, headers=headers)

    assert first.json()["queued"] is True
    assert second.status_code == 200
    assert second.json() == {"success": True, "webhookId": "wh_c2", "duplicate": True}
    assert len(await queue_items(db_session)) == 1


@pytest.mark.asyncio
async def test_test_delivery_is_acknowledged_but_not_queued(
    client: AsyncClient, db_session: AsyncSession, signed_delivery
):
    payload = {"type": "ContactCreate", "webhookId": "wh_t1", "locationId": "loc_1", "id": "c_t"}
    body, headers = signed_delivery({**payload, "test": True})

    response = await client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200
    assert response.json() == {"success": True, "webhookId": "wh_t1", "skipped": True}
    assert await queue_items(db_session) == []


@pytest.mark.asyncio
async def test_same_webhook_id_with_new_content_is_duplicate(
    client: AsyncClient, db_session: AsyncSession, signed_delivery
):
    base = {"type": "ContactUpdate", "webhookId": "wh_c3", "locationId": "loc_1", "id": "c_3"}
    body, headers = signed_delivery(base)
    await client.post(WEBHOOK_URL, content=body, headers=headers)

    body, headers = signed_delivery({**base, "email": "new@example.com"})
    response = await client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.json()["duplicate"] is True
    assert len(await queue_items(db_session)) == 1


@pytest.mark.asyncio
async def test_unrecognized_type_goes_to_general_queue(
    client: AsyncClient, db_session: AsyncSession, signed_delivery
):
    body, headers = signed_delivery(
        {"type": "BrandNewThing", "webhookId": "wh_new", "locationId": "loc_1"}
    )

    response = await client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.json()["queued"] is True
    [item] = await queue_items(db_session)
    assert item.queue_name == "general"
    assert item.priority == 5
    discovery = (await db_session.execute(select(WebhookDiscovery))).scalar_one()
    assert discovery.event_type == "BrandNewThing"
    assert discovery.count == 1


@pytest.mark.asyncio
async def test_non_object_body_is_invalid_payload(
    client: AsyncClient, db_session: AsyncSession, sign, use_test_verifier
):
    body = b'["not", "an", "object"]'

    response = await client.post(
        WEBHOOK_URL,
        content=body,
        headers={"Content-Type": "application/json", "x-wh-signature": sign(body)},
    )

    assert response.status_code == 200
    assert response.json() == {"success": False, "error": "Invalid payload"}
    assert await queue_items(db_session) == []


@pytest.mark.asyncio
async def test_malformed_json_is_invalid_payload(
    client: AsyncClient, sign, use_test_verifier
):
    body = b'{"type": "ContactCreate",'

    response = await client.post(
        WEBHOOK_URL,
        content=body,
        headers={"Content-Type": "application/json", "x-wh-signature": sign(body)},
    )

    assert response.status_code == 200
    assert response.json() == {"success": False, "error": "Invalid payload"}
