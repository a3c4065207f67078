"""Tests for the messages processor and the shared message writer."""

from typing import Any

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_webhooks.db.models.contact import Contact
from crm_webhooks.db.models.conversation import Conversation
from crm_webhooks.db.models.message import Message, MessageDirection
from crm_webhooks.db.models.project import Project
from crm_webhooks.services.processors.messages import (
    MessagesProcessor,
    MessageWriter,
    message_type_code,
)
from crm_webhooks.services.webhooks.errors import MissingCorrelationError
from tests.fixtures.webhooks import inbound_message_payload


async def load_all(db_session: AsyncSession, model: Any) -> list[Any]:
    db_session.expire_all()
    return list((await db_session.execute(select(model))).scalars())


async def add_contact(db_session: AsyncSession, external_id: str = "contact_1") -> Contact:
    contact = Contact(location_id="loc_1", external_id=external_id, full_name="Ana Souza")
    db_session.add(contact)
    await db_session.commit()
    return contact


def test_message_type_code_accepts_numbers_and_names():
    assert message_type_code(3) == 3
    assert message_type_code("2") == 2
    assert message_type_code("sms") == 1
    assert message_type_code("TYPE_WHATSAPP") == 4
    assert message_type_code("carrier_pigeon") is None
    assert message_type_code(True) is None


@pytest.mark.asyncio
async def test_inbound_message_creates_conversation_and_counts_unread(db_session: AsyncSession):
    contact = await add_contact(db_session)
    processor = MessagesProcessor(db_session)

    await processor.handle("InboundMessage", inbound_message_payload(), "wh_msg_1")

    [conversation] = await load_all(db_session, Conversation)
    [message] = await load_all(db_session, Message)
    assert conversation.external_id == "conv_1"
    assert conversation.contact_id == contact.id
    assert conversation.unread_count == 1
    assert conversation.type == "TYPE_PHONE"
    assert conversation.last_message_direction == "inbound"
    assert message.conversation_id == conversation.id
    assert message.direction == "inbound"
    assert message.type_name == "SMS"
    assert message.read is False
    assert message.processed_by == "queue"


@pytest.mark.asyncio
async def test_replayed_inbound_message_is_idempotent(db_session: AsyncSession):
    await add_contact(db_session)
    processor = MessagesProcessor(db_session)
    payload = inbound_message_payload()

    await processor.handle("InboundMessage", payload, "wh_msg_1")
    await processor.handle("InboundMessage", payload, "wh_msg_1")

    [conversation] = await load_all(db_session, Conversation)
    assert conversation.unread_count == 1
    assert len(await load_all(db_session, Message)) == 1


@pytest.mark.asyncio
async def test_inbound_message_from_unknown_contact_creates_contact(db_session: AsyncSession):
    processor = MessagesProcessor(db_session)

    await processor.handle(
        "InboundMessage",
        inbound_message_payload(contact_id="contact_new", firstName="Bia"),
        "wh_msg_1",
    )

    [contact] = await load_all(db_session, Contact)
    [message] = await load_all(db_session, Message)
    assert contact.external_id == "contact_new"
    assert contact.source == "message_webhook"
    assert message.contact_id == contact.id


@pytest.mark.asyncio
async def test_second_inbound_message_increments_unread(db_session: AsyncSession):
    await add_contact(db_session)
    processor = MessagesProcessor(db_session)

    await processor.handle("InboundMessage", inbound_message_payload("msg_1"), "wh_msg_1")
    await processor.handle("InboundMessage", inbound_message_payload("msg_2"), "wh_msg_2")

    [conversation] = await load_all(db_session, Conversation)
    assert conversation.unread_count == 2


@pytest.mark.asyncio
async def test_outbound_message_is_read_and_stamps_last_outbound(db_session: AsyncSession):
    await add_contact(db_session)
    processor = MessagesProcessor(db_session)
    payload = {
        "locationId": "loc_1",
        "contactId": "contact_1",
        "conversationId": "conv_1",
        "message": {"id": "msg_out", "type": 3, "body": "Quote attached", "subject": "Quote"},
    }

    await processor.handle("OutboundMessage", payload, "wh_out")

    [conversation] = await load_all(db_session, Conversation)
    [message] = await load_all(db_session, Message)
    assert message.read is True
    assert message.direction == "outbound"
    assert message.type_name == "Email"
    assert message.subject == "Quote"
    assert conversation.unread_count == 0
    assert conversation.last_outbound_at is not None
    assert conversation.type == "TYPE_EMAIL"


@pytest.mark.asyncio
async def test_inbound_message_links_active_project(db_session: AsyncSession):
    await add_contact(db_session)
    project = Project(
        location_id="loc_1", external_id="opp_1", contact_external_id="contact_1", status="open"
    )
    db_session.add(project)
    await db_session.commit()
    processor = MessagesProcessor(db_session)

    await processor.handle("InboundMessage", inbound_message_payload(), "wh_msg_1")

    [message] = await load_all(db_session, Message)
    [project] = await load_all(db_session, Project)
    assert message.project_id == project.id
    assert [entry["id"] for entry in project.timeline] == ["message:msg_1"]


@pytest.mark.asyncio
async def test_writer_reports_existing_message(db_session: AsyncSession):
    writer = MessageWriter(db_session)
    payload = inbound_message_payload()

    first = await writer.write(
        "InboundMessage", payload, "wh_msg_1", MessageDirection.INBOUND, "direct", None
    )
    second = await writer.write(
        "InboundMessage", payload, "wh_msg_1", MessageDirection.INBOUND, "queue", None
    )
    await db_session.commit()

    assert first.inserted is True
    assert second.inserted is False
    assert second.conversation_id == first.conversation_id
    [message] = await load_all(db_session, Message)
    assert message.processed_by == "direct"


@pytest.mark.asyncio
async def test_message_without_conversation_id_fails(db_session: AsyncSession):
    await add_contact(db_session)
    processor = MessagesProcessor(db_session)
    payload = inbound_message_payload()
    del payload["conversationId"]

    with pytest.raises(MissingCorrelationError):
        await processor.handle("InboundMessage", payload, "wh_msg_1")

    assert await load_all(db_session, Message) == []


@pytest.mark.asyncio
async def test_conversation_unread_update_sets_counter(db_session: AsyncSession):
    processor = MessagesProcessor(db_session)

    await processor.handle(
        "ConversationUnreadUpdate",
        {"locationId": "loc_1", "id": "conv_7", "unreadCount": 4},
        "wh_1",
    )
    await processor.handle(
        "ConversationUnreadUpdate",
        {"locationId": "loc_1", "id": "conv_7", "unreadCount": 0},
        "wh_2",
    )

    [conversation] = await load_all(db_session, Conversation)
    assert conversation.external_id == "conv_7"
    assert conversation.unread_count == 0


@pytest.mark.asyncio
async def test_email_stats_recorded_on_matching_message(db_session: AsyncSession):
    processor = MessagesProcessor(db_session)
    await processor.handle(
        "OutboundMessage",
        {
            "locationId": "loc_1",
            "conversationId": "conv_1",
            "message": {
                "id": "msg_mail",
                "type": 3,
                "body": "Hello",
                "meta": {"email": {"messageIds": ["email_1"]}},
            },
        },
        "wh_out",
    )

    await processor.handle(
        "LCEmailStats",
        {"locationId": "loc_1", "id": "email_1", "event": "opened", "timestamp": 1760788800},
        "wh_stats",
    )

    [message] = await load_all(db_session, Message)
    assert message.email_status == "opened"
    assert set(message.email_events) == {"opened"}


@pytest.mark.asyncio
async def test_email_stats_for_unknown_message_is_noop(db_session: AsyncSession):
    processor = MessagesProcessor(db_session)

    await processor.handle(
        "LCEmailStats",
        {"locationId": "loc_1", "id": "email_404", "event": "delivered"},
        "wh_stats",
    )

    assert await load_all(db_session, Message) == []
