"""Tests for the contacts processor."""

from enum import Enum

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_webhooks.db.models.contact import Contact
from crm_webhooks.db.models.note import Note
from crm_webhooks.db.models.task import Task
from crm_webhooks.schemas.events import ContactEvent
from crm_webhooks.services.processors.base import EventHandler
from crm_webhooks.services.processors.contacts import ContactsProcessor
from crm_webhooks.services.webhooks.errors import MissingCorrelationError, UnknownEventTypeError


def contact_payload(**overrides):
    return {
        "locationId": "loc_1",
        "id": "contact_1",
        "firstName": "Ana",
        "lastName": "Souza",
        "email": "ana@example.com",
        "phone": "+15550001111",
        "tags": ["lead"],
        **overrides,
    }


async def load_contacts(db_session: AsyncSession) -> list[Contact]:
    db_session.expire_all()
    return list((await db_session.execute(select(Contact))).scalars())


@pytest.mark.asyncio
async def test_contact_create_writes_record(db_session: AsyncSession):
    processor = ContactsProcessor(db_session)

    await processor.handle("ContactCreate", contact_payload(), "wh_1")

    [contact] = await load_contacts(db_session)
    assert contact.external_id == "contact_1"
    assert contact.full_name == "Ana Souza"
    assert contact.tags == ["lead"]
    assert contact.source == "webhook"
    assert contact.last_webhook_id == "wh_1"


@pytest.mark.asyncio
async def test_contact_create_is_idempotent(db_session: AsyncSession):
    processor = ContactsProcessor(db_session)

    await processor.handle("ContactCreate", contact_payload(), "wh_1")
    await processor.handle("ContactCreate", contact_payload(), "wh_1")

    contacts = await load_contacts(db_session)
    assert len(contacts) == 1


@pytest.mark.asyncio
async def test_contact_update_only_touches_present_fields(db_session: AsyncSession):
    processor = ContactsProcessor(db_session)
    await processor.handle("ContactCreate", contact_payload(), "wh_1")

    await processor.handle(
        "ContactUpdate",
        {"locationId": "loc_1", "id": "contact_1", "lastName": "Lima", "city": "Recife"},
        "wh_2",
    )

    [contact] = await load_contacts(db_session)
    assert contact.email == "ana@example.com"
    assert contact.last_name == "Lima"
    assert contact.full_name == "Ana Lima"
    assert contact.city == "Recife"
    assert contact.last_webhook_id == "wh_2"


@pytest.mark.asyncio
async def test_contact_update_creates_unknown_contact(db_session: AsyncSession):
    processor = ContactsProcessor(db_session)

    await processor.handle("ContactUpdate", contact_payload(id="contact_9"), "wh_1")

    [contact] = await load_contacts(db_session)
    assert contact.external_id == "contact_9"


@pytest.mark.asyncio
async def test_contact_delete_is_soft(db_session: AsyncSession):
    processor = ContactsProcessor(db_session)
    await processor.handle("ContactCreate", contact_payload(), "wh_1")

    await processor.handle("ContactDelete", {"locationId": "loc_1", "id": "contact_1"}, "wh_2")

    [contact] = await load_contacts(db_session)
    assert contact.deleted is True
    assert contact.deleted_at is not None


@pytest.mark.asyncio
async def test_contact_delete_of_unknown_contact_is_noop(db_session: AsyncSession):
    processor = ContactsProcessor(db_session)

    await processor.handle("ContactDelete", {"locationId": "loc_1", "id": "ghost"}, "wh_1")

    assert await load_contacts(db_session) == []


@pytest.mark.asyncio
async def test_dnd_and_tag_updates(db_session: AsyncSession):
    processor = ContactsProcessor(db_session)
    await processor.handle("ContactCreate", contact_payload(), "wh_1")

    await processor.handle(
        "ContactDndUpdate",
        {"locationId": "loc_1", "id": "contact_1", "dnd": True, "dndSettings": {"SMS": "active"}},
        "wh_2",
    )
    await processor.handle(
        "ContactTagUpdate",
        {"locationId": "loc_1", "id": "contact_1", "tags": ["customer", "vip"]},
        "wh_3",
    )

    [contact] = await load_contacts(db_session)
    assert contact.dnd is True
    assert contact.dnd_settings == {"SMS": "active"}
    assert contact.tags == ["customer", "vip"]
    assert contact.email == "ana@example.com"


@pytest.mark.asyncio
async def test_missing_location_raises_correlation_error(db_session: AsyncSession):
    processor = ContactsProcessor(db_session)

    with pytest.raises(MissingCorrelationError) as exc_info:
        await processor.handle("ContactCreate", {"id": "contact_1"}, "wh_1")

    assert exc_info.value.field == "locationId"
    assert await load_contacts(db_session) == []


@pytest.mark.asyncio
async def test_unknown_event_type_raises(db_session: AsyncSession):
    processor = ContactsProcessor(db_session)

    with pytest.raises(UnknownEventTypeError):
        await processor.handle("ContactMerged", contact_payload(), "wh_1")


@pytest.mark.asyncio
async def test_processor_without_handler_for_every_event_fails_to_build(db_session: AsyncSession):
    class IncompleteProcessor(ContactsProcessor):
        def build_handlers(self) -> dict[Enum, EventHandler]:
            handlers = super().build_handlers()
            del handlers[ContactEvent.CONTACT_TAG_UPDATE]
            return handlers

    with pytest.raises(TypeError, match="ContactTagUpdate"):
        IncompleteProcessor(db_session)


async def load_all(db_session: AsyncSession, model):
    db_session.expire_all()
    return list((await db_session.execute(select(model))).scalars())


@pytest.mark.asyncio
async def test_note_create_accepts_nested_and_flat_payloads(db_session: AsyncSession):
    processor = ContactsProcessor(db_session)
    await processor.handle("ContactCreate", contact_payload(), "wh_1")

    await processor.handle(
        "NoteCreate",
        {
            "locationId": "loc_1",
            "note": {"id": "note_1", "body": "Call back", "contactId": "contact_1"},
        },
        "wh_2",
    )
    await processor.handle(
        "NoteCreate",
        {"locationId": "loc_1", "id": "note_2", "body": "Sent quote", "contactId": "contact_1"},
        "wh_3",
    )

    notes = sorted(await load_all(db_session, Note), key=lambda note: note.external_id)
    assert [(note.external_id, note.body) for note in notes] == [
        ("note_1", "Call back"),
        ("note_2", "Sent quote"),
    ]
    assert all(note.contact_external_id == "contact_1" for note in notes)

    [contact] = await load_contacts(db_session)
    assert contact.last_activity_type == "note_added"
    assert contact.last_activity_at is not None


@pytest.mark.asyncio
async def test_note_update_and_delete(db_session: AsyncSession):
    processor = ContactsProcessor(db_session)
    await processor.handle(
        "NoteCreate", {"locationId": "loc_1", "id": "note_1", "body": "Draft"}, "wh_1"
    )

    await processor.handle(
        "NoteUpdate", {"locationId": "loc_1", "id": "note_1", "body": "Final"}, "wh_2"
    )
    [note] = await load_all(db_session, Note)
    assert note.body == "Final"
    assert note.last_webhook_id == "wh_2"

    await processor.handle("NoteDelete", {"locationId": "loc_1", "id": "note_1"}, "wh_3")
    [note] = await load_all(db_session, Note)
    assert note.deleted is True
    assert note.deleted_at is not None


@pytest.mark.asyncio
async def test_note_update_creates_unknown_note(db_session: AsyncSession):
    processor = ContactsProcessor(db_session)

    await processor.handle(
        "NoteUpdate", {"locationId": "loc_1", "note": {"id": "note_7", "body": "Late"}}, "wh_1"
    )

    [note] = await load_all(db_session, Note)
    assert note.external_id == "note_7"
    assert note.body == "Late"


@pytest.mark.asyncio
async def test_note_without_id_raises_correlation_error(db_session: AsyncSession):
    processor = ContactsProcessor(db_session)

    with pytest.raises(MissingCorrelationError) as exc_info:
        await processor.handle("NoteCreate", {"locationId": "loc_1", "note": {"body": "x"}}, "wh_1")

    assert exc_info.value.field == "id"
    assert await load_all(db_session, Note) == []


@pytest.mark.asyncio
async def test_task_lifecycle(db_session: AsyncSession):
    processor = ContactsProcessor(db_session)
    await processor.handle("ContactCreate", contact_payload(), "wh_1")

    await processor.handle(
        "TaskCreate",
        {
            "locationId": "loc_1",
            "task": {
                "id": "task_1",
                "title": "Send contract",
                "contactId": "contact_1",
                "dueDate": "2026-10-20T15:00:00Z",
                "assignedTo": "user_1",
            },
        },
        "wh_2",
    )
    [task] = await load_all(db_session, Task)
    assert task.title == "Send contract"
    assert task.status == "pending"
    assert task.due_date is not None
    assert task.completed_at is None
    [contact] = await load_contacts(db_session)
    assert contact.last_activity_type == "task_created"

    await processor.handle("TaskComplete", {"locationId": "loc_1", "id": "task_1"}, "wh_3")
    [task] = await load_all(db_session, Task)
    assert task.status == "completed"
    assert task.completed_at is not None
    assert task.title == "Send contract"

    await processor.handle("TaskDelete", {"locationId": "loc_1", "id": "task_1"}, "wh_4")
    [task] = await load_all(db_session, Task)
    assert task.deleted is True


@pytest.mark.asyncio
async def test_task_complete_creates_unknown_task(db_session: AsyncSession):
    processor = ContactsProcessor(db_session)

    await processor.handle(
        "TaskComplete",
        {"locationId": "loc_1", "task": {"id": "task_9", "contactId": "contact_1"}},
        "wh_1",
    )

    [task] = await load_all(db_session, Task)
    assert task.external_id == "task_9"
    assert task.status == "completed"
    assert task.title == "Task"
    assert task.contact_external_id == "contact_1"


@pytest.mark.asyncio
async def test_task_delete_of_unknown_task_is_noop(db_session: AsyncSession):
    processor = ContactsProcessor(db_session)

    await processor.handle("TaskDelete", {"locationId": "loc_1", "id": "ghost"}, "wh_1")

    assert await load_all(db_session, Task) == []
