"""Contact events, plus the notes and tasks attached to a contact."""

import logging
from enum import Enum
from typing import Any

from sqlalchemy import update

from crm_webhooks.core.time_utils import parse_datetime_or_none, utcnow
from crm_webhooks.db.models.contact import Contact
from crm_webhooks.db.models.note import Note
from crm_webhooks.db.models.task import Task, TaskStatus
from crm_webhooks.schemas.events import ContactEvent
from crm_webhooks.services.processors.base import EventHandler, TypeProcessor, present, require

logger = logging.getLogger(__name__)

# Payload key -> Contact column, for fields copied verbatim.
CONTACT_FIELDS = {
    "email": "email",
    "phone": "phone",
    "firstName": "first_name",
    "lastName": "last_name",
    "companyName": "company_name",
    "address1": "address1",
    "city": "city",
    "state": "state",
    "postalCode": "postal_code",
    "country": "country",
    "website": "website",
    "timezone": "timezone",
    "source": "source",
    "contactType": "contact_type",
    "assignedTo": "assigned_to",
    "tags": "tags",
    "customFields": "custom_fields",
    "dnd": "dnd",
    "dndSettings": "dnd_settings",
}


def full_name(first_name: str | None, last_name: str | None) -> str:
    return f"{first_name or ''} {last_name or ''}".strip() or "Unknown"


def nested_or_flat(payload: dict[str, Any], key: str) -> dict[str, Any]:
    """Notes and tasks arrive either nested under ``key`` or spread over the top level."""
    nested = payload.get(key)
    return nested if isinstance(nested, dict) else payload


class ContactsProcessor(TypeProcessor):
    name = "contacts"
    events = ContactEvent

    def build_handlers(self) -> dict[Enum, EventHandler]:
        return {
            ContactEvent.CONTACT_CREATE: self.contact_create,
            ContactEvent.CONTACT_UPDATE: self.contact_update,
            ContactEvent.CONTACT_DELETE: self.contact_delete,
            ContactEvent.CONTACT_DND_UPDATE: self.contact_dnd_update,
            ContactEvent.CONTACT_TAG_UPDATE: self.contact_tag_update,
            ContactEvent.NOTE_CREATE: self.note_create,
            ContactEvent.NOTE_UPDATE: self.note_update,
            ContactEvent.NOTE_DELETE: self.note_delete,
            ContactEvent.TASK_CREATE: self.task_create,
            ContactEvent.TASK_COMPLETE: self.task_complete,
            ContactEvent.TASK_DELETE: self.task_delete,
        }

    @staticmethod
    def _ids(payload: dict[str, Any], event_type: str) -> tuple[str, str]:
        location_id = require(payload, event_type, "locationId")
        contact_id = require(payload, event_type, "id", "contactId")
        return str(location_id), str(contact_id)

    def _full_record(self, payload: dict[str, Any], webhook_id: str) -> dict[str, Any]:
        values = {
            "email": payload.get("email") or None,
            "phone": payload.get("phone") or None,
            "first_name": payload.get("firstName") or "",
            "last_name": payload.get("lastName") or "",
            "full_name": full_name(payload.get("firstName"), payload.get("lastName")),
            "company_name": payload.get("companyName"),
            "address1": payload.get("address1"),
            "city": payload.get("city"),
            "state": payload.get("state"),
            "postal_code": payload.get("postalCode"),
            "country": payload.get("country"),
            "website": payload.get("website"),
            "timezone": payload.get("timezone"),
            "source": payload.get("source") or payload.get("contactSource") or "webhook",
            "contact_type": payload.get("contactType") or "lead",
            "assigned_to": payload.get("assignedTo"),
            "tags": payload.get("tags") or [],
            "custom_fields": payload.get("customFields") or [],
            "dnd": bool(payload.get("dnd", False)),
            "dnd_settings": payload.get("dndSettings") or {},
            "date_added": parse_datetime_or_none(payload.get("dateAdded")),
            "deleted": False,
            "deleted_at": None,
            "last_webhook_id": webhook_id,
        }
        return values

    async def contact_create(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id, contact_id = self._ids(payload, ContactEvent.CONTACT_CREATE.value)
        await self.upsert(
            Contact,
            key={"location_id": location_id, "external_id": contact_id},
            values=self._full_record(payload, webhook_id),
        )
        logger.info(f"Upserted contact {contact_id} location={location_id} webhook={webhook_id}")

    async def contact_update(self, payload: dict[str, Any], webhook_id: str) -> None:
        """Apply only the fields present in the payload; create the contact if unknown."""
        location_id, contact_id = self._ids(payload, ContactEvent.CONTACT_UPDATE.value)

        contact = await self.get_by_key(Contact, location_id, contact_id)
        if contact is None:
            logger.info(f"Contact {contact_id} not found for update, creating it")
            await self.contact_create(payload, webhook_id)
            return

        for column, value in present(payload, CONTACT_FIELDS).items():
            setattr(contact, column, value)
        if "firstName" in payload or "lastName" in payload:
            contact.full_name = full_name(
                payload.get("firstName", contact.first_name),
                payload.get("lastName", contact.last_name),
            )
        contact.last_webhook_id = webhook_id

    async def contact_delete(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id, contact_id = self._ids(payload, ContactEvent.CONTACT_DELETE.value)
        result = await self.db.execute(
            update(Contact)
            .where(Contact.location_id == location_id, Contact.external_id == contact_id)
            .values(deleted=True, deleted_at=utcnow(), last_webhook_id=webhook_id)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            logger.info(f"Contact {contact_id} not found for delete, nothing to do")

    async def contact_dnd_update(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id, contact_id = self._ids(payload, ContactEvent.CONTACT_DND_UPDATE.value)
        values = {
            "dnd": bool(payload.get("dnd", False)),
            "dnd_settings": payload.get("dndSettings") or {},
            "last_webhook_id": webhook_id,
        }
        await self.upsert(
            Contact,
            key={"location_id": location_id, "external_id": contact_id},
            values=values,
            insert_only={"full_name": full_name(payload.get("firstName"), payload.get("lastName"))},
        )

    async def contact_tag_update(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id, contact_id = self._ids(payload, ContactEvent.CONTACT_TAG_UPDATE.value)
        await self.upsert(
            Contact,
            key={"location_id": location_id, "external_id": contact_id},
            values={"tags": payload.get("tags") or [], "last_webhook_id": webhook_id},
            insert_only={"full_name": full_name(payload.get("firstName"), payload.get("lastName"))},
        )

    async def _touch_contact(
        self, location_id: str, contact_external_id: str | None, activity: str
    ) -> None:
        if not contact_external_id:
            return
        await self.db.execute(
            update(Contact)
            .where(
                Contact.location_id == location_id,
                Contact.external_id == str(contact_external_id),
            )
            .values(last_activity_at=utcnow(), last_activity_type=activity)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def _item_ids(
        payload: dict[str, Any], key: str, event_type: str
    ) -> tuple[str, dict[str, Any], str]:
        location_id = str(require(payload, event_type, "locationId"))
        item = nested_or_flat(payload, key)
        item_id = str(require(item, event_type, "id"))
        return location_id, item, item_id

    async def note_create(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id, note, note_id = self._item_ids(
            payload, "note", ContactEvent.NOTE_CREATE.value
        )
        contact_external_id = note.get("contactId") or payload.get("contactId")

        await self.upsert(
            Note,
            key={"location_id": location_id, "external_id": note_id},
            values={
                "contact_external_id": contact_external_id,
                "opportunity_id": note.get("opportunityId"),
                "body": note.get("body") or "",
                "created_by": note.get("userId"),
                "deleted": False,
                "deleted_at": None,
                "last_webhook_id": webhook_id,
            },
        )
        await self._touch_contact(location_id, contact_external_id, "note_added")

    async def note_update(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id, note, note_id = self._item_ids(
            payload, "note", ContactEvent.NOTE_UPDATE.value
        )
        existing = await self.get_by_key(Note, location_id, note_id)
        if existing is None:
            logger.info(f"Note {note_id} not found for update, creating it")
            await self.note_create(payload, webhook_id)
            return

        if "body" in note:
            existing.body = note["body"] or ""
        existing.last_webhook_id = webhook_id

    async def note_delete(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id, _, note_id = self._item_ids(payload, "note", ContactEvent.NOTE_DELETE.value)
        await self._soft_delete(Note, location_id, note_id, webhook_id)

    async def task_create(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id, task, task_id = self._item_ids(
            payload, "task", ContactEvent.TASK_CREATE.value
        )
        contact_external_id = task.get("contactId") or payload.get("contactId")
        completed = bool(task.get("completed"))

        await self.upsert(
            Task,
            key={"location_id": location_id, "external_id": task_id},
            values={
                "contact_external_id": contact_external_id,
                "title": task.get("title") or "Task",
                "description": task.get("description") or "",
                "due_date": parse_datetime_or_none(task.get("dueDate")),
                "assigned_to": task.get("assignedTo"),
                "status": (TaskStatus.COMPLETED if completed else TaskStatus.PENDING).value,
                "priority": task.get("priority") or "normal",
                "completed_at": utcnow() if completed else None,
                "deleted": False,
                "deleted_at": None,
                "last_webhook_id": webhook_id,
            },
        )
        await self._touch_contact(location_id, contact_external_id, "task_created")

    async def task_complete(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id, task, task_id = self._item_ids(
            payload, "task", ContactEvent.TASK_COMPLETE.value
        )
        await self.upsert(
            Task,
            key={"location_id": location_id, "external_id": task_id},
            values={
                "status": TaskStatus.COMPLETED.value,
                "completed_at": utcnow(),
                "last_webhook_id": webhook_id,
            },
            insert_only={
                "title": task.get("title") or "Task",
                "contact_external_id": task.get("contactId") or payload.get("contactId"),
            },
        )

    async def task_delete(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id, _, task_id = self._item_ids(payload, "task", ContactEvent.TASK_DELETE.value)
        await self._soft_delete(Task, location_id, task_id, webhook_id)

    async def _soft_delete(
        self, model: Any, location_id: str, external_id: str, webhook_id: str
    ) -> None:
        result = await self.db.execute(
            update(model)
            .where(model.location_id == location_id, model.external_id == external_id)
            .values(deleted=True, deleted_at=utcnow(), last_webhook_id=webhook_id)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            logger.info(f"{model.__name__} {external_id} not found for delete, nothing to do")
