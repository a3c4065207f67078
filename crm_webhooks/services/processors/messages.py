"""Message events: inbound/outbound messages, unread counters and email stats."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crm_webhooks.core.time_utils import parse_datetime_or_none, utcnow
from crm_webhooks.db.models.contact import Contact
from crm_webhooks.db.models.conversation import Conversation
from crm_webhooks.db.models.message import Message, MessageDirection
from crm_webhooks.db.upsert import insert_for
from crm_webhooks.schemas.events import MessageEvent
from crm_webhooks.services.processors.base import (
    EventHandler,
    TypeProcessor,
    add_timeline_entry,
    find_active_project,
    find_contact_id,
    require,
)
from crm_webhooks.services.processors.contacts import full_name

logger = logging.getLogger(__name__)

MESSAGE_TYPE_NAMES = {
    1: "SMS",
    2: "Call",
    3: "Email",
    4: "WhatsApp",
    5: "GMB",
    6: "FB",
    7: "IG",
}

CONVERSATION_TYPES = {
    1: "TYPE_PHONE",
    3: "TYPE_EMAIL",
    4: "TYPE_WHATSAPP",
    5: "TYPE_GMB",
    6: "TYPE_FB",
    7: "TYPE_IG",
}
DEFAULT_CONVERSATION_TYPE = "TYPE_OTHER"

# The flat payload shape names message types instead of numbering them.
MESSAGE_TYPE_ALIASES = {
    "SMS": 1,
    "TYPE_SMS": 1,
    "CALL": 2,
    "TYPE_CALL": 2,
    "EMAIL": 3,
    "TYPE_EMAIL": 3,
    "WHATSAPP": 4,
    "TYPE_WHATSAPP": 4,
    "GMB": 5,
    "TYPE_GMB": 5,
    "FB": 6,
    "FACEBOOK": 6,
    "TYPE_FACEBOOK": 6,
    "IG": 7,
    "INSTAGRAM": 7,
    "TYPE_INSTAGRAM": 7,
}

LAST_MESSAGE_PREVIEW_LENGTH = 200


def message_type_code(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
        return MESSAGE_TYPE_ALIASES.get(text.upper())
    return None


def email_message_id(message: dict[str, Any], payload: dict[str, Any]) -> str | None:
    meta = message.get("meta") if isinstance(message.get("meta"), dict) else {}
    email_meta = meta.get("email") if isinstance(meta.get("email"), dict) else {}
    message_ids = email_meta.get("messageIds") or []
    if message_ids:
        return str(message_ids[0])
    value = message.get("emailMessageId") or payload.get("emailMessageId")
    return str(value) if value else None


@dataclass
class MessageWriteResult:
    message_id: UUID | None
    conversation_id: UUID
    inserted: bool
    project_id: UUID | None = None


class MessageWriter:
    """The message write shared by the queued processor and the direct fast path.

    The message row is inserted with ``ON CONFLICT DO NOTHING`` and the
    conversation counters, project link and timeline entry are only applied
    when that insert actually created the row, so running the same event
    through both paths leaves the same state as running it once. The caller
    owns the transaction.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def find_contact_id(self, location_id: str, contact_external_id: str) -> UUID | None:
        return await find_contact_id(self.db, location_id, contact_external_id)

    async def ensure_contact(
        self, location_id: str, contact_external_id: str, payload: dict[str, Any], webhook_id: str
    ) -> UUID:
        """Return the contact id, creating a minimal contact from the payload if unknown."""
        contact_id = await self.find_contact_id(location_id, contact_external_id)
        if contact_id is not None:
            return contact_id

        logger.info(f"Creating contact {contact_external_id} from message webhook {webhook_id}")
        now = utcnow()
        stmt = insert_for(self.db, Contact).values(
            location_id=location_id,
            external_id=contact_external_id,
            first_name=payload.get("firstName") or "",
            last_name=payload.get("lastName") or "",
            full_name=full_name(payload.get("firstName"), payload.get("lastName")),
            email=payload.get("email") or None,
            phone=payload.get("phone") or None,
            source="message_webhook",
            last_webhook_id=webhook_id,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["location_id", "external_id"], set_={"updated_at": now}
        ).returning(Contact.id)
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def _conversation_id(
        self,
        location_id: str,
        conversation_external_id: str,
        contact_external_id: str | None,
        contact_id: UUID | None,
        conversation_type: str,
    ) -> UUID:
        now = utcnow()
        refresh: dict[str, Any] = {"updated_at": now}
        if contact_id is not None:
            refresh["contact_id"] = contact_id

        stmt = insert_for(self.db, Conversation).values(
            location_id=location_id,
            external_id=conversation_external_id,
            contact_external_id=contact_external_id,
            contact_id=contact_id,
            type=conversation_type,
            unread_count=0,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["location_id", "external_id"], set_=refresh
        ).returning(Conversation.id)
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def write(
        self,
        event_type: str,
        payload: dict[str, Any],
        webhook_id: str,
        direction: MessageDirection,
        processed_by: str,
        contact_id: UUID | None,
    ) -> MessageWriteResult:
        """
        Record one inbound or outbound message.

        Args:
            event_type: InboundMessage or OutboundMessage
            payload: Canonical payload
            webhook_id: Webhook id
            direction: Message direction
            processed_by: "queue" or "direct"
            contact_id: Local contact id, if known

        Returns:
            MessageWriteResult; ``inserted`` is False when the message already existed

        Raises:
            MissingCorrelationError: If location, conversation or message ids are missing
        """
        location_id = str(require(payload, event_type, "locationId"))
        conversation_external_id = str(require(payload, event_type, "conversationId"))
        message = payload.get("message") if isinstance(payload.get("message"), dict) else {}
        message_ids = {"messageId": message.get("id") or payload.get("messageId")}
        message_external_id = str(require(message_ids, event_type, "messageId"))
        contact_external_id = payload.get("contactId")

        type_code = message_type_code(message.get("type", payload.get("messageType")))
        type_name = MESSAGE_TYPE_NAMES.get(type_code, str(message.get("type") or "Other"))
        conversation_type = CONVERSATION_TYPES.get(type_code, DEFAULT_CONVERSATION_TYPE)
        sent_at = (
            parse_datetime_or_none(message.get("dateAdded"))
            or parse_datetime_or_none(payload.get("timestamp"))
            or utcnow()
        )
        body = message.get("body") or payload.get("body") or ""
        inbound = direction is MessageDirection.INBOUND

        conversation_id = await self._conversation_id(
            location_id,
            conversation_external_id,
            contact_external_id,
            contact_id,
            conversation_type,
        )

        stmt = (
            insert_for(self.db, Message)
            .values(
                location_id=location_id,
                external_id=message_external_id,
                conversation_id=conversation_id,
                contact_external_id=contact_external_id,
                contact_id=contact_id,
                direction=direction.value,
                message_type=type_code,
                type_name=type_name,
                body=body,
                subject=message.get("subject"),
                status=message.get("status") or ("received" if inbound else "sent"),
                attachments=message.get("attachments") or [],
                read=not inbound,
                email_message_id=email_message_id(message, payload),
                email_events={},
                processed_by=processed_by,
                webhook_id=webhook_id,
                date_added=sent_at,
                created_at=utcnow(),
                updated_at=utcnow(),
            )
            .on_conflict_do_nothing(index_elements=["location_id", "external_id"])
            .returning(Message.id)
        )
        result = await self.db.execute(stmt)
        message_id = result.scalar_one_or_none()

        if message_id is None:
            logger.info(
                f"Message {message_external_id} already recorded, skipping side effects "
                f"webhook={webhook_id} path={processed_by}"
            )
            return MessageWriteResult(
                message_id=None, conversation_id=conversation_id, inserted=False
            )

        conversation_values: dict[str, Any] = {
            "last_message_at": sent_at,
            "last_message_body": body[:LAST_MESSAGE_PREVIEW_LENGTH],
            "last_message_type": type_name,
            "last_message_direction": direction.value,
            "updated_at": utcnow(),
        }
        if inbound:
            conversation_values["unread_count"] = Conversation.unread_count + 1
        else:
            conversation_values["last_outbound_at"] = sent_at

        await self.db.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(**conversation_values)
            .execution_options(synchronize_session=False)
        )

        project_id = await self._link_project(
            location_id, contact_external_id, message_id, message_external_id, direction, type_name
        )

        return MessageWriteResult(
            message_id=message_id,
            conversation_id=conversation_id,
            inserted=True,
            project_id=project_id,
        )

    async def _link_project(
        self,
        location_id: str,
        contact_external_id: str | None,
        message_id: UUID,
        message_external_id: str,
        direction: MessageDirection,
        type_name: str,
    ) -> UUID | None:
        project = await find_active_project(self.db, location_id, contact_external_id)
        if project is None:
            return None

        await self.db.execute(
            update(Message)
            .where(Message.id == message_id)
            .values(project_id=project.id)
            .execution_options(synchronize_session=False)
        )
        add_timeline_entry(
            project,
            {
                "id": f"message:{message_external_id}",
                "event": f"{direction.value}_message",
                "description": f"{direction.value.capitalize()} {type_name} message",
            },
        )
        return project.id


class MessagesProcessor(TypeProcessor):
    name = "messages"
    events = MessageEvent

    def __init__(self, db_session: AsyncSession, slow_event_seconds: float = 2.0):
        self.writer = MessageWriter(db_session)
        super().__init__(db_session, slow_event_seconds)

    def build_handlers(self) -> dict[Enum, EventHandler]:
        return {
            MessageEvent.INBOUND_MESSAGE: self.inbound_message,
            MessageEvent.OUTBOUND_MESSAGE: self.outbound_message,
            MessageEvent.CONVERSATION_UNREAD_UPDATE: self.conversation_unread_update,
            MessageEvent.EMAIL_STATS: self.email_stats,
        }

    async def inbound_message(self, payload: dict[str, Any], webhook_id: str) -> None:
        event_type = MessageEvent.INBOUND_MESSAGE.value
        location_id = str(require(payload, event_type, "locationId"))
        contact_external_id = str(require(payload, event_type, "contactId"))

        contact_id = await self.writer.ensure_contact(
            location_id, contact_external_id, payload, webhook_id
        )
        await self.writer.write(
            event_type, payload, webhook_id, MessageDirection.INBOUND, "queue", contact_id
        )

    async def outbound_message(self, payload: dict[str, Any], webhook_id: str) -> None:
        event_type = MessageEvent.OUTBOUND_MESSAGE.value
        location_id = str(require(payload, event_type, "locationId"))
        contact_external_id = payload.get("contactId")

        contact_id = None
        if contact_external_id:
            contact_id = await self.writer.find_contact_id(location_id, str(contact_external_id))
        await self.writer.write(
            event_type, payload, webhook_id, MessageDirection.OUTBOUND, "queue", contact_id
        )

    async def conversation_unread_update(self, payload: dict[str, Any], webhook_id: str) -> None:
        event_type = MessageEvent.CONVERSATION_UNREAD_UPDATE.value
        location_id = str(require(payload, event_type, "locationId"))
        conversation_external_id = str(require(payload, event_type, "conversationId", "id"))
        unread_count = max(int(payload.get("unreadCount") or 0), 0)

        await self.upsert(
            Conversation,
            key={"location_id": location_id, "external_id": conversation_external_id},
            values={"unread_count": unread_count},
            insert_only={
                "contact_external_id": payload.get("contactId"),
                "type": DEFAULT_CONVERSATION_TYPE,
            },
        )

    async def email_stats(self, payload: dict[str, Any], webhook_id: str) -> None:
        event_type = MessageEvent.EMAIL_STATS.value
        location_id = str(require(payload, event_type, "locationId"))
        email_id = str(require(payload, event_type, "id", "emailMessageId"))
        event = str(require(payload, event_type, "event"))
        occurred_at = parse_datetime_or_none(payload.get("timestamp")) or utcnow()

        result = await self.db.execute(
            select(Message)
            .where(Message.location_id == location_id, Message.email_message_id == email_id)
            .execution_options(populate_existing=True)
        )
        messages = list(result.scalars())
        if not messages:
            logger.info(f"No message with email id {email_id} for {event} stats, nothing to do")
            return

        for message in messages:
            message.email_status = event
            message.email_events = {**(message.email_events or {}), event: occurred_at.isoformat()}
