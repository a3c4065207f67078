"""Short-window duplicate filter for webhook payloads.

This is a noise filter: the CRM occasionally fires the same change twice under
different webhook ids. Correctness against redelivery comes from the unique
``webhook_id`` on the queue, not from here.
"""

import hashlib
import json
import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.models.webhook_hash import DedupRecord
from crm_webhooks.db.upsert import insert_for

logger = logging.getLogger(__name__)

# Top-level fields that are either fingerprinted explicitly or plain contact
# attributes. Anything else goes into the catch-all bag so custom-field drift
# produces a new fingerprint.
KNOWN_FIELDS = frozenset(
    {
        "first_name", "last_name", "full_name", "email", "phone", "tags",
        "address1", "city", "state", "country", "timezone", "date_created",
        "postal_code", "company_name", "website", "date_of_birth",
        "contact_source", "full_address", "contact_type", "gclid",
        "location", "opportunity_name", "status", "lead_value",
        "opportunity_source", "source", "pipeline_stage", "pipeline_id",
        "id", "pipeline_name", "campaign", "user", "calendar", "order",
        "invoice", "task", "note", "message", "workflow", "contact_id",
        "contactId", "opportunity_id", "date_modified",
    }
)  # fmt: skip


def _content_hash(text: Any) -> str:
    return hashlib.sha256(str(text).encode()).hexdigest()


def _nested(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key)
    return value if isinstance(value, dict) else {}


def fingerprint_payload(payload: dict[str, Any]) -> str:
    """Stable SHA-256 fingerprint of the identifying fields of a payload."""
    components: list[Any] = []

    entity_id = payload.get("contact_id") or payload.get("contactId") or payload.get("id")
    if entity_id:
        components.append(entity_id)
    if payload.get("email"):
        components.append(payload["email"])

    location = _nested(payload, "location")
    if location.get("id"):
        components.append(location["id"])

    calendar = _nested(payload, "calendar")
    if calendar.get("appointmentId"):
        components.append(calendar["appointmentId"])
        components.append(calendar.get("status") or calendar.get("appointmentStatus") or "")

    if payload.get("opportunity_id") or payload.get("opportunity_name"):
        components.append(payload.get("opportunity_id") or "")
        components.append(payload.get("opportunity_name") or "")
        components.append(payload.get("status") or "")
        components.append(payload.get("pipeline_stage") or "")

    order = _nested(payload, "order")
    if order.get("id"):
        components.append(order["id"])

    invoice = _nested(payload, "invoice")
    if invoice.get("id"):
        components.append(invoice["id"])
        components.append(invoice.get("status") or "")

    message = _nested(payload, "message")
    if message:
        components.append(message.get("type") or "")
        components.append(message.get("direction") or "")
        if message.get("body"):
            components.append(_content_hash(message["body"]))

    task = _nested(payload, "task")
    if task:
        components.append(task.get("title") or "")
        components.append(task.get("dueDate") or "")

    note = _nested(payload, "note")
    if note.get("body"):
        components.append(_content_hash(note["body"]))

    for key in ("date_created", "date_modified"):
        if payload.get(key):
            components.append(payload[key])

    for key in ("campaign", "workflow"):
        nested = _nested(payload, key)
        if nested.get("id"):
            components.append(nested["id"])

    unknown = {key: value for key, value in payload.items() if key not in KNOWN_FIELDS}
    if unknown:
        components.append(json.dumps(unknown, sort_keys=True, default=str, separators=(",", ":")))

    key = "|".join(str(component) for component in components if component)
    return hashlib.sha256(key.encode()).hexdigest()


def is_test_payload(payload: dict[str, Any]) -> bool:
    """Deliveries the CRM flags as tests are acknowledged but never processed."""
    return bool(payload.get("test") or payload.get("is_test"))


class DedupFilter:
    """Flags payloads whose fingerprint was seen within the dedup window."""

    def __init__(
        self,
        db_session: AsyncSession,
        window_seconds: int = 60,
        record_ttl_seconds: int = 300,
    ):
        self.db = db_session
        self.window = timedelta(seconds=window_seconds)
        self.record_ttl = timedelta(seconds=record_ttl_seconds)

    async def is_duplicate(self, payload: dict[str, Any]) -> bool:
        """
        Check a payload against recent fingerprints and refresh its record.

        The record is rewritten whether or not the payload is a duplicate, which
        slides the detection window forward on every sighting.

        Args:
            payload: Canonical payload from the envelope

        Returns:
            True if the same fingerprint was recorded within the window
        """
        fingerprint = fingerprint_payload(payload)
        now = utcnow()

        result = await self.db.execute(
            select(DedupRecord.id).where(
                DedupRecord.hash == fingerprint,
                DedupRecord.created_at >= now - self.window,
            )
        )
        duplicate = result.first() is not None

        stmt = insert_for(self.db, DedupRecord).values(
            hash=fingerprint, created_at=now, expire_at=now + self.record_ttl
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[DedupRecord.hash],
            set_={"created_at": now, "expire_at": now + self.record_ttl},
        )
        await self.db.execute(stmt)
        await self.db.commit()

        if duplicate:
            logger.info(f"Duplicate payload fingerprint {fingerprint[:12]} within dedup window")
        return duplicate

    async def purge_expired(self) -> int:
        """Delete records past their expiry. Returns the number removed."""
        result = await self.db.execute(delete(DedupRecord).where(DedupRecord.expire_at <= utcnow()))
        await self.db.commit()
        return result.rowcount or 0
