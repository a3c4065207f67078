"""Folds the CRM's payload shapes into one canonical WebhookEnvelope.

The CRM delivers some events wrapped (``{"type": ..., "webhookPayload": {...}}``)
and others flat, and message events either carry a nested ``message`` object or
spread its fields over the top level. Nothing downstream of this module looks at
the raw shape.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import uuid4

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.schemas.webhook import WebhookEnvelope

logger = logging.getLogger(__name__)

UNKNOWN_EVENT_TYPE = "unknown"

# Flat top-level field -> key inside the canonical ``message`` object.
FLAT_MESSAGE_FIELDS = {
    "messageId": "id",
    "messageType": "type",
    "body": "body",
    "direction": "direction",
    "status": "status",
    "attachments": "attachments",
    "subject": "subject",
    "contentType": "contentType",
    "dateAdded": "dateAdded",
    "emailMessageId": "emailMessageId",
}


def _unwrap(body: dict[str, Any]) -> dict[str, Any]:
    nested = body.get("webhookPayload")
    if not isinstance(nested, dict):
        return dict(body)

    payload = dict(nested)
    for key, value in body.items():
        if key != "webhookPayload" and key not in payload:
            payload[key] = value
    return payload


def _fold_message(payload: dict[str, Any]) -> dict[str, Any]:
    if isinstance(payload.get("message"), dict):
        return payload

    message = {
        target: payload[source]
        for source, target in FLAT_MESSAGE_FIELDS.items()
        if source in payload
    }
    if "messageType" in payload or "messageId" in payload:
        payload["message"] = message
    return payload


def infer_event_type(payload: dict[str, Any]) -> str:
    """Best-effort event type for payloads that arrive without ``type``."""
    if payload.get("appointment"):
        return "AppointmentCreate"
    if payload.get("contact"):
        return "ContactUpdate"
    if payload.get("message") and payload.get("direction") in ("inbound", "outbound"):
        return "InboundMessage" if payload["direction"] == "inbound" else "OutboundMessage"
    if payload.get("invoice"):
        return "InvoiceUpdate"
    if payload.get("opportunity"):
        return "OpportunityUpdate"
    if payload.get("installType"):
        return "INSTALL"
    if payload.get("uninstallReason"):
        return "UNINSTALL"
    return UNKNOWN_EVENT_TYPE


def _location_id(payload: dict[str, Any]) -> str | None:
    location = payload.get("location")
    if isinstance(location, dict) and location.get("id"):
        return str(location["id"])
    value = payload.get("locationId") or payload.get("location_id")
    return str(value) if value else None


def normalize_webhook(body: Any, received_at: datetime | None = None) -> WebhookEnvelope:
    """
    Build the canonical envelope from a decoded request body.

    Args:
        body: Decoded JSON body
        received_at: Receive time, defaults to now

    Returns:
        Immutable WebhookEnvelope

    Raises:
        ValueError: If the body is not a JSON object
    """
    if not isinstance(body, dict):
        raise ValueError(f"Webhook body must be a JSON object, got {type(body).__name__}")

    payload = _fold_message(_unwrap(body))

    event_type = payload.get("type")
    if not isinstance(event_type, str) or not event_type:
        event_type = infer_event_type(payload)
        logger.debug(f"Inferred webhook type {event_type}")

    webhook_id = body.get("webhookId") or payload.get("webhookId") or uuid4().hex
    company_id = payload.get("companyId")

    return WebhookEnvelope(
        webhook_id=str(webhook_id),
        event_type=event_type,
        received_at=received_at or utcnow(),
        payload=payload,
        location_id=_location_id(payload),
        company_id=str(company_id) if company_id else None,
        timestamp=payload.get("timestamp"),
    )
