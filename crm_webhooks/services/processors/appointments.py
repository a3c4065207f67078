"""Appointment events: upsert with project timeline stamping, update, soft delete."""

import logging
from enum import Enum
from typing import Any

from sqlalchemy import update

from crm_webhooks.core.time_utils import parse_datetime_or_none, utcnow
from crm_webhooks.db.models.appointment import Appointment
from crm_webhooks.schemas.events import AppointmentEvent
from crm_webhooks.services.processors.base import (
    EventHandler,
    TypeProcessor,
    add_timeline_entry,
    find_active_project,
    find_contact_id,
    present,
    require,
)
from crm_webhooks.services.webhooks.errors import MissingCorrelationError

logger = logging.getLogger(__name__)

APPOINTMENT_FIELDS = {
    "title": "title",
    "appointmentStatus": "status",
    "assignedUserId": "assigned_user_id",
    "notes": "notes",
    "address": "address",
    "calendarId": "calendar_id",
}


class AppointmentsProcessor(TypeProcessor):
    name = "appointments"
    events = AppointmentEvent

    def build_handlers(self) -> dict[Enum, EventHandler]:
        return {
            AppointmentEvent.APPOINTMENT_CREATE: self.appointment_create,
            AppointmentEvent.APPOINTMENT_UPDATE: self.appointment_update,
            AppointmentEvent.APPOINTMENT_DELETE: self.appointment_delete,
        }

    @staticmethod
    def _unpack(payload: dict[str, Any], event_type: str) -> tuple[str, dict[str, Any], str]:
        location_id = str(require(payload, event_type, "locationId"))
        appointment = payload.get("appointment")
        if not isinstance(appointment, dict):
            raise MissingCorrelationError(event_type, "appointment")
        appointment_id = str(require(appointment, event_type, "id"))
        return location_id, appointment, appointment_id

    async def appointment_create(self, payload: dict[str, Any], webhook_id: str) -> None:
        event_type = AppointmentEvent.APPOINTMENT_CREATE.value
        location_id, appointment, appointment_id = self._unpack(payload, event_type)
        contact_external_id = appointment.get("contactId")
        title = appointment.get("title") or "Appointment"

        await self.upsert(
            Appointment,
            key={"location_id": location_id, "external_id": appointment_id},
            values={
                "calendar_id": appointment.get("calendarId"),
                "contact_external_id": contact_external_id,
                "contact_id": await find_contact_id(self.db, location_id, contact_external_id),
                "title": title,
                "status": appointment.get("appointmentStatus") or appointment.get("status"),
                "assigned_user_id": appointment.get("assignedUserId"),
                "start_time": parse_datetime_or_none(appointment.get("startTime")),
                "end_time": parse_datetime_or_none(appointment.get("endTime")),
                "notes": appointment.get("notes") or "",
                "address": appointment.get("address") or "",
                "deleted": False,
                "deleted_at": None,
                "last_webhook_id": webhook_id,
            },
        )

        project = await find_active_project(self.db, location_id, contact_external_id)
        if project is not None:
            add_timeline_entry(
                project,
                {
                    "id": f"appointment:{appointment_id}",
                    "event": "appointment_scheduled",
                    "description": f"{title} scheduled",
                    "metadata": {
                        "appointmentId": appointment_id,
                        "startTime": appointment.get("startTime"),
                        "webhookId": webhook_id,
                    },
                },
            )
        logger.info(f"Upserted appointment {appointment_id} location={location_id}")

    async def appointment_update(self, payload: dict[str, Any], webhook_id: str) -> None:
        event_type = AppointmentEvent.APPOINTMENT_UPDATE.value
        location_id, appointment, appointment_id = self._unpack(payload, event_type)

        existing = await self.get_by_key(Appointment, location_id, appointment_id)
        if existing is None:
            logger.info(f"Appointment {appointment_id} not found for update, creating it")
            await self.appointment_create(payload, webhook_id)
            return

        for column, value in present(appointment, APPOINTMENT_FIELDS).items():
            setattr(existing, column, value)
        if appointment.get("startTime"):
            existing.start_time = parse_datetime_or_none(appointment["startTime"])
        if appointment.get("endTime"):
            existing.end_time = parse_datetime_or_none(appointment["endTime"])
        existing.last_webhook_id = webhook_id

    async def appointment_delete(self, payload: dict[str, Any], webhook_id: str) -> None:
        event_type = AppointmentEvent.APPOINTMENT_DELETE.value
        location_id, _, appointment_id = self._unpack(payload, event_type)

        result = await self.db.execute(
            update(Appointment)
            .where(
                Appointment.location_id == location_id,
                Appointment.external_id == appointment_id,
            )
            .values(
                deleted=True,
                deleted_at=utcnow(),
                status="cancelled",
                last_webhook_id=webhook_id,
            )
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            logger.info(f"Appointment {appointment_id} not found for delete, nothing to do")
