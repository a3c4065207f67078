"""Opportunity events mirrored onto projects, plus location profile events."""

import logging
from enum import Enum
from typing import Any

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.models.location import Location
from crm_webhooks.db.models.project import Project, ProjectStatus
from crm_webhooks.schemas.events import GeneralEvent
from crm_webhooks.services.processors.base import (
    EventHandler,
    TypeProcessor,
    add_timeline_entry,
    find_contact_id,
    require,
)
from crm_webhooks.services.webhooks.errors import MissingCorrelationError

logger = logging.getLogger(__name__)

CRM_PROJECT_STATUSES = {
    "open": ProjectStatus.OPEN.value,
    "won": ProjectStatus.WON.value,
    "lost": ProjectStatus.LOST.value,
    "abandoned": ProjectStatus.ABANDONED.value,
}

# Fields each narrow update event is allowed to touch.
OPPORTUNITY_UPDATE_FIELDS = {
    GeneralEvent.OPPORTUNITY_STAGE_UPDATE: ("pipelineStageId",),
    GeneralEvent.OPPORTUNITY_STATUS_UPDATE: ("status",),
    GeneralEvent.OPPORTUNITY_MONETARY_VALUE_UPDATE: ("monetaryValue",),
    GeneralEvent.OPPORTUNITY_ASSIGNED_TO_UPDATE: ("assignedTo",),
    GeneralEvent.OPPORTUNITY_UPDATE: (
        "name",
        "status",
        "monetaryValue",
        "pipelineId",
        "pipelineStageId",
        "assignedTo",
    ),
}

LOCATION_FIELDS = {
    "name": "name",
    "email": "email",
    "timezone": "timezone",
    "companyId": "company_id",
}


def project_status(crm_status: str | None) -> str:
    return CRM_PROJECT_STATUSES.get((crm_status or "").lower(), ProjectStatus.OPEN.value)


def describe(event: GeneralEvent, opportunity: dict[str, Any]) -> str:
    if event is GeneralEvent.OPPORTUNITY_STAGE_UPDATE:
        return "Pipeline stage updated"
    if event is GeneralEvent.OPPORTUNITY_STATUS_UPDATE:
        return f"Status changed to {opportunity.get('status')}"
    if event is GeneralEvent.OPPORTUNITY_MONETARY_VALUE_UPDATE:
        return f"Value updated to {opportunity.get('monetaryValue') or 0}"
    if event is GeneralEvent.OPPORTUNITY_ASSIGNED_TO_UPDATE:
        return "Assigned to user"
    return "Opportunity updated"


class GeneralProcessor(TypeProcessor):
    name = "general"
    events = GeneralEvent

    def build_handlers(self) -> dict[Enum, EventHandler]:
        handlers: dict[Enum, EventHandler] = {
            GeneralEvent.OPPORTUNITY_CREATE: self.opportunity_create,
            GeneralEvent.OPPORTUNITY_DELETE: self.opportunity_delete,
            GeneralEvent.LOCATION_CREATE: self.location_upsert,
            GeneralEvent.LOCATION_UPDATE: self.location_upsert,
        }
        for event in OPPORTUNITY_UPDATE_FIELDS:
            handlers[event] = self._update_handler(event)
        return handlers

    @staticmethod
    def _unpack(payload: dict[str, Any], event_type: str) -> tuple[str, dict[str, Any], str]:
        location_id = str(require(payload, event_type, "locationId"))
        opportunity = payload.get("opportunity")
        if not isinstance(opportunity, dict):
            raise MissingCorrelationError(event_type, "opportunity")
        opportunity_id = str(require(opportunity, event_type, "id"))
        return location_id, opportunity, opportunity_id

    async def opportunity_create(self, payload: dict[str, Any], webhook_id: str) -> None:
        event_type = GeneralEvent.OPPORTUNITY_CREATE.value
        location_id, opportunity, opportunity_id = self._unpack(payload, event_type)
        await self._create_project(location_id, opportunity, opportunity_id, webhook_id)

    async def _create_project(
        self, location_id: str, opportunity: dict[str, Any], opportunity_id: str, webhook_id: str
    ) -> None:
        contact_external_id = opportunity.get("contactId")
        contact_id = await find_contact_id(self.db, location_id, contact_external_id)

        await self.upsert(
            Project,
            key={"location_id": location_id, "external_id": opportunity_id},
            values={
                "contact_external_id": contact_external_id,
                "contact_id": contact_id,
                "title": opportunity.get("name") or "Untitled Project",
                "status": project_status(opportunity.get("status")),
                "monetary_value": float(opportunity.get("monetaryValue") or 0),
                "pipeline_id": opportunity.get("pipelineId"),
                "pipeline_stage_id": opportunity.get("pipelineStageId"),
                "assigned_to": opportunity.get("assignedTo"),
                "deleted": False,
            },
        )

        project = await self.get_by_key(Project, location_id, opportunity_id, for_update=True)
        add_timeline_entry(
            project,
            {
                "id": f"project_created:{opportunity_id}",
                "event": "project_created",
                "description": "Project created from opportunity",
                "metadata": {"webhookId": webhook_id},
            },
        )

    def _update_handler(self, event: GeneralEvent) -> EventHandler:
        async def handler(payload: dict[str, Any], webhook_id: str) -> None:
            await self.opportunity_update(event, payload, webhook_id)

        return handler

    async def opportunity_update(
        self, event: GeneralEvent, payload: dict[str, Any], webhook_id: str
    ) -> None:
        location_id, opportunity, opportunity_id = self._unpack(payload, event.value)

        project = await self.get_by_key(Project, location_id, opportunity_id, for_update=True)
        if project is None:
            logger.info(f"Project for opportunity {opportunity_id} not found, creating it")
            await self._create_project(location_id, opportunity, opportunity_id, webhook_id)
            return

        allowed = OPPORTUNITY_UPDATE_FIELDS[event]
        if "name" in allowed and opportunity.get("name"):
            project.title = opportunity["name"]
        if "status" in allowed and opportunity.get("status"):
            project.status = project_status(opportunity["status"])
        if "monetaryValue" in allowed and "monetaryValue" in opportunity:
            project.monetary_value = float(opportunity["monetaryValue"] or 0)
        if "pipelineId" in allowed and opportunity.get("pipelineId"):
            project.pipeline_id = opportunity["pipelineId"]
        if "pipelineStageId" in allowed and opportunity.get("pipelineStageId"):
            project.pipeline_stage_id = opportunity["pipelineStageId"]
        if "assignedTo" in allowed and opportunity.get("assignedTo"):
            project.assigned_to = opportunity["assignedTo"]

        add_timeline_entry(
            project,
            {
                "id": f"{event.value}:{webhook_id}",
                "event": event.value,
                "description": describe(event, opportunity),
            },
        )

    async def opportunity_delete(self, payload: dict[str, Any], webhook_id: str) -> None:
        event_type = GeneralEvent.OPPORTUNITY_DELETE.value
        location_id, _, opportunity_id = self._unpack(payload, event_type)

        project = await self.get_by_key(Project, location_id, opportunity_id, for_update=True)
        if project is None:
            logger.info(f"Project for opportunity {opportunity_id} not found for delete")
            return

        project.deleted = True
        project.deleted_at = utcnow()
        add_timeline_entry(
            project,
            {
                "id": f"project_deleted:{opportunity_id}",
                "event": "project_deleted",
                "description": "Opportunity deleted in CRM",
            },
        )

    async def location_upsert(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id = str(require(payload, "Location", "id", "locationId"))
        values = {
            column: payload[key] for key, column in LOCATION_FIELDS.items() if payload.get(key)
        }
        await self.upsert(
            Location,
            key={"location_id": location_id},
            values={**values, "last_webhook_id": webhook_id},
        )
