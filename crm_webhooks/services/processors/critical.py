"""App lifecycle events: install, uninstall, plan changes and new staff users."""

import logging
from enum import Enum
from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from crm_webhooks.core.time_utils import parse_datetime_or_none, utcnow
from crm_webhooks.db.models.crm_user import CrmUser
from crm_webhooks.db.models.location import Location
from crm_webhooks.schemas.events import CriticalEvent
from crm_webhooks.services.crm.client import LocationSetupTrigger
from crm_webhooks.services.processors.base import EventHandler, TypeProcessor, require
from crm_webhooks.services.webhooks.errors import MissingCorrelationError

logger = logging.getLogger(__name__)

# Columns reset when the app is removed from a location.
UNINSTALL_RESET = {
    "install_type": None,
    "installed_at": None,
    "installed_by": None,
    "approved_via_company": False,
    "setup_queued_at": None,
    "needs_manual_setup": False,
    "setup_error": None,
}


class CriticalProcessor(TypeProcessor):
    """Lifecycle events.

    A location install is committed before the external setup is triggered.
    A failing trigger leaves the install in place and flags the location for
    manual setup instead of failing the webhook.
    """

    name = "critical"
    events = CriticalEvent

    def __init__(
        self,
        db_session: AsyncSession,
        setup_trigger: LocationSetupTrigger,
        slow_event_seconds: float = 2.0,
    ):
        self.setup_trigger = setup_trigger
        super().__init__(db_session, slow_event_seconds)

    def build_handlers(self) -> dict[Enum, EventHandler]:
        return {
            CriticalEvent.INSTALL: self.install,
            CriticalEvent.UNINSTALL: self.uninstall,
            CriticalEvent.PLAN_CHANGE: self.plan_change,
            CriticalEvent.USER_CREATE: self.user_create,
        }

    async def install(self, payload: dict[str, Any], webhook_id: str) -> None:
        install_type = payload.get("installType") or "Location"
        if install_type == "Company":
            await self._company_install(payload, webhook_id)
        else:
            await self._location_install(payload, webhook_id)

    async def _location_install(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id = str(require(payload, CriticalEvent.INSTALL.value, "locationId"))
        installed_at = parse_datetime_or_none(payload.get("timestamp")) or utcnow()

        await self.upsert(
            Location,
            key={"location_id": location_id},
            values={
                "company_id": payload.get("companyId"),
                "app_installed": True,
                "install_type": "Location",
                "installed_at": installed_at,
                "installed_by": payload.get("userId"),
                "plan_id": payload.get("planId"),
                "uninstalled_at": None,
                "uninstall_reason": None,
                "last_webhook_id": webhook_id,
            },
            insert_only={"name": payload.get("companyName")},
        )
        await self.db.commit()
        logger.info(f"Location {location_id} installed, webhook={webhook_id}")

        # The install is durable at this point; setup failures only flag the location.
        result = await self.setup_trigger.trigger(location_id, webhook_id)
        if result.get("success"):
            values: dict[str, Any] = {
                "setup_queued_at": utcnow(),
                "needs_manual_setup": False,
                "setup_error": None,
            }
        else:
            logger.warning(
                f"Setup trigger failed for location {location_id}, flagging for manual setup: "
                f"{result.get('error')}"
            )
            values = {"needs_manual_setup": True, "setup_error": str(result.get("error"))}

        await self.db.execute(
            update(Location)
            .where(Location.location_id == location_id)
            .values(**values, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    async def _company_install(self, payload: dict[str, Any], webhook_id: str) -> None:
        company_id = str(require(payload, CriticalEvent.INSTALL.value, "companyId"))
        result = await self.db.execute(
            update(Location)
            .where(Location.company_id == company_id)
            .values(approved_via_company=True, last_webhook_id=webhook_id, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        logger.info(
            f"Company {company_id} installed, {result.rowcount or 0} location(s) approved "
            f"webhook={webhook_id}"
        )

    async def uninstall(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id = payload.get("locationId")
        company_id = payload.get("companyId")

        if location_id:
            condition = Location.location_id == str(location_id)
        elif company_id:
            condition = Location.company_id == str(company_id)
        else:
            raise MissingCorrelationError(CriticalEvent.UNINSTALL.value, "locationId")

        result = await self.db.execute(
            update(Location)
            .where(condition)
            .values(
                **UNINSTALL_RESET,
                app_installed=False,
                uninstalled_at=parse_datetime_or_none(payload.get("timestamp")) or utcnow(),
                uninstall_reason=payload.get("reason") or "User uninstalled",
                last_webhook_id=webhook_id,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        logger.info(
            f"Uninstalled app from {result.rowcount or 0} location(s) "
            f"location={location_id} company={company_id}"
        )

    async def plan_change(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id = str(require(payload, CriticalEvent.PLAN_CHANGE.value, "locationId"))
        plan_id = payload.get("newPlanId") or payload.get("planId")

        await self.upsert(
            Location,
            key={"location_id": location_id},
            values={
                "plan_id": plan_id,
                "plan_changed_at": utcnow(),
                "last_webhook_id": webhook_id,
            },
            insert_only={"company_id": payload.get("companyId")},
        )
        logger.info(f"Location {location_id} moved to plan {plan_id}")

    async def user_create(self, payload: dict[str, Any], webhook_id: str) -> None:
        """Mirror a new location user. Account setup and invitations happen elsewhere."""
        event_type = CriticalEvent.USER_CREATE.value
        user = payload.get("user") if isinstance(payload.get("user"), dict) else payload
        location_id = str(require(payload, event_type, "locationId"))
        user_id = str(require(user, event_type, "id"))

        first_name = user.get("firstName") or ""
        last_name = user.get("lastName") or ""
        await self.upsert(
            CrmUser,
            key={"location_id": location_id, "external_id": user_id},
            values={
                "email": user.get("email"),
                "first_name": first_name,
                "last_name": last_name,
                "name": user.get("name") or f"{first_name} {last_name}".strip() or None,
                "phone": user.get("phone"),
                "role": user.get("role") or user.get("type") or "user",
                "permissions": user.get("permissions") or [],
                "last_webhook_id": webhook_id,
            },
        )
        logger.info(f"Upserted user {user_id} location={location_id} webhook={webhook_id}")
