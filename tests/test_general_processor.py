"""Tests for opportunity and location processing."""

from typing import Any

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_webhooks.db.models.location import Location
from crm_webhooks.db.models.project import Project
from crm_webhooks.services.processors.general import GeneralProcessor, project_status


def opportunity_payload(**opportunity: Any) -> dict[str, Any]:
    return {
        "locationId": "loc_1",
        "opportunity": {
            "id": "opp_1",
            "name": "Kitchen remodel",
            "contactId": "contact_1",
            "status": "open",
            "monetaryValue": 15000,
            "pipelineId": "pipe_1",
            "pipelineStageId": "stage_1",
            **opportunity,
        },
    }


async def load_project(db_session: AsyncSession) -> Project:
    db_session.expire_all()
    return (await db_session.execute(select(Project))).scalar_one()


def test_project_status_mapping():
    assert project_status("won") == "won"
    assert project_status("LOST") == "lost"
    assert project_status("mystery") == "open"
    assert project_status(None) == "open"


@pytest.mark.asyncio
async def test_opportunity_create_builds_project(db_session: AsyncSession):
    processor = GeneralProcessor(db_session)

    await processor.handle("OpportunityCreate", opportunity_payload(), "wh_1")
    await processor.handle("OpportunityCreate", opportunity_payload(), "wh_1")

    project = await load_project(db_session)
    assert project.title == "Kitchen remodel"
    assert project.status == "open"
    assert project.monetary_value == 15000.0
    assert [entry["id"] for entry in project.timeline] == ["project_created:opp_1"]


@pytest.mark.asyncio
async def test_narrow_update_only_touches_its_field(db_session: AsyncSession):
    processor = GeneralProcessor(db_session)
    await processor.handle("OpportunityCreate", opportunity_payload(), "wh_1")

    await processor.handle(
        "OpportunityStatusUpdate",
        opportunity_payload(status="won", name="Renamed", monetaryValue=1),
        "wh_2",
    )

    project = await load_project(db_session)
    assert project.status == "won"
    assert project.title == "Kitchen remodel"
    assert project.monetary_value == 15000.0
    assert project.timeline[-1]["id"] == "OpportunityStatusUpdate:wh_2"
    assert project.timeline[-1]["description"] == "Status changed to won"


@pytest.mark.asyncio
async def test_full_update_applies_all_fields(db_session: AsyncSession):
    processor = GeneralProcessor(db_session)
    await processor.handle("OpportunityCreate", opportunity_payload(), "wh_1")

    await processor.handle(
        "OpportunityUpdate",
        opportunity_payload(name="Kitchen and bath", monetaryValue=22000, assignedTo="user_9"),
        "wh_2",
    )

    project = await load_project(db_session)
    assert project.title == "Kitchen and bath"
    assert project.monetary_value == 22000.0
    assert project.assigned_to == "user_9"


@pytest.mark.asyncio
async def test_update_of_unknown_opportunity_creates_project(db_session: AsyncSession):
    processor = GeneralProcessor(db_session)

    await processor.handle("OpportunityStageUpdate", opportunity_payload(), "wh_1")

    project = await load_project(db_session)
    assert project.external_id == "opp_1"


@pytest.mark.asyncio
async def test_opportunity_delete_is_soft(db_session: AsyncSession):
    processor = GeneralProcessor(db_session)
    await processor.handle("OpportunityCreate", opportunity_payload(), "wh_1")

    await processor.handle("OpportunityDelete", opportunity_payload(), "wh_2")

    project = await load_project(db_session)
    assert project.deleted is True
    assert project.is_active is False
    assert project.timeline[-1]["event"] == "project_deleted"


@pytest.mark.asyncio
async def test_location_create_and_update(db_session: AsyncSession):
    processor = GeneralProcessor(db_session)

    await processor.handle(
        "LocationCreate",
        {"id": "loc_7", "name": "Acme North", "companyId": "comp_1", "timezone": "UTC"},
        "wh_1",
    )
    await processor.handle("LocationUpdate", {"id": "loc_7", "name": "Acme Norte"}, "wh_2")

    db_session.expire_all()
    location = (await db_session.execute(select(Location))).scalar_one()
    assert location.name == "Acme Norte"
    assert location.company_id == "comp_1"
    assert location.timezone == "UTC"
    assert location.last_webhook_id == "wh_2"
