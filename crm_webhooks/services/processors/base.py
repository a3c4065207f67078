"""Shared machinery for the per-domain webhook processors."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from enum import Enum
from time import perf_counter
from typing import Any, ClassVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.models.contact import Contact
from crm_webhooks.db.models.project import ACTIVE_PROJECT_STATUSES, Project
from crm_webhooks.db.upsert import insert_for
from crm_webhooks.services.webhooks.errors import MissingCorrelationError, UnknownEventTypeError

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any], str], Awaitable[None]]


def require(payload: dict[str, Any], event_type: str, *fields: str) -> Any:
    """Return the first present value among ``fields``.

    Raises:
        MissingCorrelationError: If none of the fields carries a value
    """
    for field in fields:
        value = payload.get(field)
        if value not in (None, ""):
            return value
    raise MissingCorrelationError(event_type, fields[0])


def present(payload: dict[str, Any], mapping: dict[str, str]) -> dict[str, Any]:
    """Project payload keys onto column names, keeping only keys actually sent."""
    return {column: payload[key] for key, column in mapping.items() if key in payload}


class TypeProcessor(ABC):
    """Base class of the domain processors.

    Subclasses declare a closed ``events`` enum and map every member to a
    handler in ``build_handlers``. Construction fails if a member has no
    handler, so a new event type cannot be added without deciding how to
    process it.

    ``handle`` runs one event inside one transaction: the handler's writes are
    committed together, or rolled back together when it raises.
    """

    name: ClassVar[str]
    events: ClassVar[type[Enum]]

    def __init__(self, db_session: AsyncSession, slow_event_seconds: float = 2.0):
        self.db = db_session
        self.slow_event_seconds = slow_event_seconds
        self.handlers: dict[Enum, EventHandler] = self.build_handlers()

        missing = [member.value for member in self.events if member not in self.handlers]
        if missing:
            raise TypeError(f"{type(self).__name__} has no handler for: {', '.join(missing)}")

    @abstractmethod
    def build_handlers(self) -> dict[Enum, EventHandler]:
        """Map every member of ``events`` to its handler coroutine."""

    def parse_event(self, event_type: str) -> Enum:
        try:
            return self.events(event_type)
        except ValueError:
            raise UnknownEventTypeError(self.name, event_type) from None

    async def handle(self, event_type: str, payload: dict[str, Any], webhook_id: str) -> None:
        """
        Apply one webhook to the domain records.

        Args:
            event_type: Event type from the envelope
            payload: Canonical payload
            webhook_id: Webhook id, stamped on written records

        Raises:
            UnknownEventTypeError: If the event type is outside this processor's taxonomy
            MissingCorrelationError: If required identifiers are missing
        """
        event = self.parse_event(event_type)
        handler = self.handlers[event]

        started = perf_counter()
        try:
            await handler(payload, webhook_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        elapsed = perf_counter() - started
        if elapsed > self.slow_event_seconds:
            logger.warning(
                f"Slow {self.name} processing: {elapsed * 1000:.0f}ms for {event_type} "
                f"webhook {webhook_id}"
            )

    async def upsert(
        self,
        model: Any,
        key: dict[str, Any],
        values: dict[str, Any],
        insert_only: dict[str, Any] | None = None,
    ) -> UUID:
        """
        Insert-or-update a row keyed by its unique columns.

        Args:
            model: Mapped class
            key: Unique key columns and values
            values: Columns written on both insert and update
            insert_only: Columns written only when the row is created

        Returns:
            Primary key of the row
        """
        now = utcnow()
        stmt = insert_for(self.db, model).values(
            {**(insert_only or {}), **values, **key, "created_at": now, "updated_at": now}
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=list(key), set_={**values, "updated_at": now}
        ).returning(model.id)
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def get_by_key(
        self, model: Any, location_id: str, external_id: str, for_update: bool = False
    ) -> Any:
        """Load a row by its natural key. ``for_update`` locks it until commit."""
        stmt = select(model).where(
            model.location_id == location_id, model.external_id == external_id
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()


async def find_contact_id(
    db_session: AsyncSession, location_id: str, contact_external_id: str | None
) -> UUID | None:
    if not contact_external_id:
        return None
    result = await db_session.execute(
        select(Contact.id).where(
            Contact.location_id == location_id,
            Contact.external_id == contact_external_id,
        )
    )
    return result.scalar_one_or_none()


async def find_active_project(
    db_session: AsyncSession, location_id: str, contact_external_id: str | None
) -> Project | None:
    """Most recently updated open project of a contact, locked until commit.

    The lock serializes timeline appends on backends that support
    ``SELECT ... FOR UPDATE``. Elsewhere the project version counter rejects
    a write based on a stale read and the event is retried.
    """
    if not contact_external_id:
        return None
    result = await db_session.execute(
        select(Project)
        .where(
            Project.location_id == location_id,
            Project.contact_external_id == contact_external_id,
            Project.status.in_(ACTIVE_PROJECT_STATUSES),
            Project.deleted.is_(False),
        )
        .order_by(Project.updated_at.desc())
        .limit(1)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def add_timeline_entry(project: Project, entry: dict[str, Any]) -> bool:
    """Append an entry unless one with the same id is already there.

    The project must have been loaded with a row lock in the current transaction.
    """
    timeline = list(project.timeline or [])
    if any(existing.get("id") == entry["id"] for existing in timeline):
        return False

    timeline.append({"timestamp": utcnow().isoformat(), **entry})
    project.timeline = timeline
    return True
