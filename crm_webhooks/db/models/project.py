"""Project model: an opportunity-backed job with an activity timeline."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Float, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.session import Base
from crm_webhooks.db.types import JSONType, UTCDateTime


class ProjectStatus(str, Enum):
    OPEN = "open"
    QUOTED = "quoted"
    WON = "won"
    IN_PROGRESS = "in_progress"
    LOST = "lost"
    ABANDONED = "abandoned"
    COMPLETED = "completed"


# Projects that still receive timeline entries from messages and appointments.
ACTIVE_PROJECT_STATUSES = (
    ProjectStatus.OPEN.value,
    ProjectStatus.QUOTED.value,
    ProjectStatus.WON.value,
    ProjectStatus.IN_PROGRESS.value,
)


class Project(Base):
    """Timeline entries carry deterministic ids, so re-applying an event never duplicates one."""

    __tablename__ = "projects"
    __table_args__ = (UniqueConstraint("location_id", "external_id"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    location_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)

    contact_external_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    contact_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)

    title: Mapped[str | None] = mapped_column(String(512), nullable=True)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=ProjectStatus.OPEN.value
    )
    monetary_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    pipeline_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    pipeline_stage_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    assigned_to: Mapped[str | None] = mapped_column(String(255), nullable=True)
    timeline: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    # Bumped on every ORM update; a write based on a stale read fails instead of
    # overwriting the timeline.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")

    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_active(self) -> bool:
        return not self.deleted and self.status in ACTIVE_PROJECT_STATUSES

    def __repr__(self) -> str:
        """String representation of Project."""
        return f"<Project(id={self.id}, external_id={self.external_id}, status={self.status})>"
