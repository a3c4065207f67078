"""Appointment model mirrored from CRM calendars."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.session import Base
from crm_webhooks.db.types import UTCDateTime


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (UniqueConstraint("location_id", "external_id"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    location_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)

    calendar_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)

    title: Mapped[str | None] = mapped_column(String(512), nullable=True)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    assigned_user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    address: Mapped[str | None] = mapped_column(String(512), nullable=True)

    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    last_webhook_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        """String representation of Appointment."""
        return f"<Appointment(id={self.id}, external_id={self.external_id}, status={self.status})>"
