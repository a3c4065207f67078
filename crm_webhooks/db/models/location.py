"""Location model: a CRM sub-account (tenant) and its app install state."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.session import Base
from crm_webhooks.db.types import UTCDateTime


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    location_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    company_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Install state
    app_installed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    install_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    installed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    installed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_via_company: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    uninstalled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    uninstall_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Plan
    plan_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    plan_changed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # External setup
    setup_queued_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    needs_manual_setup: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    setup_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    last_webhook_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        """String representation of Location."""
        return f"<Location(location_id={self.location_id}, app_installed={self.app_installed})>"
