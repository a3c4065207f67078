"""ProcessorMetric model: one latency/outcome record per webhook."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.session import Base
from crm_webhooks.db.types import UTCDateTime


class ProcessingType(str, Enum):
    """Which path touched the webhook first."""

    DIRECT = "direct"
    QUEUE = "queue"


class ProcessorMetric(Base):
    """Created by whichever path starts first, finished by whichever path ends."""

    __tablename__ = "webhook_metrics"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    webhook_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    queue_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    location_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    processing_type: Mapped[str] = mapped_column(String(20), nullable=False)

    received_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    processing_started_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )
    processing_completed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, index=True
    )
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    success: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        """String representation of ProcessorMetric."""
        return f"<ProcessorMetric(webhook_id={self.webhook_id}, success={self.success})>"
