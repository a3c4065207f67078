"""Durable work queue for inbound webhooks."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.session import Base
from crm_webhooks.db.types import JSONType, UTCDateTime


class QueueStatus(str, Enum):
    """Lifecycle of a queued webhook."""

    PENDING = "pending"  # Waiting for its first lease
    PROCESSING = "processing"  # Leased by a worker
    COMPLETED = "completed"  # Processed successfully
    FAILED = "failed"  # Failed attempt, retried after backoff until attempts run out


class QueueItem(Base):
    """One unit of webhook work.

    ``webhook_id`` is unique: the CRM redelivers the same webhook on timeouts and
    only one live item may exist for it. ``lease_token`` identifies the current
    lease holder so a worker whose lease expired cannot overwrite the outcome
    written by the worker that stole it.
    """

    __tablename__ = "webhook_queue"
    __table_args__ = (
        Index("ix_webhook_queue_lease_order", "queue_name", "status", "priority", "received_at"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    webhook_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)

    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    queue_name: Mapped[str] = mapped_column(String(50), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False)

    location_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    company_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=QueueStatus.PENDING.value
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    received_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    process_after: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    # Lease
    locked_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    locked_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    lease_token: Mapped[str | None] = mapped_column(String(64), nullable=True)

    processing_started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    processing_completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    processing_duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    @property
    def is_dead_letter(self) -> bool:
        return self.status == QueueStatus.FAILED.value and self.attempts >= self.max_attempts

    def __repr__(self) -> str:
        """String representation of QueueItem."""
        return (
            f"<QueueItem(id={self.id}, webhook_id={self.webhook_id}, "
            f"queue={self.queue_name}, status={self.status}, attempts={self.attempts})>"
        )
