"""WebhookError model: classified processing failures."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.session import Base
from crm_webhooks.db.types import UTCDateTime


class ErrorKind(str, Enum):
    """Classification of a recorded failure."""

    PROCESSING = "processing"  # Generic handler failure, retried
    UNKNOWN_EVENT_TYPE = "unknown_event_type"  # Event type with no handler
    MISSING_CORRELATION = "missing_correlation"  # Required ids absent from payload
    LEASE_EXPIRED = "lease_expired"  # Worker abandoned the item mid-run
    DIRECT = "direct"  # Best-effort direct path failure
    DEAD_LETTER = "dead_letter"  # Attempts exhausted


class WebhookError(Base):
    """A failed processing attempt."""

    __tablename__ = "webhook_errors"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    webhook_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    queue_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    dead_letter: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        """String representation of WebhookError."""
        return f"<WebhookError(webhook_id={self.webhook_id}, kind={self.error_kind})>"
