"""Message model: one SMS, email, chat or social message."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.session import Base
from crm_webhooks.db.types import JSONType, UTCDateTime


class MessageDirection(str, Enum):
    INBOUND = "inbound"  # From the contact
    OUTBOUND = "outbound"  # From the business


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (UniqueConstraint("location_id", "external_id"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    location_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)

    conversation_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    contact_external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    project_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)

    direction: Mapped[str] = mapped_column(String(20), nullable=False)
    message_type: Mapped[int | None] = mapped_column(Integer, nullable=True)
    type_name: Mapped[str] = mapped_column(String(50), nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    subject: Mapped[str | None] = mapped_column(String(998), nullable=True)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    attachments: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Email tracking
    email_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    email_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    # Event name -> ISO timestamp of the latest occurrence.
    email_events: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    processed_by: Mapped[str] = mapped_column(String(20), nullable=False)
    webhook_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    date_added: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        """String representation of Message."""
        return (
            f"<Message(id={self.id}, external_id={self.external_id}, "
            f"direction={self.direction})>"
        )
