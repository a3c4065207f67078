"""WebhookDiscovery model: event types seen but not recognized."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.session import Base
from crm_webhooks.db.types import JSONType, UTCDateTime


class WebhookDiscovery(Base):
    __tablename__ = "webhook_discovery"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    event_type: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    first_seen: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    last_seen: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    sample_payload: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    def __repr__(self) -> str:
        """String representation of WebhookDiscovery."""
        return f"<WebhookDiscovery(event_type={self.event_type}, count={self.count})>"
