"""DedupRecord model backing the short-window duplicate filter."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.session import Base
from crm_webhooks.db.types import UTCDateTime


class DedupRecord(Base):
    """Fingerprint of a recently seen payload."""

    __tablename__ = "webhook_hashes"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    expire_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    def __repr__(self) -> str:
        """String representation of DedupRecord."""
        return f"<DedupRecord(hash={self.hash[:12]}, created_at={self.created_at})>"
