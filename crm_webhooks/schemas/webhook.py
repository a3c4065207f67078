"""Pydantic schemas for webhook ingestion, routing and processing results."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class WebhookEnvelope(BaseModel):
    """Canonical, immutable view of one inbound webhook.

    Built once by the normalizer; every later stage reads this shape only.
    """

    model_config = ConfigDict(frozen=True)

    webhook_id: str = Field(..., min_length=1)
    event_type: str = Field(..., min_length=1)
    received_at: datetime
    payload: dict[str, Any]
    location_id: str | None = None
    company_id: str | None = None
    timestamp: Any = None


class RouteDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_type: str
    queue_name: str
    priority: int = Field(..., ge=1, le=5)
    direct_eligible: bool = False
    recognized: bool = True


class EnqueueResult(BaseModel):
    item_id: UUID | None = None
    duplicate: bool = False


class WebhookAck(BaseModel):
    """Body returned to the CRM for every delivery that passed signature checks."""

    success: bool
    webhook_id: str | None = Field(None, serialization_alias="webhookId")
    type: str | None = None
    queued: bool | None = None
    direct: bool | None = None
    duplicate: bool | None = None
    skipped: bool | None = None
    error: str | None = None


class WorkerConfig(BaseModel):
    """Validated runtime options of one batch-processor invocation."""

    model_config = ConfigDict(frozen=True)

    batch_size: int = Field(50, ge=1, le=500)
    concurrency: int = Field(5, ge=1, le=100)
    max_runtime_seconds: float = Field(50.0, gt=0)
    idle_sleep_seconds: float = Field(1.0, ge=0)
    lease_seconds: int = Field(300, ge=1)
    slow_event_seconds: float = Field(2.0, gt=0)

    @model_validator(mode="after")
    def lease_outlives_runtime(self) -> "WorkerConfig":
        if self.lease_seconds <= self.max_runtime_seconds:
            raise ValueError("lease_seconds must exceed max_runtime_seconds")
        return self

    @classmethod
    def from_settings(cls, settings: Any) -> "WorkerConfig":
        return cls(
            batch_size=settings.WORKER_BATCH_SIZE,
            concurrency=settings.WORKER_CONCURRENCY,
            max_runtime_seconds=settings.WORKER_MAX_RUNTIME_SECONDS,
            idle_sleep_seconds=settings.WORKER_IDLE_SLEEP_SECONDS,
            lease_seconds=settings.LEASE_SECONDS,
            slow_event_seconds=settings.SLOW_EVENT_SECONDS,
        )


class ProcessorRunResult(BaseModel):
    queue_name: str
    success: bool = True
    processed: int = 0
    errors: int = 0
    batches: int = 0
    runtime_seconds: float = 0.0


class CleanupResult(BaseModel):
    success: bool = True
    queue_items_purged: int = 0
    dedup_records_purged: int = 0
