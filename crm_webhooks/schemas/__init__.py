from crm_webhooks.schemas.events import (
    AppointmentEvent,
    ContactEvent,
    CriticalEvent,
    FinancialEvent,
    GeneralEvent,
    MessageEvent,
    QueueName,
)
from crm_webhooks.schemas.webhook import (
    CleanupResult,
    EnqueueResult,
    ProcessorRunResult,
    RouteDecision,
    WebhookAck,
    WebhookEnvelope,
    WorkerConfig,
)

__all__ = [
    "AppointmentEvent",
    "CleanupResult",
    "ContactEvent",
    "CriticalEvent",
    "EnqueueResult",
    "FinancialEvent",
    "GeneralEvent",
    "MessageEvent",
    "ProcessorRunResult",
    "QueueName",
    "RouteDecision",
    "WebhookAck",
    "WebhookEnvelope",
    "WorkerConfig",
]
