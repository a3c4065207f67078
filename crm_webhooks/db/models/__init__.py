from crm_webhooks.db.models.appointment import Appointment
from crm_webhooks.db.models.contact import Contact
from crm_webhooks.db.models.conversation import Conversation
from crm_webhooks.db.models.crm_user import CrmUser
from crm_webhooks.db.models.invoice import Invoice
from crm_webhooks.db.models.location import Location
from crm_webhooks.db.models.message import Message, MessageDirection
from crm_webhooks.db.models.note import Note
from crm_webhooks.db.models.order import Order
from crm_webhooks.db.models.project import ACTIVE_PROJECT_STATUSES, Project, ProjectStatus
from crm_webhooks.db.models.task import Task, TaskStatus
from crm_webhooks.db.models.webhook_discovery import WebhookDiscovery
from crm_webhooks.db.models.webhook_error import ErrorKind, WebhookError
from crm_webhooks.db.models.webhook_hash import DedupRecord
from crm_webhooks.db.models.webhook_metric import ProcessingType, ProcessorMetric
from crm_webhooks.db.models.webhook_queue import QueueItem, QueueStatus

__all__ = [
    "ACTIVE_PROJECT_STATUSES",
    "Appointment",
    "Contact",
    "Conversation",
    "CrmUser",
    "DedupRecord",
    "ErrorKind",
    "Invoice",
    "Location",
    "Message",
    "MessageDirection",
    "Note",
    "Order",
    "ProcessingType",
    "ProcessorMetric",
    "Project",
    "ProjectStatus",
    "QueueItem",
    "QueueStatus",
    "Task",
    "TaskStatus",
    "WebhookDiscovery",
    "WebhookError",
]
