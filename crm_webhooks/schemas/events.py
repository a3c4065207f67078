"""Closed event taxonomy of the CRM webhooks, one enum per processing domain."""

from enum import Enum


class QueueName(str, Enum):
    CRITICAL = "critical"
    MESSAGES = "messages"
    APPOINTMENTS = "appointments"
    CONTACTS = "contacts"
    FINANCIAL = "financial"
    GENERAL = "general"


class CriticalEvent(str, Enum):
    """App lifecycle and staff account events."""

    INSTALL = "INSTALL"
    UNINSTALL = "UNINSTALL"
    PLAN_CHANGE = "PLAN_CHANGE"
    USER_CREATE = "UserCreate"


class MessageEvent(str, Enum):
    INBOUND_MESSAGE = "InboundMessage"
    OUTBOUND_MESSAGE = "OutboundMessage"
    CONVERSATION_UNREAD_UPDATE = "ConversationUnreadUpdate"
    EMAIL_STATS = "LCEmailStats"


class AppointmentEvent(str, Enum):
    APPOINTMENT_CREATE = "AppointmentCreate"
    APPOINTMENT_UPDATE = "AppointmentUpdate"
    APPOINTMENT_DELETE = "AppointmentDelete"


class ContactEvent(str, Enum):
    """Contacts and the notes and tasks attached to them."""

    CONTACT_CREATE = "ContactCreate"
    CONTACT_UPDATE = "ContactUpdate"
    CONTACT_DELETE = "ContactDelete"
    CONTACT_DND_UPDATE = "ContactDndUpdate"
    CONTACT_TAG_UPDATE = "ContactTagUpdate"
    NOTE_CREATE = "NoteCreate"
    NOTE_UPDATE = "NoteUpdate"
    NOTE_DELETE = "NoteDelete"
    TASK_CREATE = "TaskCreate"
    TASK_COMPLETE = "TaskComplete"
    TASK_DELETE = "TaskDelete"


class FinancialEvent(str, Enum):
    INVOICE_CREATE = "InvoiceCreate"
    INVOICE_UPDATE = "InvoiceUpdate"
    INVOICE_PAID = "InvoicePaid"
    INVOICE_PARTIALLY_PAID = "InvoicePartiallyPaid"
    INVOICE_VOID = "InvoiceVoid"
    INVOICE_DELETE = "InvoiceDelete"
    ORDER_CREATE = "OrderCreate"
    ORDER_STATUS_UPDATE = "OrderStatusUpdate"


class GeneralEvent(str, Enum):
    """Opportunity and location events; also the landing queue for unrecognized types."""

    OPPORTUNITY_CREATE = "OpportunityCreate"
    OPPORTUNITY_UPDATE = "OpportunityUpdate"
    OPPORTUNITY_DELETE = "OpportunityDelete"
    OPPORTUNITY_STAGE_UPDATE = "OpportunityStageUpdate"
    OPPORTUNITY_STATUS_UPDATE = "OpportunityStatusUpdate"
    OPPORTUNITY_MONETARY_VALUE_UPDATE = "OpportunityMonetaryValueUpdate"
    OPPORTUNITY_ASSIGNED_TO_UPDATE = "OpportunityAssignedToUpdate"
    LOCATION_CREATE = "LocationCreate"
    LOCATION_UPDATE = "LocationUpdate"


# Queue name and priority band per domain (1 is leased first).
QUEUE_ROUTES: dict[type[Enum], tuple[QueueName, int]] = {
    CriticalEvent: (QueueName.CRITICAL, 1),
    MessageEvent: (QueueName.MESSAGES, 2),
    AppointmentEvent: (QueueName.APPOINTMENTS, 3),
    FinancialEvent: (QueueName.FINANCIAL, 3),
    ContactEvent: (QueueName.CONTACTS, 4),
    GeneralEvent: (QueueName.GENERAL, 5),
}

FALLBACK_ROUTE: tuple[QueueName, int] = (QueueName.GENERAL, 5)
