"""Queue name to processor factory."""

from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from crm_webhooks.schemas.events import QueueName
from crm_webhooks.services.crm.client import get_setup_trigger
from crm_webhooks.services.processors.appointments import AppointmentsProcessor
from crm_webhooks.services.processors.base import TypeProcessor
from crm_webhooks.services.processors.contacts import ContactsProcessor
from crm_webhooks.services.processors.critical import CriticalProcessor
from crm_webhooks.services.processors.financial import FinancialProcessor
from crm_webhooks.services.processors.general import GeneralProcessor
from crm_webhooks.services.processors.messages import MessagesProcessor

ProcessorFactory = Callable[[AsyncSession, float], TypeProcessor]


def _critical(db_session: AsyncSession, slow_event_seconds: float) -> TypeProcessor:
    return CriticalProcessor(db_session, get_setup_trigger(), slow_event_seconds)


PROCESSOR_FACTORIES: dict[str, ProcessorFactory] = {
    QueueName.CRITICAL.value: _critical,
    QueueName.MESSAGES.value: MessagesProcessor,
    QueueName.APPOINTMENTS.value: AppointmentsProcessor,
    QueueName.CONTACTS.value: ContactsProcessor,
    QueueName.FINANCIAL.value: FinancialProcessor,
    QueueName.GENERAL.value: GeneralProcessor,
}


def get_processor_factory(queue_name: str) -> ProcessorFactory | None:
    return PROCESSOR_FACTORIES.get(queue_name)
