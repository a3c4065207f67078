"""Invoice and order events, and their effect on the linked project timeline."""

import logging
from enum import Enum
from typing import Any

from sqlalchemy import select

from crm_webhooks.core.time_utils import utcnow
from crm_webhooks.db.models.invoice import Invoice
from crm_webhooks.db.models.order import Order
from crm_webhooks.db.models.project import Project
from crm_webhooks.schemas.events import FinancialEvent
from crm_webhooks.services.processors.base import (
    EventHandler,
    TypeProcessor,
    add_timeline_entry,
    present,
    require,
)
from crm_webhooks.services.webhooks.errors import MissingCorrelationError

logger = logging.getLogger(__name__)

INVOICE_FIELDS = {
    "status": "status",
    "currency": "currency",
    "amountPaid": "amount_paid",
    "amountDue": "amount_due",
    "invoiceNumber": "invoice_number",
    "name": "name",
}

ORDER_STATUS_FIELDS = {
    "status": "status",
    "paymentStatus": "payment_status",
    "fulfillmentStatus": "fulfillment_status",
}


def _amount(value: Any) -> float | None:
    if value in (None, ""):
        return None
    return float(value)


class FinancialProcessor(TypeProcessor):
    name = "financial"
    events = FinancialEvent

    def build_handlers(self) -> dict[Enum, EventHandler]:
        return {
            FinancialEvent.INVOICE_CREATE: self.invoice_create,
            FinancialEvent.INVOICE_UPDATE: self.invoice_update,
            FinancialEvent.INVOICE_PAID: self.invoice_paid,
            FinancialEvent.INVOICE_PARTIALLY_PAID: self.invoice_partially_paid,
            FinancialEvent.INVOICE_VOID: self.invoice_void,
            FinancialEvent.INVOICE_DELETE: self.invoice_delete,
            FinancialEvent.ORDER_CREATE: self.order_create,
            FinancialEvent.ORDER_STATUS_UPDATE: self.order_status_update,
        }

    @staticmethod
    def _unpack(payload: dict[str, Any], event_type: str) -> tuple[str, dict[str, Any], str]:
        location_id = str(require(payload, event_type, "locationId", "altId"))
        invoice = payload.get("invoice")
        if not isinstance(invoice, dict):
            raise MissingCorrelationError(event_type, "invoice")
        invoice_id = str(require(invoice, event_type, "id", "_id"))
        return location_id, invoice, invoice_id

    async def _stamp_project(
        self,
        location_id: str,
        invoice: dict[str, Any],
        invoice_id: str,
        event: str,
        description: str,
    ) -> None:
        opportunity_id = invoice.get("opportunityId")
        if not opportunity_id:
            return

        result = await self.db.execute(
            select(Project)
            .where(Project.location_id == location_id, Project.external_id == str(opportunity_id))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        project = result.scalar_one_or_none()
        if project is None:
            logger.info(f"No project for opportunity {opportunity_id}, skipping {event} entry")
            return

        add_timeline_entry(
            project,
            {
                "id": f"{event}:{invoice_id}",
                "event": event,
                "description": description,
                "metadata": {"invoiceId": invoice_id, "total": invoice.get("total")},
            },
        )

    async def invoice_create(self, payload: dict[str, Any], webhook_id: str) -> None:
        event_type = FinancialEvent.INVOICE_CREATE.value
        location_id, invoice, invoice_id = self._unpack(payload, event_type)
        total = _amount(invoice.get("total", invoice.get("amount")))
        amount_due = _amount(invoice["amountDue"]) if "amountDue" in invoice else total

        await self.upsert(
            Invoice,
            key={"location_id": location_id, "external_id": invoice_id},
            values={
                "contact_external_id": invoice.get("contactId"),
                "opportunity_id": invoice.get("opportunityId"),
                "invoice_number": invoice.get("invoiceNumber"),
                "name": invoice.get("name"),
                "status": invoice.get("status") or "draft",
                "currency": invoice.get("currency") or "USD",
                "total": total,
                "amount_paid": _amount(invoice.get("amountPaid")) or 0.0,
                "amount_due": amount_due,
                "deleted": False,
                "last_webhook_id": webhook_id,
            },
        )
        await self._stamp_project(
            location_id, invoice, invoice_id, "invoice_created", f"Invoice {invoice_id} created"
        )

    async def invoice_update(self, payload: dict[str, Any], webhook_id: str) -> None:
        event_type = FinancialEvent.INVOICE_UPDATE.value
        location_id, invoice, invoice_id = self._unpack(payload, event_type)

        existing = await self.get_by_key(Invoice, location_id, invoice_id, for_update=True)
        if existing is None:
            await self.invoice_create(payload, webhook_id)
            return

        for column, value in present(invoice, INVOICE_FIELDS).items():
            if column in ("amount_paid", "amount_due"):
                value = _amount(value)
            setattr(existing, column, value)
        if "total" in invoice:
            existing.total = _amount(invoice["total"])
        existing.last_webhook_id = webhook_id

    async def invoice_paid(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id, invoice, invoice_id = self._unpack(payload, FinancialEvent.INVOICE_PAID.value)
        total = _amount(invoice.get("total", invoice.get("amount")))

        await self.upsert(
            Invoice,
            key={"location_id": location_id, "external_id": invoice_id},
            values={
                "status": "paid",
                "paid_at": utcnow(),
                "amount_paid": _amount(invoice.get("amountPaid")) or total,
                "amount_due": 0.0,
                "last_webhook_id": webhook_id,
            },
            insert_only={
                "total": total,
                "contact_external_id": invoice.get("contactId"),
                "opportunity_id": invoice.get("opportunityId"),
            },
        )
        await self._stamp_project(
            location_id, invoice, invoice_id, "invoice_paid", f"Invoice {invoice_id} paid"
        )

    async def invoice_partially_paid(self, payload: dict[str, Any], webhook_id: str) -> None:
        """Record the payment once per webhook, so redelivery does not double count."""
        event_type = FinancialEvent.INVOICE_PARTIALLY_PAID.value
        location_id, invoice, invoice_id = self._unpack(payload, event_type)

        existing = await self.get_by_key(Invoice, location_id, invoice_id, for_update=True)
        if existing is None:
            await self.invoice_create(payload, webhook_id)
            existing = await self.get_by_key(Invoice, location_id, invoice_id, for_update=True)

        existing.status = "partially_paid"
        if "amountPaid" in invoice:
            existing.amount_paid = _amount(invoice["amountPaid"])
        if "amountDue" in invoice:
            existing.amount_due = _amount(invoice["amountDue"])

        payments = list(existing.payments or [])
        if not any(payment.get("webhookId") == webhook_id for payment in payments):
            payments.append(
                {
                    "webhookId": webhook_id,
                    "amount": _amount(invoice.get("lastPaymentAmount")) or 0.0,
                    "method": invoice.get("paymentMethod") or "unknown",
                    "date": utcnow().isoformat(),
                }
            )
            existing.payments = payments
        existing.last_webhook_id = webhook_id

    async def invoice_void(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id, _, invoice_id = self._unpack(payload, FinancialEvent.INVOICE_VOID.value)
        await self.upsert(
            Invoice,
            key={"location_id": location_id, "external_id": invoice_id},
            values={"status": "void", "voided_at": utcnow(), "last_webhook_id": webhook_id},
        )

    async def invoice_delete(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id, _, invoice_id = self._unpack(payload, FinancialEvent.INVOICE_DELETE.value)
        existing = await self.get_by_key(Invoice, location_id, invoice_id)
        if existing is None:
            logger.info(f"Invoice {invoice_id} not found for delete, nothing to do")
            return

        existing.deleted = True
        existing.deleted_at = utcnow()
        existing.status = "deleted"
        existing.last_webhook_id = webhook_id

    @staticmethod
    def _unpack_order(payload: dict[str, Any], event_type: str) -> tuple[str, dict[str, Any], str]:
        location_id = str(require(payload, event_type, "locationId", "altId"))
        order = payload.get("order")
        if not isinstance(order, dict):
            raise MissingCorrelationError(event_type, "order")
        order_id = str(require(order, event_type, "id", "_id"))
        return location_id, order, order_id

    async def order_create(self, payload: dict[str, Any], webhook_id: str) -> None:
        location_id, order, order_id = self._unpack_order(
            payload, FinancialEvent.ORDER_CREATE.value
        )
        await self.upsert(
            Order,
            key={"location_id": location_id, "external_id": order_id},
            values={
                "contact_external_id": order.get("contactId"),
                "order_number": order.get("orderNumber"),
                "status": order.get("status") or "pending",
                "payment_status": order.get("paymentStatus") or "pending",
                "fulfillment_status": order.get("fulfillmentStatus") or "unfulfilled",
                "amount": _amount(order.get("amount")) or 0.0,
                "currency": order.get("currency") or "USD",
                "items": order.get("items") or [],
                "notes": order.get("notes") or "",
                "last_webhook_id": webhook_id,
            },
        )
        logger.info(f"Upserted order {order_id} location={location_id} webhook={webhook_id}")

    async def order_status_update(self, payload: dict[str, Any], webhook_id: str) -> None:
        """Apply the status fields sent; an unknown order is created with them."""
        location_id, order, order_id = self._unpack_order(
            payload, FinancialEvent.ORDER_STATUS_UPDATE.value
        )
        values = {
            column: value
            for column, value in present(order, ORDER_STATUS_FIELDS).items()
            if value
        }
        await self.upsert(
            Order,
            key={"location_id": location_id, "external_id": order_id},
            values={**values, "status_updated_at": utcnow(), "last_webhook_id": webhook_id},
            insert_only={"contact_external_id": order.get("contactId")},
        )
