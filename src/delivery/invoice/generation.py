"""Invoice generation — idempotent per order."""

import structlog
from protean.utils.globals import current_domain

from delivery.concurrency import get_locks, invoice_key
from delivery.invoice.invoice import Invoice, InvoiceStatus
from delivery.order.access import load_order

logger = structlog.get_logger(__name__)


def invoice_for_order(order_id) -> Invoice | None:
    return current_domain.repository_for(Invoice)._dao.query.filter(order_id=str(order_id)).all().first


def create_invoice_for_order(order_id) -> Invoice:
    """Return the order's invoice, issuing it first if none exists yet."""
    with get_locks().hold(invoice_key(order_id)):
        existing = invoice_for_order(order_id)
        if existing is not None:
            logger.debug("Invoice already exists", order_id=str(order_id), invoice_id=str(existing.id))
            return existing

        order = load_order(order_id)
        invoice = Invoice.issue_for(
            order_id=str(order.id),
            customer_id=str(order.customer_id),
            line_items_data=[
                {
                    "description": item.name,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                }
                for item in order.items
            ],
        )
        current_domain.repository_for(Invoice).add(invoice)
        logger.info(
            "Invoice issued",
            order_id=str(order.id),
            invoice_id=str(invoice.id),
            invoice_number=invoice.invoice_number,
            total=invoice.total,
        )
        return invoice


def void_invoice_for_order(order_id, reason: str) -> Invoice | None:
    """Void the order's issued invoice, if any. Returns the invoice touched."""
    with get_locks().hold(invoice_key(order_id)):
        invoice = invoice_for_order(order_id)
        if invoice is None or invoice.status == InvoiceStatus.VOIDED.value:
            return None

        invoice.void(reason)
        current_domain.repository_for(Invoice).add(invoice)
        logger.info("Invoice voided", order_id=str(order_id), invoice_id=str(invoice.id), reason=reason)
        return invoice
