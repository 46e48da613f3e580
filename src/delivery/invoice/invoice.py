"""Invoice aggregate (CQRS) — the bill for a paid or delivered order.

One invoice per order. Invoices are issued as soon as they are generated;
voiding is the only later change.

State Machine:
    ISSUED → VOIDED
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, String

from delivery.domain import delivery

TAX_RATE = 0.05  # GST


class InvoiceStatus(Enum):
    ISSUED = "Issued"
    VOIDED = "Voided"


_VALID_TRANSITIONS = {
    InvoiceStatus.ISSUED: {InvoiceStatus.VOIDED},
    InvoiceStatus.VOIDED: set(),  # Terminal
}


@delivery.event(part_of="Invoice")
class InvoiceIssued:
    """An invoice was generated and issued for an order."""

    __version__ = 1

    invoice_id = Identifier(required=True)
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    invoice_number = String(required=True)
    total = Float(required=True)
    issued_at = DateTime(required=True)


@delivery.event(part_of="Invoice")
class InvoiceVoided:
    __version__ = 1

    invoice_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True)
    voided_at = DateTime(required=True)


@delivery.entity(part_of="Invoice")
class InvoiceLineItem:
    """A line item on an invoice."""

    description = String(required=True, max_length=500)
    quantity = Float(required=True)
    unit_price = Float(required=True)
    total = Float(required=True)


@delivery.aggregate
class Invoice:
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    invoice_number = String(required=True, max_length=50)
    line_items = HasMany(InvoiceLineItem)
    subtotal = Float(default=0.0)
    tax = Float(default=0.0)
    total = Float(default=0.0)
    status = String(
        choices=InvoiceStatus,
        default=InvoiceStatus.ISSUED.value,
    )
    issued_at = DateTime()
    voided_at = DateTime()

    def _assert_can_transition(self, target_status: InvoiceStatus) -> None:
        current = InvoiceStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    @classmethod
    def issue_for(cls, order_id: str, customer_id: str, line_items_data: list[dict], tax_rate: float = TAX_RATE):
        """Build and issue the invoice for an order."""
        now = datetime.now(UTC)
        invoice_number = f"INV-{uuid4().hex[:8].upper()}"

        items = []
        subtotal = 0.0
        for item_data in line_items_data:
            item_total = item_data["quantity"] * item_data["unit_price"]
            items.append(
                InvoiceLineItem(
                    description=item_data["description"],
                    quantity=item_data["quantity"],
                    unit_price=item_data["unit_price"],
                    total=item_total,
                )
            )
            subtotal += item_total

        subtotal = round(subtotal, 2)
        tax = round(subtotal * tax_rate, 2)
        total = round(subtotal + tax, 2)

        invoice = cls(
            order_id=order_id,
            customer_id=customer_id,
            invoice_number=invoice_number,
            subtotal=subtotal,
            tax=tax,
            total=total,
            status=InvoiceStatus.ISSUED.value,
            issued_at=now,
        )
        for item in items:
            invoice.add_line_items(item)

        invoice.raise_(
            InvoiceIssued(
                invoice_id=str(invoice.id),
                order_id=str(order_id),
                customer_id=str(customer_id),
                invoice_number=invoice_number,
                total=total,
                issued_at=now,
            )
        )
        return invoice

    def void(self, reason: str) -> None:
        """Void the invoice."""
        self._assert_can_transition(InvoiceStatus.VOIDED)
        now = datetime.now(UTC)
        self.status = InvoiceStatus.VOIDED.value
        self.voided_at = now
        self.raise_(
            InvoiceVoided(
                invoice_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason,
                voided_at=now,
            )
        )
