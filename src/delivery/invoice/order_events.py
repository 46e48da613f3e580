"""Invoice reacts to Order events — bill paid and delivered orders."""

from protean.utils.mixins import handle

from delivery.domain import delivery
from delivery.invoice.generation import create_invoice_for_order, void_invoice_for_order
from delivery.invoice.invoice import Invoice
from delivery.order.events import OrderCancelled, OrderStatusChanged, PaymentConfirmed
from delivery.order.state_machine import OrderStatus


@delivery.event_handler(part_of=Invoice, stream_category="delivery::order")
class InvoiceOrderEventHandler:
    @handle(PaymentConfirmed)
    def on_payment_confirmed(self, event: PaymentConfirmed) -> None:
        create_invoice_for_order(event.order_id)

    @handle(OrderStatusChanged)
    def on_status_changed(self, event: OrderStatusChanged) -> None:
        if event.status == OrderStatus.DELIVERED.value:
            create_invoice_for_order(event.order_id)

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        void_invoice_for_order(event.order_id, reason=event.reason or "Order cancelled")
