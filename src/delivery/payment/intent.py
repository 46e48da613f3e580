"""Payment intent creation — command and handler.

Amounts are sent to the gateway in minor units, with the order id as the
gateway receipt so webhooks can be correlated back to the order.
"""

import structlog
from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.errors import InvalidStatusError
from delivery.order.access import load_order
from delivery.order.order import Order
from delivery.order.state_machine import PaymentStatus
from delivery.payment.config import load_gateway_config
from delivery.payment.gateway import get_gateway

logger = structlog.get_logger(__name__)


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


@delivery.command(part_of="Order")
class CreatePaymentIntent:
    """Open a gateway payment for an order."""

    order_id = Identifier(required=True)


@delivery.command_handler(part_of=Order)
class PaymentIntentHandler:
    @handle(CreatePaymentIntent)
    def create_intent(self, command):
        config = load_gateway_config()
        config.require_credentials()

        order = load_order(command.order_id)
        if order.is_terminal:
            raise InvalidStatusError(f"Order is already {order.status}", current=order.status)
        if order.payment_status == PaymentStatus.PAID.value:
            raise InvalidStatusError("Order is already paid", payment_status=order.payment_status)

        amount = to_minor_units(order.total_price)
        gateway_order = get_gateway().create_order(
            amount_minor_units=amount,
            currency=config.currency,
            receipt=str(order.id),
        )
        order.record_payment_intent(
            external_order_id=gateway_order.external_order_id,
            amount_minor_units=gateway_order.amount_minor_units,
            currency=gateway_order.currency,
        )
        current_domain.repository_for(Order).add(order)

        logger.info(
            "Payment intent created",
            order_id=str(order.id),
            external_order_id=gateway_order.external_order_id,
            amount_minor_units=gateway_order.amount_minor_units,
        )
        return {
            "order_id": str(order.id),
            "external_order_id": gateway_order.external_order_id,
            "amount": gateway_order.amount_minor_units,
            "currency": gateway_order.currency,
            "key_id": config.key_id,
        }
