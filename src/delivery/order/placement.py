"""Order placement — command and handler."""

import json

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.order.order import Order

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Order")
class PlaceOrder:
    """Check out a cart into a new pending order."""

    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of item dicts
    delivery_address = String(max_length=500)
    city = String(max_length=100)
    payment_method = String(max_length=20, default="cod")


@delivery.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        order = Order.place(
            customer_id=command.customer_id,
            items_data=items_data,
            delivery_address=command.delivery_address,
            city=command.city,
            payment_method=command.payment_method,
        )
        current_domain.repository_for(Order).add(order)
        logger.info(
            "Order placed",
            order_id=str(order.id),
            customer_id=str(command.customer_id),
            total_price=order.total_price,
        )
        return str(order.id)
