"""Order cancellation — command and handler.

The owning customer or an admin may cancel any order that has not yet been
delivered. Delivered and already-cancelled orders are rejected.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.order.access import Role, assert_can_cancel, load_order
from delivery.order.order import CancelledBy, Order

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Order")
class CancelOrder:
    """Cancel an order before it is delivered."""

    order_id = Identifier(required=True)
    actor_id = String(max_length=255)
    actor_role = String(max_length=20, default="customer")
    reason = String(max_length=500)


@delivery.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        order = load_order(command.order_id)
        assert_can_cancel(order, command.actor_id, command.actor_role)

        if command.actor_role == Role.ADMIN.value:
            cancelled_by = CancelledBy.ADMIN
        elif command.actor_role == Role.SYSTEM.value:
            cancelled_by = CancelledBy.SYSTEM
        else:
            cancelled_by = CancelledBy.USER

        order.cancel(cancelled_by=cancelled_by, reason=command.reason)
        current_domain.repository_for(Order).add(order)
        logger.info(
            "Order cancelled",
            order_id=str(order.id),
            cancelled_by=cancelled_by,
            reason=command.reason,
        )
        return order.to_payload()
