"""Order status transition — command and handler.

Admins and the assigned courier move an order through its delivery stages.
Cancelling through this command follows the cancellation rules and is routed
to ``Order.cancel`` so the terminal fields are set the same way a direct
cancellation sets them.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.order.access import Role, assert_can_cancel, assert_can_change_status, load_order
from delivery.order.order import CancelledBy, Order
from delivery.order.state_machine import OrderStatus, parse_status

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Order")
class TransitionStatus:
    """Move an order to a new lifecycle status."""

    order_id = Identifier(required=True)
    status = String(required=True, max_length=50)
    actor_id = String(max_length=255)
    actor_role = String(max_length=20, default="admin")
    note = String(max_length=500)


def _cancelled_by(actor_role: str | None) -> str:
    if actor_role == Role.ADMIN.value:
        return CancelledBy.ADMIN
    if actor_role == Role.CUSTOMER.value:
        return CancelledBy.USER
    return CancelledBy.SYSTEM


@delivery.command_handler(part_of=Order)
class TransitionStatusHandler:
    @handle(TransitionStatus)
    def transition_status(self, command):
        target = parse_status(command.status)
        order = load_order(command.order_id)
        previous = order.status

        if target == OrderStatus.CANCELLED:
            assert_can_cancel(order, command.actor_id, command.actor_role)
        else:
            assert_can_change_status(order, command.actor_id, command.actor_role)

        if target == OrderStatus.CANCELLED and previous != OrderStatus.CANCELLED.value:
            order.cancel(cancelled_by=_cancelled_by(command.actor_role), reason=command.note)
            changed = True
        else:
            changed = order.transition_to(
                target,
                actor_id=command.actor_id,
                actor_role=command.actor_role,
                note=command.note,
            )

        current_domain.repository_for(Order).add(order)
        logger.info(
            "Order status updated" if changed else "Order status unchanged",
            order_id=str(order.id),
            previous_status=previous,
            status=order.status,
            actor_role=command.actor_role,
        )
        return order.to_payload()
