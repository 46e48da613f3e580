"""Courier accept/reject handshake — commands and handler.

Accepting mutates the Order and the Courier in one unit of work; callers
hold both the order lock and the courier lock around the command.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from delivery.courier.courier import Courier
from delivery.courier.registry import load_courier
from delivery.dispatch.assignment import snapshot_of
from delivery.domain import delivery
from delivery.errors import AccessDeniedError, InvalidStatusError
from delivery.order.access import is_privileged, load_order
from delivery.order.order import Order

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Order")
class AcceptJob:
    """The assigned courier takes the job."""

    order_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    actor_id = String(max_length=255)
    actor_role = String(max_length=20, default="courier")


@delivery.command(part_of="Order")
class RejectJob:
    """The assigned courier declines the job; the order returns to pending."""

    order_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    actor_id = String(max_length=255)
    actor_role = String(max_length=20, default="courier")
    reason = String(max_length=500)


def _load_for_actor(command) -> Courier:
    courier = load_courier(command.courier_id)
    if not is_privileged(command.actor_role) and not courier.is_operated_by(command.actor_id):
        raise AccessDeniedError("Not authorized to act for this courier")
    return courier


@delivery.command_handler(part_of=Order)
class HandshakeHandler:
    @handle(AcceptJob)
    def accept_job(self, command):
        courier = _load_for_actor(command)
        order = load_order(command.order_id)
        order.assert_assigned_to(courier.id)

        if not courier.can_take(order.id):
            raise InvalidStatusError(
                "Courier is not available",
                courier_id=str(courier.id),
                active_order_id=str(courier.active_order_id) if courier.active_order_id else None,
            )

        order.accept_job(snapshot_of(courier))
        courier.commit_to(order.id)

        current_domain.repository_for(Order).add(order)
        current_domain.repository_for(Courier).add(courier)
        logger.info("Job accepted", order_id=str(order.id), courier_id=str(courier.id))
        return {"order": order.to_payload(), "courier": courier.to_payload()}

    @handle(RejectJob)
    def reject_job(self, command):
        courier = _load_for_actor(command)
        order = load_order(command.order_id)

        order.reject_job(courier.id, courier.channel)
        if courier.active_order_id is None or str(courier.active_order_id) == str(order.id):
            courier.release()

        current_domain.repository_for(Order).add(order)
        current_domain.repository_for(Courier).add(courier)
        logger.info(
            "Job rejected",
            order_id=str(order.id),
            courier_id=str(courier.id),
            reason=command.reason,
        )
        return {"order": order.to_payload(), "courier": courier.to_payload()}
