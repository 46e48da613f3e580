"""Nearest-courier assignment — command and handler.

Picks the closest available courier to the order's pickup point and
attaches it to the order in ``assigned`` status. The courier stays in the
pool until it accepts the job.
"""

import structlog
from protean import handle
from protean.fields import Float, Identifier
from protean.utils.globals import current_domain

from delivery.courier.registry import DEFAULT_MAX_DISTANCE_M, find_nearby
from delivery.domain import delivery
from delivery.errors import InvalidStatusError, NoCourierAvailableError
from delivery.order.access import load_order
from delivery.order.order import CourierSnapshot, Order

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Order")
class AssignNearestCourier:
    """Assign the nearest available courier to an order."""

    order_id = Identifier(required=True)
    max_distance_m = Float(default=DEFAULT_MAX_DISTANCE_M, min_value=0.0)


def snapshot_of(courier) -> CourierSnapshot:
    return CourierSnapshot(
        courier_id=str(courier.id),
        user_id=str(courier.user_id) if courier.user_id else None,
        name=courier.name,
        phone=courier.phone,
        vehicle_type=courier.vehicle_type,
        rating=courier.rating,
    )


@delivery.command_handler(part_of=Order)
class AssignmentHandler:
    @handle(AssignNearestCourier)
    def assign_nearest(self, command):
        order = load_order(command.order_id)
        order.check_payment_gate()

        pickup = order.pickup_location
        if pickup is None:
            raise InvalidStatusError("Order has no pickup location", order_id=str(order.id))

        max_distance = command.max_distance_m if command.max_distance_m is not None else DEFAULT_MAX_DISTANCE_M
        nearby = find_nearby(pickup, max_distance_m=max_distance, limit=1)
        if not nearby:
            logger.info("No courier available", order_id=str(order.id), max_distance_m=max_distance)
            raise NoCourierAvailableError(max_distance)

        courier, distance = nearby[0]
        order.assign_courier(snapshot_of(courier), distance=distance)
        current_domain.repository_for(Order).add(order)

        logger.info(
            "Courier assigned",
            order_id=str(order.id),
            courier_id=str(courier.id),
            distance_m=round(distance, 1),
        )
        return {
            "order": order.to_payload(),
            "courier": courier.to_payload(distance_m=distance),
        }
