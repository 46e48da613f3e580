"""Order tracking — command and handler.

Couriers push live position and contact details while delivering. A status
supplied with the update goes through the transition table and appends a
tracking entry at the reported position.
"""

from protean import handle
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.order.access import assert_can_change_status, load_order
from delivery.order.order import CourierSnapshot, Order
from delivery.order.state_machine import parse_status
from delivery.shared.geo import GeoPoint


@delivery.command(part_of="Order")
class UpdateTracking:
    """Merge live tracking data into an order."""

    order_id = Identifier(required=True)
    latitude = Float(min_value=-90.0, max_value=90.0)
    longitude = Float(min_value=-180.0, max_value=180.0)
    courier_id = Identifier()
    courier_name = String(max_length=100)
    courier_phone = String(max_length=30)
    vehicle_type = String(max_length=20)
    estimated_delivery_time = DateTime()
    status = String(max_length=50)
    note = String(max_length=500)
    actor_id = String(max_length=255)
    actor_role = String(max_length=20, default="courier")


def _merge_snapshot(order: Order, command) -> CourierSnapshot | None:
    if not any([command.courier_id, command.courier_name, command.courier_phone, command.vehicle_type]):
        return None

    current = order.courier.to_dict() if order.courier else {}
    updates = {
        "courier_id": command.courier_id,
        "name": command.courier_name,
        "phone": command.courier_phone,
        "vehicle_type": command.vehicle_type,
    }
    current.update({key: value for key, value in updates.items() if value is not None})
    if not current.get("courier_id"):
        current["courier_id"] = order.courier_ref
    if not current.get("courier_id"):
        return None
    return CourierSnapshot(**current)


@delivery.command_handler(part_of=Order)
class TrackingHandler:
    @handle(UpdateTracking)
    def update_tracking(self, command):
        order = load_order(command.order_id)
        assert_can_change_status(order, command.actor_id, command.actor_role)

        location = None
        if command.latitude is not None and command.longitude is not None:
            location = GeoPoint(latitude=command.latitude, longitude=command.longitude)

        order.update_tracking(
            location=location,
            courier=_merge_snapshot(order, command),
            estimated_delivery_time=command.estimated_delivery_time,
        )
        if command.status:
            order.transition_to(
                parse_status(command.status),
                actor_id=command.actor_id,
                actor_role=command.actor_role,
                note=command.note,
                location=location,
            )

        current_domain.repository_for(Order).add(order)
        return order.to_payload()
