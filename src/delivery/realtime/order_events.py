"""Mirror Order and Courier domain events onto the realtime bus.

These handlers run after the unit of work that raised the event has
committed, so a slow or broken client can never roll back or hold up a
write.
"""

import json

from protean.utils.mixins import handle

from delivery.courier.courier import Courier, CourierLocationUpdated
from delivery.domain import delivery
from delivery.order.events import (
    CourierAssigned,
    JobAccepted,
    JobRejected,
    OrderCancelled,
    OrderPlaced,
    OrderStatusChanged,
    OrderTrackingUpdated,
    PaymentConfirmed,
    PaymentRejected,
)
from delivery.order.order import Order
from delivery.realtime.bus import get_bus


def _payload(event, **extra) -> dict:
    data = {
        key: (value.isoformat() if hasattr(value, "isoformat") else value)
        for key, value in event.to_dict().items()
        if not key.startswith("_")
    }
    data.update(extra)
    return data


def _to_owner_and_admins(event_name: str, customer_id, payload: dict) -> None:
    bus = get_bus()
    bus.broadcast_to_user(customer_id, event_name, payload)
    bus.broadcast_to_admins(event_name, payload)


@delivery.event_handler(part_of=Order, stream_category="delivery::order")
class RealtimeOrderEventHandler:
    @handle(OrderPlaced)
    def on_order_placed(self, event: OrderPlaced) -> None:
        payload = _payload(event, items=json.loads(event.items))
        _to_owner_and_admins("order:created", event.customer_id, payload)

    @handle(OrderStatusChanged)
    def on_status_changed(self, event: OrderStatusChanged) -> None:
        _to_owner_and_admins("order:updated", event.customer_id, _payload(event))

    @handle(OrderTrackingUpdated)
    def on_tracking_updated(self, event: OrderTrackingUpdated) -> None:
        _to_owner_and_admins("order:delivery:update", event.customer_id, _payload(event))

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        _to_owner_and_admins("order:cancelled", event.customer_id, _payload(event))

    @handle(PaymentConfirmed)
    def on_payment_confirmed(self, event: PaymentConfirmed) -> None:
        _to_owner_and_admins("order:updated", event.customer_id, _payload(event, payment_status="paid"))

    @handle(PaymentRejected)
    def on_payment_rejected(self, event: PaymentRejected) -> None:
        _to_owner_and_admins("order:updated", event.customer_id, _payload(event, payment_status="failed"))

    @handle(CourierAssigned)
    def on_courier_assigned(self, event: CourierAssigned) -> None:
        bus = get_bus()
        payload = _payload(event)
        bus.broadcast_to_user(event.customer_id, "order:assigned", payload)
        bus.broadcast_to_user(event.courier_channel, "job:assigned", payload)

    @handle(JobAccepted)
    def on_job_accepted(self, event: JobAccepted) -> None:
        bus = get_bus()
        payload = _payload(event)
        bus.broadcast_to_user(event.customer_id, "order:accepted", payload)
        bus.broadcast_to_user(event.courier_channel, "job:accepted", payload)
        bus.broadcast_to_admins("order:status_changed", payload)

    @handle(JobRejected)
    def on_job_rejected(self, event: JobRejected) -> None:
        _to_owner_and_admins("order:unassigned", event.customer_id, _payload(event))


@delivery.event_handler(part_of=Courier, stream_category="delivery::courier")
class RealtimeCourierEventHandler:
    @handle(CourierLocationUpdated)
    def on_location_updated(self, event: CourierLocationUpdated) -> None:
        bus = get_bus()
        payload = _payload(event)
        bus.broadcast_to_admins("courier:location", payload)
        bus.broadcast_to_user(event.user_id or event.courier_id, "courier:location", payload)
