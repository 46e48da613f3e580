"""Domain events for the Order aggregate.

Events are immutable facts raised after a state change. They drive the
realtime fan-out, invoice generation and courier release handlers, all of
which run after the unit of work has committed.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from delivery.domain import delivery


@delivery.event(part_of="Order")
class OrderPlaced:
    """A customer checked out; items and prices are snapshotted."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of item dicts
    total_price = Float(required=True)
    payment_method = String(required=True)
    status = String(required=True)
    placed_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderStatusChanged:
    """The order moved to a new lifecycle status."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    previous_status = String(required=True)
    status = String(required=True)
    payment_status = String(required=True)
    courier_id = Identifier()
    actor_id = String()
    actor_role = String()
    note = String()
    changed_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderTrackingUpdated:
    """Live courier position or courier details changed on the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    status = String(required=True)
    latitude = Float()
    longitude = Float()
    courier_id = Identifier()
    updated_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderCancelled:
    """The order reached the terminal cancelled status."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    previous_status = String(required=True)
    cancelled_by = String(required=True)
    reason = String()
    courier_id = Identifier()
    payment_status = String(required=True)
    cancelled_at = DateTime(required=True)


@delivery.event(part_of="Order")
class CourierAssigned:
    """A courier was attached to the order, pending the courier's response."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    courier_channel = String(required=True)
    courier_name = String()
    distance_m = Float()
    assigned_at = DateTime(required=True)


@delivery.event(part_of="Order")
class JobAccepted:
    """The assigned courier accepted the job."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    courier_channel = String(required=True)
    status = String(required=True)
    accepted_at = DateTime(required=True)


@delivery.event(part_of="Order")
class JobRejected:
    """The assigned courier declined; the order is back in the assignment pool."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    courier_channel = String(required=True)
    status = String(required=True)
    rejected_at = DateTime(required=True)


@delivery.event(part_of="Order")
class PaymentIntentCreated:
    """A gateway payment intent was created for the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    external_order_id = String(required=True)
    amount_minor_units = Integer(required=True)
    currency = String(required=True)
    created_at = DateTime(required=True)


@delivery.event(part_of="Order")
class PaymentConfirmed:
    """The order's payment was confirmed by a signed verify call or webhook."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    external_payment_id = String()
    source = String(required=True)  # verify | webhook
    status = String(required=True)
    paid_at = DateTime(required=True)


@delivery.event(part_of="Order")
class PaymentRejected:
    """Payment verification failed; the order is cancelled for good."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)
