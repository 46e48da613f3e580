"""Order aggregate (CQRS) — the record every actor races to mutate.

Items and prices are snapshotted at checkout and never recomputed. Status
changes go through ``state_machine``; every status change appends one
entry to the append-only ``tracking_log``. Protean's ``_version`` on the
aggregate is the optimistic concurrency token compared on every save.
"""

import json
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from delivery.domain import delivery
from delivery.errors import InvalidStatusError
from delivery.order.events import (
    CourierAssigned,
    JobAccepted,
    JobRejected,
    OrderCancelled,
    OrderPlaced,
    OrderStatusChanged,
    OrderTrackingUpdated,
    PaymentConfirmed,
    PaymentIntentCreated,
    PaymentRejected,
)
from delivery.order.state_machine import (
    HANDSHAKE_STATES,
    TERMINAL_STATES,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    assert_transition,
    payment_gate,
    requires_payment,
)
from delivery.shared.geo import GeoPoint


class CancelledBy:
    USER = "user"
    ADMIN = "admin"
    SYSTEM = "system"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@delivery.value_object(part_of="Order")
class CourierSnapshot:
    """Courier details copied onto the order at assignment/acceptance time."""

    courier_id = Identifier(required=True)
    user_id = Identifier()
    name = String(max_length=100)
    phone = String(max_length=30)
    vehicle_type = String(max_length=20)
    rating = Float(default=0.0)

    @property
    def channel(self) -> str:
        """Fan-out identity of the courier: its user when linked, else the courier id."""
        return str(self.user_id or self.courier_id)


@delivery.value_object(part_of="Order")
class PaymentInfo:
    """Gateway correlation and outcome metadata."""

    external_order_id = String(max_length=255)
    external_payment_id = String(max_length=255)
    signature = String(max_length=255)
    amount_minor_units = Integer()
    currency = String(max_length=3)
    confirmed_via = String(max_length=20)
    failure_reason = String(max_length=500)
    paid_at = DateTime()
    failed_at = DateTime()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@delivery.entity(part_of="Order")
class OrderItem:
    """A dish line snapshotted at checkout; never changes afterwards."""

    dish_id = Identifier(required=True)
    restaurant_id = Identifier()
    name = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    source_location = ValueObject(GeoPoint)

    @property
    def subtotal(self) -> float:
        return self.quantity * self.unit_price


@delivery.entity(part_of="Order")
class TrackingEntry:
    """One audit entry of the order's delivery history."""

    status = String(required=True, max_length=50)
    location = ValueObject(GeoPoint)
    note = String(max_length=500)
    recorded_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@delivery.aggregate
class Order:
    customer_id = Identifier(required=True)
    items = HasMany(OrderItem)
    total_price = Float(required=True, min_value=0.0)
    delivery_address = String(max_length=500)
    city = String(max_length=100)
    status = String(
        choices=OrderStatus,
        default=OrderStatus.PENDING.value,
    )
    payment_method = String(
        choices=PaymentMethod,
        default=PaymentMethod.COD.value,
    )
    payment_status = String(
        choices=PaymentStatus,
        default=PaymentStatus.PENDING.value,
    )
    payment_info = ValueObject(PaymentInfo)
    courier = ValueObject(CourierSnapshot)
    courier_ref = Identifier()
    assigned_from = String(max_length=50)
    delivery_assigned = Boolean(default=False)
    tracking_log = HasMany(TrackingEntry)
    current_location = ValueObject(GeoPoint)
    estimated_delivery_time = DateTime()
    actual_delivery_time = DateTime()
    cancelled_at = DateTime()
    cancelled_by = String(max_length=20)
    cancellation_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        customer_id: str,
        items_data: list[dict],
        delivery_address: str | None = None,
        city: str | None = None,
        payment_method: str = PaymentMethod.COD.value,
    ):
        """Create a new order from checkout data.

        Args:
            customer_id: The customer placing the order.
            items_data: List of dicts with dish_id, name, quantity, unit_price
                and optionally restaurant_id and source_location {lat, lng}.
        """
        if not items_data:
            raise ValidationError({"items": ["Order must contain at least one item"]})

        now = datetime.now(UTC)
        items = [_build_item(data) for data in items_data]
        total_price = round(sum(item.subtotal for item in items), 2)

        order = cls(
            customer_id=customer_id,
            total_price=total_price,
            delivery_address=delivery_address,
            city=city,
            status=OrderStatus.PENDING.value,
            payment_method=payment_method or PaymentMethod.COD.value,
            payment_status=PaymentStatus.PENDING.value,
            delivery_assigned=False,
            created_at=now,
            updated_at=now,
        )
        for item in items:
            order.add_items(item)

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                customer_id=str(customer_id),
                items=json.dumps([_item_payload(item) for item in items]),
                total_price=total_price,
                payment_method=order.payment_method,
                status=order.status,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_STATES

    @property
    def pickup_location(self):
        """Pickup point: the source location of the first item."""
        if not self.items:
            return None
        return self.items[0].source_location

    def is_owned_by(self, actor_id) -> bool:
        return actor_id is not None and str(self.customer_id) == str(actor_id)

    def check_payment_gate(self) -> None:
        payment_gate(self.payment_method, self.payment_status)

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------
    def _record(self, status: OrderStatus, now: datetime, location=None, note=None) -> None:
        self.add_tracking_log(
            TrackingEntry(
                status=status.value,
                location=location,
                note=note,
                recorded_at=now,
            )
        )

    def _apply_status(self, target: OrderStatus, now: datetime, location=None, note=None) -> OrderStatus:
        previous = OrderStatus(self.status)
        self.status = target.value
        self.updated_at = now
        self._record(target, now, location=location, note=note)
        if target == OrderStatus.DELIVERED and self.actual_delivery_time is None:
            self.actual_delivery_time = now
        return previous

    # -------------------------------------------------------------------
    # Lifecycle transitions
    # -------------------------------------------------------------------
    def transition_to(
        self,
        target: OrderStatus,
        actor_id: str | None = None,
        actor_role: str | None = None,
        note: str | None = None,
        location=None,
    ) -> bool:
        """Move the order to ``target``.

        Returns False when ``target`` equals the current status: the request
        is accepted but nothing changes and no event is raised.
        """
        if requires_payment(target):
            self.check_payment_gate()

        current = OrderStatus(self.status)
        assert_transition(current, target)

        now = datetime.now(UTC)
        if current == target:
            self.updated_at = now
            return False
        if target == OrderStatus.CANCELLED:
            raise InvalidStatusError("Use cancel() to cancel an order", target=target.value)
        if target in HANDSHAKE_STATES:
            raise InvalidStatusError(
                f"Orders become {target.value} only through courier assignment",
                current=current.value,
                target=target.value,
            )

        previous = self._apply_status(target, now, location=location, note=note)
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                previous_status=previous.value,
                status=target.value,
                payment_status=self.payment_status,
                courier_id=str(self.courier_ref) if self.courier_ref else None,
                actor_id=str(actor_id) if actor_id else None,
                actor_role=actor_role,
                note=note,
                changed_at=now,
            )
        )
        return True

    def update_tracking(
        self,
        location=None,
        courier: CourierSnapshot | None = None,
        estimated_delivery_time: datetime | None = None,
    ) -> None:
        """Merge live tracking data. Does not touch the tracking log."""
        self.check_payment_gate()
        if self.is_terminal:
            raise InvalidStatusError(f"Order is already {self.status}", current=self.status)

        now = datetime.now(UTC)
        if location is not None:
            self.current_location = location
        if courier is not None:
            self.courier = courier
        if estimated_delivery_time is not None:
            self.estimated_delivery_time = estimated_delivery_time
        self.updated_at = now

        self.raise_(
            OrderTrackingUpdated(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                status=self.status,
                latitude=self.current_location.latitude if self.current_location else None,
                longitude=self.current_location.longitude if self.current_location else None,
                courier_id=str(self.courier_ref) if self.courier_ref else None,
                updated_at=now,
            )
        )

    def cancel(self, cancelled_by: str, reason: str | None = None) -> None:
        """Cancel the order. Delivered and cancelled orders cannot be cancelled."""
        current = OrderStatus(self.status)
        if current in TERMINAL_STATES:
            raise InvalidStatusError(
                f"Cannot cancel an order that is already {current.value}",
                current=current.value,
            )

        now = datetime.now(UTC)
        self._apply_status(OrderStatus.CANCELLED, now, note=reason)
        self.cancelled_at = now
        self.cancelled_by = cancelled_by
        self.cancellation_reason = reason

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                previous_status=current.value,
                cancelled_by=cancelled_by,
                reason=reason,
                courier_id=str(self.courier_ref) if self.courier_ref else None,
                payment_status=self.payment_status,
                cancelled_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Courier assignment handshake
    # -------------------------------------------------------------------
    def assign_courier(self, snapshot: CourierSnapshot, distance: float | None = None) -> None:
        """Attach a courier pending the courier's answer.

        A pending order and an accepted order that has no courier yet (paid at
        the gateway, or accepted by the restaurant) can both be dispatched; a
        rejection returns the order to the status it was dispatched from.
        """
        self.check_payment_gate()
        current = OrderStatus(self.status)
        if current == OrderStatus.ACCEPTED and self.courier_ref:
            raise InvalidStatusError(
                "Order already accepted by a courier",
                current=current.value,
                courier_id=str(self.courier_ref),
            )
        assert_transition(current, OrderStatus.ASSIGNED)

        now = datetime.now(UTC)
        self.courier = snapshot
        self.courier_ref = snapshot.courier_id
        self.delivery_assigned = True
        if current != OrderStatus.ASSIGNED:
            self.assigned_from = current.value
            self._apply_status(OrderStatus.ASSIGNED, now)
        self.updated_at = now

        self.raise_(
            CourierAssigned(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                courier_id=str(snapshot.courier_id),
                courier_channel=snapshot.channel,
                courier_name=snapshot.name,
                distance_m=distance,
                assigned_at=now,
            )
        )

    def assert_assigned_to(self, courier_id) -> None:
        if not self.courier_ref or str(self.courier_ref) != str(courier_id):
            raise InvalidStatusError(
                "Order not assigned to this courier",
                courier_id=str(courier_id),
                assigned_courier_id=str(self.courier_ref) if self.courier_ref else None,
            )

    def accept_job(self, snapshot: CourierSnapshot) -> None:
        self.assert_assigned_to(snapshot.courier_id)
        current = OrderStatus(self.status)
        assert_transition(current, OrderStatus.ACCEPTED)

        now = datetime.now(UTC)
        self.courier = snapshot
        self.delivery_assigned = True
        self.assigned_from = None
        if current != OrderStatus.ACCEPTED:
            self._apply_status(OrderStatus.ACCEPTED, now)
        self.updated_at = now

        self.raise_(
            JobAccepted(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                courier_id=str(snapshot.courier_id),
                courier_channel=snapshot.channel,
                status=self.status,
                accepted_at=now,
            )
        )

    def reject_job(self, courier_id, courier_channel: str) -> None:
        self.assert_assigned_to(courier_id)
        current = OrderStatus(self.status)
        target = OrderStatus(self.assigned_from) if self.assigned_from else OrderStatus.PENDING
        if current != OrderStatus.ASSIGNED:
            target = OrderStatus.PENDING
        assert_transition(current, target)

        now = datetime.now(UTC)
        self.courier = None
        self.courier_ref = None
        self.delivery_assigned = False
        self.assigned_from = None
        if current != target:
            self._apply_status(target, now, note="courier rejected")
        self.updated_at = now

        self.raise_(
            JobRejected(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                courier_id=str(courier_id),
                courier_channel=courier_channel,
                status=self.status,
                rejected_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def record_payment_intent(self, external_order_id: str, amount_minor_units: int, currency: str) -> None:
        if self.is_terminal:
            raise InvalidStatusError(f"Order is already {self.status}", current=self.status)
        if self.payment_status == PaymentStatus.PAID.value:
            raise InvalidStatusError("Order is already paid", payment_status=self.payment_status)

        now = datetime.now(UTC)
        self.payment_method = PaymentMethod.GATEWAY.value
        self.payment_status = PaymentStatus.PENDING.value
        self.payment_info = PaymentInfo(
            external_order_id=external_order_id,
            amount_minor_units=amount_minor_units,
            currency=currency,
        )
        self.updated_at = now

        self.raise_(
            PaymentIntentCreated(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                external_order_id=external_order_id,
                amount_minor_units=amount_minor_units,
                currency=currency,
                created_at=now,
            )
        )

    def _payment_info(self, **overrides) -> PaymentInfo:
        current = self.payment_info.to_dict() if self.payment_info else {}
        current.update({key: value for key, value in overrides.items() if value is not None})
        return PaymentInfo(**current)

    def mark_paid(
        self,
        source: str,
        external_order_id: str | None = None,
        external_payment_id: str | None = None,
        signature: str | None = None,
    ) -> bool:
        """Record a confirmed payment.

        Idempotent: returns False without changes when the order is already
        paid or terminal. A pending order moves to ACCEPTED.
        """
        if self.payment_status == PaymentStatus.PAID.value or self.is_terminal:
            return False

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.PAID.value
        self.payment_method = PaymentMethod.GATEWAY.value
        self.payment_info = self._payment_info(
            external_order_id=external_order_id,
            external_payment_id=external_payment_id,
            signature=signature,
            confirmed_via=source,
            paid_at=now,
        )
        if OrderStatus(self.status) == OrderStatus.PENDING:
            self._apply_status(OrderStatus.ACCEPTED, now, note=f"payment confirmed via {source}")
        self.updated_at = now

        self.raise_(
            PaymentConfirmed(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                external_payment_id=external_payment_id,
                source=source,
                status=self.status,
                paid_at=now,
            )
        )
        return True

    def mark_payment_failed(
        self,
        reason: str,
        external_order_id: str | None = None,
        external_payment_id: str | None = None,
        signature: str | None = None,
    ) -> bool:
        """Fail the payment and cancel the order. Not retryable for this order."""
        if self.payment_status == PaymentStatus.PAID.value or self.is_terminal:
            return False

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.FAILED.value
        self.payment_info = self._payment_info(
            external_order_id=external_order_id,
            external_payment_id=external_payment_id,
            signature=signature,
            failure_reason=reason,
            failed_at=now,
        )
        self.raise_(
            PaymentRejected(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                reason=reason,
                failed_at=now,
            )
        )
        self.cancel(cancelled_by=CancelledBy.SYSTEM, reason=reason)
        return True

    def record_late_capture(self, source: str, external_payment_id: str | None = None) -> None:
        """Note a capture that arrived after the order ended, for reconciliation."""
        self.payment_info = self._payment_info(
            external_payment_id=external_payment_id,
            confirmed_via=f"{source}-late",
        )
        self.updated_at = datetime.now(UTC)

    def to_payload(self) -> dict:
        """Serializable view of the order for API responses and fan-out."""
        return {
            "id": str(self.id),
            "customer_id": str(self.customer_id),
            "status": self.status,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "total_price": self.total_price,
            "items": [_item_payload(item) for item in self.items],
            "courier": self.courier.to_dict() if self.courier else None,
            "courier_ref": str(self.courier_ref) if self.courier_ref else None,
            "delivery_assigned": bool(self.delivery_assigned),
            "current_location": self.current_location.to_payload() if self.current_location else None,
            "tracking": [
                {
                    "status": entry.status,
                    "location": entry.location.to_payload() if entry.location else None,
                    "note": entry.note,
                    "timestamp": entry.recorded_at.isoformat() if entry.recorded_at else None,
                }
                for entry in self.tracking_log
            ],
            "actual_delivery_time": self.actual_delivery_time.isoformat() if self.actual_delivery_time else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancelled_by": self.cancelled_by,
            "cancellation_reason": self.cancellation_reason,
        }


def _build_item(data: dict) -> OrderItem:
    location = data.get("source_location")
    if isinstance(location, dict):
        location = GeoPoint(latitude=location["lat"], longitude=location["lng"])
    return OrderItem(
        dish_id=data["dish_id"],
        restaurant_id=data.get("restaurant_id"),
        name=data["name"],
        quantity=data["quantity"],
        unit_price=data["unit_price"],
        source_location=location,
    )


def _item_payload(item: OrderItem) -> dict:
    return {
        "dish_id": str(item.dish_id),
        "restaurant_id": str(item.restaurant_id) if item.restaurant_id else None,
        "name": item.name,
        "quantity": item.quantity,
        "unit_price": item.unit_price,
    }
