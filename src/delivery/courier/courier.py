"""Courier aggregate (CQRS) — a delivery agent and their availability.

A courier is available while idle and on duty. Accepting a job takes the
courier off the pool until the order is delivered or cancelled.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, String, ValueObject

from delivery.domain import delivery
from delivery.errors import InvalidStatusError
from delivery.shared.geo import GeoPoint


class CourierStatus(Enum):
    IDLE = "idle"
    ASSIGNED = "assigned"
    PICKING = "picking"
    DELIVERING = "delivering"
    OFF_DUTY = "off-duty"


class VehicleType(Enum):
    BIKE = "bike"
    CAR = "car"
    SCOOTER = "scooter"


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
@delivery.event(part_of="Courier")
class CourierRegistered:
    __version__ = 1

    courier_id = Identifier(required=True)
    user_id = Identifier()
    name = String(required=True)
    vehicle_type = String(required=True)
    registered_at = DateTime(required=True)


@delivery.event(part_of="Courier")
class CourierLocationUpdated:
    __version__ = 1

    courier_id = Identifier(required=True)
    user_id = Identifier()
    latitude = Float(required=True)
    longitude = Float(required=True)
    available = Boolean()
    status = String()
    updated_at = DateTime(required=True)


@delivery.event(part_of="Courier")
class CourierReleased:
    """The courier finished (or lost) its active order and is back in the pool."""

    __version__ = 1

    courier_id = Identifier(required=True)
    order_id = Identifier(required=True)
    released_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@delivery.aggregate
class Courier:
    user_id = Identifier()
    name = String(required=True, max_length=100)
    phone = String(max_length=30)
    vehicle_type = String(choices=VehicleType, default=VehicleType.BIKE.value)
    available = Boolean(default=True)
    status = String(choices=CourierStatus, default=CourierStatus.IDLE.value)
    rating = Float(default=0.0, min_value=0.0, max_value=5.0)
    earnings = Float(default=0.0, min_value=0.0)
    location = ValueObject(GeoPoint)
    last_seen_at = DateTime()
    active_order_id = Identifier()

    @classmethod
    def register(
        cls,
        name: str,
        user_id: str | None = None,
        phone: str | None = None,
        vehicle_type: str = VehicleType.BIKE.value,
        location: GeoPoint | None = None,
    ):
        now = datetime.now(UTC)
        courier = cls(
            user_id=user_id,
            name=name,
            phone=phone,
            vehicle_type=vehicle_type or VehicleType.BIKE.value,
            available=True,
            status=CourierStatus.IDLE.value,
            location=location,
            last_seen_at=now,
        )
        courier.raise_(
            CourierRegistered(
                courier_id=str(courier.id),
                user_id=str(user_id) if user_id else None,
                name=name,
                vehicle_type=courier.vehicle_type,
                registered_at=now,
            )
        )
        return courier

    @property
    def channel(self) -> str:
        return str(self.user_id or self.id)

    def is_operated_by(self, actor_id) -> bool:
        """True when the courier has no linked user or the actor is that user."""
        return not self.user_id or str(self.user_id) == str(actor_id)

    def is_identified_by(self, actor_id) -> bool:
        """True when the actor is this courier, by courier id or linked user id."""
        if not actor_id:
            return False
        return str(actor_id) in {str(self.id), str(self.user_id)}

    def update_profile(self, name=None, phone=None, vehicle_type=None) -> None:
        if name:
            self.name = name
        if phone:
            self.phone = phone
        if vehicle_type:
            self.vehicle_type = vehicle_type

    def update_location(self, location: GeoPoint, available: bool | None = None, status: str | None = None) -> None:
        now = datetime.now(UTC)
        self.location = location
        self.last_seen_at = now
        if status is not None:
            self.set_duty_status(status)
        if available is not None and self.active_order_id is None:
            self.available = available
            if not available and self.status == CourierStatus.IDLE.value:
                self.status = CourierStatus.OFF_DUTY.value
            elif available and self.status == CourierStatus.OFF_DUTY.value:
                self.status = CourierStatus.IDLE.value

        self.raise_(
            CourierLocationUpdated(
                courier_id=str(self.id),
                user_id=str(self.user_id) if self.user_id else None,
                latitude=location.latitude,
                longitude=location.longitude,
                available=self.available,
                status=self.status,
                updated_at=now,
            )
        )

    def set_duty_status(self, status: str) -> None:
        try:
            target = CourierStatus(status)
        except ValueError:
            raise ValidationError({"status": [f"Unknown courier status '{status}'"]}) from None

        if self.active_order_id is not None and target in (CourierStatus.IDLE, CourierStatus.OFF_DUTY):
            raise InvalidStatusError(
                "Courier has an active order",
                courier_id=str(self.id),
                active_order_id=str(self.active_order_id),
            )
        self.status = target.value
        if target == CourierStatus.OFF_DUTY:
            self.available = False
        elif target == CourierStatus.IDLE:
            self.available = True

    def can_take(self, order_id) -> bool:
        """Available, or already committed to this very order."""
        if self.active_order_id is not None:
            return str(self.active_order_id) == str(order_id)
        return bool(self.available)

    def commit_to(self, order_id) -> None:
        if not self.can_take(order_id):
            raise InvalidStatusError(
                "Courier is not available",
                courier_id=str(self.id),
                active_order_id=str(self.active_order_id) if self.active_order_id else None,
            )
        self.available = False
        self.status = CourierStatus.DELIVERING.value
        self.active_order_id = order_id
        self.last_seen_at = datetime.now(UTC)

    def release(self, order_id=None) -> bool:
        """Return the courier to the pool.

        With ``order_id`` the release only happens when that order is the
        courier's active one. Returns True when anything changed.
        """
        if order_id is not None and str(self.active_order_id) != str(order_id):
            return False
        released_order = self.active_order_id
        was_available = self.available
        self.available = True
        self.status = CourierStatus.IDLE.value
        self.active_order_id = None
        self.last_seen_at = datetime.now(UTC)
        if released_order is not None:
            self.raise_(
                CourierReleased(
                    courier_id=str(self.id),
                    order_id=str(released_order),
                    released_at=self.last_seen_at,
                )
            )
        return released_order is not None or not was_available

    def to_payload(self, distance_m: float | None = None) -> dict:
        payload = {
            "id": str(self.id),
            "user_id": str(self.user_id) if self.user_id else None,
            "name": self.name,
            "phone": self.phone,
            "vehicle_type": self.vehicle_type,
            "available": bool(self.available),
            "status": self.status,
            "rating": self.rating,
            "location": self.location.to_payload() if self.location else None,
            "active_order_id": str(self.active_order_id) if self.active_order_id else None,
            "last_seen_at": self.last_seen_at.isoformat() if self.last_seen_at else None,
        }
        if distance_m is not None:
            payload["distance_m"] = round(distance_m, 1)
        return payload
