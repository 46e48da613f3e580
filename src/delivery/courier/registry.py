"""Courier registry — registration, location updates and proximity lookup."""

import structlog
from protean import handle
from protean.fields import Boolean, Float, Identifier, String
from protean.utils.globals import current_domain

from delivery.courier.courier import Courier
from delivery.domain import delivery
from delivery.errors import AccessDeniedError, NotFoundError
from delivery.shared.geo import GeoPoint, distance_m

logger = structlog.get_logger(__name__)

DEFAULT_MAX_DISTANCE_M = 5000.0
DEFAULT_NEARBY_LIMIT = 20


@delivery.command(part_of="Courier")
class RegisterCourier:
    """Register a courier, or update the profile of the one linked to ``user_id``."""

    user_id = Identifier()
    name = String(required=True, max_length=100)
    phone = String(max_length=30)
    vehicle_type = String(max_length=20, default="bike")
    latitude = Float(min_value=-90.0, max_value=90.0)
    longitude = Float(min_value=-180.0, max_value=180.0)


@delivery.command(part_of="Courier")
class UpdateCourierLocation:
    """Report a courier's position, optionally toggling availability."""

    courier_id = Identifier(required=True)
    latitude = Float(required=True, min_value=-90.0, max_value=90.0)
    longitude = Float(required=True, min_value=-180.0, max_value=180.0)
    available = Boolean()
    status = String(max_length=20)
    actor_id = String(max_length=255)
    actor_role = String(max_length=20, default="courier")


def load_courier(courier_id) -> Courier:
    courier = current_domain.repository_for(Courier)._dao.query.filter(id=str(courier_id)).all().first
    if courier is None:
        raise NotFoundError("Courier", courier_id)
    return courier


def find_by_user(user_id) -> Courier | None:
    if not user_id:
        return None
    return current_domain.repository_for(Courier)._dao.query.filter(user_id=str(user_id)).all().first


def all_couriers() -> list[Courier]:
    return current_domain.repository_for(Courier)._dao.query.all().items


def find_nearby(
    point: GeoPoint,
    max_distance_m: float = DEFAULT_MAX_DISTANCE_M,
    limit: int = DEFAULT_NEARBY_LIMIT,
) -> list[tuple[Courier, float]]:
    """Available couriers within ``max_distance_m`` of ``point``, nearest first.

    Couriers without a known location are skipped. ``sorted`` is stable, so
    equal distances keep registry order.
    """
    candidates = []
    for courier in all_couriers():
        if not courier.available or courier.location is None:
            continue
        distance = distance_m(point, courier.location)
        if distance <= max_distance_m:
            candidates.append((courier, distance))
    candidates.sort(key=lambda pair: pair[1])
    return candidates[:limit]


@delivery.command_handler(part_of=Courier)
class CourierRegistryHandler:
    @handle(RegisterCourier)
    def register_courier(self, command):
        repo = current_domain.repository_for(Courier)
        location = None
        if command.latitude is not None and command.longitude is not None:
            location = GeoPoint(latitude=command.latitude, longitude=command.longitude)

        courier = find_by_user(command.user_id)
        if courier is None:
            courier = Courier.register(
                name=command.name,
                user_id=command.user_id,
                phone=command.phone,
                vehicle_type=command.vehicle_type,
                location=location,
            )
            logger.info("Courier registered", courier_id=str(courier.id), user_id=command.user_id)
        else:
            courier.update_profile(
                name=command.name,
                phone=command.phone,
                vehicle_type=command.vehicle_type,
            )
            if location is not None:
                courier.update_location(location)
            logger.info("Courier profile updated", courier_id=str(courier.id), user_id=command.user_id)

        repo.add(courier)
        return courier.to_payload()

    @handle(UpdateCourierLocation)
    def update_location(self, command):
        courier = load_courier(command.courier_id)
        if command.actor_role not in ("admin", "system") and not courier.is_operated_by(command.actor_id):
            raise AccessDeniedError("Not authorized to update this courier")

        courier.update_location(
            GeoPoint(latitude=command.latitude, longitude=command.longitude),
            available=command.available,
            status=command.status,
        )
        current_domain.repository_for(Courier).add(courier)
        return courier.to_payload()
