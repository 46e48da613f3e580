"""Order lookup and actor checks shared by the order command handlers."""

from enum import Enum

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from delivery.courier.courier import Courier
from delivery.errors import AccessDeniedError, NotFoundError
from delivery.order.order import Order


class Role(Enum):
    CUSTOMER = "customer"
    COURIER = "courier"
    ADMIN = "admin"
    SYSTEM = "system"


PRIVILEGED_ROLES = frozenset({Role.ADMIN.value, Role.SYSTEM.value})
STATUS_ROLES = frozenset({Role.ADMIN.value, Role.COURIER.value, Role.SYSTEM.value})


def load_order(order_id) -> Order:
    try:
        return current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError:
        raise NotFoundError("Order", order_id) from None


def is_privileged(actor_role: str | None) -> bool:
    return actor_role in PRIVILEGED_ROLES


def assert_can_view(order: Order, actor_id, actor_role: str | None) -> None:
    if is_privileged(actor_role) or actor_role == Role.COURIER.value:
        return
    if not order.is_owned_by(actor_id):
        raise AccessDeniedError()


def assert_can_change_status(order: Order, actor_id, actor_role: str | None) -> None:
    """Admins and the system move any order; a courier only the order assigned to them."""
    if actor_role not in STATUS_ROLES:
        raise AccessDeniedError("Only couriers and admins can change the order status")
    if actor_role == Role.COURIER.value and not is_assigned_courier(order, actor_id):
        raise AccessDeniedError("Only the assigned courier can update this order")


def is_assigned_courier(order: Order, actor_id) -> bool:
    if not order.courier_ref:
        return False
    courier = current_domain.repository_for(Courier)._dao.query.filter(id=str(order.courier_ref)).all().first
    return courier is not None and courier.is_identified_by(actor_id)


def assert_can_cancel(order: Order, actor_id, actor_role: str | None) -> None:
    if is_privileged(actor_role):
        return
    if not order.is_owned_by(actor_id):
        raise AccessDeniedError("Only the order owner or an admin can cancel this order")
