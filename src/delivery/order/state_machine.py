"""Order lifecycle state machine and the payment gate.

Happy path:
    PENDING → ASSIGNED → ACCEPTED → PREPARING → READY_FOR_PICKUP →
    OUT_FOR_DELIVERY → DELIVERED
    PENDING → ACCEPTED (paid at the gateway, or accepted by the restaurant)
    ACCEPTED → ASSIGNED (a paid or restaurant-accepted order is dispatched)
    ASSIGNED → PENDING | ACCEPTED (courier rejected the job; back where it was)
    any non-terminal → CANCELLED

Every delivery-stage target is guarded by ``payment_gate``: cash-on-delivery
orders pass unconditionally, everything else must be paid.
"""

from enum import Enum

from delivery.errors import InvalidStatusError, PaymentFailedError, PaymentRequiredError


class OrderStatus(Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready-for-pickup"
    OUT_FOR_DELIVERY = "out-for-delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(Enum):
    COD = "cod"
    UPI = "upi"
    CARD = "card"
    GATEWAY = "gateway"
    OTHER = "other"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


DELIVERY_STAGES = frozenset(
    {
        OrderStatus.PREPARING,
        OrderStatus.READY_FOR_PICKUP,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
    }
)

TERMINAL_STATES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Entered only through the courier handshake, never by a plain status change.
HANDSHAKE_STATES = frozenset({OrderStatus.ASSIGNED, OrderStatus.PENDING})

_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {
        OrderStatus.ASSIGNED,
        OrderStatus.ACCEPTED,
        OrderStatus.PREPARING,
        OrderStatus.CANCELLED,
    },
    OrderStatus.ASSIGNED: {
        OrderStatus.ACCEPTED,
        OrderStatus.PENDING,  # courier rejected
        OrderStatus.CANCELLED,
    },
    OrderStatus.ACCEPTED: {
        OrderStatus.ASSIGNED,  # dispatched after payment
        OrderStatus.PREPARING,
        OrderStatus.READY_FOR_PICKUP,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PREPARING: {
        OrderStatus.READY_FOR_PICKUP,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.READY_FOR_PICKUP: {
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}


def parse_status(value) -> OrderStatus:
    """Coerce a raw status string into ``OrderStatus``."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise InvalidStatusError(f"Unknown status '{value}'. Allowed: {allowed}", status=value) from None


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    if current == target:
        return True
    return target in _VALID_TRANSITIONS.get(current, set())


def assert_transition(current: OrderStatus, target: OrderStatus) -> None:
    if current == target:
        return
    if current in TERMINAL_STATES:
        raise InvalidStatusError(
            f"Order is already {current.value}",
            current=current.value,
            target=target.value,
        )
    if target not in _VALID_TRANSITIONS.get(current, set()):
        raise InvalidStatusError(
            f"Cannot transition from {current.value} to {target.value}",
            current=current.value,
            target=target.value,
        )


def requires_payment(target: OrderStatus) -> bool:
    return target in DELIVERY_STAGES


def payment_gate(payment_method: str, payment_status: str) -> None:
    """Raise unless the order may enter a delivery stage.

    The only place the payment-before-delivery rule lives; transitions,
    tracking updates and courier assignment all consult it.
    """
    if payment_method == PaymentMethod.COD.value:
        return
    if payment_status == PaymentStatus.FAILED.value:
        raise PaymentFailedError()
    if payment_status != PaymentStatus.PAID.value:
        raise PaymentRequiredError(payment_status=payment_status)
