"""BDD tests for nearest-courier assignment and the accept/reject handshake."""

import pytest
from delivery.concurrency import courier_key, order_key, process_for_order, process_serialized
from delivery.courier.courier import Courier
from delivery.dispatch.assignment import AssignNearestCourier
from delivery.dispatch.handshake import AcceptJob, RejectJob
from delivery.order.transition import TransitionStatus
from protean import current_domain
from pytest_bdd import given, parsers, scenarios, then, when

scenarios("features/courier_handshake.feature")

RESTAURANT_LAT = 12.9716
RESTAURANT_LNG = 77.5946
METERS_PER_DEGREE_LAT = 111_195.0


@pytest.fixture()
def couriers():
    """Courier ids by name."""
    return {}


@given(parsers.cfparse('courier "{name}" is online {meters:d} meters from the restaurant'))
def _(register_courier, couriers, name, meters):
    couriers[name] = register_courier(
        name=name,
        lat=RESTAURANT_LAT + meters / METERS_PER_DEGREE_LAT,
        lng=RESTAURANT_LNG,
        user_id=f"user-{name.lower()}",
    )


@when("the nearest courier is assigned")
def _(order_id, attempt):
    attempt(lambda: process_serialized(AssignNearestCourier(order_id=order_id), order_key(order_id)))


@when(parsers.cfparse('courier "{name}" accepts the job'))
def _(order_id, couriers, attempt, name):
    courier_id = couriers[name]
    attempt(
        lambda: process_serialized(
            AcceptJob(order_id=order_id, courier_id=courier_id, actor_id=f"user-{name.lower()}"),
            order_key(order_id),
            courier_key(courier_id),
        )
    )


@when(parsers.cfparse('courier "{name}" rejects the job'))
def _(order_id, couriers, attempt, name):
    courier_id = couriers[name]
    attempt(
        lambda: process_serialized(
            RejectJob(order_id=order_id, courier_id=courier_id, actor_id=f"user-{name.lower()}"),
            order_key(order_id),
            courier_key(courier_id),
        )
    )


@when(parsers.cfparse('courier "{name}" moves the order to "{status}"'))
def _(order_id, attempt, name, status):
    command = TransitionStatus(order_id=order_id, status=status, actor_id=f"user-{name.lower()}", actor_role="courier")
    attempt(lambda: process_for_order(command, order_id))


@then(parsers.cfparse('the order is assigned to "{name}"'))
def _(order_id, couriers, load_order, name):
    assert str(load_order(order_id).courier_ref) == couriers[name]


@then(parsers.cfparse('courier "{name}" is available'))
def _(couriers, name):
    assert current_domain.repository_for(Courier).get(couriers[name]).available is True


@then(parsers.cfparse('courier "{name}" is not available'))
def _(couriers, name):
    assert current_domain.repository_for(Courier).get(couriers[name]).available is False
