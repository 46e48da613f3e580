"""Shared BDD fixtures and step definitions for the Delivery domain."""

import pytest
from delivery.concurrency import process_for_order
from delivery.errors import DeliveryError
from delivery.order.cancellation import CancelOrder
from delivery.order.order import Order
from delivery.order.transition import TransitionStatus
from protean import current_domain
from pytest_bdd import given, parsers, then, when


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Container for the failure of the last When step."""
    return {"exc": None}


@pytest.fixture()
def attempt(error):
    """Run a call, capturing a domain failure instead of raising it."""

    def _attempt(call):
        error["exc"] = None
        try:
            return call()
        except DeliveryError as exc:
            error["exc"] = exc
            return None

    return _attempt


@pytest.fixture()
def load_order():
    def _load(order_id) -> Order:
        return current_domain.repository_for(Order).get(order_id)

    return _load


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse('a "{payment_method}" order placed by "{customer_id}"'),
    target_fixture="order_id",
)
def _(place_order, payment_method, customer_id):
    return place_order(customer_id=customer_id, payment_method=payment_method)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.re(r'the order is moved to "(?P<status>[^"]+)" by an? "(?P<role>[^"]+)"'))
def _(order_id, attempt, status, role):
    attempt(
        lambda: process_for_order(
            TransitionStatus(order_id=order_id, status=status, actor_id=f"{role}-1", actor_role=role),
            order_id,
        )
    )


@when(parsers.cfparse('"{customer_id}" cancels the order'))
def _(order_id, attempt, customer_id):
    attempt(lambda: process_for_order(CancelOrder(order_id=order_id, actor_id=customer_id), order_id))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(order_id, load_order, status):
    assert load_order(order_id).status == status


@then(parsers.cfparse('the payment status is "{payment_status}"'))
def _(order_id, load_order, payment_status):
    assert load_order(order_id).payment_status == payment_status


@then(parsers.cfparse('the request fails with "{code}"'))
def _(error, code):
    assert error["exc"] is not None
    assert error["exc"].code == code
