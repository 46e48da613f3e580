"""Tests for the order transition table and the payment gate."""

import pytest
from delivery.errors import InvalidStatusError, PaymentFailedError, PaymentRequiredError
from delivery.order.state_machine import (
    DELIVERY_STAGES,
    TERMINAL_STATES,
    OrderStatus,
    assert_transition,
    can_transition,
    parse_status,
    payment_gate,
    requires_payment,
)


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current, target",
        [
            (OrderStatus.PENDING, OrderStatus.ASSIGNED),
            (OrderStatus.PENDING, OrderStatus.ACCEPTED),
            (OrderStatus.ASSIGNED, OrderStatus.ACCEPTED),
            (OrderStatus.ASSIGNED, OrderStatus.PENDING),
            (OrderStatus.ACCEPTED, OrderStatus.ASSIGNED),
            (OrderStatus.ACCEPTED, OrderStatus.PREPARING),
            (OrderStatus.ACCEPTED, OrderStatus.DELIVERED),
            (OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP),
            (OrderStatus.READY_FOR_PICKUP, OrderStatus.OUT_FOR_DELIVERY),
            (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED),
        ],
    )
    def test_forward_transitions_are_allowed(self, current, target):
        assert can_transition(current, target)
        assert_transition(current, target)

    @pytest.mark.parametrize("status", [s for s in OrderStatus if s not in TERMINAL_STATES])
    def test_every_non_terminal_status_can_be_cancelled(self, status):
        assert can_transition(status, OrderStatus.CANCELLED)

    def test_going_backwards_is_rejected(self):
        with pytest.raises(InvalidStatusError) as exc:
            assert_transition(OrderStatus.OUT_FOR_DELIVERY, OrderStatus.PREPARING)
        assert "Cannot transition" in exc.value.message

    def test_assigned_cannot_skip_to_delivery(self):
        assert not can_transition(OrderStatus.ASSIGNED, OrderStatus.DELIVERED)

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES, key=lambda s: s.value))
    def test_terminal_states_have_no_exits(self, terminal):
        for target in OrderStatus:
            if target == terminal:
                continue
            with pytest.raises(InvalidStatusError) as exc:
                assert_transition(terminal, target)
            assert exc.value.message == f"Order is already {terminal.value}"

    def test_same_status_is_a_no_op(self):
        assert can_transition(OrderStatus.DELIVERED, OrderStatus.DELIVERED)
        assert_transition(OrderStatus.DELIVERED, OrderStatus.DELIVERED)


class TestParseStatus:
    def test_parses_known_status(self):
        assert parse_status("out-for-delivery") == OrderStatus.OUT_FOR_DELIVERY

    def test_passes_enum_through(self):
        assert parse_status(OrderStatus.PENDING) is OrderStatus.PENDING

    def test_unknown_status_is_invalid(self):
        with pytest.raises(InvalidStatusError) as exc:
            parse_status("teleported")
        assert exc.value.details["status"] == "teleported"


class TestPaymentGate:
    def test_delivery_stages_require_payment(self):
        assert all(requires_payment(stage) for stage in DELIVERY_STAGES)
        assert not requires_payment(OrderStatus.ASSIGNED)
        assert not requires_payment(OrderStatus.CANCELLED)

    @pytest.mark.parametrize("payment_status", ["pending", "failed", "paid"])
    def test_cash_on_delivery_always_passes(self, payment_status):
        payment_gate("cod", payment_status)

    def test_paid_prepaid_order_passes(self):
        payment_gate("gateway", "paid")

    def test_pending_prepaid_order_requires_payment(self):
        with pytest.raises(PaymentRequiredError) as exc:
            payment_gate("upi", "pending")
        assert exc.value.payment_status == "pending"
        assert exc.value.status_code == 402

    def test_failed_prepaid_order_is_final(self):
        with pytest.raises(PaymentFailedError) as exc:
            payment_gate("card", "failed")
        assert exc.value.status_code == 409
        assert "place a new order" in exc.value.message
