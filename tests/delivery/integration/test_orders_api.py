"""Integration tests for the order endpoints via TestClient."""

import inspect

import pytest
from delivery.api import routes
from delivery.invoice.generation import invoice_for_order
from delivery.order.order import Order
from protean import current_domain

CUSTOMER = {"X-Actor-Id": "cust-1", "X-Actor-Role": "customer"}
OTHER_CUSTOMER = {"X-Actor-Id": "cust-2", "X-Actor-Role": "customer"}
ADMIN = {"X-Actor-Id": "admin-1", "X-Actor-Role": "admin"}
COURIER = {"X-Actor-Id": "user-ravi", "X-Actor-Role": "courier"}


class TestPlaceOrderEndpoint:
    def test_place_order(self, client, api_order):
        order_id = api_order()
        order = current_domain.repository_for(Order).get(order_id)
        assert order.customer_id == "cust-1"
        assert order.total_price == 580.0

    def test_actor_header_is_required(self, client):
        response = client.post(
            "/orders",
            json={"items": [{"dish_id": "d", "name": "Idli", "quantity": 1, "unit_price": 40.0}]},
        )
        assert response.status_code == 422

    def test_invalid_quantity(self, client):
        response = client.post(
            "/orders",
            json={"items": [{"dish_id": "d", "name": "Idli", "quantity": 0, "unit_price": 40.0}]},
            headers=CUSTOMER,
        )
        assert response.status_code == 422

    def test_empty_cart(self, client):
        response = client.post("/orders", json={"items": []}, headers=CUSTOMER)
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"


class TestGetOrderEndpoint:
    def test_owner_reads_order(self, client, api_order):
        order_id = api_order()
        response = client.get(f"/orders/{order_id}", headers=CUSTOMER)
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["status"] == "pending"

    def test_other_customer_is_denied(self, client, api_order):
        order_id = api_order()
        response = client.get(f"/orders/{order_id}", headers=OTHER_CUSTOMER)
        assert response.status_code == 403
        assert response.json()["code"] == "access_denied"

    def test_unknown_order(self, client):
        response = client.get("/orders/does-not-exist", headers=ADMIN)
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"


class TestStatusEndpoint:
    def test_admin_moves_order_forward(self, client, api_order):
        order_id = api_order()
        response = client.patch(f"/orders/{order_id}/status", json={"status": "accepted"}, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["data"]["tracking"][0]["status"] == "accepted"

    def test_customer_cannot_change_status(self, client, api_order):
        order_id = api_order()
        response = client.patch(f"/orders/{order_id}/status", json={"status": "accepted"}, headers=CUSTOMER)
        assert response.status_code == 403

    def test_illegal_transition(self, client, api_order):
        order_id = api_order()
        response = client.patch(f"/orders/{order_id}/status", json={"status": "delivered"}, headers=ADMIN)
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_status"

    def test_unpaid_prepaid_order_gets_402(self, client, api_order):
        order_id = api_order(payment_method="gateway")
        client.patch(f"/orders/{order_id}/status", json={"status": "accepted"}, headers=ADMIN)
        response = client.patch(f"/orders/{order_id}/status", json={"status": "preparing"}, headers=ADMIN)
        assert response.status_code == 402
        body = response.json()
        assert body["code"] == "payment_required"
        assert body["details"]["payment_status"] == "pending"


class TestTrackingEndpoint:
    def _dispatch(self, client, api_order, api_courier):
        order_id = api_order()
        courier_id = api_courier()
        client.post(f"/orders/{order_id}/assign-nearest", json={}, headers=ADMIN)
        client.post(f"/orders/{order_id}/accept", json={"courier_id": courier_id}, headers=COURIER)
        return order_id

    def test_courier_pushes_location(self, client, api_order, api_courier):
        order_id = self._dispatch(client, api_order, api_courier)
        response = client.patch(
            f"/orders/{order_id}/tracking",
            json={"lat": 12.95, "lng": 77.61, "courier_name": "Ravi"},
            headers=COURIER,
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["current_location"] == {"lat": 12.95, "lng": 77.61}
        assert data["courier"]["name"] == "Ravi"

    def test_other_courier_cannot_push_location(self, client, api_order, api_courier):
        order_id = self._dispatch(client, api_order, api_courier)
        response = client.patch(
            f"/orders/{order_id}/tracking",
            json={"lat": 12.0, "lng": 77.0},
            headers={"X-Actor-Id": "user-mallory", "X-Actor-Role": "courier"},
        )
        assert response.status_code == 403
        assert response.json()["code"] == "access_denied"

    def test_other_courier_cannot_move_status(self, client, api_order, api_courier):
        order_id = self._dispatch(client, api_order, api_courier)
        response = client.patch(
            f"/orders/{order_id}/status",
            json={"status": "delivered"},
            headers={"X-Actor-Id": "user-mallory", "X-Actor-Role": "courier"},
        )
        assert response.status_code == 403
        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == "accepted"


class TestCancelEndpoint:
    def test_owner_cancels(self, client, api_order):
        order_id = api_order()
        response = client.post(f"/orders/{order_id}/cancel", json={"reason": "late"}, headers=CUSTOMER)
        assert response.status_code == 200
        assert response.json()["data"]["cancelled_by"] == "user"

    def test_second_cancel_is_rejected(self, client, api_order):
        order_id = api_order()
        client.post(f"/orders/{order_id}/cancel", json={}, headers=CUSTOMER)
        response = client.post(f"/orders/{order_id}/cancel", json={}, headers=ADMIN)
        assert response.status_code == 400


class TestInvoiceEndpoint:
    def test_invoice_after_delivery(self, client, api_order):
        order_id = api_order()
        for status in ("accepted", "delivered"):
            client.patch(f"/orders/{order_id}/status", json={"status": status}, headers=ADMIN)

        response = client.get(f"/orders/{order_id}/invoice", headers=CUSTOMER)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 609.0
        assert data["invoice_number"] == invoice_for_order(order_id).invoice_number

    def test_no_invoice_yet(self, client, api_order):
        order_id = api_order()
        response = client.get(f"/orders/{order_id}/invoice", headers=CUSTOMER)
        assert response.status_code == 404


class TestRouteExecution:
    @pytest.mark.parametrize(
        "endpoint",
        [
            "place_order",
            "transition_status",
            "update_tracking",
            "cancel_order",
            "assign_nearest",
            "accept_job",
            "reject_job",
            "create_payment_intent",
            "verify",
            "register_courier",
            "update_courier_location",
        ],
    )
    def test_lock_holding_routes_run_in_the_threadpool(self, endpoint):
        assert not inspect.iscoroutinefunction(getattr(routes, endpoint))
