"""Delivery load test scenarios.

Two stateful SequentialTaskSet journeys: a cash-on-delivery order walked
from checkout to the doorstep by a freshly registered courier, and a
prepaid order confirmed through a signed gateway webhook.
"""

import os

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import captured_webhook, courier_data, courier_user_id, customer_id, order_data
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import DeliveryState

WEBHOOK_SECRET = os.environ.get("GATEWAY_WEBHOOK_SECRET", os.environ.get("GATEWAY_KEY_SECRET", ""))
ADMIN = {"X-Actor-Id": "admin-loadtest", "X-Actor-Role": "admin"}


def _actor(actor_id: str, role: str) -> dict:
    return {"X-Actor-Id": actor_id, "X-Actor-Role": role}


class CashOnDeliveryJourney(SequentialTaskSet):
    """Checkout -> Register Courier -> Assign -> Accept -> Deliver."""

    def on_start(self):
        self.state = DeliveryState(customer_id=customer_id(), courier_user_id=courier_user_id())

    @task
    def place_order(self):
        with self.client.post(
            "/orders",
            json=order_data(),
            headers=_actor(self.state.customer_id, "customer"),
            catch_response=True,
            name="POST /orders",
        ) as resp:
            if resp.status_code == 201:
                self.state.order_id = resp.json()["order_id"]
            else:
                resp.failure(f"Place order failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def register_courier(self):
        with self.client.post(
            "/couriers",
            json=courier_data(),
            headers=_actor(self.state.courier_user_id, "courier"),
            catch_response=True,
            name="POST /couriers",
        ) as resp:
            if resp.status_code == 201:
                self.state.courier_id = resp.json()["data"]["id"]
            else:
                resp.failure(f"Register courier failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def assign_nearest(self):
        with self.client.post(
            f"/orders/{self.state.order_id}/assign-nearest",
            json={"max_distance": 10000},
            headers=ADMIN,
            catch_response=True,
            name="POST /orders/{id}/assign-nearest",
        ) as resp:
            if resp.status_code == 200:
                self.state.courier_id = resp.json()["data"]["courier"]["id"]
                self.state.current_status = "assigned"
            else:
                # Other users' couriers may all be busy; that is a valid outcome.
                resp.success()
                self.interrupt()

    @task
    def accept(self):
        with self.client.post(
            f"/orders/{self.state.order_id}/accept",
            json={"courier_id": self.state.courier_id},
            headers=ADMIN,
            catch_response=True,
            name="POST /orders/{id}/accept",
        ) as resp:
            if resp.status_code == 200:
                self.state.current_status = "accepted"
            elif resp.status_code == 400:
                # Another journey's courier won the race for this courier.
                resp.success()
                self.interrupt()
            else:
                resp.failure(f"Accept failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def deliver(self):
        for status in ("preparing", "ready-for-pickup", "out-for-delivery", "delivered"):
            with self.client.patch(
                f"/orders/{self.state.order_id}/status",
                json={"status": status},
                headers=ADMIN,
                catch_response=True,
                name="PATCH /orders/{id}/status",
            ) as resp:
                if resp.status_code != 200:
                    resp.failure(f"Transition to {status} failed: {resp.status_code} — {extract_error_detail(resp)}")
                    self.interrupt()
                self.state.current_status = status

    @task
    def done(self):
        self.interrupt()


class PrepaidJourney(SequentialTaskSet):
    """Checkout -> Payment Intent -> Signed Webhook -> Read Back."""

    def on_start(self):
        self.state = DeliveryState(customer_id=customer_id())

    @task
    def place_order(self):
        with self.client.post(
            "/orders",
            json=order_data(payment_method="gateway"),
            headers=_actor(self.state.customer_id, "customer"),
            catch_response=True,
            name="POST /orders (prepaid)",
        ) as resp:
            if resp.status_code == 201:
                self.state.order_id = resp.json()["order_id"]
            else:
                resp.failure(f"Place order failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def create_intent(self):
        with self.client.post(
            "/payments/intent",
            json={"order_id": self.state.order_id},
            catch_response=True,
            name="POST /payments/intent",
        ) as resp:
            if resp.status_code == 201:
                self.state.external_order_id = resp.json()["external_order_id"]
            else:
                resp.failure(f"Payment intent failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def webhook_capture(self):
        body, signature = captured_webhook(self.state.order_id, self.state.external_order_id, WEBHOOK_SECRET)
        with self.client.post(
            "/payments/webhook",
            data=body,
            headers={"Content-Type": "application/json", "X-Gateway-Signature": signature},
            catch_response=True,
            name="POST /payments/webhook",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Webhook failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def read_back(self):
        with self.client.get(
            f"/orders/{self.state.order_id}",
            headers=_actor(self.state.customer_id, "customer"),
            catch_response=True,
            name="GET /orders/{id}",
        ) as resp:
            if resp.status_code == 200 and resp.json()["data"]["payment_status"] != "paid":
                resp.failure("Order not marked paid after webhook")

    @task
    def done(self):
        self.interrupt()


class DeliveryUser(HttpUser):
    """Mix of cash-on-delivery and prepaid journeys."""

    wait_time = between(1, 3)
    tasks = {CashOnDeliveryJourney: 3, PrepaidJourney: 2}
