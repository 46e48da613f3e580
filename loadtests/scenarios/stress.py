"""Stress test scenarios for the order write path.

CourierPingUser floods location updates, OrderFloodUser floods checkouts.
No sequential dependencies: every task creates or touches its own aggregate.
"""

from locust import HttpUser, constant_pacing, task

from loadtests.data_generators import courier_data, courier_user_id, customer_id, nearby_point, order_data


class OrderFloodUser(HttpUser):
    """Maximum checkout throughput; every placement fans out order:created."""

    wait_time = constant_pacing(0.1)

    @task
    def place_order(self):
        self.client.post(
            "/orders",
            json=order_data(),
            headers={"X-Actor-Id": customer_id(), "X-Actor-Role": "customer"},
            name="[STRESS] POST /orders",
        )


class CourierPingUser(HttpUser):
    """One courier per user reporting its position as fast as it can."""

    wait_time = constant_pacing(0.2)

    def on_start(self):
        self.user_id = courier_user_id()
        resp = self.client.post(
            "/couriers",
            json=courier_data(),
            headers={"X-Actor-Id": self.user_id, "X-Actor-Role": "courier"},
            name="[STRESS] POST /couriers",
        )
        self.courier_id = resp.json()["data"]["id"] if resp.status_code == 201 else None

    @task
    def ping(self):
        if self.courier_id is None:
            return
        point = nearby_point()
        self.client.patch(
            f"/couriers/{self.courier_id}/location",
            json={"lat": point["lat"], "lng": point["lng"]},
            headers={"X-Actor-Id": self.user_id, "X-Actor-Role": "courier"},
            name="[STRESS] PATCH /couriers/{id}/location",
        )
