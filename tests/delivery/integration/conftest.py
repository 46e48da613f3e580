"""Fixtures for Delivery API integration tests."""

import pytest
from delivery.api import courier_router, order_router, payment_router, realtime_router, register_error_handlers
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

CUSTOMER = {"X-Actor-Id": "cust-1", "X-Actor-Role": "customer"}
ADMIN = {"X-Actor-Id": "admin-1", "X-Actor-Role": "admin"}

RESTAURANT = {"lat": 12.9716, "lng": 77.5946}
ITEMS = [
    {
        "dish_id": "dish-biryani",
        "restaurant_id": "rest-1",
        "name": "Chicken Biryani",
        "quantity": 2,
        "unit_price": 250.0,
        "source_location": RESTAURANT,
    },
    {
        "dish_id": "dish-lassi",
        "restaurant_id": "rest-1",
        "name": "Mango Lassi",
        "quantity": 1,
        "unit_price": 80.0,
        "source_location": RESTAURANT,
    },
]


def courier_headers(user_id):
    return {"X-Actor-Id": user_id, "X-Actor-Role": "courier"}


@pytest.fixture()
def client(_delivery_domain):
    app = FastAPI()

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        with _delivery_domain.domain_context():
            return await call_next(request)

    app.include_router(order_router)
    app.include_router(payment_router)
    app.include_router(courier_router)
    app.include_router(realtime_router)
    register_error_handlers(app)
    return TestClient(app)


@pytest.fixture()
def api_order(client):
    """Place an order over HTTP and return its id."""

    def _place(payment_method="cod", headers=CUSTOMER):
        response = client.post(
            "/orders",
            json={
                "items": ITEMS,
                "delivery_address": "12 MG Road",
                "city": "Bengaluru",
                "payment_method": payment_method,
            },
            headers=headers,
        )
        assert response.status_code == 201, response.text
        return response.json()["order_id"]

    return _place


@pytest.fixture()
def api_courier(client):
    """Register a courier over HTTP and return its id."""

    def _register(user_id="user-ravi", name="Ravi", lat=12.9720, lng=77.5950):
        response = client.post(
            "/couriers",
            json={"name": name, "phone": "+91-9000000000", "location": {"lat": lat, "lng": lng}},
            headers=courier_headers(user_id),
        )
        assert response.status_code == 201, response.text
        return response.json()["data"]["id"]

    return _register
