import os

import pytest

GATEWAY_ENV = {
    "GATEWAY_KEY_ID": "key_test_123",
    "GATEWAY_KEY_SECRET": "secret_test_456",
    "GATEWAY_WEBHOOK_SECRET": "whsec_test_789",
    "GATEWAY_CURRENCY": "INR",
    "PAYMENT_GATEWAY": "fake",
}


@pytest.fixture(scope="session")
def _delivery_domain(request):
    """Initialize the delivery domain once per session."""
    os.environ["PROTEAN_ENV"] = request.config.option.env

    from delivery.domain import delivery

    delivery.init()
    return delivery


@pytest.fixture(autouse=True)
def gateway_env(monkeypatch):
    for key, value in GATEWAY_ENV.items():
        monkeypatch.setenv(key, value)
    return GATEWAY_ENV


@pytest.fixture(autouse=True)
def run_around_tests(_delivery_domain):
    """Push domain context before each test, cleanup after."""
    from delivery.payment.gateway import reset_gateway
    from delivery.realtime.bus import reset_bus

    reset_gateway()
    reset_bus()
    ctx = _delivery_domain.domain_context()
    ctx.push()

    yield

    from protean import current_domain

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    for _, broker in current_domain.brokers.items():
        broker._data_reset()

    current_domain.event_store.store._data_reset()
    ctx.pop()
    reset_gateway()
    reset_bus()


# ---------------------------------------------------------------------------
# Shared builders
# ---------------------------------------------------------------------------
RESTAURANT_LOCATION = {"lat": 12.9716, "lng": 77.5946}


def order_items(location=RESTAURANT_LOCATION):
    return [
        {
            "dish_id": "dish-biryani",
            "restaurant_id": "rest-1",
            "name": "Chicken Biryani",
            "quantity": 2,
            "unit_price": 250.0,
            "source_location": location,
        },
        {
            "dish_id": "dish-lassi",
            "restaurant_id": "rest-1",
            "name": "Mango Lassi",
            "quantity": 1,
            "unit_price": 80.0,
            "source_location": location,
        },
    ]


@pytest.fixture()
def place_order():
    """Place an order through the command pipeline and return its id."""
    import json

    from delivery.concurrency import process_serialized
    from delivery.order.placement import PlaceOrder

    def _place(customer_id="cust-1", payment_method="cod", location=RESTAURANT_LOCATION):
        return process_serialized(
            PlaceOrder(
                customer_id=customer_id,
                items=json.dumps(order_items(location)),
                delivery_address="12 MG Road",
                city="Bengaluru",
                payment_method=payment_method,
            )
        )

    return _place


@pytest.fixture()
def register_courier():
    """Register a courier at a position and return its id."""
    from delivery.concurrency import process_serialized
    from delivery.courier.registry import RegisterCourier

    def _register(name="Ravi", lat=12.9720, lng=77.5950, user_id=None):
        payload = process_serialized(
            RegisterCourier(user_id=user_id, name=name, phone="+91-9000000000", latitude=lat, longitude=lng)
        )
        return payload["id"]

    return _register


@pytest.fixture()
def pay_order():
    """Create a gateway intent and confirm it with a correctly signed verify call."""
    from delivery.concurrency import order_key, process_serialized
    from delivery.payment.intent import CreatePaymentIntent
    from delivery.payment.signatures import payment_signature
    from delivery.payment.verification import verify_payment

    def _pay(order_id, external_payment_id="pay_test_001"):
        intent = process_serialized(CreatePaymentIntent(order_id=order_id), order_key(order_id))
        signature = payment_signature(
            intent["external_order_id"], external_payment_id, GATEWAY_ENV["GATEWAY_KEY_SECRET"]
        )
        return verify_payment(order_id, intent["external_order_id"], external_payment_id, signature)

    return _pay


@pytest.fixture()
def recorder():
    """A bus emitter that records every message it receives."""

    class Recorder:
        def __init__(self):
            self.messages = []

        def __call__(self, event, message):
            self.messages.append((event, message))

        @property
        def events(self):
            return [event for event, _ in self.messages]

    return Recorder
