"""Faker-based data generators for Locust load test scenarios.

Each generator produces payloads that pass the API's Pydantic request
schemas and the domain's validation rules (quantity ≥ 1, coordinates in
range).
"""

import hashlib
import hmac
import json
import random
import uuid

from faker import Faker

fake = Faker("en_IN")

# Central Bengaluru; every generated point is within a few kilometres.
CITY_CENTER = (12.9716, 77.5946)

DISHES = [
    ("Masala Dosa", 90.0),
    ("Chicken Biryani", 250.0),
    ("Paneer Butter Masala", 220.0),
    ("Veg Thali", 180.0),
    ("Filter Coffee", 40.0),
    ("Mango Lassi", 80.0),
]


def customer_id() -> str:
    return f"cust-lt-{uuid.uuid4().hex[:8]}"


def courier_user_id() -> str:
    return f"rider-lt-{uuid.uuid4().hex[:8]}"


def nearby_point(spread_degrees: float = 0.02) -> dict:
    """A point within roughly two kilometres of the city centre."""
    lat, lng = CITY_CENTER
    return {
        "lat": round(lat + random.uniform(-spread_degrees, spread_degrees), 6),
        "lng": round(lng + random.uniform(-spread_degrees, spread_degrees), 6),
    }


def order_data(payment_method: str = "cod") -> dict:
    """Generate a PlaceOrderRequest payload from one restaurant."""
    restaurant_id = f"rest-{random.randint(1, 50)}"
    pickup = nearby_point()
    items = []
    for name, price in random.sample(DISHES, k=random.randint(1, 3)):
        items.append(
            {
                "dish_id": f"dish-{uuid.uuid4().hex[:6]}",
                "restaurant_id": restaurant_id,
                "name": name,
                "quantity": random.randint(1, 3),
                "unit_price": price,
                "source_location": pickup,
            }
        )
    return {
        "items": items,
        "delivery_address": fake.street_address()[:255],
        "city": "Bengaluru",
        "payment_method": payment_method,
    }


def courier_data() -> dict:
    """Generate a RegisterCourierRequest payload."""
    return {
        "name": fake.name()[:100],
        "phone": f"+91-{random.randint(7000000000, 9999999999)}",
        "vehicle_type": random.choice(["bike", "scooter", "car"]),
        "location": nearby_point(),
    }


def captured_webhook(order_id: str, external_order_id: str, secret: str) -> tuple[str, str]:
    """Build a signed ``payment.captured`` body and its signature."""
    body = json.dumps(
        {
            "event": "payment.captured",
            "payload": {
                "payment": {
                    "entity": {
                        "id": f"pay_lt_{uuid.uuid4().hex[:12]}",
                        "order_id": external_order_id,
                        "status": "captured",
                        "notes": {"receipt": order_id},
                    }
                }
            },
        }
    )
    signature = hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()
    return body, signature
