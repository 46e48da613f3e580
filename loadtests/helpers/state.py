"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance maintains its own state — no cross-user sharing.
"""

from dataclasses import dataclass


@dataclass
class DeliveryState:
    """Tracks one order's journey from checkout to the doorstep."""

    customer_id: str | None = None
    order_id: str | None = None
    courier_id: str | None = None
    courier_user_id: str | None = None
    external_order_id: str | None = None
    current_status: str = "pending"
