"""Delivery domain API package."""

from delivery.api.errors import register_error_handlers
from delivery.api.routes import courier_router, order_router, payment_router, realtime_router

__all__ = [
    "order_router",
    "payment_router",
    "courier_router",
    "realtime_router",
    "register_error_handlers",
]
