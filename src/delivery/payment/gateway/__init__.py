"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeGateway for development and testing (default)
- RazorpayGateway for production, selected with PAYMENT_GATEWAY=razorpay
"""

import os

from delivery.payment.gateway.fake_adapter import FakeGateway
from delivery.payment.gateway.port import PaymentGateway

_current_gateway: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway, building it from the environment on first use."""
    global _current_gateway
    if _current_gateway is None:
        adapter = os.environ.get("PAYMENT_GATEWAY", "fake")
        if adapter == "fake":
            _current_gateway = FakeGateway()
        elif adapter == "razorpay":
            from delivery.payment.config import load_gateway_config
            from delivery.payment.gateway.razorpay_adapter import RazorpayGateway

            _current_gateway = RazorpayGateway(load_gateway_config())
        else:
            raise ValueError(f"Unknown payment gateway: {adapter}")
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
