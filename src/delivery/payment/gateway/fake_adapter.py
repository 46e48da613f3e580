"""Configurable fake payment gateway for development and testing.

Simulates the gateway's order-creation endpoint without any external call.
It can be configured at runtime to succeed, answer with an error, or time
out, and records every call it receives.
"""

from uuid import uuid4

from delivery.errors import GatewayError, GatewayTimeoutError
from delivery.payment.gateway.port import GatewayOrder, PaymentGateway


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    name = "fake"

    def __init__(self) -> None:
        self.mode: str = "succeed"
        self.failure_reason: str = "Gateway rejected the request"
        self.calls: list[dict] = []

    def configure(self, mode: str = "succeed", failure_reason: str = "Gateway rejected the request") -> None:
        """Set the outcome of subsequent calls: ``succeed``, ``fail`` or ``timeout``."""
        if mode not in ("succeed", "fail", "timeout"):
            raise ValueError(f"Unknown fake gateway mode: {mode}")
        self.mode = mode
        self.failure_reason = failure_reason

    def create_order(self, amount_minor_units: int, currency: str, receipt: str) -> GatewayOrder:
        self.calls.append(
            {
                "method": "create_order",
                "amount_minor_units": amount_minor_units,
                "currency": currency,
                "receipt": receipt,
            }
        )

        if self.mode == "timeout":
            raise GatewayTimeoutError("Payment gateway timed out", gateway=self.name)
        if self.mode == "fail":
            raise GatewayError(self.failure_reason, gateway=self.name)

        return GatewayOrder(
            external_order_id=f"order_fake_{uuid4().hex[:14]}",
            amount_minor_units=amount_minor_units,
            currency=currency,
            receipt=receipt,
        )
