"""Payment gateway port (abstract interface).

Adapters create a gateway-side order (a payment intent) for the customer's
checkout. Signature verification never calls the gateway; it only needs the
shared secrets, see ``delivery.payment.signatures``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class GatewayOrder:
    """A payment intent created at the gateway."""

    external_order_id: str
    amount_minor_units: int
    currency: str
    receipt: str
    status: str = "created"


class PaymentGateway(ABC):
    """Abstract payment gateway interface.

    Implementations raise ``GatewayTimeoutError`` when the gateway does not
    answer within the configured timeout and ``GatewayError`` when it
    answers with an error.
    """

    name = "abstract"

    @abstractmethod
    def create_order(self, amount_minor_units: int, currency: str, receipt: str) -> GatewayOrder:
        """Create a payment intent for ``amount_minor_units`` in ``currency``."""
        ...
