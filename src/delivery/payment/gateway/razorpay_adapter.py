"""Razorpay gateway adapter — order creation over the REST API."""

import requests
import structlog

from delivery.errors import GatewayError, GatewayTimeoutError
from delivery.payment.config import GatewayConfig
from delivery.payment.gateway.port import GatewayOrder, PaymentGateway

logger = structlog.get_logger(__name__)

API_BASE_URL = "https://api.razorpay.com/v1"


class RazorpayGateway(PaymentGateway):
    """Creates Razorpay orders with basic auth and a bounded timeout."""

    name = "razorpay"

    def __init__(self, config: GatewayConfig, base_url: str = API_BASE_URL, session=None) -> None:
        config.require_credentials()
        self.config = config
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.auth = (config.key_id, config.key_secret)

    def create_order(self, amount_minor_units: int, currency: str, receipt: str) -> GatewayOrder:
        body = {
            "amount": amount_minor_units,
            "currency": currency,
            "receipt": receipt,
            "notes": {"receipt": receipt},
        }
        try:
            response = self.session.post(
                f"{self.base_url}/orders",
                json=body,
                timeout=self.config.timeout_seconds,
            )
        except requests.Timeout:
            logger.warning("Gateway order creation timed out", receipt=receipt, timeout=self.config.timeout_seconds)
            raise GatewayTimeoutError("Payment gateway timed out", gateway=self.name) from None
        except requests.RequestException as exc:
            logger.error("Gateway request failed", receipt=receipt, error=str(exc))
            raise GatewayError("Payment gateway unreachable", gateway=self.name) from exc

        if response.status_code >= 400:
            try:
                description = response.json().get("error", {}).get("description")
            except ValueError:
                description = None
            logger.error(
                "Gateway rejected order creation",
                receipt=receipt,
                status_code=response.status_code,
                description=description,
            )
            raise GatewayError(
                description or "Payment gateway rejected the request",
                gateway=self.name,
                status_code=response.status_code,
            )

        data = response.json()
        return GatewayOrder(
            external_order_id=data["id"],
            amount_minor_units=int(data.get("amount", amount_minor_units)),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
            status=data.get("status", "created"),
        )
