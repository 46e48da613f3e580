"""Gateway credentials and settings, read from the environment on each call."""

import os
from dataclasses import dataclass

from delivery.errors import ConfigurationError

DEFAULT_CURRENCY = "INR"
DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class GatewayConfig:
    key_id: str | None
    key_secret: str | None
    webhook_secret: str | None
    currency: str = DEFAULT_CURRENCY
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def require_credentials(self) -> None:
        if not self.key_id or not self.key_secret:
            raise ConfigurationError("Payment gateway is not configured")

    def require_webhook_secret(self) -> str:
        if not self.webhook_secret:
            raise ConfigurationError("Payment webhook secret is not configured")
        return self.webhook_secret


def load_gateway_config() -> GatewayConfig:
    key_secret = os.environ.get("GATEWAY_KEY_SECRET") or None
    return GatewayConfig(
        key_id=os.environ.get("GATEWAY_KEY_ID") or None,
        key_secret=key_secret,
        webhook_secret=os.environ.get("GATEWAY_WEBHOOK_SECRET") or key_secret,
        currency=os.environ.get("GATEWAY_CURRENCY", DEFAULT_CURRENCY),
        timeout_seconds=float(os.environ.get("GATEWAY_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS)),
    )
