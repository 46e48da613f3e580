"""HMAC-SHA256 signatures used by the gateway's checkout callback and webhooks."""

import hashlib
import hmac


def sign(message: str | bytes, secret: str) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def payment_signature(external_order_id: str, external_payment_id: str, secret: str) -> str:
    """The signature the gateway attaches to a successful checkout."""
    return sign(f"{external_order_id}|{external_payment_id}", secret)


def verify_payment_signature(external_order_id: str, external_payment_id: str, signature: str, secret: str) -> bool:
    if not signature:
        return False
    expected = payment_signature(external_order_id, external_payment_id, secret)
    return hmac.compare_digest(expected, signature)


def verify_webhook_signature(raw_body: str | bytes, signature: str, secret: str) -> bool:
    """Check a webhook signature over the exact raw request body."""
    if not signature:
        return False
    return hmac.compare_digest(sign(raw_body, secret), signature)
