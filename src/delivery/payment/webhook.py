"""Gateway webhook processing — command, handler and caller entry point.

The signature covers the exact raw request body and is checked before the
body is parsed. Only ``payment.captured`` changes state; every other event,
and a capture for an order this system does not know, is acknowledged and
ignored so the gateway stops retrying it.
"""

import json

import structlog
from protean import handle
from protean.fields import String, Text
from protean.utils.globals import current_domain

from delivery.concurrency import order_key, process_serialized
from delivery.domain import delivery
from delivery.errors import SignatureMismatchError
from delivery.order.order import Order
from delivery.order.state_machine import PaymentStatus
from delivery.payment.config import load_gateway_config
from delivery.payment.signatures import verify_webhook_signature

logger = structlog.get_logger(__name__)

SOURCE = "webhook"
CAPTURED = "payment.captured"


@delivery.command(part_of="Order")
class ProcessGatewayWebhook:
    """Apply a signed gateway webhook delivery."""

    raw_body = Text(required=True)
    signature = String(max_length=255)


def _check_signature(raw_body: str, signature: str | None) -> None:
    secret = load_gateway_config().require_webhook_secret()
    if not verify_webhook_signature(raw_body, signature, secret):
        raise SignatureMismatchError("Invalid webhook signature")


def _payment_entity(payload: dict) -> dict:
    return ((payload.get("payload") or {}).get("payment") or {}).get("entity") or {}


def _find_order(payment: dict) -> Order | None:
    repo = current_domain.repository_for(Order)

    receipt = (payment.get("notes") or {}).get("receipt")
    if receipt:
        order = repo._dao.query.filter(id=str(receipt)).all().first
        if order is not None:
            return order

    external_order_id = payment.get("order_id")
    if external_order_id:
        for order in repo._dao.query.all().items:
            if order.payment_info and order.payment_info.external_order_id == external_order_id:
                return order
    return None


def parse_webhook(raw_body: str) -> dict:
    try:
        return json.loads(raw_body)
    except ValueError:
        logger.warning("Webhook body is not valid JSON")
        return {}


@delivery.command_handler(part_of=Order)
class GatewayWebhookHandler:
    @handle(ProcessGatewayWebhook)
    def process_webhook(self, command):
        _check_signature(command.raw_body, command.signature)

        payload = parse_webhook(command.raw_body)
        event = payload.get("event")
        if event != CAPTURED:
            logger.info("Webhook event ignored", gateway_event=event)
            return {"received": True, "handled": False}

        payment = _payment_entity(payload)
        order = _find_order(payment)
        if order is None:
            logger.warning(
                "Webhook capture for unknown order",
                external_order_id=payment.get("order_id"),
                external_payment_id=payment.get("id"),
            )
            return {"received": True, "handled": False}

        changed = order.mark_paid(
            source=SOURCE,
            external_order_id=payment.get("order_id"),
            external_payment_id=payment.get("id"),
        )
        if not changed and order.is_terminal and order.payment_status != PaymentStatus.PAID.value:
            order.record_late_capture(SOURCE, external_payment_id=payment.get("id"))
            logger.warning(
                "Payment captured for an order that already ended",
                order_id=str(order.id),
                status=order.status,
                external_payment_id=payment.get("id"),
            )
            changed = True

        if changed:
            current_domain.repository_for(Order).add(order)
        logger.info("Webhook capture applied", order_id=str(order.id), changed=changed)
        return {"received": True, "handled": True, "order_id": str(order.id), "changed": changed}


def process_gateway_webhook(raw_body: str | bytes, signature: str | None) -> dict:
    """Verify, correlate and apply a webhook delivery under the order's lock."""
    if isinstance(raw_body, bytes):
        raw_body = raw_body.decode("utf-8")
    _check_signature(raw_body, signature)

    keys = []
    payment = _payment_entity(parse_webhook(raw_body))
    order = _find_order(payment) if payment else None
    if order is not None:
        keys.append(order_key(order.id))

    return process_serialized(ProcessGatewayWebhook(raw_body=raw_body, signature=signature), *keys)
