"""Checkout payment verification — command, handler and caller entry point.

A signature mismatch is a final outcome: the order is cancelled and its
payment marked failed, and that state must be committed before the caller
learns about the mismatch. The handler therefore returns the outcome and
``verify_payment`` raises ``SignatureMismatchError`` after the commit.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from delivery.concurrency import order_key, process_serialized
from delivery.domain import delivery
from delivery.errors import SignatureMismatchError
from delivery.order.access import load_order
from delivery.order.order import Order
from delivery.order.state_machine import PaymentStatus
from delivery.payment.config import load_gateway_config
from delivery.payment.signatures import verify_payment_signature

logger = structlog.get_logger(__name__)

SOURCE = "verify"


@delivery.command(part_of="Order")
class VerifyPayment:
    """Confirm a checkout with the signature the gateway handed the customer."""

    order_id = Identifier(required=True)
    external_order_id = String(required=True, max_length=255)
    external_payment_id = String(required=True, max_length=255)
    signature = String(required=True, max_length=255)


@delivery.command_handler(part_of=Order)
class VerifyPaymentHandler:
    @handle(VerifyPayment)
    def verify(self, command):
        config = load_gateway_config()
        config.require_credentials()

        order = load_order(command.order_id)
        verified = verify_payment_signature(
            command.external_order_id,
            command.external_payment_id,
            command.signature,
            config.key_secret,
        )

        if verified:
            changed = order.mark_paid(
                source=SOURCE,
                external_order_id=command.external_order_id,
                external_payment_id=command.external_payment_id,
                signature=command.signature,
            )
            if not changed and order.is_terminal and order.payment_status != PaymentStatus.PAID.value:
                order.record_late_capture(SOURCE, external_payment_id=command.external_payment_id)
                logger.warning(
                    "Payment verified for an order that already ended",
                    order_id=str(order.id),
                    status=order.status,
                    external_payment_id=command.external_payment_id,
                )
                changed = True
        else:
            changed = order.mark_payment_failed(
                reason="Payment signature verification failed",
                external_order_id=command.external_order_id,
                external_payment_id=command.external_payment_id,
                signature=command.signature,
            )
            logger.warning("Payment signature mismatch", order_id=str(order.id), order_changed=changed)

        if changed:
            current_domain.repository_for(Order).add(order)
        return {"verified": verified, "changed": changed, "order": order.to_payload()}


def verify_payment(order_id, external_order_id, external_payment_id, signature) -> dict:
    """Verify a checkout under the order lock; raise on mismatch after committing."""
    result = process_serialized(
        VerifyPayment(
            order_id=order_id,
            external_order_id=external_order_id,
            external_payment_id=external_payment_id,
            signature=signature,
        ),
        order_key(order_id),
    )
    if not result["verified"]:
        raise SignatureMismatchError("Invalid payment signature", order_id=str(order_id))
    return result
