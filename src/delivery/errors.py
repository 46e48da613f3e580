"""Typed failures raised by the delivery core.

Every error carries a machine-readable ``code``, the HTTP status the API
layer renders it with, and a Protean-style ``messages`` dict so that callers
already handling ``ValidationError`` keep working.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError


class DeliveryError(ValidationError):
    """Base class for all delivery-core failures."""

    code = "delivery_error"
    status_code = 400
    field = "order"
    retryable = False

    def __init__(self, message: str, **details):
        self.message = message
        self.details = details
        super().__init__({self.field: [message]})

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict:
        return {
            "success": False,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(DeliveryError, ObjectNotFoundError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, identifier: str):
        super().__init__(f"{entity} not found", entity=entity, id=str(identifier))


class PaymentRequiredError(DeliveryError):
    """A delivery-stage step was requested before the payment was confirmed."""

    code = "payment_required"
    status_code = 402
    field = "payment_status"

    def __init__(self, payment_status: str, message: str | None = None):
        self.payment_status = payment_status
        super().__init__(
            message or "Payment must be completed before the order can proceed to delivery",
            payment_status=payment_status,
        )


class PaymentFailedError(DeliveryError):
    """The order's payment failed; the order is cancelled and must be placed again."""

    code = "payment_failed"
    status_code = 409
    field = "payment_status"

    def __init__(self, message: str = "Payment failed. Order is cancelled; place a new order."):
        self.payment_status = "failed"
        super().__init__(message, payment_status="failed")


class AccessDeniedError(DeliveryError):
    code = "access_denied"
    status_code = 403
    field = "actor"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class InvalidStatusError(DeliveryError):
    code = "invalid_status"
    status_code = 400
    field = "status"


class NoCourierAvailableError(DeliveryError):
    code = "no_courier_available"
    status_code = 404
    field = "courier"

    def __init__(self, max_distance: float):
        super().__init__("No available couriers nearby", max_distance=max_distance)


class SignatureMismatchError(DeliveryError):
    code = "signature_mismatch"
    status_code = 400
    field = "signature"


class ConfigurationError(DeliveryError):
    code = "configuration_error"
    status_code = 500
    field = "configuration"


class GatewayError(DeliveryError):
    """The payment gateway answered with an explicit error."""

    code = "gateway_error"
    status_code = 502
    field = "gateway"


class GatewayTimeoutError(GatewayError):
    """The payment gateway did not answer in time. Safe to retry."""

    code = "gateway_timeout"
    status_code = 504
    retryable = True
