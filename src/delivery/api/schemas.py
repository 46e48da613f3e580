"""Pydantic API schemas for the Delivery domain.

These are the external API contracts — separate from domain commands.
The API layer translates between these schemas and domain commands.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class LocationRequest(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class OrderItemRequest(BaseModel):
    dish_id: str
    name: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)
    restaurant_id: str | None = None
    source_location: LocationRequest | None = None


class PlaceOrderRequest(BaseModel):
    items: list[OrderItemRequest]
    delivery_address: str | None = None
    city: str | None = None
    payment_method: str = "cod"


class TransitionStatusRequest(BaseModel):
    status: str
    note: str | None = None


class UpdateTrackingRequest(BaseModel):
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)
    courier_id: str | None = None
    courier_name: str | None = None
    courier_phone: str | None = None
    vehicle_type: str | None = None
    estimated_delivery_time: datetime | None = None
    status: str | None = None
    note: str | None = None


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class AssignNearestRequest(BaseModel):
    max_distance: float = Field(default=5000.0, ge=0)


class JobResponseRequest(BaseModel):
    courier_id: str
    reason: str | None = None


class CreatePaymentIntentRequest(BaseModel):
    order_id: str


class VerifyPaymentRequest(BaseModel):
    order_id: str
    external_order_id: str
    external_payment_id: str
    signature: str


class ConfigureGatewayRequest(BaseModel):
    mode: str = "succeed"
    failure_reason: str = "Gateway rejected the request"


class RegisterCourierRequest(BaseModel):
    name: str
    phone: str | None = None
    vehicle_type: str = "bike"
    location: LocationRequest | None = None


class UpdateCourierLocationRequest(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    available: bool | None = None
    status: str | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class OrderIdResponse(BaseModel):
    order_id: str


class DataResponse(BaseModel):
    success: bool = True
    data: dict | list


class PaymentIntentResponse(BaseModel):
    order_id: str
    external_order_id: str
    amount: int
    currency: str
    key_id: str | None = None


class WebhookResponse(BaseModel):
    received: bool = True
    handled: bool = False


class GatewayConfigResponse(BaseModel):
    gateway: str
    mode: str
    failure_reason: str
