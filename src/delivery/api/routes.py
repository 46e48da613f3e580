"""FastAPI endpoints for the Delivery domain.

Authentication is out of scope: the caller's identity arrives in the
``X-Actor-Id`` and ``X-Actor-Role`` headers set by the gateway in front of
this service. Every mutating endpoint goes through ``process_serialized``
with the lock keys of the aggregates it touches. Endpoints that touch the
domain are plain functions, so FastAPI runs them in its threadpool and a
slow gateway call or a held lock never stalls the event loop serving the
live streams.
"""

import asyncio
import json
import os
from uuid import uuid4

from fastapi import APIRouter, Header, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from delivery.api.schemas import (
    AssignNearestRequest,
    CancelOrderRequest,
    ConfigureGatewayRequest,
    CreatePaymentIntentRequest,
    DataResponse,
    GatewayConfigResponse,
    JobResponseRequest,
    OrderIdResponse,
    PaymentIntentResponse,
    PlaceOrderRequest,
    RegisterCourierRequest,
    TransitionStatusRequest,
    UpdateCourierLocationRequest,
    UpdateTrackingRequest,
    VerifyPaymentRequest,
    WebhookResponse,
)
from delivery.concurrency import courier_key, order_key, process_for_order, process_serialized, retry_read
from delivery.courier.registry import RegisterCourier, UpdateCourierLocation, find_nearby
from delivery.dispatch.assignment import AssignNearestCourier
from delivery.dispatch.handshake import AcceptJob, RejectJob
from delivery.errors import NotFoundError
from delivery.invoice.generation import invoice_for_order
from delivery.order.access import assert_can_view, load_order
from delivery.order.cancellation import CancelOrder
from delivery.order.placement import PlaceOrder
from delivery.order.tracking import UpdateTracking
from delivery.order.transition import TransitionStatus
from delivery.payment.gateway import get_gateway
from delivery.payment.gateway.fake_adapter import FakeGateway
from delivery.payment.intent import CreatePaymentIntent
from delivery.payment.verification import verify_payment
from delivery.payment.webhook import process_gateway_webhook
from delivery.realtime.bus import get_bus
from delivery.shared.geo import GeoPoint

SSE_RETRY_MILLISECONDS = int(os.environ.get("SSE_RETRY_MILLISECONDS", "3000"))
SSE_KEEPALIVE_SECONDS = float(os.environ.get("SSE_KEEPALIVE_SECONDS", "15"))

order_router = APIRouter(prefix="/orders", tags=["orders"])
payment_router = APIRouter(prefix="/payments", tags=["payments"])
courier_router = APIRouter(prefix="/couriers", tags=["couriers"])
realtime_router = APIRouter(tags=["realtime"])


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
@order_router.post("", status_code=201, response_model=OrderIdResponse)
def place_order(
    body: PlaceOrderRequest,
    x_actor_id: str = Header(),
) -> OrderIdResponse:
    command = PlaceOrder(
        customer_id=x_actor_id,
        items=json.dumps([item.model_dump() for item in body.items]),
        delivery_address=body.delivery_address,
        city=body.city,
        payment_method=body.payment_method,
    )
    result = process_serialized(command)
    return OrderIdResponse(order_id=result)


@order_router.get("/{order_id}", response_model=DataResponse)
def get_order(
    order_id: str,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str = Header(default="customer"),
) -> DataResponse:
    order = retry_read(lambda: load_order(order_id))
    assert_can_view(order, x_actor_id, x_actor_role)
    return DataResponse(data=order.to_payload())


@order_router.patch("/{order_id}/status", response_model=DataResponse)
def transition_status(
    order_id: str,
    body: TransitionStatusRequest,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str = Header(default="customer"),
) -> DataResponse:
    command = TransitionStatus(
        order_id=order_id,
        status=body.status,
        actor_id=x_actor_id,
        actor_role=x_actor_role,
        note=body.note,
    )
    return DataResponse(data=process_for_order(command, order_id))


@order_router.patch("/{order_id}/tracking", response_model=DataResponse)
def update_tracking(
    order_id: str,
    body: UpdateTrackingRequest,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str = Header(default="courier"),
) -> DataResponse:
    command = UpdateTracking(
        order_id=order_id,
        latitude=body.lat,
        longitude=body.lng,
        courier_id=body.courier_id,
        courier_name=body.courier_name,
        courier_phone=body.courier_phone,
        vehicle_type=body.vehicle_type,
        estimated_delivery_time=body.estimated_delivery_time,
        status=body.status,
        note=body.note,
        actor_id=x_actor_id,
        actor_role=x_actor_role,
    )
    return DataResponse(data=process_for_order(command, order_id))


@order_router.post("/{order_id}/cancel", response_model=DataResponse)
def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str = Header(default="customer"),
) -> DataResponse:
    command = CancelOrder(
        order_id=order_id,
        actor_id=x_actor_id,
        actor_role=x_actor_role,
        reason=body.reason,
    )
    return DataResponse(data=process_for_order(command, order_id))


@order_router.post("/{order_id}/assign-nearest", response_model=DataResponse)
def assign_nearest(order_id: str, body: AssignNearestRequest) -> DataResponse:
    command = AssignNearestCourier(order_id=order_id, max_distance_m=body.max_distance)
    return DataResponse(data=process_serialized(command, order_key(order_id)))


@order_router.post("/{order_id}/accept", response_model=DataResponse)
def accept_job(
    order_id: str,
    body: JobResponseRequest,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str = Header(default="courier"),
) -> DataResponse:
    command = AcceptJob(
        order_id=order_id,
        courier_id=body.courier_id,
        actor_id=x_actor_id,
        actor_role=x_actor_role,
    )
    return DataResponse(data=process_serialized(command, order_key(order_id), courier_key(body.courier_id)))


@order_router.post("/{order_id}/reject", response_model=DataResponse)
def reject_job(
    order_id: str,
    body: JobResponseRequest,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str = Header(default="courier"),
) -> DataResponse:
    command = RejectJob(
        order_id=order_id,
        courier_id=body.courier_id,
        actor_id=x_actor_id,
        actor_role=x_actor_role,
        reason=body.reason,
    )
    return DataResponse(data=process_serialized(command, order_key(order_id), courier_key(body.courier_id)))


@order_router.get("/{order_id}/invoice", response_model=DataResponse)
def get_invoice(
    order_id: str,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str = Header(default="customer"),
) -> DataResponse:
    order = load_order(order_id)
    assert_can_view(order, x_actor_id, x_actor_role)
    invoice = invoice_for_order(order_id)
    if invoice is None:
        raise NotFoundError("Invoice", order_id)
    return DataResponse(
        data={
            "invoice_id": str(invoice.id),
            "invoice_number": invoice.invoice_number,
            "order_id": str(invoice.order_id),
            "subtotal": invoice.subtotal,
            "tax": invoice.tax,
            "total": invoice.total,
            "status": invoice.status,
            "line_items": [
                {
                    "description": item.description,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "total": item.total,
                }
                for item in invoice.line_items
            ],
        }
    )


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
@payment_router.post("/intent", status_code=201, response_model=PaymentIntentResponse)
def create_payment_intent(body: CreatePaymentIntentRequest) -> PaymentIntentResponse:
    result = process_serialized(CreatePaymentIntent(order_id=body.order_id), order_key(body.order_id))
    return PaymentIntentResponse(**result)


@payment_router.post("/verify", response_model=DataResponse)
def verify(body: VerifyPaymentRequest) -> DataResponse:
    result = verify_payment(
        order_id=body.order_id,
        external_order_id=body.external_order_id,
        external_payment_id=body.external_payment_id,
        signature=body.signature,
    )
    return DataResponse(data=result["order"])


@payment_router.post("/webhook", response_model=WebhookResponse)
async def gateway_webhook(
    request: Request,
    x_gateway_signature: str = Header(default=""),
) -> WebhookResponse:
    """Gateway callback. The signature covers the raw body, so it is read unparsed."""
    raw_body = await request.body()
    result = await run_in_threadpool(process_gateway_webhook, raw_body, x_gateway_signature)
    return WebhookResponse(received=True, handled=result.get("handled", False))


@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(mode=body.mode, failure_reason=body.failure_reason)
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        mode=gateway.mode,
        failure_reason=gateway.failure_reason,
    )


# ---------------------------------------------------------------------------
# Courier Router
# ---------------------------------------------------------------------------
@courier_router.post("", status_code=201, response_model=DataResponse)
def register_courier(
    body: RegisterCourierRequest,
    x_actor_id: str | None = Header(default=None),
) -> DataResponse:
    command = RegisterCourier(
        user_id=x_actor_id,
        name=body.name,
        phone=body.phone,
        vehicle_type=body.vehicle_type,
        latitude=body.location.lat if body.location else None,
        longitude=body.location.lng if body.location else None,
    )
    keys = [courier_key(f"user:{x_actor_id}")] if x_actor_id else []
    return DataResponse(data=process_serialized(command, *keys))


@courier_router.get("/nearby", response_model=DataResponse)
def nearby_couriers(
    lat: float = Query(ge=-90, le=90),
    lng: float = Query(ge=-180, le=180),
    max_distance: float = Query(default=5000.0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
) -> DataResponse:
    point = GeoPoint(latitude=lat, longitude=lng)
    nearby = find_nearby(point, max_distance_m=max_distance, limit=limit)
    return DataResponse(data=[courier.to_payload(distance_m=distance) for courier, distance in nearby])


@courier_router.patch("/{courier_id}/location", response_model=DataResponse)
def update_courier_location(
    courier_id: str,
    body: UpdateCourierLocationRequest,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str = Header(default="courier"),
) -> DataResponse:
    command = UpdateCourierLocation(
        courier_id=courier_id,
        latitude=body.lat,
        longitude=body.lng,
        available=body.available,
        status=body.status,
        actor_id=x_actor_id,
        actor_role=x_actor_role,
    )
    return DataResponse(data=process_serialized(command, courier_key(courier_id)))


# ---------------------------------------------------------------------------
# Realtime Router
# ---------------------------------------------------------------------------
def queue_emitter(loop: asyncio.AbstractEventLoop, queue: asyncio.Queue):
    """An emitter that hands bus messages to the connection's event loop."""

    def emit(event: str, message: dict) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, (event, message))

    return emit


def format_sse(event: str, message: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(message, default=str)}\n\n"


async def _sse_generator(request: Request, connection_id: str, queue: asyncio.Queue):
    bus = get_bus()
    try:
        yield f": connected {connection_id}\n\n"
        yield f"retry: {SSE_RETRY_MILLISECONDS}\n\n"

        while True:
            if await request.is_disconnected():
                break
            try:
                event, message = await asyncio.wait_for(queue.get(), timeout=SSE_KEEPALIVE_SECONDS)
            except TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield format_sse(event, message)
    finally:
        bus.unregister_client(connection_id)


@realtime_router.get("/stream")
async def stream(
    request: Request,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str = Header(default="customer"),
):
    """Server-sent events for the caller's orders (and every order, for admins)."""
    connection_id = uuid4().hex
    queue: asyncio.Queue = asyncio.Queue()
    get_bus().register_client(
        connection_id,
        x_actor_id,
        queue_emitter(asyncio.get_running_loop(), queue),
        role=x_actor_role,
    )
    return StreamingResponse(
        _sse_generator(request, connection_id, queue),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )


@realtime_router.get("/realtime/activity", response_model=DataResponse)
async def recent_activity(limit: int = Query(default=50, ge=1, le=1000)) -> DataResponse:
    return DataResponse(data=get_bus().recent_activity(limit))


@realtime_router.get("/realtime/metrics", response_model=DataResponse)
async def realtime_metrics() -> DataResponse:
    bus = get_bus()
    return DataResponse(data={**bus.metrics(), "clients": bus.clients_info()})
