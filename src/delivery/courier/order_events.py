"""Courier reacts to Order events — release the courier when its order ends."""

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from delivery.concurrency import courier_key, get_locks
from delivery.courier.courier import Courier
from delivery.domain import delivery
from delivery.order.events import OrderCancelled, OrderStatusChanged
from delivery.order.state_machine import OrderStatus

logger = structlog.get_logger(__name__)


def _release(courier_id, order_id) -> None:
    if not courier_id:
        return
    with get_locks().hold(courier_key(courier_id)):
        repo = current_domain.repository_for(Courier)
        courier = repo._dao.query.filter(id=str(courier_id)).all().first
        if courier is None:
            logger.warning("Courier not found for release", courier_id=str(courier_id), order_id=str(order_id))
            return
        if courier.release(order_id=order_id):
            repo.add(courier)
            logger.info("Courier released", courier_id=str(courier_id), order_id=str(order_id))


@delivery.event_handler(part_of=Courier, stream_category="delivery::order")
class CourierReleaseHandler:
    """Returns couriers to the pool when their active order is finished."""

    @handle(OrderStatusChanged)
    def on_status_changed(self, event: OrderStatusChanged) -> None:
        if event.status == OrderStatus.DELIVERED.value:
            _release(event.courier_id, event.order_id)

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        _release(event.courier_id, event.order_id)
