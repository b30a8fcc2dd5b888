"""Event handlers for Orders domain events."""

from __future__ import annotations

import structlog

from modules.orders.events import OrderStatusChanged
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    """Hand committed transitions to the notification worker."""

    def handle(self, event: OrderStatusChanged) -> None:
        from modules.orders.tasks import deliver_order_notification

        logger.info(
            "order.notification.enqueued",
            order_id=str(event.aggregate_id),
            to_status=event.to_status,
        )
        deliver_order_notification.delay(
            order_id=str(event.aggregate_id),
            from_status=event.from_status,
            to_status=event.to_status,
            audience_refs=list(event.audience_refs),
        )


order_status_changed_handler = OrderStatusChangedHandler()
