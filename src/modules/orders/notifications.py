"""Notification dispatch seam.

The order services call ``notify`` once per committed change, from a
``transaction.on_commit`` callback.  Delivery (push, SMS, e-mail) and its
retries belong to the notification collaborator; from the services' point
of view a dispatch is fire-and-forget.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence
from uuid import UUID

import structlog

from modules.orders.events import OrderStatusChanged
from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)


class INotificationDispatcher(Protocol):
    """Contract consumed by the order services."""

    def notify(
        self,
        order_id: UUID,
        from_status: Optional[str],
        to_status: str,
        audience_refs: Sequence[str],
    ) -> None: ...


class EventBusNotificationDispatcher:
    """Publish committed changes as ``OrderStatusChanged`` domain events.

    Subscribers registered in ``OrdersConfig.ready`` forward the event to
    the Celery notification task.
    """

    def __init__(self, bus: Optional[IEventBus] = None) -> None:
        if bus is None:
            from shared.infrastructure.bus import event_bus

            bus = event_bus
        self._bus = bus

    def notify(
        self,
        order_id: UUID,
        from_status: Optional[str],
        to_status: str,
        audience_refs: Sequence[str],
    ) -> None:
        event = OrderStatusChanged(
            aggregate_id=order_id,
            from_status=from_status,
            to_status=to_status,
            audience_refs=tuple(audience_refs),
        )
        logger.info(
            "order.notification.published",
            order_id=str(order_id),
            from_status=from_status,
            to_status=to_status,
            audience_size=len(event.audience_refs),
        )
        self._bus.publish(event)


class LogOnlyNotificationDispatcher:
    """Record notifications in the log without delivering them.

    Used by ``seed_data`` so seeding works without a Celery broker.
    """

    def notify(
        self,
        order_id: UUID,
        from_status: Optional[str],
        to_status: str,
        audience_refs: Sequence[str],
    ) -> None:
        logger.info(
            "order.notification.skipped",
            order_id=str(order_id),
            to_status=to_status,
            audience_size=len(audience_refs),
        )
