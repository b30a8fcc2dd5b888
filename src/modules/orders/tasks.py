"""Asynchronous order tasks (Celery)."""

from __future__ import annotations

from typing import Optional

import structlog
from celery import shared_task

logger = structlog.get_logger(__name__)


@shared_task(name="orders.deliver_notification", ignore_result=True)
def deliver_order_notification(
    order_id: str,
    from_status: Optional[str],
    to_status: str,
    audience_refs: list[str],
) -> int:
    """Fan a committed order change out to its audience.

    Push/SMS transport is owned by the notification collaborator; this
    task is the hand-off point and records one line per recipient.
    Returns the number of recipients.
    """
    for recipient in audience_refs:
        logger.info(
            "order.notification.delivered",
            order_id=order_id,
            from_status=from_status,
            to_status=to_status,
            recipient=recipient,
        )
    return len(audience_refs)
