"""Shared write path for order commands.

``OrderWorkflow`` is the base of ``OrderService``, ``ClaimCoordinator``
and ``DeliveryHandoff``.  It owns the three steps every committed change
goes through:

1. a version-checked conditional update (``StaleVersion`` on mismatch),
2. an appended history entry carrying the new version,
3. one notification, scheduled with ``transaction.on_commit`` so it fires
   only after the write is durable.

Callers wrap their public methods in ``transaction.atomic`` so a failure
in any step leaves the order, its history and its version untouched.
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional
from uuid import UUID

import structlog
from django.db import transaction

from modules.orders.exceptions import NotAuthorized, OrderNotFound, StaleVersion

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.notifications import INotificationDispatcher
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderWorkflow:
    """Base class wiring the repository and the notification dispatcher."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        notification_dispatcher: Optional[INotificationDispatcher] = None,
    ) -> None:
        if notification_dispatcher is None:
            from modules.orders.notifications import EventBusNotificationDispatcher

            notification_dispatcher = EventBusNotificationDispatcher()
        self._order_repo = order_repository
        self._dispatcher = notification_dispatcher

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _load(self, order_id: UUID | str) -> Order:
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    @staticmethod
    def _check_version(order: Order, expected_version: Optional[int]) -> int:
        """Return the version the write must be guarded on.

        Without an explicit ``expected_version`` the version just read is
        used, which still rejects writes racing between read and commit.
        """
        if expected_version is None:
            return order.version
        if expected_version != order.version:
            raise StaleVersion(
                f"Order {order.id} is at version {order.version}, "
                f"not {expected_version}."
            )
        return expected_version

    @staticmethod
    def _require_owner(owner_ref: Optional[str], actor_ref: str, what: str) -> None:
        if owner_ref != actor_ref:
            raise NotAuthorized(f"Order is not {what} {actor_ref}.")

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def _commit(
        self,
        order: Order,
        *,
        action: str,
        actor_ref: str,
        actor_role: str,
        to_status: str,
        version: int,
        changes: Optional[Dict[str, Any]] = None,
        conditions: Optional[Dict[str, Any]] = None,
        notes: str = "",
        extra_audience: Iterable[Optional[str]] = (),
    ) -> Order:
        """Apply one change through the version-checked write path.

        Raises:
            StaleVersion: the guarded row no longer matches.
        """
        fields = dict(changes or {})
        if to_status != order.status:
            fields["status"] = to_status

        if not self._order_repo.conditional_update(
            order.id, version, fields, **(conditions or {})
        ):
            logger.warning(
                "order.write_conflict",
                order_id=str(order.id),
                action=action,
                expected_version=version,
            )
            raise StaleVersion(f"Order {order.id} changed since version {version}.")

        new_version = version + 1
        self._order_repo.append_history(
            order.id,
            old_status=order.status,
            status=to_status,
            action=action,
            actor_ref=actor_ref,
            actor_role=actor_role,
            version=new_version,
            notes=notes,
        )

        updated = self._load(order.id)
        logger.info(
            "order.committed",
            order_id=str(order.id),
            action=str(action),
            actor_role=str(actor_role),
            old_status=str(order.status),
            new_status=str(to_status),
            version=new_version,
        )
        self._schedule_notification(
            updated.id,
            order.status,
            to_status,
            updated.audience_refs(*extra_audience),
        )
        return updated

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _schedule_notification(
        self,
        order_id: UUID,
        from_status: Optional[str],
        to_status: str,
        audience_refs: list[str],
    ) -> None:
        transaction.on_commit(
            partial(self._dispatch, order_id, from_status, to_status, audience_refs)
        )

    def _dispatch(
        self,
        order_id: UUID,
        from_status: Optional[str],
        to_status: str,
        audience_refs: list[str],
    ) -> None:
        """Fire-and-forget: a failing dispatcher never affects the order."""
        try:
            self._dispatcher.notify(order_id, from_status, to_status, audience_refs)
        except Exception:
            logger.exception(
                "order.notification_failed",
                order_id=str(order_id),
                to_status=to_status,
            )
