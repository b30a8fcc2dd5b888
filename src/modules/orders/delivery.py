"""Courier side of the order lifecycle.

A courier assigned by the laboratory accepts or rejects the delivery,
then starts and completes it.  A rejection hands the order back to the
laboratory (or an admin) for reassignment; the reason is kept on the
order until the next rejection overwrites it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from modules.core.actors import ActorRole
from modules.orders import transitions
from modules.orders.constants import OrderAction
from modules.orders.dtos import DeliveryReceipt
from modules.orders.exceptions import InvalidTransition
from modules.orders.workflow import OrderWorkflow

if TYPE_CHECKING:
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)


class DeliveryHandoff(OrderWorkflow):
    """Accept, reject, start and complete deliveries."""

    def _courier_step(
        self,
        order_id: UUID,
        courier_ref: str,
        action: str,
        expected_version: Optional[int],
        changes: dict,
        notes: str = "",
        extra_audience: tuple = (),
    ) -> Order:
        order = self._load(order_id)
        to_status = transitions.validate(order, ActorRole.COURIER, action)
        self._require_owner(order.courier_ref, courier_ref, "assigned to")
        version = self._check_version(order, expected_version)
        return self._commit(
            order,
            action=action,
            actor_ref=courier_ref,
            actor_role=ActorRole.COURIER,
            to_status=to_status,
            version=version,
            changes=changes,
            notes=notes,
            extra_audience=extra_audience,
        )

    @transaction.atomic
    def accept(
        self, order_id: UUID, courier_ref: str, expected_version: Optional[int] = None
    ) -> Order:
        """``assigned_to_delivery -> delivery_accepted``."""
        return self._courier_step(
            order_id,
            courier_ref,
            OrderAction.ACCEPT,
            expected_version,
            {"courier_ref": courier_ref, "accepted_at": timezone.now()},
        )

    @transaction.atomic
    def reject(
        self,
        order_id: UUID,
        courier_ref: str,
        reason: str,
        expected_version: Optional[int] = None,
    ) -> Order:
        """``assigned_to_delivery -> delivery_rejected``.

        Clears the courier so the order can be reassigned.  The rejecting
        courier is still notified.

        Raises:
            InvalidTransition: blank ``reason``.
        """
        reason = (reason or "").strip()
        if not reason:
            raise InvalidTransition("A rejection reason is required.")
        order = self._courier_step(
            order_id,
            courier_ref,
            OrderAction.REJECT,
            expected_version,
            {"courier_ref": None, "accepted_at": None, "rejection_reason": reason},
            notes=reason,
            extra_audience=(courier_ref,),
        )
        logger.warning(
            "order.delivery_rejected",
            order_id=str(order.id),
            courier_ref=courier_ref,
        )
        return order

    @transaction.atomic
    def start_delivery(
        self, order_id: UUID, courier_ref: str, expected_version: Optional[int] = None
    ) -> Order:
        """``delivery_accepted -> out_for_delivery``."""
        return self._courier_step(
            order_id,
            courier_ref,
            OrderAction.START_DELIVERY,
            expected_version,
            {"out_for_delivery_at": timezone.now()},
        )

    @transaction.atomic
    def mark_delivered(
        self, order_id: UUID, courier_ref: str, expected_version: Optional[int] = None
    ) -> DeliveryReceipt:
        """``out_for_delivery -> delivered``.

        Returns a receipt telling the courier whether to collect cash and
        how much: the full ``total_price`` for cash-on-delivery orders,
        nothing otherwise.
        """
        order = self._courier_step(
            order_id,
            courier_ref,
            OrderAction.MARK_DELIVERED,
            expected_version,
            {"delivered_at": timezone.now()},
        )
        receipt = DeliveryReceipt.for_order(order)
        logger.info(
            "order.delivered",
            order_id=str(order.id),
            collect_cash=receipt.collect_cash,
            amount_to_collect=str(receipt.amount_to_collect),
        )
        return receipt
