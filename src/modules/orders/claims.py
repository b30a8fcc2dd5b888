"""Laboratory assignment of pool orders.

An order "needs assignment" when the customer uploaded a prescription
without choosing a laboratory.  Several laboratories may try to claim it
at the same time; exactly one wins.  The winner is decided by a single
conditional ``UPDATE`` guarded on ``version`` and ``laboratory_ref IS
NULL``, so no lock is held and losers fail immediately.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional
from uuid import UUID

import structlog
from django.db import transaction

from modules.core.actors import ActorRole
from modules.orders.constants import OrderAction, OrderStatus
from modules.orders.exceptions import (
    AlreadyClaimed,
    NotAuthorized,
    NotEligible,
    StaleVersion,
)
from modules.orders.workflow import OrderWorkflow

if TYPE_CHECKING:
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)


class ClaimCoordinator(OrderWorkflow):
    """Single-winner claiming of prescription orders by laboratories."""

    @transaction.atomic
    def claim(
        self,
        order_id: UUID,
        laboratory_ref: str,
        expected_version: Optional[int] = None,
    ) -> Order:
        """Claim a pool order for *laboratory_ref*.

        The status does not change; the order leaves the pool and becomes
        the laboratory's own order.

        Raises:
            OrderNotFound: no such order.
            AlreadyClaimed: another laboratory owns the order.
            NotEligible: the order is not in the pool (wrong status).
            StaleVersion: the order changed since ``expected_version``.
        """
        order = self._load(order_id)
        log = logger.bind(order_id=str(order.id), laboratory_ref=laboratory_ref)

        if order.laboratory_ref is not None:
            log.warning("order.claim_rejected", reason="already_claimed")
            raise AlreadyClaimed(f"Order {order.id} is already claimed.")
        if not order.is_claimable:
            log.warning("order.claim_rejected", reason="not_eligible")
            raise NotEligible(
                f"Order {order.id} in status {order.status!r} cannot be claimed."
            )
        version = self._check_version(order, expected_version)

        return self._take_ownership(
            order,
            laboratory_ref=laboratory_ref,
            action=OrderAction.CLAIM,
            actor_ref=laboratory_ref,
            actor_role=ActorRole.LABORATORY,
            version=version,
            notes=f"Claimed by laboratory {laboratory_ref}",
        )

    @transaction.atomic
    def assign_laboratory(
        self,
        order_id: UUID,
        laboratory_ref: str,
        actor_ref: str,
        actor_role: str,
        expected_version: Optional[int] = None,
    ) -> Order:
        """Admin assignment of an order to a laboratory.

        Pool orders are assigned with the same guarded write as a claim.
        An order stuck in ``delivery_rejected`` may be moved to another
        laboratory, which then reassigns a courier.

        Raises:
            OrderNotFound, NotAuthorized, NotEligible, AlreadyClaimed,
            StaleVersion.
        """
        if actor_role != ActorRole.ADMIN:
            raise NotAuthorized("Only administrators can assign laboratories.")
        order = self._load(order_id)

        if order.is_claimable:
            version = self._check_version(order, expected_version)
            return self._take_ownership(
                order,
                laboratory_ref=laboratory_ref,
                action=OrderAction.ASSIGN_LABORATORY,
                actor_ref=actor_ref,
                actor_role=actor_role,
                version=version,
                notes=f"Assigned to laboratory {laboratory_ref}",
            )

        if order.status == OrderStatus.DELIVERY_REJECTED:
            version = self._check_version(order, expected_version)
            return self._commit(
                order,
                action=OrderAction.ASSIGN_LABORATORY,
                actor_ref=actor_ref,
                actor_role=actor_role,
                to_status=order.status,
                version=version,
                changes={"laboratory_ref": laboratory_ref, "needs_assignment": False},
                notes=f"Reassigned to laboratory {laboratory_ref}",
                extra_audience=(order.laboratory_ref,),
            )

        raise NotEligible(
            f"Order {order.id} in status {order.status!r} cannot be "
            f"assigned to a laboratory."
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _take_ownership(
        self,
        order: Order,
        *,
        laboratory_ref: str,
        action: str,
        actor_ref: str,
        actor_role: str,
        version: int,
        notes: str,
    ) -> Order:
        try:
            claimed = self._commit(
                order,
                action=action,
                actor_ref=actor_ref,
                actor_role=actor_role,
                to_status=order.status,
                version=version,
                changes={
                    "laboratory_ref": laboratory_ref,
                    "needs_assignment": False,
                },
                conditions={"laboratory_ref__isnull": True},
                notes=notes,
            )
        except StaleVersion:
            # Lost the race: tell the caller whether someone claimed it.
            current = self._load(order.id)
            if current.laboratory_ref is not None:
                raise AlreadyClaimed(f"Order {order.id} is already claimed.") from None
            raise

        logger.info(
            "order.claimed",
            order_id=str(claimed.id),
            laboratory_ref=laboratory_ref,
            action=action,
            version=claimed.version,
        )
        return claimed
