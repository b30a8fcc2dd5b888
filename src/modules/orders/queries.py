"""Role-scoped read side of the orders module.

Every read takes the actor explicitly; there is no ambient "current
user".  Visibility:

- customer: orders they placed
- laboratory: orders they own, or the assignment pool (``unassigned_only``)
- courier: orders currently assigned to them
- admin: everything; ``unassigned_only`` lists every order without a
  laboratory, whatever its status

Reads take no locks.  Pages are ordered by ``-created_at, -id`` so a
listing is stable while nothing is inserted.
"""

from __future__ import annotations

from datetime import datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db.models import Q, Sum
from django.utils import timezone

from modules.core.actors import ActorRole
from modules.core.pagination import paginate
from modules.orders.constants import IN_DELIVERY_STATES, OrderAction, OrderStatus
from modules.orders.dtos import (
    CourierStatsDTO,
    OrderListFiltersDTO,
    OrderPage,
    OrderStatsDTO,
)
from modules.orders.exceptions import NotAuthorized, OrderNotFound

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

POOL_FILTER = Q(
    needs_assignment=True,
    laboratory_ref__isnull=True,
    status__in=[OrderStatus.PENDING, OrderStatus.CONFIRMED],
)


class RoleScopedOrderQuery:
    """Listing, detail and dashboard reads for one actor at a time."""

    def __init__(self, order_repository: IOrderRepository) -> None:
        self._order_repo = order_repository

    # ------------------------------------------------------------------
    # Scoping
    # ------------------------------------------------------------------

    @staticmethod
    def _scope(actor_role: str, actor_ref: str, pool: bool = False) -> Q:
        if actor_role == ActorRole.ADMIN:
            return Q(needs_assignment=True) if pool else Q()
        if actor_role == ActorRole.LABORATORY:
            return POOL_FILTER if pool else Q(laboratory_ref=actor_ref)
        if actor_role == ActorRole.COURIER:
            return Q(courier_ref=actor_ref)
        if actor_role == ActorRole.CUSTOMER:
            return Q(customer_ref=actor_ref)
        raise NotAuthorized(f"Unknown role {actor_role!r}.")

    @staticmethod
    def _filter_kwargs(filters: OrderListFiltersDTO) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {}
        if filters.status:
            kwargs["status"] = filters.status
        if filters.assigned_only:
            kwargs["needs_assignment"] = False
        if filters.unassigned_only:
            kwargs["needs_assignment"] = True
        if filters.created_on:
            kwargs["created_at__date"] = filters.created_on
        if filters.created_from:
            kwargs["created_at__date__gte"] = filters.created_from
        return kwargs

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list(
        self,
        actor_role: str,
        actor_ref: str,
        filters: Optional[OrderListFiltersDTO] = None,
        page: Any = 1,
        limit: Any = None,
    ) -> OrderPage:
        """Return one page of the orders visible to the actor."""
        filters = filters or OrderListFiltersDTO()
        pool = filters.unassigned_only and actor_role in (
            ActorRole.LABORATORY,
            ActorRole.ADMIN,
        )
        queryset = (
            self._order_repo.list(self._filter_kwargs(filters))
            .filter(self._scope(actor_role, actor_ref, pool=pool))
            .order_by("-created_at", "-id")
        )
        orders, info = paginate(queryset, page, limit)
        logger.debug(
            "order.listed",
            actor_role=actor_role,
            page=info.current_page,
            total_count=info.total_count,
        )
        return OrderPage(orders=orders, pagination=info)

    def assignment_pool(self, page: Any = 1, limit: Any = None) -> OrderPage:
        """Orders waiting for a laboratory, newest first."""
        queryset = self._order_repo.list().filter(POOL_FILTER)
        orders, info = paginate(queryset, page, limit)
        return OrderPage(orders=orders, pagination=info)

    def get_visible(self, order_id: UUID | str, actor_role: str, actor_ref: str) -> Order:
        """Return the order if the actor may see it.

        Laboratories also see pool orders so they can decide to claim.
        Invisible orders raise ``OrderNotFound`` exactly like missing ones.
        """
        scope = self._scope(actor_role, actor_ref)
        if actor_role == ActorRole.LABORATORY:
            scope |= POOL_FILTER
        try:
            order = self._order_repo.list().filter(scope).filter(id=order_id).first()
        except (ValueError, TypeError, ValidationError):
            order = None
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    # ------------------------------------------------------------------
    # Dashboards
    # ------------------------------------------------------------------

    def order_stats(self) -> OrderStatsDTO:
        """Admin dashboard counters across all orders."""
        orders = self._order_repo.list()
        today_start = timezone.make_aware(
            datetime.combine(timezone.localdate(), time.min)
        )
        delivered = orders.filter(status=OrderStatus.DELIVERED)
        revenue = delivered.aggregate(total=Sum("total_price"))["total"]
        return OrderStatsDTO(
            total_orders=orders.count(),
            pending_orders=orders.filter(status=OrderStatus.PENDING).count(),
            completed_today=delivered.filter(delivered_at__gte=today_start).count(),
            out_for_delivery=orders.filter(status=OrderStatus.OUT_FOR_DELIVERY).count(),
            needs_assignment=orders.filter(needs_assignment=True).count(),
            total_revenue=revenue or Decimal("0.00"),
        )

    def courier_stats(self, courier_ref: str) -> CourierStatsDTO:
        """Delivery counters for one courier.

        Rejected deliveries no longer carry the courier's reference, so
        they are counted from the history trail.
        """
        assigned = self._order_repo.list({"courier_ref": courier_ref})
        completed = assigned.filter(status=OrderStatus.DELIVERED)
        rejected = (
            self._order_repo.list_history(
                {"actor_ref": courier_ref, "action": OrderAction.REJECT}
            )
            .order_by()
            .values("order_id")
            .distinct()
            .count()
        )
        completed_count = completed.count()
        total = assigned.count() + rejected

        durations = [
            (delivered_at - accepted_at).total_seconds()
            for accepted_at, delivered_at in completed.values_list(
                "accepted_at", "delivered_at"
            )
            if accepted_at and delivered_at
        ]
        average_hours = (
            round(sum(durations) / len(durations) / 3600, 2) if durations else 0.0
        )

        return CourierStatsDTO(
            total_orders=total,
            completed_orders=completed_count,
            pending_orders=assigned.filter(status__in=IN_DELIVERY_STATES).count(),
            rejected_orders=rejected,
            completion_rate=round(completed_count / total * 100, 1) if total else 0.0,
            average_delivery_time_hours=average_hours,
        )
