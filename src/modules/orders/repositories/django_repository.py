"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.

Concurrency control is optimistic: every mutation after creation is a
single ``UPDATE ... WHERE id = %s AND version = %s`` issued through
``conditional_update``.  No row locks are taken and nothing waits; a
writer whose version is stale simply updates zero rows.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, QuerySet
from django.utils import timezone

from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

# Fixed at creation; conditional updates may never touch them.
IMMUTABLE_FIELDS = frozenset({"cod", "kind", "customer_ref", "order_number"})


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data`` keys:
        - ``customer_ref``, ``kind`` (required)
        - ``items`` (product orders): list of dicts with ``product_ref``,
          ``quantity``, ``unit_price`` and optionally ``product_name``
        - ``prescription_ref``, ``laboratory_ref``, ``cod``,
          ``customer_address``, ``customer_pin_code``, ``notes``,
          ``idempotency_key`` (optional)
        """
        laboratory_ref = data.get("laboratory_ref")
        order = Order(
            customer_ref=data["customer_ref"],
            kind=data["kind"],
            laboratory_ref=laboratory_ref,
            needs_assignment=laboratory_ref is None,
            prescription_ref=data.get("prescription_ref") or "",
            cod=data.get("cod", False),
            customer_address=data.get("customer_address", ""),
            customer_pin_code=data.get("customer_pin_code", ""),
            notes=data.get("notes", ""),
            idempotency_key=data.get("idempotency_key"),
        )
        order.save()

        total = Decimal("0.00")
        items = data.get("items", [])
        for item_data in items:
            item = OrderItem(
                order=order,
                product_ref=item_data["product_ref"],
                product_name=item_data.get("product_name", ""),
                quantity=item_data["quantity"],
                unit_price=item_data["unit_price"],
            )
            item.save()
            total += item.subtotal

        if items:
            order.total_price = total
            order.save(update_fields=["total_price", "updated_at"])

        logger.info("order.persisted", order_id=str(order.id), item_count=len(items))
        return order

    # ------------------------------------------------------------------
    # Version-checked write path
    # ------------------------------------------------------------------

    def conditional_update(
        self,
        order_id: UUID,
        expected_version: int,
        changes: Dict[str, Any],
        **conditions: Any,
    ) -> bool:
        touched = IMMUTABLE_FIELDS.intersection(changes)
        if touched:
            raise ValueError(f"Immutable order fields cannot change: {sorted(touched)}")

        updated = Order.objects.filter(
            id=order_id, version=expected_version, **conditions
        ).update(
            **changes,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        logger.debug(
            "order.conditional_update",
            order_id=str(order_id),
            expected_version=expected_version,
            fields=sorted(changes),
            updated=bool(updated),
        )
        return updated == 1

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with its items and history prefetched.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return (
                Order.objects.prefetch_related("items", "status_history")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """Return a lazily evaluated, deterministically ordered queryset."""
        queryset = Order.objects.prefetch_related("items", "status_history")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset.order_by("-created_at", "-id")

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""
        return (
            Order.objects.prefetch_related("items", "status_history")
            .filter(idempotency_key=key)
            .first()
        )

    # ------------------------------------------------------------------
    # Save (IRepository contract)
    # ------------------------------------------------------------------

    def save(self, entity: Order) -> Order:
        """Persist a brand-new order.

        Existing orders change only through ``conditional_update``.
        """
        if not entity._state.adding:
            raise ValueError("Existing orders must be changed via conditional_update.")
        entity.save()
        logger.info("order.saved", order_id=str(entity.id))
        return entity

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def append_history(
        self,
        order_id: UUID,
        *,
        old_status: Optional[str],
        status: str,
        action: str,
        actor_ref: str,
        actor_role: str,
        version: int,
        notes: str = "",
    ) -> OrderStatusHistory:
        """Record a committed change in the order's audit trail.

        ``recorded_at`` is clamped to the latest existing entry so the
        trail stays non-decreasing even if the wall clock steps back.
        """
        recorded_at = timezone.now()
        latest = (
            OrderStatusHistory.objects.filter(order_id=order_id)
            .order_by("-recorded_at")
            .values_list("recorded_at", flat=True)
            .first()
        )
        if latest is not None and latest > recorded_at:
            recorded_at = latest

        history = OrderStatusHistory(
            order_id=order_id,
            old_status=old_status,
            status=status,
            action=action,
            actor_ref=actor_ref,
            actor_role=actor_role,
            version=version,
            notes=notes,
            recorded_at=recorded_at,
        )
        history.save()

        logger.info(
            "order.history_added",
            order_id=str(order_id),
            action=action,
            old_status=old_status,
            new_status=status,
            version=version,
        )
        return history

    def list_history(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = OrderStatusHistory.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset
