"""Order service layer (Use Cases).

Orchestrates order creation and the laboratory/customer side of the
lifecycle.  All write operations are atomic (the service defines the
unit-of-work boundary) and every mutation after creation goes through
the version-checked write path in ``OrderWorkflow``.

Business rules enforced:
- Transitions validated against the fixed role-aware table.
- Laboratories act only on orders they own; customers cancel only their
  own orders.
- Prescription orders are priced by the laboratory on confirmation.
- Every committed change appends a history entry and bumps ``version``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Optional
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from modules.core.actors import ActorRole
from modules.orders import transitions
from modules.orders.constants import OrderAction, OrderKind, OrderStatus
from modules.orders.exceptions import NotEligible, PricingNotAllowed, StaleVersion
from modules.orders.workflow import OrderWorkflow

if TYPE_CHECKING:
    from modules.orders.dtos import CreateOrderDTO
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)


class OrderService(OrderWorkflow):
    """Application service for Order use-cases.

    Receives the repository (and optionally a notification dispatcher)
    via constructor injection (DIP).
    """

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_order(self, dto: CreateOrderDTO) -> Order:
        """Create a new order in ``pending``.

        Product orders are priced from their items and owned by the
        selling laboratory.  Prescription orders start at ``0.00``; without
        a chosen laboratory they enter the assignment pool.

        Supports idempotent retries through ``dto.idempotency_key``.
        """
        log = logger.bind(customer_ref=dto.customer_ref, kind=str(dto.kind))
        log.info("order.creation_started")

        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
            if existing:
                log.info(
                    "order.idempotency_hit",
                    order_id=str(existing.id),
                    key=dto.idempotency_key,
                )
                return existing

        order = self._order_repo.create(
            {
                "customer_ref": dto.customer_ref,
                "kind": dto.kind,
                "laboratory_ref": dto.laboratory_ref,
                "prescription_ref": dto.prescription_ref,
                "cod": dto.cod,
                "customer_address": dto.customer_address,
                "customer_pin_code": dto.customer_pin_code,
                "notes": dto.notes or "",
                "idempotency_key": dto.idempotency_key,
                "items": [
                    {
                        "product_ref": item.product_ref,
                        "product_name": item.product_name,
                        "quantity": item.quantity,
                        "unit_price": item.unit_price,
                    }
                    for item in dto.items
                ],
            }
        )

        self._order_repo.append_history(
            order.id,
            old_status=None,
            status=OrderStatus.PENDING,
            action=OrderAction.CREATE,
            actor_ref=dto.customer_ref,
            actor_role=ActorRole.CUSTOMER,
            version=order.version,
            notes="Order created",
        )

        log.info(
            "order.created",
            order_id=str(order.id),
            needs_assignment=order.needs_assignment,
            cod=order.cod,
        )

        # Re-fetch with prefetch for output
        order_with_relations = self._order_repo.get_by_id(str(order.id))
        return order_with_relations or order

    @transaction.atomic
    def confirm(
        self,
        order_id: UUID,
        actor_ref: str,
        actor_role: str,
        total_price: Optional[Decimal] = None,
        expected_version: Optional[int] = None,
    ) -> Order:
        """Confirm a pending order (``pending -> confirmed``).

        A laboratory must own the order.  ``total_price`` prices a
        prescription order; it is rejected for product orders, whose price
        comes from their items.

        Raises:
            OrderNotFound, NotAuthorized, InvalidTransition, StaleVersion,
            PricingNotAllowed.
        """
        order = self._load(order_id)
        to_status = transitions.validate(order, actor_role, OrderAction.CONFIRM)
        if actor_role == ActorRole.LABORATORY:
            self._require_owner(order.laboratory_ref, actor_ref, "owned by")
        version = self._check_version(order, expected_version)

        changes = {}
        if total_price is not None:
            if order.kind != OrderKind.PRESCRIPTION:
                raise PricingNotAllowed(
                    f"Order {order.id} is a product order and cannot be re-priced."
                )
            changes["total_price"] = total_price

        return self._commit(
            order,
            action=OrderAction.CONFIRM,
            actor_ref=actor_ref,
            actor_role=actor_role,
            to_status=to_status,
            version=version,
            changes=changes,
            notes=f"Priced at {total_price}" if total_price is not None else "",
        )

    @transaction.atomic
    def assign_courier(
        self,
        order_id: UUID,
        courier_ref: str,
        actor_ref: str,
        actor_role: str,
        expected_version: Optional[int] = None,
    ) -> Order:
        """Hand the order to a courier.

        Valid from ``confirmed`` and, after a rejection, from
        ``delivery_rejected``; any previous courier is replaced.

        An order still waiting in the assignment pool has no laboratory to
        hand over from and is not eligible.

        Raises:
            OrderNotFound, NotAuthorized, InvalidTransition, NotEligible,
            StaleVersion.
        """
        order = self._load(order_id)
        to_status = transitions.validate(order, actor_role, OrderAction.ASSIGN_COURIER)
        if order.laboratory_ref is None:
            logger.warning("order.assign_courier_rejected", order_id=str(order.id))
            raise NotEligible(
                f"Order {order.id} has not been claimed by a laboratory yet."
            )
        if actor_role == ActorRole.LABORATORY:
            self._require_owner(order.laboratory_ref, actor_ref, "owned by")
        version = self._check_version(order, expected_version)

        return self._commit(
            order,
            action=OrderAction.ASSIGN_COURIER,
            actor_ref=actor_ref,
            actor_role=actor_role,
            to_status=to_status,
            version=version,
            changes={"courier_ref": courier_ref, "assigned_at": timezone.now()},
            notes=f"Assigned to courier {courier_ref}",
            extra_audience=(order.courier_ref,),
        )

    @transaction.atomic
    def cancel_order(
        self,
        order_id: UUID,
        customer_ref: str,
        notes: str = "",
        expected_version: Optional[int] = None,
    ) -> Order:
        """Cancel an order on behalf of the customer who placed it.

        Only ``pending`` and ``confirmed`` orders can be cancelled.

        Raises:
            OrderNotFound, NotAuthorized, InvalidTransition, StaleVersion.
        """
        order = self._load(order_id)
        to_status = transitions.validate(order, ActorRole.CUSTOMER, OrderAction.CANCEL)
        self._require_owner(order.customer_ref, customer_ref, "placed by")
        version = self._check_version(order, expected_version)

        return self._commit(
            order,
            action=OrderAction.CANCEL,
            actor_ref=customer_ref,
            actor_role=ActorRole.CUSTOMER,
            to_status=to_status,
            version=version,
            notes=notes or "Order cancelled",
        )

    @transaction.atomic
    def record_payment(
        self, order_id: UUID, expected_version: Optional[int] = None
    ) -> Order:
        """Payment collaborator callback: flip ``is_paid``.

        Idempotent for orders that are already paid.  Not a transition, so
        no history entry is written and no notification is sent.

        Raises:
            OrderNotFound, StaleVersion.
        """
        order = self._load(order_id)
        if order.is_paid:
            return order
        version = self._check_version(order, expected_version)
        if not self._order_repo.conditional_update(
            order.id, version, {"is_paid": True}
        ):
            raise StaleVersion(f"Order {order.id} changed since version {version}.")
        logger.info("order.paid", order_id=str(order.id), version=version + 1)
        return self._load(order.id)

