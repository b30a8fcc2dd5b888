"""Order, OrderItem, and OrderStatusHistory models.

Business rules implemented:
- ``status`` is restricted to ``OrderStatus`` by a database check constraint.
- ``laboratory_ref`` is set exactly when ``needs_assignment`` is false
  (database check constraint).
- ``version`` starts at 1 and is bumped by the repository's conditional
  update on every committed change (optimistic concurrency).
- ``cod``, ``kind`` and ``customer_ref`` are fixed at creation; the
  repository refuses conditional updates that touch them.
- Orders are never deleted; history records are append-only.
- Order number auto-generated as human-readable identifier.
- OrderItem snapshots the product price at creation time (``unit_price``)
  and ``subtotal`` is always ``quantity * unit_price`` (calculated on save).
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any, Optional

import structlog
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.actors import ActorRole
from modules.core.models import BaseModel
from modules.orders.constants import (
    CLAIMABLE_STATES,
    ORDER_NUMBER_MAX_RETRIES,
    OrderAction,
    OrderKind,
    OrderStatus,
)

logger = structlog.get_logger(__name__)


class Order(BaseModel):
    """Order aggregate root.

    ``order_number`` is a human-readable identifier auto-generated on first
    save (format: ``ORD-YYYYMMDD-XXXXXX``).  The UUIDv7 ``id`` is used for
    all internal references and API lookups.

    Actor references (``customer_ref``, ``laboratory_ref``, ``courier_ref``)
    are opaque strings owned by the identity collaborator.
    """

    order_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )
    kind: models.CharField = models.CharField(
        max_length=20,
        choices=OrderKind.choices,
        default=OrderKind.PRODUCT,
    )
    customer_ref: models.CharField = models.CharField(max_length=64)
    laboratory_ref: models.CharField = models.CharField(  # noqa: DJ01
        max_length=64, null=True, blank=True, default=None
    )
    courier_ref: models.CharField = models.CharField(  # noqa: DJ01
        max_length=64, null=True, blank=True, default=None
    )
    prescription_ref: models.CharField = models.CharField(
        max_length=500, blank=True, default=""
    )
    total_price: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    is_paid: models.BooleanField = models.BooleanField(default=False)
    cod: models.BooleanField = models.BooleanField(default=False)
    needs_assignment: models.BooleanField = models.BooleanField(default=False)
    status: models.CharField = models.CharField(
        max_length=30,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    rejection_reason: models.TextField = models.TextField(  # noqa: DJ01
        null=True, blank=True, default=None
    )
    version: models.PositiveIntegerField = models.PositiveIntegerField(default=1)
    customer_address: models.TextField = models.TextField(blank=True, default="")
    customer_pin_code: models.CharField = models.CharField(
        max_length=12, blank=True, default=""
    )
    notes: models.TextField = models.TextField(blank=True, default="")
    assigned_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    accepted_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    out_for_delivery_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )
    delivered_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    idempotency_key: models.CharField = models.CharField(  # noqa: DJ01
        max_length=255,
        unique=True,
        null=True,
        blank=True,
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["-created_at", "-id"], name="orders_created_idx"),
            models.Index(fields=["customer_ref"], name="orders_customer_idx"),
            models.Index(fields=["laboratory_ref"], name="orders_laboratory_idx"),
            models.Index(fields=["courier_ref"], name="orders_courier_idx"),
            models.Index(
                fields=["needs_assignment", "status"], name="orders_pool_idx"
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(status__in=OrderStatus.values),
                name="orders_status_valid",
            ),
            models.CheckConstraint(
                condition=(
                    models.Q(laboratory_ref__isnull=True, needs_assignment=True)
                    | models.Q(laboratory_ref__isnull=False, needs_assignment=False)
                ),
                name="orders_assignment_consistent",
            ),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_claimable(self) -> bool:
        """Return ``True`` while the order sits in the assignment pool."""
        return (
            self.needs_assignment
            and self.laboratory_ref is None
            and self.status in CLAIMABLE_STATES
        )

    @property
    def cash_to_collect(self) -> Optional[Decimal]:
        """Amount the courier collects at the door, ``None`` when prepaid."""
        return self.total_price if self.cod else None

    def audience_refs(self, *extra: Optional[str]) -> list[str]:
        """Actor references interested in this order's transitions."""
        refs: list[str] = []
        for ref in (self.customer_ref, self.laboratory_ref, self.courier_ref, *extra):
            if ref and ref not in refs:
                refs.append(ref)
        return refs

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """Generate a human-readable order number: ``ORD-YYYYMMDD-XXXXXX``."""
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"ORD-{now:%Y%m%d}-{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for attempt in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False):
        raise ValidationError("Orders are retained for audit and cannot be deleted.")

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class OrderItem(BaseModel):
    """Line item of a product order.

    ``product_ref`` points into the product catalogue collaborator.
    ``unit_price`` is a **snapshot** of the price at the time of purchase.
    ``subtotal`` is always ``quantity * unit_price``, recalculated on every
    save.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="items",
    )
    product_ref: models.CharField = models.CharField(max_length=64)
    product_name: models.CharField = models.CharField(
        max_length=200, blank=True, default=""
    )
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    unit_price: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
    )
    subtotal: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        editable=False,
    )

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.quantity is not None and self.quantity < 1:
            raise ValidationError({"quantity": "Quantity must be at least 1."})

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.subtotal = self.quantity * self.unit_price
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.product_ref} x{self.quantity} ({self.subtotal})"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order transitions and assignments.

    Each record captures one committed change: the status before and after,
    the action, the actor, and the order ``version`` the change produced.
    ``recorded_at`` never goes backwards within an order (the repository
    clamps it to the previous entry).  Records refuse updates and deletes.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=30,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    status: models.CharField = models.CharField(
        max_length=30,
        choices=OrderStatus.choices,
    )
    action: models.CharField = models.CharField(
        max_length=30,
        choices=OrderAction.choices,
    )
    actor_ref: models.CharField = models.CharField(max_length=64)
    actor_role: models.CharField = models.CharField(
        max_length=20,
        choices=ActorRole.choices,
    )
    version: models.PositiveIntegerField = models.PositiveIntegerField()
    notes: models.TextField = models.TextField(blank=True, default="")
    recorded_at: models.DateTimeField = models.DateTimeField()

    class Meta:
        db_table = "order_status_history"
        ordering = ["recorded_at", "version"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "version"],
                name="osh_order_version_unique",
            ),
        ]
        indexes = [
            models.Index(
                fields=["order", "recorded_at"],
                name="osh_order_recorded_idx",
            ),
            models.Index(
                fields=["actor_ref", "action"],
                name="osh_actor_action_idx",
            ),
        ]

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ValidationError("Status history records are append-only.")
        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False):
        raise ValidationError("Status history records are append-only.")

    def __str__(self) -> str:
        return f"{self.order_id} v{self.version}: {self.old_status} -> {self.status}"
