"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``CreateOrderItemDTO``: input for a single product line item.
- ``CreateOrderDTO``: input for order creation (product or prescription).
- ``OrderListFiltersDTO``: role-scoped listing filters.
- ``OrderPage``: a page of orders plus pagination metadata.
- ``DeliveryReceipt``: outcome of a completed delivery (COD instruction).
- ``OrderStatsDTO`` / ``CourierStatsDTO``: dashboard aggregates.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from modules.core.pagination import PageInfo
from modules.orders.constants import OrderKind, OrderStatus

if TYPE_CHECKING:
    from modules.orders.models import Order


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CreateOrderItemDTO(BaseModel):
    """Immutable DTO for a single product line.

    ``unit_price`` is the catalogue price snapshot supplied by the caller;
    the product catalogue itself is an external collaborator.
    """

    model_config = ConfigDict(frozen=True)

    product_ref: str = Field(min_length=1, max_length=64)
    quantity: int
    unit_price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    product_name: str = ""

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation requests.

    Validates:
    - Product orders carry at least one item, no prescription, and the
      selling laboratory.
    - Prescription orders carry a prescription reference and no items;
      the laboratory is optional (absent means "needs assignment").
    - No duplicate products in the same order.
    """

    model_config = ConfigDict(frozen=True)

    customer_ref: str = Field(min_length=1, max_length=64)
    kind: OrderKind
    items: List[CreateOrderItemDTO] = []
    prescription_ref: Optional[str] = None
    laboratory_ref: Optional[str] = None
    cod: bool = False
    customer_address: str = ""
    customer_pin_code: str = ""
    notes: Optional[str] = ""
    idempotency_key: Optional[str] = None

    @field_validator("prescription_ref", "laboratory_ref")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v.strip() if v is not None else v

    @model_validator(mode="after")
    def kind_matches_payload(self):
        if self.kind == OrderKind.PRODUCT:
            if not self.items:
                raise ValueError("Product orders must have at least one item.")
            if self.prescription_ref:
                raise ValueError("Product orders cannot carry a prescription.")
            if not self.laboratory_ref:
                raise ValueError("Product orders require the selling laboratory.")
        else:
            if not self.prescription_ref:
                raise ValueError("Prescription orders require a prescription.")
            if self.items:
                raise ValueError("Prescription orders cannot carry product items.")
        return self

    @model_validator(mode="after")
    def no_duplicate_products(self):
        """Prevent duplicate product references in the same order."""
        product_refs = [item.product_ref for item in self.items]
        if len(product_refs) != len(set(product_refs)):
            raise ValueError("Duplicate products are not allowed in the same order.")
        return self

    @property
    def needs_assignment(self) -> bool:
        return self.laboratory_ref is None

    @property
    def items_total(self) -> Decimal:
        return sum(
            (item.unit_price * item.quantity for item in self.items),
            Decimal("0.00"),
        )


class OrderListFiltersDTO(BaseModel):
    """Filters accepted by the role-scoped order listing."""

    model_config = ConfigDict(frozen=True)

    status: Optional[OrderStatus] = None
    assigned_only: bool = False
    unassigned_only: bool = False
    created_on: Optional[date] = None
    created_from: Optional[date] = None

    @model_validator(mode="after")
    def assignment_filters_are_exclusive(self):
        if self.assigned_only and self.unassigned_only:
            raise ValueError(
                "'assigned_only' and 'unassigned_only' are mutually exclusive."
            )
        if self.created_on and self.created_from:
            raise ValueError("Use either 'created_on' or 'created_from', not both.")
        return self


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class OrderPage(BaseModel):
    """A single page of orders visible to one actor."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    orders: List[Any]
    pagination: PageInfo


class DeliveryReceipt(BaseModel):
    """Result of ``mark_delivered``.

    For cash-on-delivery orders ``collect_cash`` is true and
    ``amount_to_collect`` is exactly the order's ``total_price``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    order: Any
    collect_cash: bool
    amount_to_collect: Decimal

    @classmethod
    def for_order(cls, order: Order) -> DeliveryReceipt:
        return cls(
            order=order,
            collect_cash=order.cod,
            amount_to_collect=order.cash_to_collect or Decimal("0.00"),
        )


class OrderStatsDTO(BaseModel):
    """Admin dashboard counters."""

    model_config = ConfigDict(frozen=True)

    total_orders: int
    pending_orders: int
    completed_today: int
    out_for_delivery: int
    needs_assignment: int
    total_revenue: Decimal


class CourierStatsDTO(BaseModel):
    """Courier dashboard counters."""

    model_config = ConfigDict(frozen=True)

    total_orders: int
    completed_orders: int
    pending_orders: int
    rejected_orders: int
    completion_rate: float
    average_delivery_time_hours: float
