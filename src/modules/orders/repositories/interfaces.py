"""Order repository interface.

Extends ``IRepository[Order]`` with the methods the order services need:
atomic creation with items, the version-checked conditional update that
every mutation funnels through, the append-only history, and
idempotency-key look-up.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository, Queryable

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The Order aggregate includes OrderItem children and
    OrderStatusHistory records.  Mutations must be atomic.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data`` must include ``customer_ref`` and ``kind``; product orders
        pass ``items`` (dicts with ``product_ref``, ``quantity``,
        ``unit_price``), prescription orders pass ``prescription_ref``.
        """

    @abstractmethod
    def conditional_update(
        self,
        order_id: UUID,
        expected_version: int,
        changes: Dict[str, Any],
        **conditions: Any,
    ) -> bool:
        """Apply *changes* only if the stored version still matches.

        Extra ``conditions`` narrow the guarded row (e.g.
        ``laboratory_ref__isnull=True`` for claims).  On success the
        version is incremented by exactly one.  Returns ``False`` and
        writes nothing when the guard does not match.
        """

    @abstractmethod
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
        """Record a committed change in the order's audit trail."""

    @abstractmethod
    def list_history(
        self, filters: Optional[Dict[str, Any]] = None
    ) -> Queryable[OrderStatusHistory]:
        """List history records with optional filters."""

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""
