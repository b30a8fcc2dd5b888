"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised after a transition or assignment has been committed.

    ``from_status`` equals ``to_status`` for assignment-only changes
    (claims, laboratory reassignment).
    """

    from_status: Optional[str] = None
    to_status: str = ""
    audience_refs: Tuple[str, ...] = ()
