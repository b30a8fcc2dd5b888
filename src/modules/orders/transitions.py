"""Status transition validator.

Pure functions over the fixed transition table in ``constants``.  No
database access and no side effects: the same inputs always produce the
same next status or the same exception.

Role checks run before status checks, so a role that may never perform an
action is told ``NotAuthorized`` whatever the order's status.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from modules.orders.constants import (
    ACTION_ROLES,
    ASSIGNMENT_ACTIONS,
    TERMINAL_STATES,
    TRANSITIONS,
    OrderAction,
    OrderStatus,
)
from modules.orders.exceptions import InvalidTransition, NotAuthorized

if TYPE_CHECKING:
    from modules.orders.models import Order


def next_status(current_status: str, actor_role: str, action: str) -> str:
    """Return the status reached by *action* or raise.

    Raises:
        InvalidTransition: unknown action, or action illegal from
            ``current_status``.
        NotAuthorized: ``actor_role`` may never perform ``action``.
    """
    allowed_roles = ACTION_ROLES.get(action)
    if allowed_roles is None:
        raise InvalidTransition(f"Unknown order action {action!r}.")
    if actor_role not in allowed_roles:
        raise NotAuthorized(f"Role {actor_role!r} may not perform {action!r}.")
    if current_status in TERMINAL_STATES:
        raise InvalidTransition(f"Order in status {current_status!r} is final.")
    try:
        return TRANSITIONS[(current_status, action)]
    except KeyError:
        raise InvalidTransition(
            f"Cannot {action} an order in status {current_status!r}."
        ) from None


def validate(order: Order, actor_role: str, action: str) -> str:
    """Validate *action* against the order's current status."""
    return next_status(order.status, actor_role, action)


def is_legal_edge(
    previous_status: Optional[str], status: str, action: Optional[str] = None
) -> bool:
    """Check that a recorded history step follows the transition table.

    ``previous_status`` is ``None`` only for the creation entry.
    Assignment actions (claim, laboratory assignment) keep the status.
    """
    if previous_status is None:
        return status == OrderStatus.PENDING and action in (None, OrderAction.CREATE)
    if action in ASSIGNMENT_ACTIONS:
        return previous_status == status
    if action is None:
        return any(
            source == previous_status and target == status
            for (source, _), target in TRANSITIONS.items()
        )
    return TRANSITIONS.get((previous_status, action)) == status
