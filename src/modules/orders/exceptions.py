"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.  Every
exception carries a stable ``code`` so callers can tell the failure kinds
apart ("already claimed" vs. "not allowed") without parsing messages.
The API layer (Views) catches ``OrderError`` and translates it into the
matching HTTP response.
"""

from __future__ import annotations


class OrderError(Exception):
    """Base class for order domain failures."""

    code = "order_error"


class OrderNotFound(OrderError):
    """The requested order does not exist or is not visible to the actor."""

    code = "not_found"


class InvalidTransition(OrderError):
    """The action is not legal from the order's current status."""

    code = "invalid_transition"


class NotAuthorized(OrderError):
    """The actor may not perform this action on this order."""

    code = "not_authorized"


class AlreadyClaimed(OrderError):
    """Another laboratory claimed the order first."""

    code = "already_claimed"


class StaleVersion(OrderError):
    """The order changed since the caller last read it."""

    code = "stale_version"


class NotEligible(OrderError):
    """The order is not currently in the assignment pool."""

    code = "not_eligible"


class PricingNotAllowed(OrderError):
    """Only prescription orders may be priced by the laboratory."""

    code = "pricing_not_allowed"
