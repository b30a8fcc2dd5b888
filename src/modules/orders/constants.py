"""Order domain constants.

Defines status, kind and action choices plus the fixed transition table
of the order lifecycle.  The table is keyed by ``(current status, action)``;
the roles allowed to perform an action do not depend on the status.
"""

from django.db import models

from modules.core.actors import ActorRole


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    ASSIGNED_TO_DELIVERY = "assigned_to_delivery", "Assigned to delivery"
    DELIVERY_ACCEPTED = "delivery_accepted", "Delivery accepted"
    OUT_FOR_DELIVERY = "out_for_delivery", "Out for delivery"
    DELIVERED = "delivered", "Delivered"
    DELIVERY_REJECTED = "delivery_rejected", "Delivery rejected"
    CANCELLED = "cancelled", "Cancelled"


class OrderKind(models.TextChoices):
    PRODUCT = "product", "Product order"
    PRESCRIPTION = "prescription", "Prescription order"


class OrderAction(models.TextChoices):
    CREATE = "create", "Create"
    CONFIRM = "confirm", "Confirm"
    CANCEL = "cancel", "Cancel"
    CLAIM = "claim", "Claim"
    ASSIGN_LABORATORY = "assign_laboratory", "Assign laboratory"
    ASSIGN_COURIER = "assign_courier", "Assign courier"
    ACCEPT = "accept", "Accept delivery"
    REJECT = "reject", "Reject delivery"
    START_DELIVERY = "start_delivery", "Start delivery"
    MARK_DELIVERED = "mark_delivered", "Mark delivered"


TRANSITIONS: dict[tuple[str, str], str] = {
    (OrderStatus.PENDING, OrderAction.CONFIRM): OrderStatus.CONFIRMED,
    (OrderStatus.PENDING, OrderAction.CANCEL): OrderStatus.CANCELLED,
    (OrderStatus.CONFIRMED, OrderAction.ASSIGN_COURIER): OrderStatus.ASSIGNED_TO_DELIVERY,
    (OrderStatus.CONFIRMED, OrderAction.CANCEL): OrderStatus.CANCELLED,
    (OrderStatus.ASSIGNED_TO_DELIVERY, OrderAction.ACCEPT): OrderStatus.DELIVERY_ACCEPTED,
    (OrderStatus.ASSIGNED_TO_DELIVERY, OrderAction.REJECT): OrderStatus.DELIVERY_REJECTED,
    (OrderStatus.DELIVERY_REJECTED, OrderAction.ASSIGN_COURIER): OrderStatus.ASSIGNED_TO_DELIVERY,
    (OrderStatus.DELIVERY_ACCEPTED, OrderAction.START_DELIVERY): OrderStatus.OUT_FOR_DELIVERY,
    (OrderStatus.OUT_FOR_DELIVERY, OrderAction.MARK_DELIVERED): OrderStatus.DELIVERED,
}

ACTION_ROLES: dict[str, frozenset[str]] = {
    OrderAction.CONFIRM: frozenset({ActorRole.LABORATORY, ActorRole.ADMIN}),
    OrderAction.CANCEL: frozenset({ActorRole.CUSTOMER}),
    OrderAction.ASSIGN_COURIER: frozenset({ActorRole.LABORATORY, ActorRole.ADMIN}),
    OrderAction.ACCEPT: frozenset({ActorRole.COURIER}),
    OrderAction.REJECT: frozenset({ActorRole.COURIER}),
    OrderAction.START_DELIVERY: frozenset({ActorRole.COURIER}),
    OrderAction.MARK_DELIVERED: frozenset({ActorRole.COURIER}),
}

TERMINAL_STATES: set[str] = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

# Orders in these states may still be claimed while unassigned.
CLAIMABLE_STATES: set[str] = {OrderStatus.PENDING, OrderStatus.CONFIRMED}

# Courier-side states counted as "in progress" on the courier dashboard.
IN_DELIVERY_STATES: set[str] = {
    OrderStatus.ASSIGNED_TO_DELIVERY,
    OrderStatus.DELIVERY_ACCEPTED,
    OrderStatus.OUT_FOR_DELIVERY,
}

# History entries that change ownership without moving the status.
ASSIGNMENT_ACTIONS: set[str] = {OrderAction.CLAIM, OrderAction.ASSIGN_LABORATORY}

ORDER_NUMBER_MAX_RETRIES = 5
