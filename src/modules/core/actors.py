"""Actor identity for role-aware operations.

Every command and query in the marketplace is performed by an *actor*: an
opaque reference plus one of four roles.  The HTTP layer resolves the actor
from the authenticated user; services never read ``request.user`` directly.

Resolution rules:
- Auth0 tokens carry the role in a configurable claim and the reference in
  ``sub`` (see ``modules.core.authentication.Auth0User``).
- Django users: superusers and staff act as ``admin``; otherwise the first
  matching group name (``laboratory``, ``courier``, ``customer``) wins.
  Users without a role group are customers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from django.db import models


class ActorRole(models.TextChoices):
    CUSTOMER = "customer", "Customer"
    LABORATORY = "laboratory", "Laboratory"
    COURIER = "courier", "Courier"
    ADMIN = "admin", "Admin"


# Group lookup order when a Django user belongs to several role groups.
_GROUP_PRECEDENCE = (
    ActorRole.ADMIN,
    ActorRole.LABORATORY,
    ActorRole.COURIER,
    ActorRole.CUSTOMER,
)


@dataclass(frozen=True)
class Actor:
    """The identity on whose behalf an operation runs."""

    ref: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


def actor_from_user(user: Any) -> Actor:
    """Build an ``Actor`` from an authenticated DRF user."""
    role = getattr(user, "actor_role", None)
    ref = getattr(user, "actor_ref", None)
    if role and ref:
        return Actor(ref=str(ref), role=str(role))

    if getattr(user, "is_superuser", False) or getattr(user, "is_staff", False):
        return Actor(ref=str(user.pk), role=ActorRole.ADMIN)

    group_names = set(user.groups.values_list("name", flat=True))
    for candidate in _GROUP_PRECEDENCE:
        if candidate.value in group_names:
            return Actor(ref=str(user.pk), role=candidate.value)
    return Actor(ref=str(user.pk), role=ActorRole.CUSTOMER)
