"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.

Output is role-aware: the view passes ``actor_role`` in the serializer
context and ``OrderSerializer`` drops the fields that role may not see.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.core.actors import ActorRole
from modules.orders.constants import OrderKind
from modules.orders.models import Order, OrderItem, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CreateOrderItemSerializer(serializers.Serializer):
    """Validates a single item in an order creation request."""

    product_ref = serializers.CharField(max_length=64)
    product_name = serializers.CharField(
        max_length=200, required=False, default="", allow_blank=True
    )
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0
    )


class CreateOrderSerializer(serializers.Serializer):
    """Validates the order creation request payload.

    Cross-field rules (product vs. prescription payload) are enforced by
    ``CreateOrderDTO``.
    """

    kind = serializers.ChoiceField(choices=OrderKind.choices)
    items = CreateOrderItemSerializer(many=True, required=False, default=list)
    prescription_ref = serializers.CharField(
        max_length=500, required=False, allow_null=True, allow_blank=True
    )
    laboratory_ref = serializers.CharField(
        max_length=64, required=False, allow_null=True, allow_blank=True
    )
    cod = serializers.BooleanField(required=False, default=False)
    customer_address = serializers.CharField(
        required=False, default="", allow_blank=True
    )
    customer_pin_code = serializers.CharField(
        max_length=12, required=False, default="", allow_blank=True
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class VersionedActionSerializer(serializers.Serializer):
    """Body of every lifecycle action: an optional ``expected_version``."""

    expected_version = serializers.IntegerField(
        min_value=1, required=False, allow_null=True, default=None
    )


class CancelOrderSerializer(VersionedActionSerializer):
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class ConfirmOrderSerializer(VersionedActionSerializer):
    total_price = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        min_value=0,
        required=False,
        allow_null=True,
        default=None,
    )


class AssignCourierSerializer(VersionedActionSerializer):
    courier_ref = serializers.CharField(max_length=64)


class AssignLaboratorySerializer(VersionedActionSerializer):
    laboratory_ref = serializers.CharField(max_length=64)


class RejectDeliverySerializer(VersionedActionSerializer):
    reason = serializers.CharField(max_length=1000)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Read serializer for order items with the price snapshot."""

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_ref",
            "product_name",
            "quantity",
            "unit_price",
            "subtotal",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for order status history records."""

    class Meta:
        model = OrderStatusHistory
        fields = [
            "old_status",
            "status",
            "action",
            "actor_ref",
            "actor_role",
            "version",
            "notes",
            "recorded_at",
        ]
        read_only_fields = fields


class RoleScopedFieldsMixin:
    """Drop fields the requesting actor's role may not see."""

    hidden_fields: dict[str, tuple[str, ...]] = {
        ActorRole.CUSTOMER: ("rejection_reason",),
        ActorRole.COURIER: ("rejection_reason", "status_history"),
    }

    def to_representation(self, instance):
        data = super().to_representation(instance)
        role = self.context.get("actor_role")
        for field in self.hidden_fields.get(role, ()):
            data.pop(field, None)
        return data


class OrderSerializer(RoleScopedFieldsMixin, serializers.ModelSerializer):
    """Read serializer for orders with nested items and history."""

    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)
    cash_to_collect = serializers.DecimalField(
        max_digits=10, decimal_places=2, read_only=True, allow_null=True
    )

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "kind",
            "status",
            "version",
            "customer_ref",
            "laboratory_ref",
            "courier_ref",
            "prescription_ref",
            "needs_assignment",
            "total_price",
            "is_paid",
            "cod",
            "cash_to_collect",
            "rejection_reason",
            "customer_address",
            "customer_pin_code",
            "notes",
            "assigned_at",
            "accepted_at",
            "out_for_delivery_at",
            "delivered_at",
            "created_at",
            "updated_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields


class OrderListSerializer(RoleScopedFieldsMixin, serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "kind",
            "status",
            "version",
            "customer_ref",
            "laboratory_ref",
            "courier_ref",
            "needs_assignment",
            "total_price",
            "is_paid",
            "cod",
            "rejection_reason",
            "created_at",
        ]
        read_only_fields = fields
