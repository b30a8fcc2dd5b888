import decimal

import django.core.validators
import django.db.models.deletion
import uuid6
from django.db import migrations, models

ORDER_STATUSES = [
    ("pending", "Pending"),
    ("confirmed", "Confirmed"),
    ("assigned_to_delivery", "Assigned to delivery"),
    ("delivery_accepted", "Delivery accepted"),
    ("out_for_delivery", "Out for delivery"),
    ("delivered", "Delivered"),
    ("delivery_rejected", "Delivery rejected"),
    ("cancelled", "Cancelled"),
]

ORDER_ACTIONS = [
    ("create", "Create"),
    ("confirm", "Confirm"),
    ("cancel", "Cancel"),
    ("claim", "Claim"),
    ("assign_laboratory", "Assign laboratory"),
    ("assign_courier", "Assign courier"),
    ("accept", "Accept delivery"),
    ("reject", "Reject delivery"),
    ("start_delivery", "Start delivery"),
    ("mark_delivered", "Mark delivered"),
]

ACTOR_ROLES = [
    ("customer", "Customer"),
    ("laboratory", "Laboratory"),
    ("courier", "Courier"),
    ("admin", "Admin"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid6.uuid7,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "order_number",
                    models.CharField(editable=False, max_length=20, unique=True),
                ),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("product", "Product order"),
                            ("prescription", "Prescription order"),
                        ],
                        default="product",
                        max_length=20,
                    ),
                ),
                ("customer_ref", models.CharField(max_length=64)),
                (
                    "laboratory_ref",
                    models.CharField(
                        blank=True, default=None, max_length=64, null=True
                    ),
                ),
                (
                    "courier_ref",
                    models.CharField(
                        blank=True, default=None, max_length=64, null=True
                    ),
                ),
                (
                    "prescription_ref",
                    models.CharField(blank=True, default="", max_length=500),
                ),
                (
                    "total_price",
                    models.DecimalField(
                        decimal_places=2,
                        default=decimal.Decimal("0.00"),
                        max_digits=10,
                    ),
                ),
                ("is_paid", models.BooleanField(default=False)),
                ("cod", models.BooleanField(default=False)),
                ("needs_assignment", models.BooleanField(default=False)),
                (
                    "status",
                    models.CharField(
                        choices=ORDER_STATUSES, default="pending", max_length=30
                    ),
                ),
                (
                    "rejection_reason",
                    models.TextField(blank=True, default=None, null=True),
                ),
                ("version", models.PositiveIntegerField(default=1)),
                ("customer_address", models.TextField(blank=True, default="")),
                (
                    "customer_pin_code",
                    models.CharField(blank=True, default="", max_length=12),
                ),
                ("notes", models.TextField(blank=True, default="")),
                ("assigned_at", models.DateTimeField(blank=True, null=True)),
                ("accepted_at", models.DateTimeField(blank=True, null=True)),
                ("out_for_delivery_at", models.DateTimeField(blank=True, null=True)),
                ("delivered_at", models.DateTimeField(blank=True, null=True)),
                (
                    "idempotency_key",
                    models.CharField(blank=True, max_length=255, null=True, unique=True),
                ),
            ],
            options={
                "db_table": "orders",
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["status"], name="orders_status_idx"),
                    models.Index(
                        fields=["-created_at", "-id"], name="orders_created_idx"
                    ),
                    models.Index(fields=["customer_ref"], name="orders_customer_idx"),
                    models.Index(
                        fields=["laboratory_ref"], name="orders_laboratory_idx"
                    ),
                    models.Index(fields=["courier_ref"], name="orders_courier_idx"),
                    models.Index(
                        fields=["needs_assignment", "status"], name="orders_pool_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            status__in=[value for value, _ in ORDER_STATUSES]
                        ),
                        name="orders_status_valid",
                    ),
                    models.CheckConstraint(
                        condition=(
                            models.Q(laboratory_ref__isnull=True, needs_assignment=True)
                            | models.Q(
                                laboratory_ref__isnull=False, needs_assignment=False
                            )
                        ),
                        name="orders_assignment_consistent",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid6.uuid7,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("product_ref", models.CharField(max_length=64)),
                (
                    "product_name",
                    models.CharField(blank=True, default="", max_length=200),
                ),
                (
                    "quantity",
                    models.PositiveIntegerField(
                        default=1,
                        validators=[django.core.validators.MinValueValidator(1)],
                    ),
                ),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=10)),
                (
                    "subtotal",
                    models.DecimalField(
                        decimal_places=2, editable=False, max_digits=10
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="items",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "db_table": "order_items",
                "ordering": ["created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(quantity__gte=1),
                        name="order_items_quantity_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderStatusHistory",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid6.uuid7,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "old_status",
                    models.CharField(
                        blank=True, choices=ORDER_STATUSES, max_length=30, null=True
                    ),
                ),
                ("status", models.CharField(choices=ORDER_STATUSES, max_length=30)),
                ("action", models.CharField(choices=ORDER_ACTIONS, max_length=30)),
                ("actor_ref", models.CharField(max_length=64)),
                ("actor_role", models.CharField(choices=ACTOR_ROLES, max_length=20)),
                ("version", models.PositiveIntegerField()),
                ("notes", models.TextField(blank=True, default="")),
                ("recorded_at", models.DateTimeField()),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="status_history",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "db_table": "order_status_history",
                "ordering": ["recorded_at", "version"],
                "indexes": [
                    models.Index(
                        fields=["order", "recorded_at"],
                        name="osh_order_recorded_idx",
                    ),
                    models.Index(
                        fields=["actor_ref", "action"],
                        name="osh_actor_action_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=["order", "version"],
                        name="osh_order_version_unique",
                    ),
                ],
            },
        ),
    ]
