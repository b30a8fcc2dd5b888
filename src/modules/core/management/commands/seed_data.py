from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand

from modules.core.actors import ActorRole
from modules.orders.claims import ClaimCoordinator
from modules.orders.constants import OrderKind
from modules.orders.delivery import DeliveryHandoff
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
from modules.orders.models import Order
from modules.orders.notifications import (
    EventBusNotificationDispatcher,
    LogOnlyNotificationDispatcher,
)
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService

CATALOG = [
    ("PRD-PARA-500", "Paracetamol 500mg (strip of 10)", Decimal("32.50")),
    ("PRD-VITD-60K", "Vitamin D3 60K (4 capsules)", Decimal("120.00")),
    ("PRD-ORS-21", "ORS sachet 21g", Decimal("21.00")),
    ("PRD-THERMO", "Digital thermometer", Decimal("249.00")),
    ("PRD-BPM", "Blood pressure monitor", Decimal("1899.00")),
    ("PRD-MASK-N95", "N95 mask (pack of 5)", Decimal("175.00")),
]


class Command(BaseCommand):
    help = "Seed database with role users and orders in every lifecycle stage."

    def add_arguments(self, parser):
        parser.add_argument(
            "--orders",
            type=int,
            default=12,
            help="Number of demo orders to create (default: 12).",
        )
        parser.add_argument(
            "--notify",
            action="store_true",
            help="Send notifications through Celery instead of only logging them.",
        )

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users_created = self._seed_users()
        dispatcher = (
            EventBusNotificationDispatcher()
            if options["notify"]
            else LogOnlyNotificationDispatcher()
        )
        orders_created = self._seed_orders(options["orders"], dispatcher)

        self.stdout.write(
            self.style.SUCCESS(
                f"Seed completed: users={users_created}, orders={orders_created}"
            )
        )

    def _seed_users(self) -> int:
        User = get_user_model()
        created = 0
        groups = {
            role: Group.objects.get_or_create(name=role.value)[0]
            for role in ActorRole
        }
        if not User.objects.filter(username="admin").exists():
            User.objects.create_superuser("admin", password="admin123")
            created += 1
        accounts = [
            ("lab-north", ActorRole.LABORATORY),
            ("lab-south", ActorRole.LABORATORY),
            ("courier-ravi", ActorRole.COURIER),
            ("courier-meena", ActorRole.COURIER),
            ("customer-asha", ActorRole.CUSTOMER),
            ("customer-vikram", ActorRole.CUSTOMER),
        ]
        for username, role in accounts:
            user, was_created = User.objects.get_or_create(username=username)
            if was_created:
                user.set_password(f"{username}123")
                user.save()
                created += 1
            user.groups.add(groups[role])
        return created

    def _seed_orders(self, count: int, dispatcher) -> int:
        self.stdout.write("Creating orders...")
        if Order.objects.exists():
            self.stdout.write(self.style.WARNING("Skipping orders (already seeded)."))
            return 0

        User = get_user_model()
        refs = {
            name: str(pk)
            for name, pk in User.objects.values_list("username", "pk")
        }
        labs = [refs["lab-north"], refs["lab-south"]]
        couriers = [refs["courier-ravi"], refs["courier-meena"]]
        customers = [refs["customer-asha"], refs["customer-vikram"]]

        repository = OrderDjangoRepository()
        service = OrderService(repository, dispatcher)
        claims = ClaimCoordinator(repository, dispatcher)
        delivery = DeliveryHandoff(repository, dispatcher)

        # Each demo order is walked this many steps along the happy path.
        stages = ["pending", "confirmed", "assigned", "accepted", "out", "delivered"]

        for i in range(count):
            customer = random.choice(customers)
            lab = random.choice(labs)
            courier = random.choice(couriers)
            prescription = i % 3 == 0

            if prescription:
                dto = CreateOrderDTO(
                    customer_ref=customer,
                    kind=OrderKind.PRESCRIPTION,
                    prescription_ref=f"prescriptions/demo-{i + 1}.jpg",
                    cod=i % 2 == 0,
                    customer_address=f"{i + 10} MG Road, Bengaluru",
                    customer_pin_code="560001",
                )
            else:
                picks = random.sample(CATALOG, k=random.randint(1, 3))
                dto = CreateOrderDTO(
                    customer_ref=customer,
                    kind=OrderKind.PRODUCT,
                    laboratory_ref=lab,
                    items=[
                        CreateOrderItemDTO(
                            product_ref=ref,
                            product_name=name,
                            quantity=random.randint(1, 3),
                            unit_price=price,
                        )
                        for ref, name, price in picks
                    ],
                    cod=i % 2 == 0,
                    customer_address=f"{i + 10} Park Street, Kolkata",
                    customer_pin_code="700016",
                )
            order = service.create_order(dto)

            stage = stages[i % len(stages)]
            if prescription and stage == "pending":
                continue  # left in the assignment pool
            if prescription:
                order = claims.claim(order.id, lab, order.version)
            if stage == "pending":
                continue

            order = service.confirm(
                order.id,
                lab,
                ActorRole.LABORATORY,
                total_price=Decimal("450.00") if prescription else None,
            )
            if stage == "confirmed":
                continue
            order = service.assign_courier(
                order.id, courier, lab, ActorRole.LABORATORY
            )
            if stage == "assigned":
                continue
            order = delivery.accept(order.id, courier)
            if stage == "accepted":
                continue
            order = delivery.start_delivery(order.id, courier)
            if stage == "out":
                continue
            delivery.mark_delivered(order.id, courier)
            service.record_payment(order.id)

        self.stdout.write(
            self.style.SUCCESS("Creating orders... Done!")
        )
        return count
