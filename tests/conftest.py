import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from rest_framework.test import APIClient

from modules.core.actors import ActorRole
from modules.orders.claims import ClaimCoordinator
from modules.orders.delivery import DeliveryHandoff
from modules.orders.queries import RoleScopedOrderQuery
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService

from tests.factories import (
    COURIER,
    CUSTOMER,
    LAB,
    prescription_order_dto,
    product_order_dto,
)


class RecordingDispatcher:
    """Notification dispatcher that remembers every call."""

    def __init__(self):
        self.calls = []

    def notify(self, order_id, from_status, to_status, audience_refs):
        self.calls.append((order_id, from_status, to_status, list(audience_refs)))


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture()
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture()
def repository():
    return OrderDjangoRepository()


@pytest.fixture()
def service(repository, dispatcher):
    return OrderService(order_repository=repository, notification_dispatcher=dispatcher)


@pytest.fixture()
def claims(repository, dispatcher):
    return ClaimCoordinator(
        order_repository=repository, notification_dispatcher=dispatcher
    )


@pytest.fixture()
def delivery(repository, dispatcher):
    return DeliveryHandoff(
        order_repository=repository, notification_dispatcher=dispatcher
    )


@pytest.fixture()
def query(repository):
    return RoleScopedOrderQuery(order_repository=repository)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@pytest.fixture()
def product_order(service):
    """Product order (total 86.00) sold by ``LAB``, in ``pending``."""
    return service.create_order(product_order_dto())


@pytest.fixture()
def pool_order(service):
    """Prescription order waiting in the assignment pool."""
    return service.create_order(prescription_order_dto())


@pytest.fixture()
def make_assigned_order(service):
    """Build an order handed to ``COURIER`` (status ``assigned_to_delivery``)."""

    def _make(cod=False, customer_ref=CUSTOMER):
        order = service.create_order(product_order_dto(customer_ref=customer_ref, cod=cod))
        order = service.confirm(order.id, LAB, ActorRole.LABORATORY)
        return service.assign_courier(order.id, COURIER, LAB, ActorRole.LABORATORY)

    return _make


# ---------------------------------------------------------------------------
# Users (HTTP layer)
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_user():
    """Create a Django user in the group of the given role."""

    def _make(username, role=None, **extra):
        user = get_user_model().objects.create_user(
            username=username, password="pass12345", **extra
        )
        if role is not None:
            group, _ = Group.objects.get_or_create(name=role)
            user.groups.add(group)
        return user

    return _make


@pytest.fixture()
def customer_user(make_user):
    return make_user("customer-asha", ActorRole.CUSTOMER)


@pytest.fixture()
def laboratory_user(make_user):
    return make_user("lab-north", ActorRole.LABORATORY)


@pytest.fixture()
def courier_user(make_user):
    return make_user("courier-ravi", ActorRole.COURIER)


@pytest.fixture()
def admin_user(make_user):
    return make_user("admin", is_staff=True)
