"""Integration tests for the order HTTP API.

Covers:
- Role resolution from Django users and role enforcement per action.
- Domain errors mapped to ``{"detail", "code"}`` with the matching status.
- Role-scoped listing with the ``results`` / ``pagination`` envelope.
- Field hiding for customers and couriers.
- Cash-on-delivery instruction on ``deliver``.
- Dashboards and authentication enforcement.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from modules.core.actors import ActorRole
from modules.orders.constants import OrderStatus
from tests.factories import prescription_order_dto, product_order_dto

pytestmark = pytest.mark.integration

ORDERS_URL = "/api/v1/orders/"


def _url(order, action=None):
    base = f"{ORDERS_URL}{order.id}/"
    return f"{base}{action}/" if action else base


@pytest.fixture()
def refs(customer_user, laboratory_user, courier_user, admin_user):
    return {
        "customer": str(customer_user.pk),
        "laboratory": str(laboratory_user.pk),
        "courier": str(courier_user.pk),
        "admin": str(admin_user.pk),
    }


@pytest.fixture()
def as_user(api_client):
    def _login(user):
        api_client.force_authenticate(user=user)
        return api_client

    return _login


@pytest.fixture()
def lab_order(service, refs):
    return service.create_order(
        product_order_dto(customer_ref=refs["customer"], laboratory_ref=refs["laboratory"])
    )


@pytest.fixture()
def handed_over(service, refs):
    def _make(cod=False):
        order = service.create_order(
            product_order_dto(
                customer_ref=refs["customer"], laboratory_ref=refs["laboratory"], cod=cod
            )
        )
        service.confirm(order.id, refs["laboratory"], ActorRole.LABORATORY)
        return service.assign_courier(
            order.id, refs["courier"], refs["laboratory"], ActorRole.LABORATORY
        )

    return _make


class TestAuthentication:
    def test_list_requires_authentication(self, api_client):
        response = api_client.get(ORDERS_URL)
        assert response.status_code == 401

    def test_me_reports_resolved_actor(self, as_user, courier_user):
        response = as_user(courier_user).get("/api/v1/me")
        assert response.status_code == 200
        assert response.json()["actor_role"] == ActorRole.COURIER
        assert response.json()["actor_ref"] == str(courier_user.pk)


class TestCreate:
    def test_customer_creates_product_order(self, as_user, customer_user, refs):
        payload = {
            "kind": "product",
            "laboratory_ref": refs["laboratory"],
            "cod": True,
            "items": [
                {"product_ref": "PRD-1", "quantity": 2, "unit_price": "250.00"},
            ],
        }
        response = as_user(customer_user).post(ORDERS_URL, payload, format="json")

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == OrderStatus.PENDING
        assert body["customer_ref"] == refs["customer"]
        assert Decimal(body["total_price"]) == Decimal("500.00")
        assert Decimal(body["cash_to_collect"]) == Decimal("500.00")
        assert body["version"] == 1

    def test_prescription_order_enters_pool(self, as_user, customer_user):
        payload = {"kind": "prescription", "prescription_ref": "rx/42.jpg"}
        response = as_user(customer_user).post(ORDERS_URL, payload, format="json")

        assert response.status_code == 201
        assert response.json()["needs_assignment"] is True
        assert response.json()["laboratory_ref"] is None

    def test_idempotency_key_returns_same_order(self, as_user, customer_user):
        client = as_user(customer_user)
        payload = {"kind": "prescription", "prescription_ref": "rx/42.jpg"}

        first = client.post(ORDERS_URL, payload, format="json", HTTP_IDEMPOTENCY_KEY="k-1")
        second = client.post(ORDERS_URL, payload, format="json", HTTP_IDEMPOTENCY_KEY="k-1")

        assert first.json()["id"] == second.json()["id"]

    def test_invalid_payload_reports_fields(self, as_user, customer_user):
        payload = {"kind": "prescription"}
        response = as_user(customer_user).post(ORDERS_URL, payload, format="json")

        assert response.status_code == 400
        assert response.json()["code"] == "invalid"

    def test_courier_cannot_create(self, as_user, courier_user):
        payload = {"kind": "prescription", "prescription_ref": "rx.jpg"}
        response = as_user(courier_user).post(ORDERS_URL, payload, format="json")

        assert response.status_code == 403
        assert response.json()["code"] == "not_authorized"


class TestReads:
    def test_list_envelope_and_scope(self, as_user, customer_user, service, refs, lab_order):
        service.create_order(product_order_dto(customer_ref="someone-else"))

        response = as_user(customer_user).get(ORDERS_URL, {"limit": 5})

        assert response.status_code == 200
        body = response.json()
        assert [row["id"] for row in body["results"]] == [str(lab_order.id)]
        assert body["pagination"]["total_count"] == 1
        assert body["pagination"]["limit"] == 5
        assert body["pagination"]["has_next_page"] is False

    def test_status_filter(self, as_user, admin_user, service, refs, lab_order):
        service.confirm(lab_order.id, refs["laboratory"], ActorRole.LABORATORY)
        service.create_order(product_order_dto(customer_ref=refs["customer"]))

        response = as_user(admin_user).get(ORDERS_URL, {"status": "confirmed"})

        assert [row["id"] for row in response.json()["results"]] == [str(lab_order.id)]

    def test_bad_filter_is_rejected(self, as_user, admin_user):
        response = as_user(admin_user).get(ORDERS_URL, {"status": "lost"})
        assert response.status_code == 400

    def test_conflicting_assignment_filters(self, as_user, admin_user):
        response = as_user(admin_user).get(
            ORDERS_URL, {"assigned_only": "true", "unassigned_only": "true"}
        )
        assert response.status_code == 400

    def test_laboratory_lists_pool(self, as_user, laboratory_user, service, refs, lab_order):
        pool = service.create_order(prescription_order_dto(customer_ref=refs["customer"]))

        response = as_user(laboratory_user).get(ORDERS_URL, {"unassigned_only": "true"})

        assert [row["id"] for row in response.json()["results"]] == [str(pool.id)]

    def test_pool_endpoint_lists_open_unclaimed_orders(
        self, as_user, laboratory_user, service, refs, lab_order
    ):
        pool = service.create_order(prescription_order_dto(customer_ref=refs["customer"]))
        withdrawn = service.create_order(prescription_order_dto(customer_ref=refs["customer"]))
        service.cancel_order(withdrawn.id, refs["customer"])

        response = as_user(laboratory_user).get(f"{ORDERS_URL}pool/", {"limit": 5})

        assert response.status_code == 200
        body = response.json()
        assert [row["id"] for row in body["results"]] == [str(pool.id)]
        assert body["pagination"]["total_count"] == 1
        assert body["pagination"]["limit"] == 5

    def test_pool_endpoint_is_closed_to_couriers(self, as_user, courier_user):
        response = as_user(courier_user).get(f"{ORDERS_URL}pool/")
        assert response.status_code == 403

    def test_retrieve_invisible_order_is_404(self, as_user, make_user, lab_order):
        stranger = make_user("customer-other", ActorRole.CUSTOMER)
        response = as_user(stranger).get(_url(lab_order))

        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_customer_never_sees_rejection_reason(
        self, as_user, customer_user, delivery, refs, handed_over
    ):
        order = handed_over()
        delivery.reject(order.id, refs["courier"], "Road closed")

        body = as_user(customer_user).get(_url(order)).json()

        assert body["status"] == OrderStatus.DELIVERY_REJECTED
        assert "rejection_reason" not in body
        assert "status_history" in body

    def test_courier_sees_no_history(self, as_user, courier_user, handed_over):
        body = as_user(courier_user).get(_url(handed_over())).json()

        assert "status_history" not in body
        assert "rejection_reason" not in body

    def test_laboratory_sees_rejection_reason(
        self, as_user, laboratory_user, delivery, refs, handed_over
    ):
        order = handed_over()
        delivery.reject(order.id, refs["courier"], "Road closed")

        body = as_user(laboratory_user).get(_url(order)).json()

        assert body["rejection_reason"] == "Road closed"
        assert len(body["status_history"]) == 4


class TestLifecycle:
    def test_laboratory_claims_pool_order(self, as_user, laboratory_user, service, refs):
        pool = service.create_order(prescription_order_dto(customer_ref=refs["customer"]))

        response = as_user(laboratory_user).post(
            _url(pool, "claim"), {"expected_version": 1}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["laboratory_ref"] == refs["laboratory"]
        assert response.json()["version"] == 2

    def test_second_claim_conflicts(self, as_user, make_user, laboratory_user, service, refs):
        pool = service.create_order(prescription_order_dto(customer_ref=refs["customer"]))
        as_user(laboratory_user).post(_url(pool, "claim"), {}, format="json")

        rival = make_user("lab-south", ActorRole.LABORATORY)
        response = as_user(rival).post(_url(pool, "claim"), {}, format="json")

        assert response.status_code == 409
        assert response.json()["code"] == "already_claimed"

    def test_stale_version_conflicts(self, as_user, laboratory_user, lab_order):
        response = as_user(laboratory_user).post(
            _url(lab_order, "confirm"), {"expected_version": 4}, format="json"
        )

        assert response.status_code == 409
        assert response.json()["code"] == "stale_version"

    def test_invalid_transition_is_400(self, as_user, laboratory_user, refs, lab_order):
        response = as_user(laboratory_user).post(
            _url(lab_order, "assign-courier"), {"courier_ref": refs["courier"]}, format="json"
        )

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_transition"

    def test_pricing_product_order_is_400(self, as_user, laboratory_user, lab_order):
        response = as_user(laboratory_user).post(
            _url(lab_order, "confirm"), {"total_price": "10.00"}, format="json"
        )

        assert response.status_code == 400
        assert response.json()["code"] == "pricing_not_allowed"

    def test_confirm_then_assign(self, as_user, laboratory_user, refs, lab_order):
        client = as_user(laboratory_user)
        client.post(_url(lab_order, "confirm"), {}, format="json")
        response = client.post(
            _url(lab_order, "assign-courier"),
            {"courier_ref": refs["courier"], "expected_version": 2},
            format="json",
        )

        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.ASSIGNED_TO_DELIVERY
        assert response.json()["courier_ref"] == refs["courier"]

    def test_customer_cancels(self, as_user, customer_user, lab_order):
        response = as_user(customer_user).post(
            _url(lab_order, "cancel"), {"notes": "Ordered twice"}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.CANCELLED

    def test_laboratory_cannot_cancel(self, as_user, laboratory_user, lab_order):
        response = as_user(laboratory_user).post(_url(lab_order, "cancel"), {}, format="json")
        assert response.status_code == 403

    def test_admin_records_payment(self, as_user, admin_user, lab_order):
        response = as_user(admin_user).post(_url(lab_order, "payment"), {}, format="json")

        assert response.status_code == 200
        assert response.json()["is_paid"] is True

    def test_admin_assigns_laboratory(self, as_user, admin_user, service, refs):
        pool = service.create_order(prescription_order_dto(customer_ref=refs["customer"]))

        response = as_user(admin_user).post(
            _url(pool, "assign-laboratory"), {"laboratory_ref": "lab-x"}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["needs_assignment"] is False
        assert response.json()["laboratory_ref"] == "lab-x"


class TestCourierFlow:
    def test_reject_requires_reason(self, as_user, courier_user, handed_over):
        response = as_user(courier_user).post(
            _url(handed_over(), "reject"), {"reason": ""}, format="json"
        )
        assert response.status_code == 400

    def test_reject_releases_order(self, as_user, courier_user, handed_over):
        response = as_user(courier_user).post(
            _url(handed_over(), "reject"), {"reason": "Bike puncture"}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.DELIVERY_REJECTED
        assert response.json()["courier_ref"] is None

    def test_full_cod_delivery(self, as_user, courier_user, handed_over):
        order = handed_over(cod=True)
        client = as_user(courier_user)

        assert client.post(_url(order, "accept"), {}, format="json").status_code == 200
        assert client.post(_url(order, "start-delivery"), {}, format="json").status_code == 200
        response = client.post(_url(order, "deliver"), {}, format="json")

        assert response.status_code == 200
        body = response.json()
        assert body["order"]["status"] == OrderStatus.DELIVERED
        assert body["collect_cash"] is True
        assert body["amount_to_collect"] == "86.00"

    def test_customer_cannot_accept(self, as_user, customer_user, handed_over):
        response = as_user(customer_user).post(
            _url(handed_over(), "accept"), {}, format="json"
        )
        assert response.status_code == 403


class TestDashboards:
    def test_admin_stats(self, as_user, admin_user, lab_order):
        response = as_user(admin_user).get(f"{ORDERS_URL}stats/")

        assert response.status_code == 200
        assert response.json()["total_orders"] == 1
        assert response.json()["pending_orders"] == 1

    def test_stats_forbidden_for_laboratory(self, as_user, laboratory_user):
        response = as_user(laboratory_user).get(f"{ORDERS_URL}stats/")
        assert response.status_code == 403

    def test_courier_sees_own_stats(self, as_user, courier_user, handed_over):
        handed_over()
        response = as_user(courier_user).get(f"{ORDERS_URL}courier-stats/")

        assert response.status_code == 200
        assert response.json()["total_orders"] == 1
        assert response.json()["pending_orders"] == 1

    def test_admin_must_name_courier(self, as_user, admin_user):
        response = as_user(admin_user).get(f"{ORDERS_URL}courier-stats/")
        assert response.status_code == 400

    def test_admin_reads_courier_stats(self, as_user, admin_user, refs, handed_over):
        handed_over()
        response = as_user(admin_user).get(
            f"{ORDERS_URL}courier-stats/", {"courier_ref": refs["courier"]}
        )
        assert response.json()["total_orders"] == 1
