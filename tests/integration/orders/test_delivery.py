"""Courier handoff: accept, reject, start and complete deliveries."""

from __future__ import annotations

from decimal import Decimal

import pytest

from modules.core.actors import ActorRole
from modules.orders.constants import OrderAction, OrderStatus
from modules.orders.exceptions import InvalidTransition, NotAuthorized, StaleVersion
from modules.orders.models import Order, OrderStatusHistory
from tests.factories import ADMIN, COURIER, LAB, OTHER_COURIER

pytestmark = pytest.mark.integration


class TestAccept:
    def test_assigned_courier_accepts(self, delivery, make_assigned_order):
        assigned = make_assigned_order()
        order = delivery.accept(assigned.id, COURIER, assigned.version)

        assert order.status == OrderStatus.DELIVERY_ACCEPTED
        assert order.courier_ref == COURIER
        assert order.accepted_at is not None

    def test_other_courier_not_authorized(self, delivery, make_assigned_order):
        assigned = make_assigned_order()
        with pytest.raises(NotAuthorized):
            delivery.accept(assigned.id, OTHER_COURIER)

    def test_reject_after_accept_is_invalid(self, delivery, make_assigned_order):
        assigned = make_assigned_order()
        delivery.accept(assigned.id, COURIER)

        with pytest.raises(InvalidTransition):
            delivery.reject(assigned.id, COURIER, "Too far")

        order = Order.objects.get(id=assigned.id)
        assert order.status == OrderStatus.DELIVERY_ACCEPTED
        assert order.rejection_reason is None


class TestReject:
    def test_reject_clears_courier(self, delivery, make_assigned_order):
        assigned = make_assigned_order()
        order = delivery.reject(assigned.id, COURIER, "Vehicle breakdown")

        assert order.status == OrderStatus.DELIVERY_REJECTED
        assert order.courier_ref is None
        assert order.rejection_reason == "Vehicle breakdown"
        entry = OrderStatusHistory.objects.get(order=order, version=order.version)
        assert entry.action == OrderAction.REJECT
        assert entry.actor_ref == COURIER

    def test_blank_reason_rejected(self, delivery, make_assigned_order):
        assigned = make_assigned_order()
        with pytest.raises(InvalidTransition):
            delivery.reject(assigned.id, COURIER, "   ")
        assert Order.objects.get(id=assigned.id).status == OrderStatus.ASSIGNED_TO_DELIVERY

    def test_reassign_after_reject(self, service, delivery, make_assigned_order):
        assigned = make_assigned_order()
        rejected = delivery.reject(assigned.id, COURIER, "Out of area")

        order = service.assign_courier(
            rejected.id, OTHER_COURIER, LAB, ActorRole.LABORATORY, rejected.version
        )

        assert order.status == OrderStatus.ASSIGNED_TO_DELIVERY
        assert order.courier_ref == OTHER_COURIER
        assert order.rejection_reason == "Out of area"

    def test_previous_courier_locked_out_after_reassign(
        self, service, delivery, make_assigned_order
    ):
        assigned = make_assigned_order()
        delivery.reject(assigned.id, COURIER, "Out of area")
        service.assign_courier(assigned.id, OTHER_COURIER, ADMIN, ActorRole.ADMIN)

        with pytest.raises(NotAuthorized):
            delivery.accept(assigned.id, COURIER)


class TestCompleteDelivery:
    def _walk(self, delivery, order):
        order = delivery.accept(order.id, COURIER)
        order = delivery.start_delivery(order.id, COURIER)
        assert order.status == OrderStatus.OUT_FOR_DELIVERY
        assert order.out_for_delivery_at is not None
        return delivery.mark_delivered(order.id, COURIER, order.version)

    def test_cod_receipt_collects_total(self, delivery, make_assigned_order):
        receipt = self._walk(delivery, make_assigned_order(cod=True))

        assert receipt.order.status == OrderStatus.DELIVERED
        assert receipt.order.delivered_at is not None
        assert receipt.collect_cash is True
        assert receipt.amount_to_collect == Decimal("86.00")

    def test_prepaid_receipt_collects_nothing(self, delivery, make_assigned_order):
        receipt = self._walk(delivery, make_assigned_order(cod=False))

        assert receipt.collect_cash is False
        assert receipt.amount_to_collect == Decimal("0.00")

    def test_delivered_is_terminal(self, delivery, make_assigned_order):
        receipt = self._walk(delivery, make_assigned_order())
        with pytest.raises(InvalidTransition):
            delivery.start_delivery(receipt.order.id, COURIER)

    def test_cannot_skip_start(self, delivery, make_assigned_order):
        assigned = make_assigned_order()
        delivery.accept(assigned.id, COURIER)
        with pytest.raises(InvalidTransition):
            delivery.mark_delivered(assigned.id, COURIER)

    def test_stale_version(self, delivery, make_assigned_order):
        assigned = make_assigned_order()
        with pytest.raises(StaleVersion):
            delivery.accept(assigned.id, COURIER, assigned.version - 1)
