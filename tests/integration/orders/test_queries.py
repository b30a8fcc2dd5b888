"""Role-scoped listing, detail visibility and dashboard counters."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from freezegun import freeze_time

from modules.core.actors import ActorRole
from modules.orders.constants import OrderStatus
from modules.orders.dtos import OrderListFiltersDTO
from modules.orders.exceptions import NotAuthorized, OrderNotFound
from modules.orders.models import Order
from tests.factories import (
    ADMIN,
    COURIER,
    CUSTOMER,
    LAB,
    OTHER_COURIER,
    OTHER_CUSTOMER,
    OTHER_LAB,
    prescription_order_dto,
    product_order_dto,
)

pytestmark = pytest.mark.integration


def _ids(page):
    return [order.id for order in page.orders]


class TestListingScope:
    def test_courier_sees_only_own_orders_with_status(
        self, service, delivery, query, make_assigned_order
    ):
        mine = make_assigned_order()
        accepted = make_assigned_order()
        delivery.accept(accepted.id, COURIER)
        theirs = service.create_order(product_order_dto())
        service.confirm(theirs.id, LAB, ActorRole.LABORATORY)
        service.assign_courier(theirs.id, OTHER_COURIER, LAB, ActorRole.LABORATORY)

        page = query.list(
            ActorRole.COURIER,
            COURIER,
            OrderListFiltersDTO(status=OrderStatus.ASSIGNED_TO_DELIVERY),
        )

        assert _ids(page) == [mine.id]
        assert page.pagination.total_count == 1

    def test_customer_sees_only_orders_they_placed(self, service, query):
        own = service.create_order(product_order_dto())
        service.create_order(product_order_dto(customer_ref=OTHER_CUSTOMER))

        page = query.list(ActorRole.CUSTOMER, CUSTOMER)

        assert _ids(page) == [own.id]

    def test_laboratory_default_scope_excludes_pool(self, service, query, pool_order):
        own = service.create_order(product_order_dto())
        service.create_order(product_order_dto(laboratory_ref=OTHER_LAB))

        page = query.list(ActorRole.LABORATORY, LAB)

        assert _ids(page) == [own.id]

    def test_laboratory_unassigned_only_lists_pool(self, service, query, pool_order):
        service.create_order(product_order_dto())

        page = query.list(
            ActorRole.LABORATORY, LAB, OrderListFiltersDTO(unassigned_only=True)
        )

        assert _ids(page) == [pool_order.id]

    def test_claimed_order_leaves_pool(self, claims, query, pool_order):
        claims.claim(pool_order.id, LAB)

        assert query.assignment_pool().orders == []
        assert _ids(query.list(ActorRole.LABORATORY, LAB)) == [pool_order.id]

    def test_admin_sees_everything(self, service, query, pool_order):
        service.create_order(product_order_dto())
        service.create_order(product_order_dto(customer_ref=OTHER_CUSTOMER, laboratory_ref=OTHER_LAB))

        page = query.list(ActorRole.ADMIN, ADMIN)

        assert page.pagination.total_count == 3

    def test_admin_unassigned_only_matches_dashboard(self, service, query, pool_order):
        service.create_order(product_order_dto())
        cancelled = service.create_order(prescription_order_dto())
        service.cancel_order(cancelled.id, CUSTOMER)

        admin_page = query.list(
            ActorRole.ADMIN, ADMIN, OrderListFiltersDTO(unassigned_only=True)
        )
        lab_page = query.list(
            ActorRole.LABORATORY, LAB, OrderListFiltersDTO(unassigned_only=True)
        )

        assert set(_ids(admin_page)) == {pool_order.id, cancelled.id}
        assert admin_page.pagination.total_count == query.order_stats().needs_assignment
        assert _ids(lab_page) == [pool_order.id]

    def test_admin_assigned_only(self, service, query, pool_order):
        own = service.create_order(product_order_dto())

        page = query.list(ActorRole.ADMIN, ADMIN, OrderListFiltersDTO(assigned_only=True))

        assert _ids(page) == [own.id]

    @freeze_time("2026-03-01 20:00:00")
    def test_created_on_filter_uses_local_date(self, service, query, settings):
        settings.TIME_ZONE = "Asia/Kolkata"
        order = service.create_order(product_order_dto())
        today = timezone.localdate(order.created_at)
        assert today == date(2026, 3, 2)
        utc_day = OrderListFiltersDTO(created_on=order.created_at.date())

        hit = query.list(ActorRole.ADMIN, ADMIN, OrderListFiltersDTO(created_on=today))
        miss = query.list(
            ActorRole.ADMIN,
            ADMIN,
            OrderListFiltersDTO(created_from=today + timedelta(days=1)),
        )

        assert _ids(hit) == [order.id]
        assert miss.orders == []
        assert query.list(ActorRole.ADMIN, ADMIN, utc_day).orders == []

    def test_unknown_role_rejected(self, query):
        with pytest.raises(NotAuthorized):
            query.list("pharmacist", "x")


class TestPagination:
    def test_newest_first_and_envelope(self, service, query):
        created = [service.create_order(product_order_dto()) for _ in range(5)]

        first = query.list(ActorRole.CUSTOMER, CUSTOMER, page=1, limit=2)
        last = query.list(ActorRole.CUSTOMER, CUSTOMER, page=3, limit=2)

        assert _ids(first) == [created[4].id, created[3].id]
        assert first.pagination.total_pages == 3
        assert first.pagination.has_next_page is True
        assert first.pagination.has_prev_page is False
        assert _ids(last) == [created[0].id]
        assert last.pagination.has_next_page is False
        assert last.pagination.has_prev_page is True

    def test_out_of_range_values_are_clamped(self, service, query, settings):
        settings.ORDERS_MAX_PAGE_SIZE = 3
        for _ in range(4):
            service.create_order(product_order_dto())

        page = query.list(ActorRole.CUSTOMER, CUSTOMER, page=0, limit=500)

        assert page.pagination.current_page == 1
        assert page.pagination.limit == 3
        assert len(page.orders) == 3

    def test_page_past_end_is_empty(self, service, query):
        service.create_order(product_order_dto())

        page = query.list(ActorRole.CUSTOMER, CUSTOMER, page=9)

        assert page.orders == []
        assert page.pagination.total_count == 1


class TestGetVisible:
    def test_owner_sees_order(self, query, product_order):
        order = query.get_visible(product_order.id, ActorRole.CUSTOMER, CUSTOMER)
        assert order.id == product_order.id

    def test_other_customer_gets_not_found(self, query, product_order):
        with pytest.raises(OrderNotFound):
            query.get_visible(product_order.id, ActorRole.CUSTOMER, OTHER_CUSTOMER)

    def test_laboratory_sees_pool_order(self, query, pool_order):
        order = query.get_visible(pool_order.id, ActorRole.LABORATORY, OTHER_LAB)
        assert order.id == pool_order.id

    def test_unassigned_courier_gets_not_found(self, query, make_assigned_order):
        order = make_assigned_order()
        with pytest.raises(OrderNotFound):
            query.get_visible(order.id, ActorRole.COURIER, OTHER_COURIER)

    def test_malformed_id_is_not_found(self, query):
        with pytest.raises(OrderNotFound):
            query.get_visible("not-a-uuid", ActorRole.ADMIN, ADMIN)


class TestDashboards:
    def _deliver(self, delivery, order):
        delivery.accept(order.id, COURIER)
        delivery.start_delivery(order.id, COURIER)
        return delivery.mark_delivered(order.id, COURIER).order

    def test_order_stats(self, service, delivery, query, pool_order, make_assigned_order):
        self._deliver(delivery, make_assigned_order())
        self._deliver(delivery, make_assigned_order(cod=True))
        on_the_road = make_assigned_order()
        delivery.accept(on_the_road.id, COURIER)
        delivery.start_delivery(on_the_road.id, COURIER)

        stats = query.order_stats()

        assert stats.total_orders == 4
        assert stats.pending_orders == 1
        assert stats.completed_today == 2
        assert stats.out_for_delivery == 1
        assert stats.needs_assignment == 1
        assert stats.total_revenue == Decimal("172.00")

    def test_completed_today_ignores_earlier_days(self, delivery, query, make_assigned_order):
        with freeze_time("2026-03-01 10:00:00"):
            self._deliver(delivery, make_assigned_order())
        with freeze_time("2026-03-02 10:00:00"):
            self._deliver(delivery, make_assigned_order())
            stats = query.order_stats()

        assert stats.completed_today == 1
        assert stats.total_revenue == Decimal("172.00")

    def test_order_stats_empty(self, query):
        stats = query.order_stats()
        assert stats.total_orders == 0
        assert stats.total_revenue == Decimal("0.00")

    def test_courier_stats(self, delivery, query, make_assigned_order):
        delivered = self._deliver(delivery, make_assigned_order())
        make_assigned_order()
        rejected = make_assigned_order()
        delivery.reject(rejected.id, COURIER, "Flat tyre")

        stats = query.courier_stats(COURIER)

        assert stats.total_orders == 3
        assert stats.completed_orders == 1
        assert stats.pending_orders == 1
        assert stats.rejected_orders == 1
        assert stats.completion_rate == 33.3
        expected_hours = (delivered.delivered_at - delivered.accepted_at).total_seconds() / 3600
        assert stats.average_delivery_time_hours == round(expected_hours, 2)

    def test_courier_stats_without_orders(self, query):
        stats = query.courier_stats(OTHER_COURIER)
        assert stats.total_orders == 0
        assert stats.completion_rate == 0.0
        assert stats.average_delivery_time_hours == 0.0

    def test_rejected_order_counts_once(self, service, delivery, query, make_assigned_order):
        order = make_assigned_order()
        delivery.reject(order.id, COURIER, "Flat tyre")
        service.assign_courier(order.id, COURIER, ADMIN, ActorRole.ADMIN)
        delivery.reject(order.id, COURIER, "Still flat")

        stats = query.courier_stats(COURIER)

        assert stats.rejected_orders == 1
        assert Order.objects.get(id=order.id).courier_ref is None
