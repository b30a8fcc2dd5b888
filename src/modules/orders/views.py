"""Order API views.

Exposes the order services via HTTP using a DRF ViewSet.
Domain exceptions are translated into ``{"detail", "code"}`` responses
with the matching HTTP status code; anything else propagates to DRF.
"""

from __future__ import annotations

from typing import Optional

import pydantic
import structlog
from django.utils.functional import cached_property
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.actors import Actor, ActorRole, actor_from_user
from modules.orders.claims import ClaimCoordinator
from modules.orders.delivery import DeliveryHandoff
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO, OrderListFiltersDTO
from modules.orders.exceptions import (
    AlreadyClaimed,
    InvalidTransition,
    NotAuthorized,
    NotEligible,
    OrderError,
    OrderNotFound,
    PricingNotAllowed,
    StaleVersion,
)
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.queries import RoleScopedOrderQuery
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    AssignCourierSerializer,
    AssignLaboratorySerializer,
    CancelOrderSerializer,
    ConfirmOrderSerializer,
    CreateOrderSerializer,
    OrderListSerializer,
    OrderSerializer,
    RejectDeliverySerializer,
    VersionedActionSerializer,
)
from modules.orders.services import OrderService

logger = structlog.get_logger(__name__)

ERROR_STATUS = {
    OrderNotFound: status.HTTP_404_NOT_FOUND,
    NotAuthorized: status.HTTP_403_FORBIDDEN,
    InvalidTransition: status.HTTP_400_BAD_REQUEST,
    NotEligible: status.HTTP_400_BAD_REQUEST,
    PricingNotAllowed: status.HTTP_400_BAD_REQUEST,
    AlreadyClaimed: status.HTTP_409_CONFLICT,
    StaleVersion: status.HTTP_409_CONFLICT,
}


def order_error_response(exc: OrderError) -> Response:
    """Translate a domain exception into its HTTP response."""
    http_status = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return Response({"detail": str(exc), "code": exc.code}, status=http_status)


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Uses the order services with an injected repository (DIP).
    Does **not** extend ``ModelViewSet``; all ORM access goes through
    the service/repository layer.  The acting identity is resolved from
    ``request.user`` once per request and passed explicitly.
    """

    queryset = Order.objects.none()
    serializer_class = OrderSerializer
    filterset_class = OrderFilter

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        repository = OrderDjangoRepository()
        self._service = OrderService(order_repository=repository)
        self._claims = ClaimCoordinator(order_repository=repository)
        self._delivery = DeliveryHandoff(order_repository=repository)
        self._query = RoleScopedOrderQuery(order_repository=repository)

    def get_throttles(self) -> list[BaseThrottle]:
        """Per-action throttling scopes."""
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    def handle_exception(self, exc):
        if isinstance(exc, OrderError):
            logger.warning(
                "order.request_rejected",
                action=self.action,
                code=exc.code,
                detail=str(exc),
            )
            return order_error_response(exc)
        if isinstance(exc, pydantic.ValidationError):
            errors = [
                {"loc": list(err["loc"]), "msg": err["msg"]} for err in exc.errors()
            ]
            return Response(
                {"detail": errors, "code": "invalid"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return super().handle_exception(exc)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @cached_property
    def actor(self) -> Actor:
        return actor_from_user(self.request.user)

    def _require_role(self, *roles: str) -> Actor:
        actor = self.actor
        if actor.role not in roles:
            raise NotAuthorized(
                f"Role {actor.role!r} may not perform {self.action!r}."
            )
        return actor

    def _validated(self, serializer_class, request: Request) -> dict:
        serializer = serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        return serializer.validated_data

    def _order_response(
        self, order: Order, http_status: int = status.HTTP_200_OK
    ) -> Response:
        out = OrderSerializer(order, context={"actor_role": self.actor.role})
        return Response(out.data, status=http_status)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Customers only.  Supports idempotency via the ``Idempotency-Key``
        header.
        """
        actor = self._require_role(ActorRole.CUSTOMER)
        data = self._validated(CreateOrderSerializer, request)

        dto = CreateOrderDTO(
            customer_ref=actor.ref,
            kind=data["kind"],
            items=[
                CreateOrderItemDTO(
                    product_ref=item["product_ref"],
                    product_name=item.get("product_name", ""),
                    quantity=item["quantity"],
                    unit_price=item["unit_price"],
                )
                for item in data.get("items", [])
            ],
            prescription_ref=data.get("prescription_ref"),
            laboratory_ref=data.get("laboratory_ref"),
            cod=data.get("cod", False),
            customer_address=data.get("customer_address", ""),
            customer_pin_code=data.get("customer_pin_code", ""),
            notes=data.get("notes", ""),
            idempotency_key=request.headers.get("Idempotency-Key"),
        )
        order = self._service.create_order(dto)
        return self._order_response(order, status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Scoped to the caller's role; filters are validated by
        ``OrderFilter``.  Paginated with ``page`` / ``limit``.
        """
        filterset = OrderFilter(request.query_params, queryset=Order.objects.none())
        if not filterset.is_valid():
            raise ValidationError(filterset.errors)
        filters = OrderListFiltersDTO(**filterset.list_filters())

        actor = self.actor
        page = self._query.list(
            actor.role,
            actor.ref,
            filters,
            page=request.query_params.get("page", 1),
            limit=request.query_params.get("limit"),
        )
        serializer = OrderListSerializer(
            page.orders, many=True, context={"actor_role": actor.role}
        )
        return Response(
            {
                "results": serializer.data,
                "pagination": page.pagination.model_dump(),
            }
        )

    @action(detail=False, methods=["get"])
    def pool(self, request: Request) -> Response:
        """GET /api/v1/orders/pool/ (laboratory, admin)

        Open orders still waiting for a laboratory to claim them.
        """
        actor = self._require_role(ActorRole.LABORATORY, ActorRole.ADMIN)
        page = self._query.assignment_pool(
            page=request.query_params.get("page", 1),
            limit=request.query_params.get("limit"),
        )
        serializer = OrderListSerializer(
            page.orders, many=True, context={"actor_role": actor.role}
        )
        return Response(
            {
                "results": serializer.data,
                "pagination": page.pagination.model_dump(),
            }
        )

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        actor = self.actor
        order = self._query.get_visible(pk, actor.role, actor.ref)
        return self._order_response(order)

    # ------------------------------------------------------------------
    # Laboratory / admin actions
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def claim(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/claim/"""
        actor = self._require_role(ActorRole.LABORATORY)
        data = self._validated(VersionedActionSerializer, request)
        order = self._claims.claim(pk, actor.ref, data["expected_version"])
        return self._order_response(order)

    @action(detail=True, methods=["post"])
    def confirm(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/confirm/ (optionally pricing the order)"""
        actor = self.actor
        data = self._validated(ConfirmOrderSerializer, request)
        order = self._service.confirm(
            pk,
            actor.ref,
            actor.role,
            total_price=data["total_price"],
            expected_version=data["expected_version"],
        )
        return self._order_response(order)

    @action(detail=True, methods=["post"], url_path="assign-courier")
    def assign_courier(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/assign-courier/"""
        actor = self.actor
        data = self._validated(AssignCourierSerializer, request)
        order = self._service.assign_courier(
            pk,
            data["courier_ref"],
            actor.ref,
            actor.role,
            expected_version=data["expected_version"],
        )
        return self._order_response(order)

    @action(detail=True, methods=["post"], url_path="assign-laboratory")
    def assign_laboratory(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/assign-laboratory/ (admin)"""
        actor = self.actor
        data = self._validated(AssignLaboratorySerializer, request)
        order = self._claims.assign_laboratory(
            pk,
            data["laboratory_ref"],
            actor.ref,
            actor.role,
            expected_version=data["expected_version"],
        )
        return self._order_response(order)

    @action(detail=True, methods=["post"])
    def payment(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/payment/ (payment confirmation callback)"""
        self._require_role(ActorRole.ADMIN)
        data = self._validated(VersionedActionSerializer, request)
        order = self._service.record_payment(pk, data["expected_version"])
        return self._order_response(order)

    # ------------------------------------------------------------------
    # Customer actions
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/"""
        actor = self._require_role(ActorRole.CUSTOMER)
        data = self._validated(CancelOrderSerializer, request)
        order = self._service.cancel_order(
            pk,
            actor.ref,
            notes=data["notes"],
            expected_version=data["expected_version"],
        )
        return self._order_response(order)

    # ------------------------------------------------------------------
    # Courier actions
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def accept(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/accept/"""
        actor = self._require_role(ActorRole.COURIER)
        data = self._validated(VersionedActionSerializer, request)
        order = self._delivery.accept(pk, actor.ref, data["expected_version"])
        return self._order_response(order)

    @action(detail=True, methods=["post"])
    def reject(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/reject/"""
        actor = self._require_role(ActorRole.COURIER)
        data = self._validated(RejectDeliverySerializer, request)
        order = self._delivery.reject(
            pk, actor.ref, data["reason"], data["expected_version"]
        )
        return self._order_response(order)

    @action(detail=True, methods=["post"], url_path="start-delivery")
    def start_delivery(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/start-delivery/"""
        actor = self._require_role(ActorRole.COURIER)
        data = self._validated(VersionedActionSerializer, request)
        order = self._delivery.start_delivery(pk, actor.ref, data["expected_version"])
        return self._order_response(order)

    @action(detail=True, methods=["post"])
    def deliver(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/deliver/

        The response carries the cash-on-delivery instruction.
        """
        actor = self._require_role(ActorRole.COURIER)
        data = self._validated(VersionedActionSerializer, request)
        receipt = self._delivery.mark_delivered(
            pk, actor.ref, data["expected_version"]
        )
        out = OrderSerializer(receipt.order, context={"actor_role": actor.role})
        return Response(
            {
                "order": out.data,
                "collect_cash": receipt.collect_cash,
                "amount_to_collect": str(receipt.amount_to_collect),
            }
        )

    # ------------------------------------------------------------------
    # Dashboards
    # ------------------------------------------------------------------

    @action(detail=False, methods=["get"])
    def stats(self, request: Request) -> Response:
        """GET /api/v1/orders/stats/ (admin)"""
        self._require_role(ActorRole.ADMIN)
        return Response(self._query.order_stats().model_dump(mode="json"))

    @action(detail=False, methods=["get"], url_path="courier-stats")
    def courier_stats(self, request: Request) -> Response:
        """GET /api/v1/orders/courier-stats/

        Couriers see their own counters; admins pass ``?courier_ref=``.
        """
        actor = self._require_role(ActorRole.COURIER, ActorRole.ADMIN)
        courier_ref: Optional[str] = actor.ref
        if actor.is_admin:
            courier_ref = request.query_params.get("courier_ref")
            if not courier_ref:
                raise ValidationError({"courier_ref": "This parameter is required."})
        return Response(self._query.courier_stats(courier_ref).model_dump(mode="json"))
