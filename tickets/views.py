"""API views for tickets and work orders."""
from __future__ import annotations

from django.db.models import QuerySet
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response

from taskscout_service import cache as entity_cache
from taskscout_service.cache import CachedListMixin

from . import lifecycle, presentation, services
from .models import Ticket, WorkOrder
from .serializers import (
    AcceptSerializer,
    MarketplaceTicketSerializer,
    MilestoneSerializer,
    ReasonSerializer,
    TicketCreateSerializer,
    TicketSerializer,
    TicketUpdateSerializer,
    WorkOrderSerializer,
)


class TicketViewSet(
    CachedListMixin,
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = TicketSerializer
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["title", "description", "status", "priority"]
    ordering_fields = ["created_at", "updated_at", "priority", "status"]
    ordering = ["-created_at"]
    http_method_names = ["get", "post", "patch", "head", "options"]
    cache_entity = entity_cache.TICKETS

    def get_queryset(self) -> QuerySet:
        queryset = services.visible_tickets(self.request.user)
        status_filter = self.request.query_params.get("status")
        if status_filter:
            queryset = queryset.filter(status__in=status_filter.split(","))
        priority = self.request.query_params.get("priority")
        if priority:
            queryset = queryset.filter(priority=priority)
        return queryset

    def _respond(self, ticket: Ticket, status_code: int = status.HTTP_200_OK) -> Response:
        return Response(self.get_serializer(ticket).data, status=status_code)

    def create(self, request: Request, *args, **kwargs):  # type: ignore[override]
        payload = TicketCreateSerializer(data=request.data, context=self.get_serializer_context())
        payload.is_valid(raise_exception=True)
        data = dict(payload.validated_data)
        ticket = services.place_with_uploads(request.user, data, data.pop("images", []))
        return self._respond(ticket, status.HTTP_201_CREATED)

    def update(self, request: Request, *args, **kwargs):  # type: ignore[override]
        ticket = self.get_object()
        context = {**self.get_serializer_context(), "organization_id": ticket.organization_id}
        payload = TicketUpdateSerializer(data=request.data, partial=True, context=context)
        payload.is_valid(raise_exception=True)
        ticket = services.update_ticket(ticket, request.user, payload.validated_data)
        return self._respond(ticket)

    @action(detail=False, methods=["post"], url_path="residential")
    def residential(self, request: Request) -> Response:
        """Create a marketplace request; at least one photo or video is required."""

        payload = MarketplaceTicketSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        data = dict(payload.validated_data)
        ticket = services.place_with_uploads(
            request.user, data, data.pop("images"), marketplace=True
        )
        return self._respond(ticket, status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"], url_path="stats")
    def stats(self, request: Request) -> Response:
        return Response(services.ticket_stats(services.visible_tickets(request.user)))

    @action(detail=False, methods=["get"], url_path="statuses")
    def statuses(self, request: Request) -> Response:
        return Response(presentation.status_options(request.user.role))

    @action(detail=True, methods=["post"], url_path="accept")
    def accept(self, request: Request, pk=None) -> Response:
        payload = AcceptSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        ticket = services.accept(
            self.get_object(),
            request.user,
            assignee=payload.validated_data.get("assignee"),
            vendor=payload.validated_data.get("maintenance_vendor"),
        )
        return self._respond(ticket)

    @action(detail=True, methods=["post"], url_path="reject")
    def reject(self, request: Request, pk=None) -> Response:
        payload = ReasonSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        ticket = services.reject(self.get_object(), request.user, payload.validated_data["reason"])
        return self._respond(ticket)

    @action(detail=True, methods=["post"], url_path="start")
    def start(self, request: Request, pk=None) -> Response:
        return self._respond(services.start(self.get_object(), request.user))

    @action(detail=True, methods=["post"], url_path="complete")
    def complete(self, request: Request, pk=None) -> Response:
        """Confirm that the reported work is done."""

        return self._respond(services.confirm_completion(self.get_object(), request.user))

    @action(detail=True, methods=["post"], url_path="request-return")
    def request_return(self, request: Request, pk=None) -> Response:
        payload = ReasonSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        ticket = services.request_return(
            self.get_object(), request.user, payload.validated_data["reason"]
        )
        return self._respond(ticket)

    @action(detail=True, methods=["post"], url_path="release-for-billing")
    def release_for_billing(self, request: Request, pk=None) -> Response:
        return self._respond(services.release_for_billing(self.get_object(), request.user))

    @action(detail=True, methods=["post"], url_path="force-close")
    def force_close(self, request: Request, pk=None) -> Response:
        payload = ReasonSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        ticket = services.force_close(self.get_object(), request.user, payload.validated_data["reason"])
        return self._respond(ticket)

    @action(detail=True, methods=["get"], url_path="allowed-actions")
    def allowed_actions(self, request: Request, pk=None) -> Response:
        ticket = self.get_object()
        actions = lifecycle.allowed_actions(ticket.status, services.actor_for(request.user))
        return Response({"status": ticket.status, "actions": actions})

    @action(detail=True, methods=["get"], url_path="milestones")
    def milestones(self, request: Request, pk=None) -> Response:
        ticket = self.get_object()
        entries = ticket.milestones.select_related("achieved_by")
        return Response(MilestoneSerializer(entries, many=True).data)

    @action(detail=True, methods=["get", "post"], url_path="work-orders")
    def work_orders(self, request: Request, pk=None) -> Response:
        ticket = self.get_object()
        if request.method == "GET":
            orders = ticket.work_orders.select_related("technician")
            return Response(WorkOrderSerializer(orders, many=True).data)

        payload = WorkOrderSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        work_order = services.create_work_order(ticket, request.user, payload.validated_data)
        return Response(WorkOrderSerializer(work_order).data, status=status.HTTP_201_CREATED)


class WorkOrderViewSet(
    CachedListMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = WorkOrderSerializer
    filter_backends = [OrderingFilter]
    ordering_fields = ["created_at", "total_cost"]
    ordering = ["-created_at"]
    http_method_names = ["get", "patch", "head", "options"]
    cache_entity = entity_cache.WORK_ORDERS

    def get_queryset(self) -> QuerySet:
        tickets = services.visible_tickets(self.request.user).values("pk")
        queryset = WorkOrder.objects.filter(ticket__in=tickets).select_related("technician")
        ticket_id = self.request.query_params.get("ticket")
        if ticket_id:
            queryset = queryset.filter(ticket_id=ticket_id)
        return queryset

    def update(self, request: Request, *args, **kwargs):  # type: ignore[override]
        work_order = self.get_object()
        payload = self.get_serializer(work_order, data=request.data, partial=True)
        payload.is_valid(raise_exception=True)
        updated = services.update_work_order(work_order, request.user, payload.validated_data)
        return Response(self.get_serializer(updated).data)


@api_view(["GET"])
@permission_classes([AllowAny])
def health(request: Request):  # type: ignore[override]
    """Readiness endpoint for orchestration tooling."""

    return Response({"status": "ok"})
