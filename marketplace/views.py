"""API views for the ticket marketplace."""
from __future__ import annotations

from django.db.models import QuerySet
from django.shortcuts import get_object_or_404
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response

from taskscout_service import cache as entity_cache
from taskscout_service.cache import CachedListMixin
from tickets import lifecycle
from tickets import services as ticket_services
from tickets.serializers import MarketplaceTicketSerializer, TicketSerializer

from . import services
from .serializers import (
    BidResponseSerializer,
    BidUpdateSerializer,
    CounterResponseSerializer,
    VendorBidSerializer,
)


class MarketplaceTicketViewSet(
    CachedListMixin,
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    viewsets.GenericViewSet,
):
    """Tickets currently open for bids."""

    serializer_class = TicketSerializer
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["title", "description"]
    ordering_fields = ["created_at", "priority"]
    ordering = ["-created_at"]
    cache_entity = entity_cache.TICKETS

    def get_queryset(self) -> QuerySet:
        return ticket_services.visible_tickets(self.request.user).filter(
            status=lifecycle.MARKETPLACE
        )

    def create(self, request: Request, *args, **kwargs):  # type: ignore[override]
        payload = MarketplaceTicketSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        data = dict(payload.validated_data)
        ticket = ticket_services.place_with_uploads(
            request.user, data, data.pop("images"), marketplace=True
        )
        return Response(self.get_serializer(ticket).data, status=status.HTTP_201_CREATED)


class VendorBidViewSet(
    CachedListMixin,
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = VendorBidSerializer
    filter_backends = [OrderingFilter]
    ordering_fields = ["created_at", "total_amount"]
    ordering = ["-created_at"]
    cache_entity = entity_cache.BIDS

    def get_queryset(self) -> QuerySet:
        queryset = services.visible_bids(self.request.user)
        ticket_id = self.request.query_params.get("ticket")
        if ticket_id:
            queryset = queryset.filter(ticket_id=ticket_id)
        bid_status = self.request.query_params.get("status")
        if bid_status:
            queryset = queryset.filter(status=bid_status)
        return queryset

    def create(self, request: Request, *args, **kwargs):  # type: ignore[override]
        payload = self.get_serializer(data=request.data)
        payload.is_valid(raise_exception=True)
        data = dict(payload.validated_data)
        ticket = get_object_or_404(
            ticket_services.visible_tickets(request.user), pk=data.pop("ticket").pk
        )
        bid = services.submit_bid(ticket, request.user, data)
        return Response(self.get_serializer(bid).data, status=status.HTTP_201_CREATED)


class BidViewSet(mixins.RetrieveModelMixin, mixins.UpdateModelMixin, viewsets.GenericViewSet):
    serializer_class = BidUpdateSerializer
    http_method_names = ["get", "post", "patch", "head", "options"]

    def get_queryset(self) -> QuerySet:
        return services.visible_bids(self.request.user)

    def update(self, request: Request, *args, **kwargs):  # type: ignore[override]
        bid = self.get_object()
        payload = self.get_serializer(bid, data=request.data, partial=True)
        payload.is_valid(raise_exception=True)
        updated = services.update_bid(bid, request.user, payload.validated_data)
        return Response(self.get_serializer(updated).data)

    @action(detail=True, methods=["post"], url_path="respond")
    def respond(self, request: Request, pk=None) -> Response:
        """Accept, reject or counter the bid."""

        payload = BidResponseSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        data = payload.validated_data
        bid = services.respond_to_bid(
            self.get_object(),
            request.user,
            data["action"],
            reason=data.get("reason"),
            counter_offer=data.get("counter_offer"),
            counter_notes=data.get("counter_notes"),
        )
        return Response(self.get_serializer(bid).data)

    @action(detail=True, methods=["post"], url_path="counter-response")
    def counter_response(self, request: Request, pk=None) -> Response:
        payload = CounterResponseSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        bid = services.respond_to_counter(
            self.get_object(),
            request.user,
            payload.validated_data.get("amount"),
            payload.validated_data.get("notes"),
        )
        return Response(self.get_serializer(bid).data)
