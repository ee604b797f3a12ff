"""API views for invoices."""
from __future__ import annotations

from django.db.models import QuerySet
from django.shortcuts import get_object_or_404
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.request import Request
from rest_framework.response import Response

from taskscout_service import cache as entity_cache
from taskscout_service.cache import CachedListMixin
from tickets import services as ticket_services

from . import services
from .serializers import InvoiceCreateSerializer, InvoiceSerializer, InvoiceStatusSerializer


class InvoiceViewSet(
    CachedListMixin,
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = InvoiceSerializer
    filter_backends = [OrderingFilter]
    ordering_fields = ["created_at", "total", "status"]
    ordering = ["-created_at"]
    cache_entity = entity_cache.INVOICES

    def get_queryset(self) -> QuerySet:
        queryset = services.visible_invoices(self.request.user)
        invoice_status = self.request.query_params.get("status")
        if invoice_status:
            queryset = queryset.filter(status=invoice_status)
        return queryset

    def create(self, request: Request, *args, **kwargs):  # type: ignore[override]
        payload = InvoiceCreateSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        data = payload.validated_data
        ticket = get_object_or_404(ticket_services.visible_tickets(request.user), pk=data["ticket"].pk)
        work_orders = data.get("work_orders")
        invoice = services.create_invoice(
            ticket,
            request.user,
            work_order_ids=[work_order.pk for work_order in work_orders]
            if work_orders is not None
            else None,
            items=[dict(item) for item in data["items"]],
            tax=data["tax"],
            notes=data["notes"],
            status=data["status"],
        )
        return Response(self.get_serializer(invoice).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["patch"], url_path="status")
    def change_status(self, request: Request, pk=None) -> Response:
        payload = InvoiceStatusSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        invoice = services.change_status(self.get_object(), request.user, payload.validated_data["status"])
        return Response(self.get_serializer(invoice).data)
