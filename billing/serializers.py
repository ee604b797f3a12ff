"""Serializers for invoices."""
from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from tickets.models import Ticket, WorkOrder

from .models import Invoice, InvoiceItem


class InvoiceItemSerializer(serializers.ModelSerializer):
    quantity = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal("0"), default=Decimal("1")
    )
    rate = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))

    class Meta:
        model = InvoiceItem
        fields = ["id", "description", "quantity", "rate", "amount"]
        read_only_fields = ["amount"]


class InvoiceSerializer(serializers.ModelSerializer):
    items = InvoiceItemSerializer(many=True, read_only=True)
    vendor_name = serializers.CharField(source="vendor.name", read_only=True)
    ticket_title = serializers.CharField(source="ticket.title", read_only=True)

    class Meta:
        model = Invoice
        fields = [
            "id",
            "ticket",
            "ticket_title",
            "vendor",
            "vendor_name",
            "work_orders",
            "items",
            "subtotal",
            "tax",
            "total",
            "status",
            "notes",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class InvoiceCreateSerializer(serializers.Serializer):
    ticket = serializers.PrimaryKeyRelatedField(queryset=Ticket.objects.all())
    work_orders = serializers.PrimaryKeyRelatedField(
        queryset=WorkOrder.objects.all(), many=True, required=False
    )
    items = InvoiceItemSerializer(many=True, required=False, default=list)
    tax = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0"), default=Decimal("0")
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    status = serializers.ChoiceField(
        choices=[(Invoice.DRAFT, "Draft"), (Invoice.SENT, "Sent")], default=Invoice.SENT
    )


class InvoiceStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Invoice.STATUS_CHOICES)
