"""Serializers for vendor bids."""
from __future__ import annotations

from decimal import Decimal
from typing import Dict

from rest_framework import serializers

from tickets import lifecycle, presentation
from tickets.models import Ticket
from tickets.serializers import PartSerializer, json_lines

from .models import VendorBid

BID_DECISIONS = [
    (lifecycle.BID_ACCEPT, "Accept"),
    (lifecycle.BID_REJECT, "Reject"),
    (lifecycle.BID_COUNTER_OFFER, "Counter Offer"),
]


class VendorBidSerializer(serializers.ModelSerializer):
    ticket = serializers.PrimaryKeyRelatedField(queryset=Ticket.objects.all())
    ticket_title = serializers.CharField(source="ticket.title", read_only=True)
    vendor_name = serializers.CharField(source="vendor.name", read_only=True)
    parts = PartSerializer(many=True, required=False)
    hourly_rate = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0"))
    estimated_hours = serializers.DecimalField(
        max_digits=8, decimal_places=2, min_value=Decimal("0")
    )
    status_display = serializers.SerializerMethodField()

    class Meta:
        model = VendorBid
        fields = [
            "id",
            "ticket",
            "ticket_title",
            "vendor",
            "vendor_name",
            "submitted_by",
            "hourly_rate",
            "estimated_hours",
            "response_time",
            "parts",
            "total_amount",
            "additional_notes",
            "status",
            "status_display",
            "rejection_reason",
            "counter_offer",
            "counter_notes",
            "approved",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "vendor",
            "submitted_by",
            "total_amount",
            "status",
            "rejection_reason",
            "counter_offer",
            "counter_notes",
            "approved",
        ]

    def get_status_display(self, obj: VendorBid) -> Dict[str, str]:
        return presentation.bid_badge(obj.status)

    def validate_parts(self, value):
        return json_lines(value)


class BidUpdateSerializer(VendorBidSerializer):
    ticket = serializers.PrimaryKeyRelatedField(read_only=True)


class BidResponseSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=BID_DECISIONS)
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    counter_offer = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0.01"), required=False, allow_null=True
    )
    counter_notes = serializers.CharField(required=False, allow_blank=True, default="")


class CounterResponseSerializer(serializers.Serializer):
    amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0.01"), required=False, allow_null=True
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")
