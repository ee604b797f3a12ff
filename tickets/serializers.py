"""Serializers for tickets, milestones and work orders."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List

from rest_framework import serializers

from accounts.models import Location, MaintenanceVendor, User

from . import lifecycle, presentation
from .models import Ticket, TicketMilestone, WorkOrder
from .uploads import MEDIA_REQUIRED, validate_uploads

ZERO = Decimal("0")


def json_lines(lines: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Make validated line items storable in a JSON column."""

    return [
        {key: str(value) if isinstance(value, Decimal) else value for key, value in line.items()}
        for line in lines
    ]


class PartSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    quantity = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=ZERO, default=Decimal("1")
    )
    cost = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=ZERO)


class ChargeSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=255)
    cost = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=ZERO)


class TicketSerializer(serializers.ModelSerializer):
    status_display = serializers.SerializerMethodField()
    priority_color = serializers.SerializerMethodField()
    reporter_name = serializers.CharField(source="reporter.display_name", read_only=True)
    assignee_name = serializers.CharField(
        source="assignee.display_name", read_only=True, default=None
    )
    maintenance_vendor_name = serializers.CharField(
        source="maintenance_vendor.name", read_only=True, default=None
    )
    location_name = serializers.CharField(source="location.name", read_only=True, default=None)

    class Meta:
        model = Ticket
        fields = [
            "id",
            "title",
            "description",
            "priority",
            "priority_color",
            "status",
            "status_display",
            "reporter",
            "reporter_name",
            "organization",
            "assignee",
            "assignee_name",
            "maintenance_vendor",
            "maintenance_vendor_name",
            "location",
            "location_name",
            "rejection_reason",
            "images",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_status_display(self, obj: Ticket) -> Dict[str, str]:
        request = self.context.get("request")
        role = getattr(getattr(request, "user", None), "role", "")
        return presentation.status_badge(obj.status, role)

    def get_priority_color(self, obj: Ticket) -> str:
        return presentation.priority_color(obj.priority)


class LocationScopeMixin:
    """Keeps ticket locations inside one organization.

    The organization comes from the `organization_id` context key when the
    view supplies one, else from the requesting user.
    """

    def validate_location(self, value):
        if "organization_id" in self.context:
            organization_id = self.context["organization_id"]
        else:
            request = self.context.get("request")
            organization_id = getattr(getattr(request, "user", None), "organization_id", None)
        if value is not None and organization_id is not None and value.organization_id != organization_id:
            raise serializers.ValidationError("Location belongs to another organization.")
        return value


class TicketCreateSerializer(LocationScopeMixin, serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField()
    priority = serializers.ChoiceField(choices=Ticket.PRIORITY_CHOICES, default=Ticket.MEDIUM)
    status = serializers.ChoiceField(
        choices=[(lifecycle.PENDING, "Pending"), (lifecycle.OPEN, "Open")], default=lifecycle.PENDING
    )
    location = serializers.PrimaryKeyRelatedField(
        queryset=Location.objects.filter(is_active=True), required=False, allow_null=True
    )
    maintenance_vendor = serializers.PrimaryKeyRelatedField(
        queryset=MaintenanceVendor.objects.filter(is_active=True), required=False, allow_null=True
    )
    images = serializers.ListField(child=serializers.FileField(), required=False, default=list)

    def validate_images(self, value):
        return validate_uploads(value)


class MarketplaceTicketSerializer(serializers.Serializer):
    """Marketplace requests need at least one photo or video as evidence."""

    title = serializers.CharField(max_length=255)
    description = serializers.CharField()
    priority = serializers.ChoiceField(choices=Ticket.PRIORITY_CHOICES, default=Ticket.MEDIUM)
    images = serializers.ListField(
        child=serializers.FileField(),
        allow_empty=False,
        error_messages={"required": MEDIA_REQUIRED, "empty": MEDIA_REQUIRED},
    )

    def validate_images(self, value):
        return validate_uploads(value)


class TicketUpdateSerializer(LocationScopeMixin, serializers.Serializer):
    title = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False)
    priority = serializers.ChoiceField(choices=Ticket.PRIORITY_CHOICES, required=False)
    location = serializers.PrimaryKeyRelatedField(
        queryset=Location.objects.filter(is_active=True), required=False, allow_null=True
    )


class AcceptSerializer(serializers.Serializer):
    assignee = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.filter(is_active=True), required=False, allow_null=True
    )
    maintenance_vendor = serializers.PrimaryKeyRelatedField(
        queryset=MaintenanceVendor.objects.filter(is_active=True), required=False, allow_null=True
    )


class ReasonSerializer(serializers.Serializer):
    # Blank reasons are reported by the lifecycle check with its own message.
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class MilestoneSerializer(serializers.ModelSerializer):
    achieved_by_name = serializers.CharField(
        source="achieved_by.display_name", read_only=True, default=None
    )

    class Meta:
        model = TicketMilestone
        fields = [
            "id",
            "ticket",
            "milestone_type",
            "title",
            "description",
            "achieved_by",
            "achieved_by_name",
            "created_at",
        ]
        read_only_fields = fields


class WorkOrderSerializer(serializers.ModelSerializer):
    work_description = serializers.CharField(required=False, allow_blank=True, default="")
    completion_status = serializers.ChoiceField(
        choices=WorkOrder.COMPLETION_CHOICES, required=False, allow_blank=True, default=""
    )
    total_hours = serializers.DecimalField(
        max_digits=8, decimal_places=2, min_value=ZERO, required=False, allow_null=True
    )
    hourly_rate = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=ZERO, required=False, allow_null=True
    )
    parts_used = PartSerializer(many=True, required=False)
    other_charges = ChargeSerializer(many=True, required=False)
    images = serializers.ListField(child=serializers.CharField(max_length=500), required=False)
    technician_name = serializers.CharField(
        source="technician.display_name", read_only=True, default=None
    )

    class Meta:
        model = WorkOrder
        fields = [
            "id",
            "ticket",
            "technician",
            "technician_name",
            "work_description",
            "completion_status",
            "completion_notes",
            "time_in",
            "time_out",
            "total_hours",
            "hourly_rate",
            "parts_used",
            "other_charges",
            "labor_cost",
            "parts_cost",
            "other_charges_cost",
            "total_cost",
            "images",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "ticket",
            "technician",
            "labor_cost",
            "parts_cost",
            "other_charges_cost",
            "total_cost",
        ]

    def validate_parts_used(self, value):
        return json_lines(value)

    def validate_other_charges(self, value):
        return json_lines(value)

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:  # type: ignore[override]
        time_in = attrs.get("time_in", getattr(self.instance, "time_in", None))
        time_out = attrs.get("time_out", getattr(self.instance, "time_out", None))
        if time_in and time_out and time_out <= time_in:
            raise serializers.ValidationError({"time_out": ["Time out must be after time in."]})
        return attrs
