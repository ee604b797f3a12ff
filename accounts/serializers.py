"""Serializers for account records."""
from __future__ import annotations

from typing import Any, Dict

from rest_framework import serializers

from . import roles
from .models import Location, MaintenanceVendor, Organization, OrganizationVendor, User
from .tiers import ACCEPT_TICKET, PERMISSION_CHOICES, TIER_CHOICES, normalize_tiers, sorted_tiers


class OrganizationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Organization
        fields = [
            "id",
            "name",
            "address",
            "phone",
            "email",
            "is_active",
            "created_at",
            "updated_at",
        ]


class MaintenanceVendorSerializer(serializers.ModelSerializer):
    class Meta:
        model = MaintenanceVendor
        fields = [
            "id",
            "name",
            "description",
            "phone",
            "email",
            "address",
            "specialties",
            "is_active",
            "created_at",
            "updated_at",
        ]

    def validate_specialties(self, value: Any) -> list:
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise serializers.ValidationError("Must be a list of strings.")
        return value


class OrganizationVendorSerializer(serializers.ModelSerializer):
    organization_name = serializers.CharField(source="organization.name", read_only=True)
    vendor_name = serializers.CharField(source="vendor.name", read_only=True)

    class Meta:
        model = OrganizationVendor
        fields = [
            "id",
            "organization",
            "organization_name",
            "vendor",
            "vendor_name",
            "tier",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["organization"]


class LocationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Location
        fields = [
            "id",
            "organization",
            "name",
            "address",
            "description",
            "is_active",
            "created_at",
            "updated_at",
        ]
        extra_kwargs = {"organization": {"required": False}}


class UserSerializer(serializers.ModelSerializer):
    display_name = serializers.CharField(read_only=True)
    permissions = serializers.ListField(
        child=serializers.ChoiceField(choices=PERMISSION_CHOICES), required=False
    )
    vendor_tiers = serializers.ListField(
        child=serializers.ChoiceField(choices=TIER_CHOICES), required=False
    )

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "first_name",
            "last_name",
            "display_name",
            "phone",
            "role",
            "organization",
            "maintenance_vendor",
            "permissions",
            "vendor_tiers",
            "hourly_rate",
            "is_active",
            "created_at",
            "updated_at",
        ]

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:  # type: ignore[override]
        """Store grants in canonical form: tiers closed downward, none without ``accept_ticket``."""

        def current(name: str, default: Any = None) -> Any:
            if name in attrs:
                return attrs[name]
            return getattr(self.instance, name, default)

        role = current("role", roles.RESIDENTIAL)
        if role in (roles.ORG_ADMIN, roles.ORG_SUBADMIN) and current("organization") is None:
            raise serializers.ValidationError({"organization": ["Organization users need an organization."]})
        if role in roles.VENDOR_ROLES and current("maintenance_vendor") is None:
            raise serializers.ValidationError(
                {"maintenance_vendor": ["Vendor users need a maintenance vendor."]}
            )

        permissions = set(current("permissions", []) or [])
        tiers = normalize_tiers(current("vendor_tiers", []) or [])
        if ACCEPT_TICKET not in permissions:
            tiers = frozenset()
        attrs["permissions"] = sorted(permissions)
        attrs["vendor_tiers"] = sorted_tiers(tiers)
        return attrs


class TierToggleSerializer(serializers.Serializer):
    tier = serializers.ChoiceField(choices=TIER_CHOICES)
    checked = serializers.BooleanField()


class PermissionToggleSerializer(serializers.Serializer):
    permission = serializers.ChoiceField(choices=PERMISSION_CHOICES)
    checked = serializers.BooleanField()
