"""API views for users, organizations, vendors and locations."""
from __future__ import annotations

from typing import Iterable

from django.db.models import QuerySet
from rest_framework import exceptions, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from taskscout_service import cache as entity_cache
from taskscout_service.cache import CachedListMixin

from . import roles
from .models import Location, MaintenanceVendor, Organization, OrganizationVendor, User
from .permissions import IsAccountManager
from .serializers import (
    LocationSerializer,
    MaintenanceVendorSerializer,
    OrganizationSerializer,
    OrganizationVendorSerializer,
    PermissionToggleSerializer,
    TierToggleSerializer,
    UserSerializer,
)
from .tiers import ACCEPT_TICKET, set_permission, set_tier, sorted_tiers

# Roles each kind of administrator may hand out.
ASSIGNABLE_ROLES = {
    roles.ROOT: frozenset(value for value, _ in roles.ROLE_CHOICES),
    roles.ORG_ADMIN: frozenset({roles.ORG_ADMIN, roles.ORG_SUBADMIN, roles.RESIDENTIAL}),
    roles.MAINTENANCE_ADMIN: roles.VENDOR_ROLES,
}


def _require(user: User, allowed: Iterable[str]) -> None:
    if user.role not in allowed:
        raise exceptions.PermissionDenied(f"Role '{user.role}' may not do this.")


class _AccountViewSet(
    CachedListMixin,
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    permission_classes = [IsAuthenticated, IsAccountManager]
    filter_backends = [SearchFilter, OrderingFilter]


class UserViewSet(_AccountViewSet):
    serializer_class = UserSerializer
    search_fields = ["email", "first_name", "last_name", "role"]
    ordering_fields = ["first_name", "last_name", "created_at"]
    ordering = ["first_name", "last_name"]
    cache_entity = entity_cache.USERS

    def get_queryset(self) -> QuerySet:
        user = self.request.user
        queryset = User.objects.select_related("organization", "maintenance_vendor")
        if user.role == roles.ROOT:
            return queryset
        if user.role in roles.VENDOR_ROLES:
            return queryset.filter(maintenance_vendor_id=user.maintenance_vendor_id)
        if user.role == roles.RESIDENTIAL or user.organization_id is None:
            return queryset.filter(pk=user.pk)
        return queryset.filter(organization_id=user.organization_id)

    def _check_role(self, role: str) -> None:
        if role not in ASSIGNABLE_ROLES.get(self.request.user.role, frozenset()):
            raise exceptions.PermissionDenied(f"You may not manage '{role}' users.")

    def perform_create(self, serializer) -> None:  # type: ignore[override]
        actor = self.request.user
        self._check_role(serializer.validated_data.get("role", roles.RESIDENTIAL))
        scope = {}
        if actor.role == roles.ORG_ADMIN:
            scope["organization"] = actor.organization
        elif actor.role == roles.MAINTENANCE_ADMIN:
            scope["maintenance_vendor"] = actor.maintenance_vendor
        serializer.save(**scope)
        entity_cache.invalidate(entity_cache.USERS)

    def perform_update(self, serializer) -> None:  # type: ignore[override]
        self._check_role(serializer.validated_data.get("role", serializer.instance.role))
        super().perform_update(serializer)

    def get_serializer(self, *args, **kwargs):  # type: ignore[override]
        # Administrators below root always create users inside their own scope.
        data = kwargs.get("data")
        actor = self.request.user
        if data is not None and self.action == "create" and actor.role != roles.ROOT:
            data = data.copy()
            if actor.role == roles.ORG_ADMIN:
                data["organization"] = actor.organization_id
            elif actor.role == roles.MAINTENANCE_ADMIN:
                data["maintenance_vendor"] = actor.maintenance_vendor_id
            kwargs["data"] = data
        return super().get_serializer(*args, **kwargs)

    @action(detail=True, methods=["post"], url_path="tiers")
    def tiers(self, request: Request, pk=None) -> Response:
        """Tick or untick a vendor tier; lower tiers follow, higher tiers are revoked."""

        target = self.get_object()
        toggle = TierToggleSerializer(data=request.data)
        toggle.is_valid(raise_exception=True)
        checked = toggle.validated_data["checked"]
        if checked and ACCEPT_TICKET not in (target.permissions or []):
            raise exceptions.ValidationError(
                {"tier": ["Grant the accept_ticket permission before assigning vendor tiers."]}
            )

        tiers = set_tier(target.vendor_tiers or [], toggle.validated_data["tier"], checked)
        target.vendor_tiers = sorted_tiers(tiers)
        target.save(update_fields=["vendor_tiers", "updated_at"])
        entity_cache.invalidate(entity_cache.USERS)
        return Response(self.get_serializer(target).data)

    @action(detail=True, methods=["post"], url_path="permissions", url_name="permissions")
    def toggle_permission(self, request: Request, pk=None) -> Response:
        target = self.get_object()
        toggle = PermissionToggleSerializer(data=request.data)
        toggle.is_valid(raise_exception=True)

        permissions, tiers = set_permission(
            target.permissions or [],
            target.vendor_tiers or [],
            toggle.validated_data["permission"],
            toggle.validated_data["checked"],
        )
        target.permissions = sorted(permissions)
        target.vendor_tiers = sorted_tiers(tiers)
        target.save(update_fields=["permissions", "vendor_tiers", "updated_at"])
        entity_cache.invalidate(entity_cache.USERS)
        return Response(self.get_serializer(target).data)


class OrganizationViewSet(_AccountViewSet):
    serializer_class = OrganizationSerializer
    search_fields = ["name", "email"]
    ordering_fields = ["name", "created_at"]
    ordering = ["name"]
    cache_entity = entity_cache.ORGANIZATIONS

    def get_queryset(self) -> QuerySet:
        user = self.request.user
        if user.role == roles.ROOT:
            return Organization.objects.all()
        if user.role in roles.VENDOR_ROLES:
            return Organization.objects.filter(
                vendor_links__vendor_id=user.maintenance_vendor_id, vendor_links__is_active=True
            ).distinct()
        return Organization.objects.filter(pk=user.organization_id)

    def perform_create(self, serializer) -> None:  # type: ignore[override]
        _require(self.request.user, {roles.ROOT})
        super().perform_create(serializer)

    def perform_update(self, serializer) -> None:  # type: ignore[override]
        _require(self.request.user, {roles.ROOT, roles.ORG_ADMIN})
        super().perform_update(serializer)

    @action(detail=True, methods=["get", "post", "patch"], url_path="vendors")
    def vendors(self, request: Request, pk=None) -> Response:
        """List, link or re-tier the vendors this organization works with."""

        organization = self.get_object()
        links = organization.vendor_links.select_related("vendor", "organization")
        if request.method == "GET":
            return Response(OrganizationVendorSerializer(links, many=True).data)

        _require(request.user, {roles.ROOT, roles.ORG_ADMIN})
        if request.method == "POST":
            serializer = OrganizationVendorSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            vendor = serializer.validated_data["vendor"]
            if links.filter(vendor=vendor).exists():
                raise exceptions.ValidationError({"vendor": ["Vendor is already linked."]})
            link = serializer.save(organization=organization)
            status_code = status.HTTP_201_CREATED
        else:
            link = links.filter(vendor_id=request.data.get("vendor")).first()
            if link is None:
                raise exceptions.NotFound("Vendor is not linked to this organization.")
            serializer = OrganizationVendorSerializer(link, data=request.data, partial=True)
            serializer.is_valid(raise_exception=True)
            link = serializer.save()
            status_code = status.HTTP_200_OK

        entity_cache.invalidate(entity_cache.ORGANIZATIONS, entity_cache.VENDORS)
        return Response(OrganizationVendorSerializer(link).data, status=status_code)


class MaintenanceVendorViewSet(_AccountViewSet):
    serializer_class = MaintenanceVendorSerializer
    search_fields = ["name", "email"]
    ordering_fields = ["name", "created_at"]
    ordering = ["name"]
    cache_entity = entity_cache.VENDORS

    def get_queryset(self) -> QuerySet:
        return MaintenanceVendor.objects.all()

    def perform_create(self, serializer) -> None:  # type: ignore[override]
        _require(self.request.user, {roles.ROOT})
        super().perform_create(serializer)

    def perform_update(self, serializer) -> None:  # type: ignore[override]
        user = self.request.user
        if user.role != roles.ROOT and serializer.instance.pk != user.maintenance_vendor_id:
            raise exceptions.PermissionDenied("You may only edit your own company.")
        super().perform_update(serializer)

    @action(detail=True, methods=["get"], url_path="organizations")
    def organizations(self, request: Request, pk=None) -> Response:
        vendor = self.get_object()
        links = OrganizationVendor.objects.filter(vendor=vendor, is_active=True).select_related(
            "organization", "vendor"
        )
        return Response(OrganizationVendorSerializer(links, many=True).data)


class LocationViewSet(_AccountViewSet):
    serializer_class = LocationSerializer
    search_fields = ["name", "address"]
    ordering_fields = ["name", "created_at"]
    ordering = ["name"]
    cache_entity = entity_cache.LOCATIONS

    def get_queryset(self) -> QuerySet:
        user = self.request.user
        if user.role == roles.ROOT:
            return Location.objects.all()
        if user.role in roles.VENDOR_ROLES:
            return Location.objects.filter(
                organization__vendor_links__vendor_id=user.maintenance_vendor_id
            ).distinct()
        return Location.objects.filter(organization_id=user.organization_id)

    def perform_create(self, serializer) -> None:  # type: ignore[override]
        user = self.request.user
        _require(user, {roles.ROOT, roles.ORG_ADMIN})
        if user.role == roles.ORG_ADMIN:
            serializer.save(organization=user.organization)
            entity_cache.invalidate(entity_cache.LOCATIONS)
            return
        if serializer.validated_data.get("organization") is None:
            raise exceptions.ValidationError({"organization": ["This field is required."]})
        super().perform_create(serializer)

    def perform_update(self, serializer) -> None:  # type: ignore[override]
        _require(self.request.user, {roles.ROOT, roles.ORG_ADMIN})
        super().perform_update(serializer)
