"""Database models for users, organizations and maintenance vendors."""
from __future__ import annotations

from django.db import models

from . import roles
from .tiers import TIER_1, TIER_CHOICES


class Organization(models.Model):
    """A customer organization that reports maintenance tickets."""

    name = models.CharField(max_length=255)
    address = models.TextField(blank=True)
    phone = models.CharField(max_length=32, blank=True)
    email = models.EmailField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self) -> str:
        return self.name


class MaintenanceVendor(models.Model):
    """A maintenance company that bids on and performs ticket work."""

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    phone = models.CharField(max_length=32, blank=True)
    email = models.EmailField(blank=True)
    address = models.TextField(blank=True)
    specialties = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self) -> str:
        return self.name


class User(models.Model):
    """An identity record as asserted by the upstream gateway."""

    ROOT = roles.ROOT
    ORG_ADMIN = roles.ORG_ADMIN
    ORG_SUBADMIN = roles.ORG_SUBADMIN
    MAINTENANCE_ADMIN = roles.MAINTENANCE_ADMIN
    TECHNICIAN = roles.TECHNICIAN
    BILLING = roles.BILLING
    RESIDENTIAL = roles.RESIDENTIAL

    ROLE_CHOICES = roles.ROLE_CHOICES

    email = models.EmailField(unique=True)
    first_name = models.CharField(max_length=150)
    last_name = models.CharField(max_length=150, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    role = models.CharField(max_length=32, choices=ROLE_CHOICES, default=RESIDENTIAL)
    organization = models.ForeignKey(
        Organization,
        related_name="members",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    maintenance_vendor = models.ForeignKey(
        MaintenanceVendor,
        related_name="staff",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    permissions = models.JSONField(default=list, blank=True)
    vendor_tiers = models.JSONField(default=list, blank=True)
    hourly_rate = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["first_name", "last_name", "email"]

    def __str__(self) -> str:
        return f"{self.display_name} <{self.email}>"

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def is_anonymous(self) -> bool:
        return False


class OrganizationVendor(models.Model):
    """The tier an organization has assigned to one of its vendors."""

    organization = models.ForeignKey(
        Organization, related_name="vendor_links", on_delete=models.CASCADE
    )
    vendor = models.ForeignKey(
        MaintenanceVendor, related_name="organization_links", on_delete=models.CASCADE
    )
    tier = models.CharField(max_length=16, choices=TIER_CHOICES, default=TIER_1)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["tier", "id"]
        unique_together = ("organization", "vendor")

    def __str__(self) -> str:
        return f"{self.organization} / {self.vendor} ({self.tier})"


class Location(models.Model):
    """A site belonging to an organization where work is performed."""

    organization = models.ForeignKey(
        Organization, related_name="locations", on_delete=models.CASCADE
    )
    name = models.CharField(max_length=255)
    address = models.TextField(blank=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self) -> str:
        return self.name
