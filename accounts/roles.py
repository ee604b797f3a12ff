"""User roles recognised by the lifecycle rules."""
from __future__ import annotations

ROOT = "root"
ORG_ADMIN = "org_admin"
ORG_SUBADMIN = "org_subadmin"
MAINTENANCE_ADMIN = "maintenance_admin"
TECHNICIAN = "technician"
BILLING = "billing"
RESIDENTIAL = "residential"

ROLE_CHOICES = [
    (ROOT, "Root"),
    (ORG_ADMIN, "Organization Admin"),
    (ORG_SUBADMIN, "Organization Sub-Admin"),
    (MAINTENANCE_ADMIN, "Maintenance Admin"),
    (TECHNICIAN, "Technician"),
    (BILLING, "Billing"),
    (RESIDENTIAL, "Residential"),
]

# Roles acting on behalf of the party that owns a ticket.
ORGANIZATION_ROLES = frozenset({ROOT, ORG_ADMIN, ORG_SUBADMIN, RESIDENTIAL})
VENDOR_ROLES = frozenset({MAINTENANCE_ADMIN, TECHNICIAN, BILLING})
