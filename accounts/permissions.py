"""DRF permission classes shared by the account and ticket APIs."""
from __future__ import annotations

from rest_framework.permissions import SAFE_METHODS, BasePermission

from . import roles

MANAGER_ROLES = frozenset({roles.ROOT, roles.ORG_ADMIN, roles.MAINTENANCE_ADMIN})


class IsAccountManager(BasePermission):
    """Anyone may read; only administrators may write."""

    message = "Only administrators may change account records."

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        if request.method in SAFE_METHODS:
            return True
        return getattr(request.user, "role", None) in MANAGER_ROLES
