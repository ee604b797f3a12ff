"""Tests for account records, actor authentication and vendor-tier grants."""
from __future__ import annotations

from django.core.cache import cache
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from . import roles
from .models import MaintenanceVendor, Organization, OrganizationVendor, User
from .tiers import (
    ACCEPT_TICKET,
    PLACE_TICKET,
    TIER_1,
    TIER_2,
    TIER_3,
    normalize_tiers,
    set_permission,
    set_tier,
)


class TierCascadeTests(SimpleTestCase):
    def test_ticking_top_tier_grants_every_tier(self) -> None:
        self.assertEqual(set_tier(set(), TIER_3, True), {TIER_1, TIER_2, TIER_3})

    def test_ticking_is_idempotent(self) -> None:
        once = set_tier(set(), TIER_3, True)
        self.assertEqual(set_tier(once, TIER_3, True), once)

    def test_unticking_bottom_tier_revokes_everything(self) -> None:
        self.assertEqual(set_tier({TIER_1, TIER_2, TIER_3}, TIER_1, False), frozenset())

    def test_unticking_middle_tier_keeps_lower(self) -> None:
        self.assertEqual(set_tier({TIER_1, TIER_2, TIER_3}, TIER_2, False), {TIER_1})

    def test_ticking_middle_tier_adds_lower_only(self) -> None:
        self.assertEqual(set_tier(set(), TIER_2, True), {TIER_1, TIER_2})

    def test_unknown_tier_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            set_tier(set(), "tier_9", True)

    def test_normalize_closes_downward(self) -> None:
        self.assertEqual(normalize_tiers([TIER_3]), {TIER_1, TIER_2, TIER_3})
        self.assertEqual(normalize_tiers([]), frozenset())

    def test_dropping_accept_ticket_clears_tiers(self) -> None:
        permissions, tiers = set_permission(
            {PLACE_TICKET, ACCEPT_TICKET}, {TIER_1, TIER_2}, ACCEPT_TICKET, False
        )
        self.assertEqual(permissions, {PLACE_TICKET})
        self.assertEqual(tiers, frozenset())

    def test_granting_permission_keeps_tiers(self) -> None:
        permissions, tiers = set_permission({ACCEPT_TICKET}, {TIER_1}, PLACE_TICKET, True)
        self.assertEqual(permissions, {ACCEPT_TICKET, PLACE_TICKET})
        self.assertEqual(tiers, {TIER_1})


class AccountApiTests(TestCase):
    def setUp(self) -> None:
        cache.clear()
        self.client = APIClient()
        self.organization = Organization.objects.create(name="Northwind Estates")
        self.vendor = MaintenanceVendor.objects.create(name="FixIt Co")
        self.admin = User.objects.create(
            email="admin@northwind.test",
            first_name="Olivia",
            role=roles.ORG_ADMIN,
            organization=self.organization,
        )
        self.subadmin = User.objects.create(
            email="sub@northwind.test",
            first_name="Sam",
            role=roles.ORG_SUBADMIN,
            organization=self.organization,
            permissions=[ACCEPT_TICKET],
        )

    def _as(self, user: User) -> None:
        self.client.credentials(HTTP_X_USER_ID=str(user.pk))

    def test_missing_actor_header_is_unauthorized(self) -> None:
        response = self.client.get(reverse("user-list"))
        self.assertEqual(response.status_code, 401)

    def test_unknown_actor_is_unauthorized(self) -> None:
        self.client.credentials(HTTP_X_USER_ID="999999")
        response = self.client.get(reverse("user-list"))
        self.assertEqual(response.status_code, 401)

    def test_health_needs_no_actor(self) -> None:
        response = self.client.get(reverse("ticket-health"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {"status": "ok"})

    def test_tier_endpoint_cascades(self) -> None:
        self._as(self.admin)
        url = reverse("user-tiers", args=[self.subadmin.pk])

        response = self.client.post(url, {"tier": TIER_3, "checked": True}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["vendor_tiers"], [TIER_1, TIER_2, TIER_3])

        response = self.client.post(url, {"tier": TIER_2, "checked": False}, format="json")
        self.assertEqual(response.data["vendor_tiers"], [TIER_1])

    def test_tiers_need_accept_permission(self) -> None:
        self.subadmin.permissions = [PLACE_TICKET]
        self.subadmin.save()
        self._as(self.admin)
        response = self.client.post(
            reverse("user-tiers", args=[self.subadmin.pk]),
            {"tier": TIER_1, "checked": True},
            format="json",
        )
        self.assertEqual(response.status_code, 400)

    def test_revoking_accept_permission_clears_tiers(self) -> None:
        self.subadmin.vendor_tiers = [TIER_1, TIER_2]
        self.subadmin.save()
        self._as(self.admin)
        response = self.client.post(
            reverse("user-permissions", args=[self.subadmin.pk]),
            {"permission": ACCEPT_TICKET, "checked": False},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.subadmin.refresh_from_db()
        self.assertEqual(self.subadmin.permissions, [])
        self.assertEqual(self.subadmin.vendor_tiers, [])

    def test_saved_tiers_are_normalized(self) -> None:
        self._as(self.admin)
        response = self.client.post(
            reverse("user-list"),
            {
                "email": "new@northwind.test",
                "first_name": "Nia",
                "role": roles.ORG_SUBADMIN,
                "permissions": [ACCEPT_TICKET],
                "vendor_tiers": [TIER_2],
            },
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["vendor_tiers"], [TIER_1, TIER_2])
        self.assertEqual(response.data["organization"], self.organization.pk)

    def test_tiers_dropped_without_accept_permission(self) -> None:
        self._as(self.admin)
        response = self.client.patch(
            reverse("user-detail", args=[self.subadmin.pk]),
            {"permissions": [PLACE_TICKET], "vendor_tiers": [TIER_3]},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["vendor_tiers"], [])

    def test_org_admin_cannot_create_vendor_staff(self) -> None:
        self._as(self.admin)
        response = self.client.post(
            reverse("user-list"),
            {
                "email": "tech@fixit.test",
                "first_name": "Tom",
                "role": roles.TECHNICIAN,
                "maintenance_vendor": self.vendor.pk,
            },
            format="json",
        )
        self.assertEqual(response.status_code, 403)

    def test_subadmin_cannot_write_accounts(self) -> None:
        self._as(self.subadmin)
        response = self.client.patch(
            reverse("organization-detail", args=[self.organization.pk]),
            {"name": "Renamed"},
            format="json",
        )
        self.assertEqual(response.status_code, 403)

    def test_link_and_retier_vendor(self) -> None:
        self._as(self.admin)
        url = reverse("organization-vendors", args=[self.organization.pk])

        response = self.client.post(url, {"vendor": self.vendor.pk, "tier": TIER_2}, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["tier"], TIER_2)

        response = self.client.patch(url, {"vendor": self.vendor.pk, "tier": TIER_3}, format="json")
        self.assertEqual(response.status_code, 200)
        link = OrganizationVendor.objects.get(organization=self.organization, vendor=self.vendor)
        self.assertEqual(link.tier, TIER_3)

        response = self.client.get(url)
        self.assertEqual([row["vendor_name"] for row in response.data], ["FixIt Co"])

    def test_vendor_lists_linked_organizations(self) -> None:
        OrganizationVendor.objects.create(organization=self.organization, vendor=self.vendor)
        vendor_admin = User.objects.create(
            email="boss@fixit.test",
            first_name="Vic",
            role=roles.MAINTENANCE_ADMIN,
            maintenance_vendor=self.vendor,
        )
        self._as(vendor_admin)
        response = self.client.get(reverse("maintenance-vendor-organizations", args=[self.vendor.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data[0]["organization"], self.organization.pk)

    def test_user_list_is_cached_until_a_write(self) -> None:
        self._as(self.admin)
        first = self.client.get(reverse("user-list"))
        self.assertEqual(len(first.data), 2)

        # A direct database write bypasses invalidation, so the cached list is served.
        User.objects.create(
            email="quiet@northwind.test", first_name="Quinn", organization=self.organization
        )
        self.assertEqual(len(self.client.get(reverse("user-list")).data), 2)

        self.client.patch(
            reverse("user-detail", args=[self.admin.pk]), {"last_name": "Stone"}, format="json"
        )
        self.assertEqual(len(self.client.get(reverse("user-list")).data), 3)
