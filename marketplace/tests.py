"""Tests for marketplace requests and vendor bidding."""
from __future__ import annotations

from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from accounts import roles
from accounts.models import MaintenanceVendor, Organization, OrganizationVendor, User
from accounts.tiers import ACCEPT_TICKET, TIER_1, TIER_2
from tickets import lifecycle
from tickets.models import Ticket

from .models import VendorBid
from .services import SUPERSEDED_REASON


class MarketplaceApiTests(TestCase):
    def setUp(self) -> None:
        cache.clear()
        self.client = APIClient()
        self.organization = Organization.objects.create(name="Northwind Estates")
        self.vendor = MaintenanceVendor.objects.create(name="FixIt Co")
        self.rival = MaintenanceVendor.objects.create(name="Pipe Dreams")
        OrganizationVendor.objects.create(
            organization=self.organization, vendor=self.vendor, tier=TIER_2
        )
        OrganizationVendor.objects.create(
            organization=self.organization, vendor=self.rival, tier=TIER_1
        )
        self.org_admin = User.objects.create(
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
            vendor_tiers=[TIER_1],
        )
        self.resident = User.objects.create(
            email="resident@home.test", first_name="Rita", role=roles.RESIDENTIAL
        )
        self.vendor_admin = User.objects.create(
            email="boss@fixit.test",
            first_name="Vic",
            role=roles.MAINTENANCE_ADMIN,
            maintenance_vendor=self.vendor,
        )
        self.rival_admin = User.objects.create(
            email="boss@pipedreams.test",
            first_name="Rex",
            role=roles.MAINTENANCE_ADMIN,
            maintenance_vendor=self.rival,
        )
        self.billing = User.objects.create(
            email="billing@fixit.test",
            first_name="Bea",
            role=roles.BILLING,
            maintenance_vendor=self.vendor,
        )
        self.ticket = Ticket.objects.create(
            title="Flooded basement",
            description="Water everywhere",
            reporter=self.resident,
            status=lifecycle.MARKETPLACE,
            images=["uploads/tickets/flood.jpg"],
        )

    def act_as(self, user: User) -> None:
        self.client.credentials(HTTP_X_USER_ID=str(user.pk))

    def submit(self, user: User, ticket: Ticket = None, **overrides):
        self.act_as(user)
        payload = {
            "ticket": (ticket or self.ticket).pk,
            "hourly_rate": "50",
            "estimated_hours": "2",
            "response_time": "24 hours",
        }
        payload.update(overrides)
        return self.client.post(reverse("vendor-bid-list"), payload, format="json")

    def respond(self, user: User, bid_id: int, **payload):
        self.act_as(user)
        return self.client.post(reverse("bid-respond", args=[bid_id]), payload, format="json")

    def test_vendor_sees_open_marketplace(self) -> None:
        Ticket.objects.create(
            title="Private job",
            description="Not for bidding",
            reporter=self.org_admin,
            organization=self.organization,
        )
        self.act_as(self.vendor_admin)
        response = self.client.get(reverse("marketplace-ticket-list"))
        self.assertEqual([row["id"] for row in response.data], [self.ticket.pk])

    def test_marketplace_post_requires_media(self) -> None:
        self.act_as(self.resident)
        response = self.client.post(
            reverse("marketplace-ticket-list"),
            {"title": "Cracked tile", "description": "Bathroom floor", "images": []},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(Ticket.objects.count(), 1)

    def test_bid_total_and_rejection(self) -> None:
        response = self.submit(self.vendor_admin)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Decimal(response.data["total_amount"]), Decimal("100"))
        self.assertEqual(response.data["status"], lifecycle.BID_PENDING)
        self.assertEqual(response.data["vendor"], self.vendor.pk)

        response = self.respond(
            self.resident, response.data["id"], action="reject", reason="too expensive"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], lifecycle.BID_REJECTED)
        self.assertEqual(response.data["rejection_reason"], "too expensive")
        self.ticket.refresh_from_db()
        self.assertEqual(self.ticket.status, lifecycle.MARKETPLACE)

    def test_bid_total_includes_parts(self) -> None:
        response = self.submit(
            self.vendor_admin, parts=[{"name": "Pump", "quantity": "1", "cost": "120.50"}]
        )
        self.assertEqual(Decimal(response.data["total_amount"]), Decimal("220.50"))

    def test_reject_needs_reason(self) -> None:
        bid_id = self.submit(self.vendor_admin).data["id"]
        response = self.respond(self.resident, bid_id, action="reject", reason=" ")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["reason"], ["Please provide a reason"])
        self.assertEqual(VendorBid.objects.get(pk=bid_id).status, lifecycle.BID_PENDING)

    def test_counter_offer_round_trip(self) -> None:
        bid_id = self.submit(self.vendor_admin).data["id"]

        response = self.respond(
            self.resident, bid_id, action="counter", counter_offer="80", counter_notes="best we can do"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], lifecycle.BID_COUNTER)
        self.assertEqual(Decimal(response.data["counter_offer"]), Decimal("80"))

        self.act_as(self.vendor_admin)
        response = self.client.post(
            reverse("bid-counter-response", args=[bid_id]),
            {"amount": "80", "notes": "Agreed"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], lifecycle.BID_PENDING)
        self.assertEqual(Decimal(response.data["total_amount"]), Decimal("80"))
        self.assertIsNone(response.data["counter_offer"])
        self.assertEqual(response.data["counter_notes"], "")
        self.assertIn("Counter response: Agreed", response.data["additional_notes"])
        self.assertEqual(VendorBid.objects.get(pk=bid_id).violations(), [])

    def test_counter_needs_notes(self) -> None:
        bid_id = self.submit(self.vendor_admin).data["id"]
        response = self.respond(self.resident, bid_id, action="counter", counter_offer="80")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.data["counter_notes"], ["Please provide notes for the counter offer"]
        )

    def test_only_countered_bids_take_a_counter_response(self) -> None:
        bid_id = self.submit(self.vendor_admin).data["id"]
        self.act_as(self.vendor_admin)
        response = self.client.post(
            reverse("bid-counter-response", args=[bid_id]),
            {"amount": "80", "notes": "Agreed"},
            format="json",
        )
        self.assertEqual(response.status_code, 409)

    def test_accepting_a_bid_hands_over_the_ticket(self) -> None:
        winner = self.submit(self.vendor_admin).data["id"]
        loser = self.submit(self.rival_admin, hourly_rate="70").data["id"]

        response = self.respond(self.resident, winner, action="accept")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], lifecycle.BID_ACCEPTED)
        self.assertTrue(response.data["approved"])

        self.ticket.refresh_from_db()
        self.assertEqual(self.ticket.status, lifecycle.ACCEPTED)
        self.assertEqual(self.ticket.maintenance_vendor, self.vendor)

        rival_bid = VendorBid.objects.get(pk=loser)
        self.assertEqual(rival_bid.status, lifecycle.BID_REJECTED)
        self.assertEqual(rival_bid.rejection_reason, SUPERSEDED_REASON)

        milestones = list(self.ticket.milestones.values_list("milestone_type", flat=True))
        self.assertEqual(milestones[-1], lifecycle.ACCEPT_BID)

        # Bids are frozen once the ticket leaves the marketplace.
        self.act_as(self.rival_admin)
        response = self.client.patch(
            reverse("bid-detail", args=[loser]), {"hourly_rate": "40"}, format="json"
        )
        self.assertEqual(response.status_code, 409)

    def test_one_bid_per_vendor(self) -> None:
        self.assertEqual(self.submit(self.vendor_admin).status_code, 201)
        response = self.submit(self.vendor_admin)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(VendorBid.objects.count(), 1)

    def test_only_vendor_admins_bid(self) -> None:
        response = self.submit(self.billing)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(VendorBid.objects.count(), 0)

    def test_cannot_bid_outside_marketplace(self) -> None:
        ticket = Ticket.objects.create(
            title="Assigned job",
            description="Already taken",
            reporter=self.org_admin,
            organization=self.organization,
            maintenance_vendor=self.vendor,
        )
        response = self.submit(self.vendor_admin, ticket=ticket)
        self.assertEqual(response.status_code, 409)

    def test_vendor_revises_pending_bid(self) -> None:
        bid_id = self.submit(self.vendor_admin).data["id"]
        response = self.client.patch(
            reverse("bid-detail", args=[bid_id]), {"estimated_hours": "3"}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.data["total_amount"]), Decimal("150"))

    def test_subadmin_tier_gates_bid_acceptance(self) -> None:
        ticket = Ticket.objects.create(
            title="Roof leak",
            description="Attic is wet",
            reporter=self.org_admin,
            organization=self.organization,
            status=lifecycle.MARKETPLACE,
        )
        premium = self.submit(self.vendor_admin, ticket=ticket).data["id"]
        standard = self.submit(self.rival_admin, ticket=ticket).data["id"]

        self.assertEqual(self.respond(self.subadmin, premium, action="accept").status_code, 403)

        response = self.respond(self.subadmin, standard, action="accept")
        self.assertEqual(response.status_code, 200)
        ticket.refresh_from_db()
        self.assertEqual(ticket.maintenance_vendor, self.rival)

    def test_bid_list_filters(self) -> None:
        self.submit(self.vendor_admin)
        self.submit(self.rival_admin)
        self.act_as(self.resident)
        response = self.client.get(reverse("vendor-bid-list"), {"ticket": self.ticket.pk})
        self.assertEqual(len(response.data), 2)

        self.act_as(self.vendor_admin)
        response = self.client.get(reverse("vendor-bid-list"))
        self.assertEqual([row["vendor"] for row in response.data], [self.vendor.pk])
