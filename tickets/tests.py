"""Tests for the ticket lifecycle, costing and the ticket API."""
from __future__ import annotations

import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from unittest import mock

from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from kombu.exceptions import OperationalError
from rest_framework.test import APIClient

from accounts import roles
from accounts.models import Location, MaintenanceVendor, Organization, OrganizationVendor, User
from accounts.tiers import ACCEPT_TICKET, PLACE_TICKET, TIER_1, TIER_2
from taskscout_service import cache as entity_cache

from . import costing, lifecycle, presentation, services
from .lifecycle import Actor
from .models import Ticket, WorkOrder
from .tasks import notify_ticket_event

MEDIA_ROOT = tempfile.mkdtemp()


def _actor(role: str, **kwargs) -> Actor:
    return Actor(user_id=1, role=role, **kwargs)


class LifecycleTableTests(SimpleTestCase):
    def test_org_admin_accepts_pending(self) -> None:
        outcome = lifecycle.apply(lifecycle.PENDING, lifecycle.ACCEPT, _actor(roles.ORG_ADMIN))
        self.assertEqual(outcome.status, lifecycle.ACCEPTED)
        self.assertTrue(outcome.changed)

    def test_only_vendor_admin_claims_marketplace_ticket(self) -> None:
        outcome = lifecycle.apply(
            lifecycle.MARKETPLACE, lifecycle.ACCEPT, _actor(roles.MAINTENANCE_ADMIN)
        )
        self.assertEqual(outcome.status, lifecycle.ACCEPTED)
        with self.assertRaises(lifecycle.ActionForbidden):
            lifecycle.apply(lifecycle.MARKETPLACE, lifecycle.ACCEPT, _actor(roles.ORG_ADMIN))

    def test_reaccept_requires_assignee_and_keeps_status(self) -> None:
        actor = _actor(roles.MAINTENANCE_ADMIN)
        with self.assertRaises(lifecycle.MissingField) as caught:
            lifecycle.apply(lifecycle.ACCEPTED, lifecycle.ACCEPT, actor, {"assignee": None})
        self.assertEqual(caught.exception.field, "assignee")

        outcome = lifecycle.apply(lifecycle.ACCEPTED, lifecycle.ACCEPT, actor, {"assignee": 7})
        self.assertEqual(outcome.status, lifecycle.ACCEPTED)
        self.assertFalse(outcome.changed)

    def test_subadmin_needs_accept_permission(self) -> None:
        with self.assertRaises(lifecycle.ActionForbidden):
            lifecycle.apply(
                lifecycle.PENDING,
                lifecycle.ACCEPT,
                _actor(roles.ORG_SUBADMIN, permissions=frozenset({PLACE_TICKET})),
            )

    def test_subadmin_tier_must_cover_vendor(self) -> None:
        actor = _actor(
            roles.ORG_SUBADMIN,
            permissions=frozenset({ACCEPT_TICKET}),
            vendor_tiers=frozenset({TIER_1}),
        )
        self.assertEqual(
            lifecycle.apply(lifecycle.OPEN, lifecycle.ACCEPT, actor, vendor_tier=TIER_1).status,
            lifecycle.ACCEPTED,
        )
        with self.assertRaises(lifecycle.ActionForbidden):
            lifecycle.apply(lifecycle.OPEN, lifecycle.ACCEPT, actor, vendor_tier=TIER_2)

    def test_reject_requires_reason(self) -> None:
        with self.assertRaises(lifecycle.MissingField) as caught:
            lifecycle.apply(lifecycle.PENDING, lifecycle.REJECT, _actor(roles.ORG_ADMIN), {"reason": "  "})
        self.assertEqual(str(caught.exception), "Please provide a reason")

    def test_status_is_checked_before_role(self) -> None:
        with self.assertRaises(lifecycle.InvalidTransition):
            lifecycle.apply(lifecycle.PENDING, lifecycle.START, _actor(roles.RESIDENTIAL))

    def test_start_requires_accepted(self) -> None:
        with self.assertRaises(lifecycle.InvalidTransition):
            lifecycle.apply(lifecycle.PENDING, lifecycle.START, _actor(roles.TECHNICIAN))
        outcome = lifecycle.apply(lifecycle.ACCEPTED, lifecycle.START, _actor(roles.TECHNICIAN))
        self.assertEqual(outcome.status, lifecycle.IN_PROGRESS)

    def test_work_order_outcome_decides_next_status(self) -> None:
        actor = _actor(roles.TECHNICIAN)
        fields = {"work_description": "Replaced valve"}
        done = lifecycle.apply(
            lifecycle.IN_PROGRESS,
            lifecycle.CREATE_WORK_ORDER,
            actor,
            {**fields, "completion_status": lifecycle.WORK_COMPLETED},
        )
        self.assertEqual(done.status, lifecycle.PENDING_CONFIRMATION)
        again = lifecycle.apply(
            lifecycle.RETURN_NEEDED,
            lifecycle.CREATE_WORK_ORDER,
            actor,
            {**fields, "completion_status": lifecycle.WORK_RETURN_NEEDED},
        )
        self.assertEqual(again.status, lifecycle.RETURN_NEEDED)

    def test_billing_chain(self) -> None:
        self.assertEqual(
            lifecycle.apply(
                lifecycle.PENDING_CONFIRMATION, lifecycle.CONFIRM_COMPLETION, _actor(roles.RESIDENTIAL)
            ).status,
            lifecycle.COMPLETED,
        )
        self.assertEqual(
            lifecycle.apply(
                lifecycle.COMPLETED, lifecycle.RELEASE_FOR_BILLING, _actor(roles.MAINTENANCE_ADMIN)
            ).status,
            lifecycle.READY_FOR_BILLING,
        )
        self.assertEqual(
            lifecycle.apply(
                lifecycle.READY_FOR_BILLING, lifecycle.CREATE_INVOICE, _actor(roles.BILLING)
            ).status,
            lifecycle.BILLED,
        )

    def test_terminal_statuses_cannot_be_force_closed(self) -> None:
        for status in lifecycle.TERMINAL_STATUSES:
            with self.assertRaises(lifecycle.InvalidTransition):
                lifecycle.apply(status, lifecycle.FORCE_CLOSE, _actor(roles.ROOT))

    def test_allowed_actions_for_technician(self) -> None:
        self.assertEqual(
            lifecycle.allowed_actions(lifecycle.ACCEPTED, _actor(roles.TECHNICIAN)), [lifecycle.START]
        )
        self.assertEqual(lifecycle.allowed_actions(lifecycle.BILLED, _actor(roles.ROOT)), [])

    def test_counter_response_needs_amount_and_notes(self) -> None:
        actor = _actor(roles.MAINTENANCE_ADMIN)
        with self.assertRaises(lifecycle.MissingField):
            lifecycle.apply_bid(
                lifecycle.BID_COUNTER, lifecycle.BID_COUNTER_RESPONSE, actor, {"amount": 80, "notes": ""}
            )
        outcome = lifecycle.apply_bid(
            lifecycle.BID_COUNTER, lifecycle.BID_COUNTER_RESPONSE, actor, {"amount": 80, "notes": "ok"}
        )
        self.assertEqual(outcome.status, lifecycle.BID_PENDING)

    def test_rejection_reason_iff_rejected(self) -> None:
        for status in lifecycle.STATUSES:
            with_reason = lifecycle.ticket_violations(status, "Duplicate", False)
            without_reason = lifecycle.ticket_violations(status, "", False)
            if status == lifecycle.REJECTED:
                self.assertEqual(with_reason, [])
                self.assertTrue(without_reason)
            else:
                self.assertTrue(with_reason)
                self.assertEqual(without_reason, [])

    def test_assignee_only_after_acceptance(self) -> None:
        self.assertTrue(lifecycle.ticket_violations(lifecycle.PENDING, "", True))
        self.assertEqual(lifecycle.ticket_violations(lifecycle.ACCEPTED, "", True), [])

    def test_bid_fields_exclusive_by_status(self) -> None:
        combos = {
            "counter": (None, Decimal("80"), "best we can do"),
            "rejected": ("too expensive", None, ""),
            "neither": ("", None, ""),
        }
        expected = {
            lifecycle.BID_COUNTER: "counter",
            lifecycle.BID_REJECTED: "rejected",
            lifecycle.BID_PENDING: "neither",
            lifecycle.BID_ACCEPTED: "neither",
        }
        for status, valid_combo in expected.items():
            for name, (reason, offer, notes) in combos.items():
                problems = lifecycle.bid_violations(status, reason, offer, notes)
                self.assertEqual(problems == [], name == valid_combo, (status, name))


class CostingTests(SimpleTestCase):
    def test_work_order_costs(self) -> None:
        costs = costing.work_order_costs(
            hourly_rate="40",
            parts_used=[{"name": "Valve", "quantity": 2, "cost": "15.00"}, {"name": "Tape", "cost": "1.25"}],
            other_charges=[{"description": "Disposal", "cost": "10"}],
            total_hours="2.5",
        )
        self.assertEqual(costs.labor_cost, Decimal("100.00"))
        self.assertEqual(costs.parts_cost, Decimal("31.25"))
        self.assertEqual(costs.other_charges_cost, Decimal("10.00"))
        self.assertEqual(costs.total_cost, Decimal("141.25"))

    def test_hours_from_clock_times(self) -> None:
        start = datetime(2024, 5, 1, 9, 0, tzinfo=dt_timezone.utc)
        costs = costing.work_order_costs(
            "50", [], [], time_in=start, time_out=start + timedelta(hours=1, minutes=30)
        )
        self.assertEqual(costs.total_hours, Decimal("1.50"))
        self.assertEqual(costs.labor_cost, Decimal("75.00"))

    def test_bid_total(self) -> None:
        self.assertEqual(costing.bid_total("50", "2", []), Decimal("100.00"))
        self.assertEqual(
            costing.bid_total("50", "2", [{"name": "Filter", "quantity": 3, "cost": "4"}]),
            Decimal("112.00"),
        )

    def test_invoice_totals(self) -> None:
        totals = costing.invoice_totals([Decimal("200"), Decimal("35.50")], [Decimal("14.50")], "20")
        self.assertEqual(totals.subtotal, Decimal("250.00"))
        self.assertEqual(totals.total, totals.subtotal + totals.tax)
        self.assertEqual(totals.total, Decimal("270.00"))


class PresentationTests(SimpleTestCase):
    def test_labels_depend_on_audience(self) -> None:
        self.assertEqual(presentation.status_label(lifecycle.MARKETPLACE), "Open for Bids")
        self.assertEqual(
            presentation.status_label(lifecycle.ACCEPTED, roles.TECHNICIAN), "Action Required"
        )
        self.assertEqual(presentation.status_label(lifecycle.ACCEPTED, roles.ORG_ADMIN), "Accepted")

    def test_unknown_values_use_default_colour(self) -> None:
        self.assertEqual(presentation.status_badge("mystery")["color"], presentation.DEFAULT_COLOR)
        self.assertEqual(presentation.priority_color("urgent"), presentation.DEFAULT_COLOR)


class TicketTestCase(TestCase):
    """Shared organization, vendor and staff for API tests."""

    def setUp(self) -> None:
        cache.clear()
        self.client = APIClient()
        self.organization = Organization.objects.create(name="Northwind Estates")
        self.vendor = MaintenanceVendor.objects.create(name="FixIt Co")
        self.other_vendor = MaintenanceVendor.objects.create(name="Elsewhere Ltd")
        OrganizationVendor.objects.create(
            organization=self.organization, vendor=self.vendor, tier=TIER_2
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
            permissions=[PLACE_TICKET, ACCEPT_TICKET],
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
        self.technician = User.objects.create(
            email="tech@fixit.test",
            first_name="Tom",
            role=roles.TECHNICIAN,
            maintenance_vendor=self.vendor,
            hourly_rate=Decimal("40.00"),
        )
        self.second_technician = User.objects.create(
            email="tech2@fixit.test",
            first_name="Tina",
            role=roles.TECHNICIAN,
            maintenance_vendor=self.vendor,
            hourly_rate=Decimal("45.00"),
        )
        self.billing = User.objects.create(
            email="billing@fixit.test",
            first_name="Bea",
            role=roles.BILLING,
            maintenance_vendor=self.vendor,
        )

    def act_as(self, user: User) -> None:
        self.client.credentials(HTTP_X_USER_ID=str(user.pk))

    def make_ticket(self, status: str = lifecycle.PENDING, **kwargs) -> Ticket:
        values = {
            "title": "Leaking tap",
            "description": "Kitchen tap drips constantly",
            "reporter": self.org_admin,
            "organization": self.organization,
            "status": status,
        }
        values.update(kwargs)
        return Ticket.objects.create(**values)

    def post_action(self, ticket: Ticket, name: str, data=None):
        return self.client.post(reverse(f"ticket-{name}", args=[ticket.pk]), data or {}, format="json")


@override_settings(MEDIA_ROOT=MEDIA_ROOT)
class TicketApiTests(TicketTestCase):
    @classmethod
    def tearDownClass(cls) -> None:
        super().tearDownClass()
        shutil.rmtree(MEDIA_ROOT, ignore_errors=True)

    def test_create_ticket_records_milestone(self) -> None:
        self.act_as(self.org_admin)
        response = self.client.post(
            reverse("ticket-list"),
            {"title": "Broken window", "description": "Lobby window cracked", "priority": "high"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], lifecycle.PENDING)
        self.assertEqual(response.data["organization"], self.organization.pk)
        self.assertEqual(response.data["status_display"]["label"], "Pending")

        milestones = self.client.get(reverse("ticket-milestones", args=[response.data["id"]]))
        self.assertEqual([entry["milestone_type"] for entry in milestones.data], ["created"])

    def test_technician_cannot_place_tickets(self) -> None:
        self.act_as(self.technician)
        response = self.client.post(
            reverse("ticket-list"), {"title": "x", "description": "y"}, format="json"
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["code"], "forbidden")

    def test_marketplace_request_without_media_is_refused(self) -> None:
        self.act_as(self.resident)
        response = self.client.post(
            reverse("ticket-residential"),
            {"title": "Flooded basement", "description": "Water everywhere"},
            format="multipart",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["images"], ["Please upload at least one photo or video."])
        self.assertEqual(Ticket.objects.count(), 0)

    def test_resident_ticket_without_media_is_refused(self) -> None:
        self.act_as(self.resident)
        response = self.client.post(
            reverse("ticket-list"),
            {"title": "Flooded basement", "description": "Water everywhere"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["images"], ["Please upload at least one photo or video."])
        self.assertEqual(Ticket.objects.count(), 0)

    def test_refused_placement_stores_no_media(self) -> None:
        self.subadmin.permissions = [ACCEPT_TICKET]
        self.subadmin.save()
        with tempfile.TemporaryDirectory() as media_root, self.settings(MEDIA_ROOT=media_root):
            for user in (self.technician, self.subadmin):
                self.act_as(user)
                photo = SimpleUploadedFile(
                    "leak.png", b"\x89PNG\r\n\x1a\nfake", content_type="image/png"
                )
                response = self.client.post(
                    reverse("ticket-list"),
                    {"title": "Leak", "description": "Under the sink", "images": [photo]},
                    format="multipart",
                )
                self.assertEqual(response.status_code, 403)
            self.assertFalse(os.path.exists(os.path.join(media_root, "tickets")))
        self.assertEqual(Ticket.objects.count(), 0)

    def test_marketplace_request_with_photo(self) -> None:
        self.act_as(self.resident)
        photo = SimpleUploadedFile("leak.png", b"\x89PNG\r\n\x1a\nfake", content_type="image/png")
        response = self.client.post(
            reverse("ticket-residential"),
            {"title": "Flooded basement", "description": "Water everywhere", "images": [photo]},
            format="multipart",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], lifecycle.MARKETPLACE)
        self.assertEqual(response.data["status_display"]["label"], "Open for Bids")
        self.assertEqual(len(response.data["images"]), 1)
        self.assertIn("tickets/", response.data["images"][0])

    def test_non_media_upload_is_refused(self) -> None:
        self.act_as(self.resident)
        document = SimpleUploadedFile("notes.txt", b"hello", content_type="text/plain")
        response = self.client.post(
            reverse("ticket-residential"),
            {"title": "Noise", "description": "Loud pipes", "images": [document]},
            format="multipart",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(Ticket.objects.count(), 0)

    def test_full_lifecycle_through_the_api(self) -> None:
        ticket = self.make_ticket()

        self.act_as(self.org_admin)
        response = self.post_action(ticket, "accept", {"maintenance_vendor": self.vendor.pk})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], lifecycle.ACCEPTED)
        self.assertEqual(response.data["maintenance_vendor"], self.vendor.pk)
        self.assertIsNone(response.data["assignee"])

        self.act_as(self.vendor_admin)
        response = self.post_action(ticket, "accept", {"assignee": self.technician.pk})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["assignee"], self.technician.pk)

        self.act_as(self.technician)
        response = self.post_action(ticket, "start")
        self.assertEqual(response.data["status"], lifecycle.IN_PROGRESS)

        response = self.client.post(
            reverse("ticket-work-orders", args=[ticket.pk]),
            {
                "work_description": "Replaced cartridge",
                "completion_status": lifecycle.WORK_COMPLETED,
                "total_hours": "2",
                "parts_used": [{"name": "Cartridge", "quantity": "2", "cost": "15.00"}],
                "other_charges": [{"description": "Disposal", "cost": "10"}],
            },
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Decimal(response.data["labor_cost"]), Decimal("80"))
        self.assertEqual(Decimal(response.data["parts_cost"]), Decimal("30"))
        self.assertEqual(Decimal(response.data["total_cost"]), Decimal("120"))
        ticket.refresh_from_db()
        self.assertEqual(ticket.status, lifecycle.PENDING_CONFIRMATION)

        self.act_as(self.org_admin)
        self.assertEqual(self.post_action(ticket, "complete").data["status"], lifecycle.COMPLETED)
        response = self.post_action(ticket, "release-for-billing")
        self.assertEqual(response.data["status"], lifecycle.READY_FOR_BILLING)

        self.act_as(self.technician)
        response = self.client.post(
            reverse("ticket-work-orders", args=[ticket.pk]),
            {"work_description": "Late extra", "completion_status": lifecycle.WORK_COMPLETED},
            format="json",
        )
        self.assertEqual(response.status_code, 409)
        work_order = WorkOrder.objects.get(ticket=ticket)
        response = self.client.patch(
            reverse("work-order-detail", args=[work_order.pk]), {"total_hours": "5"}, format="json"
        )
        self.assertEqual(response.status_code, 409)

        self.act_as(self.org_admin)
        milestones = self.client.get(reverse("ticket-milestones", args=[ticket.pk])).data
        self.assertEqual(
            [entry["milestone_type"] for entry in milestones],
            [
                lifecycle.ACCEPT,
                lifecycle.ACCEPT,
                lifecycle.START,
                lifecycle.CREATE_WORK_ORDER,
                lifecycle.CONFIRM_COMPLETION,
                lifecycle.RELEASE_FOR_BILLING,
            ],
        )
        ticket.refresh_from_db()
        self.assertEqual(ticket.violations(), [])

    def test_return_visit_loop(self) -> None:
        ticket = self.make_ticket(
            lifecycle.IN_PROGRESS, maintenance_vendor=self.vendor, assignee=self.technician
        )
        self.act_as(self.technician)
        response = self.client.post(
            reverse("ticket-work-orders", args=[ticket.pk]),
            {
                "work_description": "Ordered part",
                "completion_status": lifecycle.WORK_RETURN_NEEDED,
                "total_hours": "1",
            },
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        ticket.refresh_from_db()
        self.assertEqual(ticket.status, lifecycle.RETURN_NEEDED)

        response = self.client.post(
            reverse("ticket-work-orders", args=[ticket.pk]),
            {"work_description": "Fitted part", "completion_status": lifecycle.WORK_COMPLETED},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(ticket.work_orders.count(), 2)

        self.act_as(self.org_admin)
        response = self.post_action(ticket, "request-return", {"reason": "Still dripping"})
        self.assertEqual(response.data["status"], lifecycle.RETURN_NEEDED)

    def test_work_order_needs_description(self) -> None:
        ticket = self.make_ticket(
            lifecycle.IN_PROGRESS, maintenance_vendor=self.vendor, assignee=self.technician
        )
        self.act_as(self.technician)
        response = self.client.post(
            reverse("ticket-work-orders", args=[ticket.pk]),
            {"completion_status": lifecycle.WORK_COMPLETED},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["work_description"], ["Please describe the work performed"])
        self.assertEqual(ticket.work_orders.count(), 0)

    def test_reject_requires_reason(self) -> None:
        ticket = self.make_ticket()
        self.act_as(self.org_admin)

        response = self.post_action(ticket, "reject", {"reason": "   "})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["reason"], ["Please provide a reason"])
        ticket.refresh_from_db()
        self.assertEqual(ticket.status, lifecycle.PENDING)

        response = self.post_action(ticket, "reject", {"reason": "Duplicate request"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], lifecycle.REJECTED)
        self.assertEqual(response.data["rejection_reason"], "Duplicate request")

        response = self.post_action(ticket, "accept")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "invalid_transition")

    def test_reject_after_assignment_clears_assignee(self) -> None:
        ticket = self.make_ticket(
            lifecycle.ACCEPTED, maintenance_vendor=self.vendor, assignee=self.technician
        )
        self.act_as(self.vendor_admin)
        response = self.post_action(ticket, "reject", {"reason": "Outside our area"})
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.data["assignee"])

    def test_vendor_billing_user_cannot_accept(self) -> None:
        ticket = self.make_ticket(maintenance_vendor=self.vendor)
        self.act_as(self.billing)
        self.assertEqual(self.post_action(ticket, "accept").status_code, 403)

    def test_subadmin_accept_gated_by_vendor_tier(self) -> None:
        ticket = self.make_ticket()
        self.act_as(self.subadmin)
        response = self.post_action(ticket, "accept", {"maintenance_vendor": self.vendor.pk})
        self.assertEqual(response.status_code, 403)

        self.subadmin.vendor_tiers = [TIER_1, TIER_2]
        self.subadmin.save()
        response = self.post_action(ticket, "accept", {"maintenance_vendor": self.vendor.pk})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], lifecycle.ACCEPTED)

    def test_subadmin_without_accept_permission(self) -> None:
        self.subadmin.permissions = [PLACE_TICKET]
        self.subadmin.save()
        ticket = self.make_ticket()
        self.act_as(self.subadmin)
        self.assertEqual(self.post_action(ticket, "accept").status_code, 403)

    def test_unlinked_vendor_is_refused(self) -> None:
        ticket = self.make_ticket()
        self.act_as(self.org_admin)
        response = self.post_action(ticket, "accept", {"maintenance_vendor": self.other_vendor.pk})
        self.assertEqual(response.status_code, 400)

    def test_unlinked_vendor_refused_at_creation(self) -> None:
        self.act_as(self.org_admin)
        response = self.client.post(
            reverse("ticket-list"),
            {
                "title": "Leak",
                "description": "Under the sink",
                "maintenance_vendor": self.other_vendor.pk,
            },
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("maintenance_vendor", response.data)
        self.assertEqual(Ticket.objects.count(), 0)

    def test_subadmin_accept_gated_by_preset_vendor(self) -> None:
        self.act_as(self.org_admin)
        response = self.client.post(
            reverse("ticket-list"),
            {
                "title": "Leak",
                "description": "Under the sink",
                "maintenance_vendor": self.vendor.pk,
            },
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        ticket = Ticket.objects.get(pk=response.data["id"])

        self.act_as(self.subadmin)
        response = self.post_action(ticket, "accept")
        self.assertEqual(response.status_code, 403)
        ticket.refresh_from_db()
        self.assertEqual(ticket.status, lifecycle.PENDING)

    def test_subadmin_reject_gated_by_vendor_tier(self) -> None:
        ticket = self.make_ticket(lifecycle.ACCEPTED, maintenance_vendor=self.vendor)
        self.act_as(self.subadmin)
        response = self.post_action(ticket, "reject", {"reason": "Too expensive"})
        self.assertEqual(response.status_code, 403)

        self.subadmin.vendor_tiers = [TIER_1, TIER_2]
        self.subadmin.save()
        response = self.post_action(ticket, "reject", {"reason": "Too expensive"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], lifecycle.REJECTED)

    def test_vendor_admin_reassigns_own_ticket(self) -> None:
        ticket = self.make_ticket(
            lifecycle.ACCEPTED, maintenance_vendor=self.vendor, assignee=self.vendor_admin
        )
        self.act_as(self.vendor_admin)
        response = self.post_action(ticket, "accept", {"assignee": self.second_technician.pk})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], lifecycle.ACCEPTED)
        self.assertEqual(response.data["assignee"], self.second_technician.pk)

    def test_vendor_admin_self_assigns_by_default(self) -> None:
        ticket = self.make_ticket(maintenance_vendor=self.vendor)
        updated = services.accept(ticket, self.vendor_admin)
        self.assertEqual(updated.status, lifecycle.ACCEPTED)
        self.assertEqual(updated.assignee, self.vendor_admin)

    def test_cannot_assign_another_vendors_technician(self) -> None:
        outsider = User.objects.create(
            email="tech@elsewhere.test",
            first_name="Otto",
            role=roles.TECHNICIAN,
            maintenance_vendor=self.other_vendor,
        )
        ticket = self.make_ticket(maintenance_vendor=self.vendor)
        self.act_as(self.vendor_admin)
        response = self.post_action(ticket, "accept", {"assignee": outsider.pk})
        self.assertEqual(response.status_code, 400)

    def test_force_close(self) -> None:
        ticket = self.make_ticket(lifecycle.ACCEPTED)
        self.act_as(self.subadmin)
        self.assertEqual(self.post_action(ticket, "force-close").status_code, 403)

        self.act_as(self.org_admin)
        response = self.post_action(ticket, "force-close", {"reason": "Tenant moved out"})
        self.assertEqual(response.data["status"], lifecycle.FORCE_CLOSED)
        self.assertEqual(self.post_action(ticket, "force-close").status_code, 409)

    def test_patch_only_edits_descriptive_fields(self) -> None:
        ticket = self.make_ticket()
        self.act_as(self.org_admin)
        response = self.client.patch(
            reverse("ticket-detail", args=[ticket.pk]),
            {"title": "Dripping tap", "status": lifecycle.BILLED},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["title"], "Dripping tap")
        self.assertEqual(response.data["status"], lifecycle.PENDING)

    def test_patch_refuses_another_organizations_location(self) -> None:
        other = Organization.objects.create(name="Elsewhere Towers")
        foreign = Location.objects.create(organization=other, name="Tower B")
        own = Location.objects.create(organization=self.organization, name="Block A")
        ticket = self.make_ticket()
        self.act_as(self.org_admin)
        url = reverse("ticket-detail", args=[ticket.pk])

        response = self.client.patch(url, {"location": foreign.pk}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("location", response.data)

        response = self.client.patch(url, {"location": own.pk}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["location"], own.pk)

    def test_clearing_hourly_rate_uses_technician_rate(self) -> None:
        ticket = self.make_ticket(
            lifecycle.IN_PROGRESS, maintenance_vendor=self.vendor, assignee=self.technician
        )
        work_order = WorkOrder(
            ticket=ticket,
            technician=self.technician,
            work_description="Replaced washer",
            completion_status=lifecycle.WORK_RETURN_NEEDED,
            hourly_rate=Decimal("55"),
        )
        work_order.recalculate(total_hours="2")
        work_order.save()

        self.act_as(self.technician)
        response = self.client.patch(
            reverse("work-order-detail", args=[work_order.pk]), {"hourly_rate": None}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.data["hourly_rate"]), Decimal("40"))
        self.assertEqual(Decimal(response.data["labor_cost"]), Decimal("80"))

    def test_tickets_cannot_be_deleted(self) -> None:
        ticket = self.make_ticket()
        self.act_as(self.org_admin)
        response = self.client.delete(reverse("ticket-detail", args=[ticket.pk]))
        self.assertEqual(response.status_code, 405)

    def test_tickets_scoped_to_organization(self) -> None:
        other = Organization.objects.create(name="Elsewhere Towers")
        outsider = User.objects.create(
            email="admin@elsewhere.test", first_name="Ed", role=roles.ORG_ADMIN, organization=other
        )
        ticket = self.make_ticket()
        self.act_as(outsider)
        self.assertEqual(self.client.get(reverse("ticket-detail", args=[ticket.pk])).status_code, 404)
        self.assertEqual(self.client.get(reverse("ticket-list")).data, [])

    def test_list_reflects_transitions(self) -> None:
        ticket = self.make_ticket()
        self.act_as(self.org_admin)
        before = self.client.get(reverse("ticket-list")).data
        self.assertEqual(before[0]["status"], lifecycle.PENDING)

        self.post_action(ticket, "accept")
        after = self.client.get(reverse("ticket-list")).data
        self.assertEqual(after[0]["status"], lifecycle.ACCEPTED)

    def test_stats(self) -> None:
        self.make_ticket(lifecycle.OPEN, priority=Ticket.HIGH)
        self.make_ticket(lifecycle.PENDING)
        self.make_ticket(lifecycle.IN_PROGRESS)
        self.make_ticket(lifecycle.COMPLETED, priority=Ticket.HIGH)
        self.act_as(self.org_admin)
        response = self.client.get(reverse("ticket-stats"))
        self.assertEqual(response.data["open"], 2)
        self.assertEqual(response.data["inProgress"], 1)
        self.assertEqual(response.data["completed"], 1)
        self.assertEqual(response.data["highPriority"], 2)
        self.assertEqual(response.data["total"], 4)

    def test_statuses_use_vendor_labels(self) -> None:
        self.act_as(self.vendor_admin)
        response = self.client.get(reverse("ticket-statuses"))
        self.assertEqual(response.data[0]["label"], "Action Required")

    def test_allowed_actions(self) -> None:
        ticket = self.make_ticket(
            lifecycle.ACCEPTED, maintenance_vendor=self.vendor, assignee=self.technician
        )
        self.act_as(self.technician)
        response = self.client.get(reverse("ticket-allowed-actions", args=[ticket.pk]))
        self.assertEqual(response.data, {"status": lifecycle.ACCEPTED, "actions": [lifecycle.START]})


class TicketNotificationTests(TicketTestCase):
    def test_transition_queues_notification_after_commit(self) -> None:
        ticket = self.make_ticket()
        self.act_as(self.org_admin)
        with mock.patch("tickets.services.notify_ticket_event") as task:
            with self.captureOnCommitCallbacks(execute=True):
                response = self.post_action(ticket, "accept")
        self.assertEqual(response.status_code, 200)
        task.delay.assert_called_once_with(
            {
                "ticket_id": ticket.pk,
                "action": lifecycle.ACCEPT,
                "status": lifecycle.ACCEPTED,
                "actor_id": self.org_admin.pk,
            }
        )

    def test_failed_transition_queues_nothing(self) -> None:
        ticket = self.make_ticket()
        self.act_as(self.org_admin)
        with mock.patch("tickets.services.notify_ticket_event") as task:
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                self.post_action(ticket, "reject", {"reason": ""})
        self.assertEqual(callbacks, [])
        task.delay.assert_not_called()

    def test_list_cache_invalidated_again_at_commit(self) -> None:
        ticket = self.make_ticket()
        self.act_as(self.org_admin)
        with mock.patch("tickets.services.notify_ticket_event"):
            with self.captureOnCommitCallbacks() as callbacks:
                response = self.post_action(ticket, "accept")
                before = entity_cache.namespace_version(entity_cache.TICKETS)
            self.assertEqual(response.status_code, 200)
            for callback in callbacks:
                callback()
        self.assertGreater(entity_cache.namespace_version(entity_cache.TICKETS), before)

    def test_broker_outage_does_not_fail_request(self) -> None:
        ticket = self.make_ticket()
        self.act_as(self.org_admin)
        with mock.patch("tickets.services.notify_ticket_event") as task:
            task.delay.side_effect = OperationalError("broker down")
            with self.assertLogs("tickets.services", level="ERROR"):
                with self.captureOnCommitCallbacks(execute=True):
                    response = self.post_action(ticket, "accept")
        self.assertEqual(response.status_code, 200)

    @override_settings(TASKSCOUT_NOTIFICATION_URL="http://notify.test/events")
    def test_task_posts_event(self) -> None:
        payload = {"ticket_id": 1, "action": "accept", "status": "accepted", "actor_id": 2}
        with mock.patch("tickets.tasks.requests.post") as post:
            post.return_value.raise_for_status.return_value = None
            result = notify_ticket_event.apply(args=(payload,))
        self.assertTrue(result.get())
        post.assert_called_once_with("http://notify.test/events", json=payload, timeout=5.0)

    @override_settings(TASKSCOUT_NOTIFICATION_URL="")
    def test_task_skips_without_endpoint(self) -> None:
        with mock.patch("tickets.tasks.requests.post") as post:
            result = notify_ticket_event.apply(args=({"ticket_id": 1, "action": "accept"},))
        self.assertFalse(result.get())
        post.assert_not_called()
