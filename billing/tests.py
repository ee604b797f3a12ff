"""Tests for invoicing billable tickets."""
from __future__ import annotations

from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from accounts import roles
from accounts.models import MaintenanceVendor, Organization, User
from tickets import lifecycle
from tickets.models import Ticket, WorkOrder

from .models import Invoice, InvoiceItem


class InvoiceApiTests(TestCase):
    def setUp(self) -> None:
        cache.clear()
        self.client = APIClient()
        self.organization = Organization.objects.create(name="Northwind Estates")
        self.vendor = MaintenanceVendor.objects.create(name="FixIt Co")
        self.org_admin = User.objects.create(
            email="admin@northwind.test",
            first_name="Olivia",
            role=roles.ORG_ADMIN,
            organization=self.organization,
        )
        self.technician = User.objects.create(
            email="tech@fixit.test",
            first_name="Tom",
            role=roles.TECHNICIAN,
            maintenance_vendor=self.vendor,
        )
        self.billing = User.objects.create(
            email="billing@fixit.test",
            first_name="Bea",
            role=roles.BILLING,
            maintenance_vendor=self.vendor,
        )
        self.ticket = self._ticket(lifecycle.READY_FOR_BILLING)
        self.work_order = self._work_order(self.ticket, hours="4", rate="50")

    def _ticket(self, status: str) -> Ticket:
        return Ticket.objects.create(
            title="Boiler service",
            description="Annual service",
            reporter=self.org_admin,
            organization=self.organization,
            maintenance_vendor=self.vendor,
            assignee=self.technician,
            status=status,
        )

    def _work_order(self, ticket: Ticket, hours: str, rate: str) -> WorkOrder:
        work_order = WorkOrder(
            ticket=ticket,
            technician=self.technician,
            work_description="Serviced boiler",
            completion_status=lifecycle.WORK_COMPLETED,
            hourly_rate=Decimal(rate),
        )
        work_order.recalculate(total_hours=hours)
        work_order.save()
        return work_order

    def act_as(self, user: User) -> None:
        self.client.credentials(HTTP_X_USER_ID=str(user.pk))

    def bill(self, **payload):
        payload.setdefault("ticket", self.ticket.pk)
        return self.client.post(reverse("invoice-list"), payload, format="json")

    def test_invoice_bills_ticket(self) -> None:
        self.assertEqual(self.work_order.total_cost, Decimal("200.00"))
        self.act_as(self.billing)

        response = self.bill(tax="20")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Decimal(response.data["subtotal"]), Decimal("200"))
        self.assertEqual(Decimal(response.data["total"]), Decimal("220"))
        self.assertEqual(response.data["status"], Invoice.SENT)
        self.assertEqual(response.data["work_orders"], [self.work_order.pk])
        self.assertEqual(response.data["vendor"], self.vendor.pk)

        self.ticket.refresh_from_db()
        self.assertEqual(self.ticket.status, lifecycle.BILLED)
        self.assertEqual(
            list(self.ticket.milestones.values_list("milestone_type", flat=True)),
            [lifecycle.CREATE_INVOICE],
        )

    def test_total_is_subtotal_plus_tax(self) -> None:
        self._work_order(self.ticket, hours="1.5", rate="60")
        self.act_as(self.billing)
        response = self.bill(
            tax="24.30",
            items=[{"description": "Callout fee", "quantity": "2", "rate": "12.50"}],
        )
        self.assertEqual(response.status_code, 201)
        subtotal = Decimal(response.data["subtotal"])
        self.assertEqual(subtotal, Decimal("315.00"))
        self.assertEqual(Decimal(response.data["total"]), subtotal + Decimal(response.data["tax"]))
        self.assertEqual(Decimal(response.data["items"][0]["amount"]), Decimal("25.00"))

    def test_bill_selected_work_orders(self) -> None:
        self._work_order(self.ticket, hours="1", rate="10")
        self.act_as(self.billing)
        response = self.bill(work_orders=[self.work_order.pk], status=Invoice.DRAFT)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Decimal(response.data["subtotal"]), Decimal("200"))
        self.assertEqual(response.data["status"], Invoice.DRAFT)

    def test_empty_work_order_selection_bills_items_only(self) -> None:
        self.act_as(self.billing)
        response = self.bill(
            work_orders=[],
            items=[{"description": "Callout fee", "quantity": "1", "rate": "35"}],
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["work_orders"], [])
        self.assertEqual(Decimal(response.data["subtotal"]), Decimal("35"))

    def test_foreign_work_order_is_refused(self) -> None:
        other = self._ticket(lifecycle.COMPLETED)
        stray = self._work_order(other, hours="1", rate="10")
        self.act_as(self.billing)
        response = self.bill(work_orders=[stray.pk])
        self.assertEqual(response.status_code, 400)
        self.assertEqual(Invoice.objects.count(), 0)
        self.ticket.refresh_from_db()
        self.assertEqual(self.ticket.status, lifecycle.READY_FOR_BILLING)

    def test_only_billable_tickets_are_invoiced(self) -> None:
        ticket = self._ticket(lifecycle.COMPLETED)
        self.act_as(self.billing)
        response = self.bill(ticket=ticket.pk)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(InvoiceItem.objects.count(), 0)

    def test_technician_cannot_invoice(self) -> None:
        self.act_as(self.technician)
        self.assertEqual(self.bill().status_code, 403)
        self.assertEqual(Invoice.objects.count(), 0)

    def test_second_invoice_is_a_conflict(self) -> None:
        self.act_as(self.billing)
        self.assertEqual(self.bill().status_code, 201)
        self.assertEqual(self.bill().status_code, 409)

    def test_work_orders_frozen_after_billing(self) -> None:
        self.act_as(self.billing)
        self.bill()
        self.act_as(self.technician)
        response = self.client.patch(
            reverse("work-order-detail", args=[self.work_order.pk]),
            {"work_description": "Rewritten"},
            format="json",
        )
        self.assertEqual(response.status_code, 409)

    def test_status_moves(self) -> None:
        self.act_as(self.billing)
        invoice_id = self.bill().data["id"]
        url = reverse("invoice-change-status", args=[invoice_id])

        response = self.client.patch(url, {"status": Invoice.OVERDUE}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], Invoice.OVERDUE)

        response = self.client.patch(url, {"status": Invoice.PAID}, format="json")
        self.assertEqual(response.data["status"], Invoice.PAID)

        response = self.client.patch(url, {"status": Invoice.SENT}, format="json")
        self.assertEqual(response.status_code, 409)

    def test_organization_cannot_change_status(self) -> None:
        self.act_as(self.billing)
        invoice_id = self.bill().data["id"]
        self.act_as(self.org_admin)
        response = self.client.patch(
            reverse("invoice-change-status", args=[invoice_id]),
            {"status": Invoice.PAID},
            format="json",
        )
        self.assertEqual(response.status_code, 403)

    def test_invoices_scoped_to_vendor(self) -> None:
        self.act_as(self.billing)
        invoice_id = self.bill().data["id"]
        rival = User.objects.create(
            email="billing@rival.test",
            first_name="Rae",
            role=roles.BILLING,
            maintenance_vendor=MaintenanceVendor.objects.create(name="Rival Repairs"),
        )
        self.act_as(rival)
        self.assertEqual(self.client.get(reverse("invoice-detail", args=[invoice_id])).status_code, 404)
        self.assertEqual(self.client.get(reverse("invoice-list")).data, [])

        self.act_as(self.org_admin)
        response = self.client.get(reverse("invoice-list"), {"status": Invoice.SENT})
        self.assertEqual([row["id"] for row in response.data], [invoice_id])
