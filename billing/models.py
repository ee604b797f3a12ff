"""Database models for invoices."""
from __future__ import annotations

from django.db import models

from accounts.models import MaintenanceVendor, User
from tickets import costing
from tickets.models import Ticket, WorkOrder


class Invoice(models.Model):
    """A bill aggregating a ticket's work orders and any extra lines."""

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"

    STATUS_CHOICES = [
        (DRAFT, "Draft"),
        (SENT, "Sent"),
        (PAID, "Paid"),
        (OVERDUE, "Overdue"),
    ]

    ticket = models.ForeignKey(Ticket, related_name="invoices", on_delete=models.PROTECT)
    vendor = models.ForeignKey(MaintenanceVendor, related_name="invoices", on_delete=models.PROTECT)
    work_orders = models.ManyToManyField(WorkOrder, related_name="invoices", blank=True)
    created_by = models.ForeignKey(
        User,
        related_name="created_invoices",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=DRAFT)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "id"]

    def __str__(self) -> str:
        return f"Invoice #{self.pk} for ticket #{self.ticket_id} ({self.status})"

    def recalculate(self) -> None:
        """Recompute subtotal and total from the linked work orders and items."""

        totals = costing.invoice_totals(
            (work_order.total_cost for work_order in self.work_orders.all()),
            (item.amount for item in self.items.all()),
            self.tax,
        )
        self.subtotal = totals.subtotal
        self.tax = totals.tax
        self.total = totals.total


class InvoiceItem(models.Model):
    """An additional line on an invoice beyond recorded work orders."""

    invoice = models.ForeignKey(Invoice, related_name="items", on_delete=models.CASCADE)
    description = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=10, decimal_places=2, default=1)
    rate = models.DecimalField(max_digits=12, decimal_places=2)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:
        return self.description

    def save(self, *args, **kwargs):  # type: ignore[override]
        self.amount = costing.line_amount(self.quantity, self.rate)
        super().save(*args, **kwargs)
