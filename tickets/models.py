"""Database models for tickets, their timeline and technician work orders."""
from __future__ import annotations

from typing import List

from django.core.exceptions import ValidationError
from django.db import models

from accounts.models import Location, MaintenanceVendor, Organization, User

from . import costing, lifecycle


class Ticket(models.Model):
    """One reported maintenance issue."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    PRIORITY_CHOICES = [
        (LOW, "Low"),
        (MEDIUM, "Medium"),
        (HIGH, "High"),
    ]

    title = models.CharField(max_length=255)
    description = models.TextField()
    priority = models.CharField(max_length=16, choices=PRIORITY_CHOICES, default=MEDIUM)
    status = models.CharField(
        max_length=32, choices=lifecycle.STATUS_CHOICES, default=lifecycle.PENDING
    )
    reporter = models.ForeignKey(
        User, related_name="reported_tickets", on_delete=models.PROTECT
    )
    organization = models.ForeignKey(
        Organization,
        related_name="tickets",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    assignee = models.ForeignKey(
        User,
        related_name="assigned_tickets",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    maintenance_vendor = models.ForeignKey(
        MaintenanceVendor,
        related_name="tickets",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    location = models.ForeignKey(
        Location,
        related_name="tickets",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    rejection_reason = models.TextField(blank=True)
    images = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "id"]
        indexes = [
            models.Index(fields=["status"], name="ticket_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.title} ({self.status})"

    def violations(self) -> List[str]:
        return lifecycle.ticket_violations(
            self.status, self.rejection_reason, self.assignee_id is not None
        )

    def clean(self) -> None:
        problems = self.violations()
        if problems:
            raise ValidationError(problems)


class TicketMilestone(models.Model):
    """A progress-timeline entry written for every lifecycle transition."""

    ticket = models.ForeignKey(Ticket, related_name="milestones", on_delete=models.CASCADE)
    milestone_type = models.CharField(max_length=64)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    achieved_by = models.ForeignKey(
        User,
        related_name="milestones",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self) -> str:
        return self.title


class WorkOrder(models.Model):
    """One technician visit against an accepted ticket."""

    COMPLETION_CHOICES = [
        (lifecycle.WORK_COMPLETED, "Completed"),
        (lifecycle.WORK_RETURN_NEEDED, "Will Need to Return"),
    ]

    ticket = models.ForeignKey(Ticket, related_name="work_orders", on_delete=models.CASCADE)
    technician = models.ForeignKey(
        User,
        related_name="work_orders",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    work_description = models.TextField()
    completion_status = models.CharField(max_length=32, choices=COMPLETION_CHOICES)
    completion_notes = models.TextField(blank=True)
    time_in = models.DateTimeField(null=True, blank=True)
    time_out = models.DateTimeField(null=True, blank=True)
    total_hours = models.DecimalField(max_digits=8, decimal_places=2, default=0)
    hourly_rate = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    parts_used = models.JSONField(default=list, blank=True)
    other_charges = models.JSONField(default=list, blank=True)
    labor_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    parts_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    other_charges_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    images = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self) -> str:
        return f"Work order #{self.pk} for ticket #{self.ticket_id}"

    def recalculate(self, total_hours=None) -> None:
        """Refresh hours and every cost column from rate, parts and charges."""

        costs = costing.work_order_costs(
            hourly_rate=self.hourly_rate,
            parts_used=self.parts_used,
            other_charges=self.other_charges,
            total_hours=total_hours,
            time_in=self.time_in,
            time_out=self.time_out,
        )
        self.total_hours = costs.total_hours
        self.labor_cost = costs.labor_cost
        self.parts_cost = costs.parts_cost
        self.other_charges_cost = costs.other_charges_cost
        self.total_cost = costs.total_cost
