"""Database models for vendor bids on marketplace tickets."""
from __future__ import annotations

from typing import List

from django.core.exceptions import ValidationError
from django.db import models

from accounts.models import MaintenanceVendor, User
from tickets import costing, lifecycle
from tickets.models import Ticket


class VendorBid(models.Model):
    """One vendor's offer against a ticket open for bids."""

    PENDING = lifecycle.BID_PENDING
    ACCEPTED = lifecycle.BID_ACCEPTED
    REJECTED = lifecycle.BID_REJECTED
    COUNTER = lifecycle.BID_COUNTER

    STATUS_CHOICES = lifecycle.BID_STATUS_CHOICES

    ticket = models.ForeignKey(Ticket, related_name="bids", on_delete=models.CASCADE)
    vendor = models.ForeignKey(MaintenanceVendor, related_name="bids", on_delete=models.CASCADE)
    submitted_by = models.ForeignKey(
        User,
        related_name="submitted_bids",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    hourly_rate = models.DecimalField(max_digits=10, decimal_places=2)
    estimated_hours = models.DecimalField(max_digits=8, decimal_places=2)
    response_time = models.CharField(max_length=64)
    parts = models.JSONField(default=list, blank=True)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    additional_notes = models.TextField(blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=PENDING)
    rejection_reason = models.TextField(blank=True)
    counter_offer = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    counter_notes = models.TextField(blank=True)
    approved = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "id"]
        unique_together = ("ticket", "vendor")

    def __str__(self) -> str:
        return f"Bid #{self.pk} by {self.vendor} ({self.status})"

    def recalculate_total(self) -> None:
        self.total_amount = costing.bid_total(self.hourly_rate, self.estimated_hours, self.parts)

    def violations(self) -> List[str]:
        return lifecycle.bid_violations(
            self.status, self.rejection_reason, self.counter_offer, self.counter_notes
        )

    def clean(self) -> None:
        problems = self.violations()
        if problems:
            raise ValidationError(problems)
