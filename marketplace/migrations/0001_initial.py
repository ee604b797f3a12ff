# Generated manually for initial schema.
from __future__ import annotations

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("accounts", "0001_initial"),
        ("tickets", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="VendorBid",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("hourly_rate", models.DecimalField(decimal_places=2, max_digits=10)),
                ("estimated_hours", models.DecimalField(decimal_places=2, max_digits=8)),
                ("response_time", models.CharField(max_length=64)),
                ("parts", models.JSONField(blank=True, default=list)),
                ("total_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("additional_notes", models.TextField(blank=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("accepted", "Accepted"),
                            ("rejected", "Rejected"),
                            ("counter", "Counter Offer"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("rejection_reason", models.TextField(blank=True)),
                ("counter_offer", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("counter_notes", models.TextField(blank=True)),
                ("approved", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "ticket",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bids",
                        to="tickets.ticket",
                    ),
                ),
                (
                    "vendor",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bids",
                        to="accounts.maintenancevendor",
                    ),
                ),
                (
                    "submitted_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="submitted_bids",
                        to="accounts.user",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "id"],
                "unique_together": {("ticket", "vendor")},
            },
        ),
    ]
