# Generated manually for initial schema.
from __future__ import annotations

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("accounts", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Ticket",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField()),
                (
                    "priority",
                    models.CharField(
                        choices=[("low", "Low"), ("medium", "Medium"), ("high", "High")],
                        default="medium",
                        max_length=16,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("open", "Open"),
                            ("marketplace", "Marketplace"),
                            ("accepted", "Accepted"),
                            ("in-progress", "In Progress"),
                            ("return_needed", "Return Needed"),
                            ("pending_confirmation", "Pending Confirmation"),
                            ("completed", "Completed"),
                            ("ready_for_billing", "Ready for Billing"),
                            ("billed", "Billed"),
                            ("rejected", "Rejected"),
                            ("force_closed", "Force Closed"),
                        ],
                        default="pending",
                        max_length=32,
                    ),
                ),
                ("rejection_reason", models.TextField(blank=True)),
                ("images", models.JSONField(blank=True, default=list)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "reporter",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reported_tickets",
                        to="accounts.user",
                    ),
                ),
                (
                    "organization",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="tickets",
                        to="accounts.organization",
                    ),
                ),
                (
                    "assignee",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="assigned_tickets",
                        to="accounts.user",
                    ),
                ),
                (
                    "maintenance_vendor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="tickets",
                        to="accounts.maintenancevendor",
                    ),
                ),
                (
                    "location",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="tickets",
                        to="accounts.location",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "id"],
                "indexes": [models.Index(fields=["status"], name="ticket_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="TicketMilestone",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("milestone_type", models.CharField(max_length=64)),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "ticket",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="milestones",
                        to="tickets.ticket",
                    ),
                ),
                (
                    "achieved_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="milestones",
                        to="accounts.user",
                    ),
                ),
            ],
            options={"ordering": ["created_at", "id"]},
        ),
        migrations.CreateModel(
            name="WorkOrder",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("work_description", models.TextField()),
                (
                    "completion_status",
                    models.CharField(
                        choices=[("completed", "Completed"), ("return_needed", "Will Need to Return")],
                        max_length=32,
                    ),
                ),
                ("completion_notes", models.TextField(blank=True)),
                ("time_in", models.DateTimeField(blank=True, null=True)),
                ("time_out", models.DateTimeField(blank=True, null=True)),
                ("total_hours", models.DecimalField(decimal_places=2, default=0, max_digits=8)),
                ("hourly_rate", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("parts_used", models.JSONField(blank=True, default=list)),
                ("other_charges", models.JSONField(blank=True, default=list)),
                ("labor_cost", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("parts_cost", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("other_charges_cost", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("total_cost", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("images", models.JSONField(blank=True, default=list)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "ticket",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="work_orders",
                        to="tickets.ticket",
                    ),
                ),
                (
                    "technician",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="work_orders",
                        to="accounts.user",
                    ),
                ),
            ],
            options={"ordering": ["created_at", "id"]},
        ),
    ]
