"""Invoice creation and status changes."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, Optional

from django.db import transaction
from rest_framework import serializers

from accounts import roles
from accounts.models import User
from taskscout_service import cache as entity_cache
from tickets import lifecycle
from tickets import services as ticket_services
from tickets.models import Ticket

from .models import Invoice, InvoiceItem

logger = logging.getLogger(__name__)

# Invoice status -> statuses it may move to.
INVOICE_TRANSITIONS: Dict[str, frozenset] = {
    Invoice.DRAFT: frozenset({Invoice.SENT}),
    Invoice.SENT: frozenset({Invoice.PAID, Invoice.OVERDUE}),
    Invoice.OVERDUE: frozenset({Invoice.PAID}),
    Invoice.PAID: frozenset(),
}

INVOICE_MANAGERS = frozenset({roles.ROOT, roles.MAINTENANCE_ADMIN, roles.BILLING})


def visible_invoices(user: User):
    queryset = Invoice.objects.select_related("ticket", "vendor", "created_by").prefetch_related(
        "items", "work_orders"
    )
    if user.role in roles.VENDOR_ROLES:
        return queryset.filter(vendor_id=user.maintenance_vendor_id)
    return queryset.filter(ticket__in=ticket_services.visible_tickets(user).values("pk"))


def create_invoice(
    ticket: Ticket,
    user: User,
    work_order_ids: Optional[Iterable[int]] = None,
    items: Iterable[Mapping[str, Any]] = (),
    tax: Decimal = Decimal("0"),
    notes: str = "",
    status: str = Invoice.SENT,
) -> Invoice:
    """Bill a ticket that is ready for billing and mark it billed.

    Without explicit ``work_order_ids`` every work order on the ticket is
    billed.
    """

    created: Dict[str, Invoice] = {}

    def _bill(locked: Ticket) -> None:
        vendor_id = locked.maintenance_vendor_id or user.maintenance_vendor_id
        if vendor_id is None:
            raise serializers.ValidationError(
                {"non_field_errors": ["The ticket has no maintenance vendor to bill from."]}
            )
        work_orders = list(locked.work_orders.all())
        if work_order_ids is not None:
            wanted = set(work_order_ids)
            work_orders = [work_order for work_order in work_orders if work_order.pk in wanted]
            if len(work_orders) != len(wanted):
                raise serializers.ValidationError(
                    {"work_orders": ["Every work order must belong to this ticket."]}
                )

        invoice = Invoice.objects.create(
            ticket=locked,
            vendor_id=vendor_id,
            created_by=user,
            tax=tax,
            notes=notes,
            status=status,
        )
        invoice.work_orders.set(work_orders)
        for item in items:
            InvoiceItem.objects.create(invoice=invoice, **item)
        invoice.recalculate()
        invoice.save()
        created["invoice"] = invoice

    ticket_services.perform(ticket, user, lifecycle.CREATE_INVOICE, mutate=_bill)
    invoice = created["invoice"]
    entity_cache.invalidate_on_commit(entity_cache.INVOICES)
    logger.info("Invoice %s billed %s for ticket %s", invoice.pk, invoice.total, ticket.pk)
    return invoice


def change_status(invoice: Invoice, user: User, status: str) -> Invoice:
    if user.role not in INVOICE_MANAGERS:
        raise lifecycle.ActionForbidden(f"Role '{user.role}' may not change invoice status.")
    with transaction.atomic():
        locked = Invoice.objects.select_for_update().get(pk=invoice.pk)
        if status not in INVOICE_TRANSITIONS.get(locked.status, frozenset()):
            raise lifecycle.InvalidTransition(
                locked.status, f"mark {status}", f"Cannot move an invoice from '{locked.status}' to '{status}'."
            )
        locked.status = status
        locked.save(update_fields=["status", "updated_at"])
        entity_cache.invalidate_on_commit(entity_cache.INVOICES)
    logger.info("Invoice %s marked %s", locked.pk, status)
    return locked

