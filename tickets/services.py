"""Ticket operations: guards from :mod:`tickets.lifecycle` applied to stored rows.

Every operation locks the ticket row, re-checks the transition against the
committed status, writes a timeline milestone, invalidates cached lists and
queues a notification once the transaction commits.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from django.db import transaction
from django.db.models import Count, Q, QuerySet
from kombu.exceptions import OperationalError
from rest_framework import serializers

from accounts import roles
from accounts.models import MaintenanceVendor, OrganizationVendor, User
from accounts.tiers import PLACE_TICKET
from taskscout_service import cache as entity_cache

from . import lifecycle
from .models import Ticket, TicketMilestone, WorkOrder
from .tasks import notify_ticket_event
from .uploads import MEDIA_REQUIRED, store_uploads

logger = logging.getLogger(__name__)

TICKET_CREATED = "created"

MILESTONE_TITLES: Dict[str, str] = {
    TICKET_CREATED: "Ticket Created",
    lifecycle.ACCEPT: "Ticket Accepted",
    lifecycle.REJECT: "Ticket Rejected",
    lifecycle.START: "Work Started",
    lifecycle.CREATE_WORK_ORDER: "Work Order Submitted",
    lifecycle.CONFIRM_COMPLETION: "Completion Confirmed",
    lifecycle.REQUEST_RETURN: "Return Visit Requested",
    lifecycle.RELEASE_FOR_BILLING: "Ready for Billing",
    lifecycle.CREATE_INVOICE: "Invoice Created",
    lifecycle.SUBMIT_BID: "Bid Received",
    lifecycle.ACCEPT_BID: "Bid Accepted",
    lifecycle.FORCE_CLOSE: "Ticket Closed",
}

# Columns a reporter may still edit outside the lifecycle actions.
EDITABLE_FIELDS = ("title", "description", "priority", "location")


def actor_for(user: User) -> lifecycle.Actor:
    return lifecycle.Actor(
        user_id=user.pk,
        role=user.role,
        permissions=frozenset(user.permissions or ()),
        vendor_tiers=frozenset(user.vendor_tiers or ()),
        organization_id=user.organization_id,
        vendor_id=user.maintenance_vendor_id,
    )


def visible_tickets(user: User) -> QuerySet:
    """Tickets the user may see; lifecycle endpoints resolve tickets through this."""

    queryset = Ticket.objects.select_related(
        "reporter", "organization", "assignee", "maintenance_vendor", "location"
    )
    if user.role == roles.ROOT:
        return queryset
    if user.role in (roles.ORG_ADMIN, roles.ORG_SUBADMIN):
        return queryset.filter(organization_id=user.organization_id)
    if user.role == roles.RESIDENTIAL:
        return queryset.filter(reporter=user)
    if user.role == roles.TECHNICIAN:
        return queryset.filter(assignee=user)
    if user.role in (roles.MAINTENANCE_ADMIN, roles.BILLING):
        return queryset.filter(
            Q(maintenance_vendor_id=user.maintenance_vendor_id) | Q(status=lifecycle.MARKETPLACE)
        ).distinct()
    return queryset.none()


def ticket_stats(queryset: QuerySet) -> Dict[str, Any]:
    by_status: Dict[str, int] = {status: 0 for status, _ in lifecycle.STATUS_CHOICES}
    for entry in queryset.values("status").order_by().annotate(total=Count("id")):
        by_status[entry["status"]] = int(entry["total"])
    return {
        "total": sum(by_status.values()),
        "open": by_status[lifecycle.OPEN] + by_status[lifecycle.PENDING],
        "inProgress": by_status[lifecycle.IN_PROGRESS],
        "completed": by_status[lifecycle.COMPLETED],
        "highPriority": queryset.filter(priority=Ticket.HIGH).count(),
        "byStatus": by_status,
    }


def lock_ticket(ticket_id: int) -> Ticket:
    return Ticket.objects.select_for_update().get(pk=ticket_id)


def vendor_tier(organization_id: Optional[int], vendor: Optional[MaintenanceVendor]) -> Optional[str]:
    """The tier ``organization_id`` gives ``vendor``, or ``None`` when they are not linked."""

    if organization_id is None or vendor is None:
        return None
    link = OrganizationVendor.objects.filter(
        organization_id=organization_id, vendor=vendor, is_active=True
    ).first()
    return link.tier if link else None


def record_milestone(
    ticket: Ticket, action: str, user: Optional[User], description: str = ""
) -> TicketMilestone:
    return TicketMilestone.objects.create(
        ticket=ticket,
        milestone_type=action,
        title=MILESTONE_TITLES.get(action, action.replace("_", " ").title()),
        description=description,
        achieved_by=user,
    )


def _dispatch(payload: Dict[str, Any]) -> None:
    try:
        notify_ticket_event.delay(payload)
    except OperationalError:
        logger.exception("Could not queue notification for ticket %s", payload["ticket_id"])


def announce(ticket: Ticket, action: str, user: Optional[User], *entities: str) -> None:
    """Invalidate cached lists and queue a notification once the change commits."""

    entity_cache.invalidate_on_commit(entity_cache.TICKETS, *entities)
    payload = {
        "ticket_id": ticket.pk,
        "action": action,
        "status": ticket.status,
        "actor_id": user.pk if user else None,
    }
    transaction.on_commit(lambda: _dispatch(payload))
    logger.info("Ticket %s: %s -> %s", ticket.pk, action, ticket.status)


def ensure_valid(ticket: Ticket) -> None:
    problems = ticket.violations()
    if problems:
        raise serializers.ValidationError({"non_field_errors": problems})


def perform(
    ticket: Ticket,
    user: User,
    action: str,
    fields: Optional[Mapping[str, Any]] = None,
    tier: Optional[str] = None,
    mutate: Optional[Callable[[Ticket], None]] = None,
    description: str = "",
) -> Ticket:
    """Run one ticket action end to end and return the updated row."""

    with transaction.atomic():
        locked = lock_ticket(ticket.pk)
        outcome = lifecycle.apply(locked.status, action, actor_for(user), fields, vendor_tier=tier)
        locked.status = outcome.status
        if mutate is not None:
            mutate(locked)
        ensure_valid(locked)
        locked.save()
        record_milestone(locked, action, user, description)
        announce(locked, action, user)
    return locked


def _opens_in_marketplace(reporter: User, marketplace: bool) -> bool:
    return marketplace or reporter.role == roles.RESIDENTIAL


def check_placement(
    reporter: User, data: Mapping[str, Any], media_count: int, marketplace: bool = False
) -> None:
    """Refuse a ticket before anything is stored for it."""

    if reporter.role not in roles.ORGANIZATION_ROLES:
        raise lifecycle.ActionForbidden(f"Role '{reporter.role}' may not place tickets.")
    if reporter.role == roles.ORG_SUBADMIN and PLACE_TICKET not in (reporter.permissions or ()):
        raise lifecycle.ActionForbidden("Sub-admin lacks the place_ticket permission.")

    if _opens_in_marketplace(reporter, marketplace):
        if media_count < 1:
            raise serializers.ValidationError({"images": [MEDIA_REQUIRED]})
        return
    vendor = data.get("maintenance_vendor")
    if vendor is not None and vendor_tier(reporter.organization_id, vendor) is None:
        raise serializers.ValidationError(
            {"maintenance_vendor": ["Vendor is not linked to this organization."]}
        )


def place_with_uploads(
    reporter: User, data: Mapping[str, Any], files: List[Any], marketplace: bool = False
) -> Ticket:
    """Check the request, then store its media and create the ticket."""

    check_placement(reporter, data, len(files), marketplace)
    return place_ticket(reporter, data, store_uploads(files), marketplace=marketplace)


def place_ticket(
    reporter: User,
    data: Mapping[str, Any],
    images: Iterable[str] = (),
    marketplace: bool = False,
) -> Ticket:
    """Create a ticket; residential requests always open in the marketplace."""

    images = list(images)
    check_placement(reporter, data, len(images), marketplace)

    values = dict(data)
    if _opens_in_marketplace(reporter, marketplace):
        values["status"] = lifecycle.MARKETPLACE
        values.pop("maintenance_vendor", None)
    else:
        values.setdefault("status", lifecycle.PENDING)

    with transaction.atomic():
        ticket = Ticket(
            reporter=reporter,
            organization=reporter.organization,
            images=images,
            **values,
        )
        ensure_valid(ticket)
        ticket.save()
        record_milestone(ticket, TICKET_CREATED, reporter, ticket.title)
        announce(ticket, TICKET_CREATED, reporter)
    return ticket


def _technician_for(user: User, assignee: Optional[User]) -> User:
    technician = assignee or user
    if technician.role not in (roles.TECHNICIAN, roles.MAINTENANCE_ADMIN):
        raise serializers.ValidationError({"assignee": ["Assignee must be a technician."]})
    if technician.maintenance_vendor_id != user.maintenance_vendor_id:
        raise serializers.ValidationError({"assignee": ["Technician belongs to another vendor."]})
    return technician


def accept(
    ticket: Ticket,
    user: User,
    assignee: Optional[User] = None,
    vendor: Optional[MaintenanceVendor] = None,
) -> Ticket:
    """Accept a ticket.

    Organization roles move the ticket to ``accepted`` and may name the vendor
    to do the work. A maintenance admin records the technician, defaulting to
    themselves; repeating the action on an accepted ticket reassigns it.
    """

    tier = None
    if user.role == roles.MAINTENANCE_ADMIN:
        technician = _technician_for(user, assignee)

        def _mutate(locked: Ticket) -> None:
            locked.assignee = technician
            if user.maintenance_vendor_id is not None:
                locked.maintenance_vendor_id = user.maintenance_vendor_id

        fields = {"assignee": technician}
        description = f"Assigned to {technician.display_name}"
    else:
        engaged = vendor or ticket.maintenance_vendor
        if engaged is not None:
            tier = vendor_tier(ticket.organization_id, engaged)
            if tier is None:
                raise serializers.ValidationError(
                    {"maintenance_vendor": ["Vendor is not linked to this organization."]}
                )

        def _mutate(locked: Ticket) -> None:
            if vendor is not None:
                locked.maintenance_vendor = vendor

        fields = {"assignee": assignee}
        description = f"Sent to {vendor.name}" if vendor is not None else ""

    return perform(
        ticket, user, lifecycle.ACCEPT, fields, tier=tier, mutate=_mutate, description=description
    )


def reject(ticket: Ticket, user: User, reason: Optional[str]) -> Ticket:
    cleaned = (reason or "").strip()

    def _mutate(locked: Ticket) -> None:
        locked.rejection_reason = cleaned
        locked.assignee = None

    tier = None
    if ticket.maintenance_vendor is not None:
        tier = vendor_tier(ticket.organization_id, ticket.maintenance_vendor)

    return perform(
        ticket,
        user,
        lifecycle.REJECT,
        {"reason": cleaned},
        tier=tier,
        mutate=_mutate,
        description=cleaned,
    )


def start(ticket: Ticket, user: User) -> Ticket:
    def _mutate(locked: Ticket) -> None:
        if locked.assignee_id is None:
            locked.assignee = user

    return perform(ticket, user, lifecycle.START, mutate=_mutate)


def confirm_completion(ticket: Ticket, user: User) -> Ticket:
    return perform(ticket, user, lifecycle.CONFIRM_COMPLETION)


def request_return(ticket: Ticket, user: User, reason: Optional[str]) -> Ticket:
    cleaned = (reason or "").strip()
    return perform(ticket, user, lifecycle.REQUEST_RETURN, {"reason": cleaned}, description=cleaned)


def release_for_billing(ticket: Ticket, user: User) -> Ticket:
    return perform(ticket, user, lifecycle.RELEASE_FOR_BILLING)


def force_close(ticket: Ticket, user: User, reason: str = "") -> Ticket:
    return perform(ticket, user, lifecycle.FORCE_CLOSE, description=(reason or "").strip())


def update_ticket(ticket: Ticket, user: User, data: Mapping[str, Any]) -> Ticket:
    """Edit descriptive fields; the status only moves through lifecycle actions."""

    if ticket.status in lifecycle.TERMINAL_STATUSES:
        raise lifecycle.InvalidTransition(ticket.status, "edit")
    if user.role not in roles.ORGANIZATION_ROLES:
        raise lifecycle.ActionForbidden(f"Role '{user.role}' may not edit ticket details.")
    with transaction.atomic():
        locked = lock_ticket(ticket.pk)
        changed: List[str] = []
        for name in EDITABLE_FIELDS:
            if name in data:
                setattr(locked, name, data[name])
                changed.append(name)
        if changed:
            locked.save(update_fields=[*changed, "updated_at"])
            entity_cache.invalidate_on_commit(entity_cache.TICKETS)
    return locked


def create_work_order(ticket: Ticket, user: User, data: Mapping[str, Any]) -> WorkOrder:
    """Record a technician visit and move the ticket according to its outcome."""

    values = dict(data)
    total_hours = values.pop("total_hours", None)
    created: Dict[str, WorkOrder] = {}

    if ticket.status in lifecycle.WORK_ORDER_LOCKED_STATUSES:
        raise lifecycle.InvalidTransition(
            ticket.status, lifecycle.CREATE_WORK_ORDER, "Work orders are read-only once billing has started."
        )

    def _mutate(locked: Ticket) -> None:
        if values.get("hourly_rate") is None:
            values["hourly_rate"] = user.hourly_rate or 0
        work_order = WorkOrder(ticket=locked, technician=user, **values)
        work_order.recalculate(total_hours=total_hours)
        work_order.save()
        created["work_order"] = work_order

    perform(
        ticket,
        user,
        lifecycle.CREATE_WORK_ORDER,
        values,
        mutate=_mutate,
        description=values.get("completion_notes", ""),
    )
    entity_cache.invalidate_on_commit(entity_cache.WORK_ORDERS)
    return created["work_order"]


def update_work_order(work_order: WorkOrder, user: User, data: Mapping[str, Any]) -> WorkOrder:
    values = dict(data)
    total_hours = values.pop("total_hours", None)
    with transaction.atomic():
        ticket = lock_ticket(work_order.ticket_id)
        if ticket.status in lifecycle.WORK_ORDER_LOCKED_STATUSES:
            raise lifecycle.InvalidTransition(
                ticket.status, "edit_work_order", "Work orders are read-only once billing has started."
            )
        if user.role not in (roles.MAINTENANCE_ADMIN, roles.TECHNICIAN) or (
            user.role == roles.TECHNICIAN and work_order.technician_id != user.pk
        ):
            raise lifecycle.ActionForbidden("Only the technician or their admin may edit this work order.")

        locked = WorkOrder.objects.select_for_update().get(pk=work_order.pk)
        # The outcome already moved the ticket; it is fixed once recorded.
        values.pop("completion_status", None)
        if "hourly_rate" in values and values["hourly_rate"] is None:
            technician = locked.technician
            values["hourly_rate"] = (technician.hourly_rate if technician else None) or 0
        for name, value in values.items():
            setattr(locked, name, value)
        if total_hours is None and "time_in" not in values and "time_out" not in values:
            total_hours = locked.total_hours
        locked.recalculate(total_hours=total_hours)
        locked.save()
        entity_cache.invalidate_on_commit(entity_cache.WORK_ORDERS, entity_cache.INVOICES)
    return locked
