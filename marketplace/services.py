"""Vendor-bid operations for tickets open in the marketplace."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Mapping, Optional

from django.db import transaction
from rest_framework import serializers

from accounts import roles
from accounts.models import User
from taskscout_service import cache as entity_cache
from tickets import lifecycle
from tickets import services as ticket_services

from .models import VendorBid

logger = logging.getLogger(__name__)

SUPERSEDED_REASON = "Another vendor's bid was accepted."

# Bid fields a vendor may revise while the bid is pending.
REVISABLE_FIELDS = ("hourly_rate", "estimated_hours", "response_time", "parts", "additional_notes")


def visible_bids(user: User):
    queryset = VendorBid.objects.select_related("ticket", "vendor", "submitted_by")
    if user.role in roles.VENDOR_ROLES:
        return queryset.filter(vendor_id=user.maintenance_vendor_id)
    return queryset.filter(ticket__in=ticket_services.visible_tickets(user).values("pk"))


def _lock_bid(bid_id: int) -> VendorBid:
    return VendorBid.objects.select_for_update().get(pk=bid_id)


def _ensure_valid(bid: VendorBid) -> None:
    problems = bid.violations()
    if problems:
        raise serializers.ValidationError({"non_field_errors": problems})


def _ensure_own(bid: VendorBid, user: User) -> None:
    if bid.vendor_id != user.maintenance_vendor_id:
        raise lifecycle.ActionForbidden("Only the vendor that placed this bid may change it.")


def _ensure_open(ticket, action: str) -> None:
    if ticket.status != lifecycle.MARKETPLACE:
        raise lifecycle.InvalidTransition(
            ticket.status, action, "Bids can only change while the ticket is open for bids."
        )


def submit_bid(ticket, user: User, data: Mapping[str, Any]) -> VendorBid:
    """Place the user's company bid on a marketplace ticket; one bid per vendor."""

    with transaction.atomic():
        locked = ticket_services.lock_ticket(ticket.pk)
        lifecycle.apply(locked.status, lifecycle.SUBMIT_BID, ticket_services.actor_for(user))
        if user.maintenance_vendor_id is None:
            raise serializers.ValidationError(
                {"non_field_errors": ["Only users attached to a maintenance vendor can bid."]}
            )
        if VendorBid.objects.filter(ticket=locked, vendor_id=user.maintenance_vendor_id).exists():
            raise serializers.ValidationError(
                {"non_field_errors": ["Your company has already bid on this ticket."]}
            )

        bid = VendorBid(ticket=locked, vendor_id=user.maintenance_vendor_id, submitted_by=user)
        for name in REVISABLE_FIELDS:
            if name in data:
                setattr(bid, name, data[name])
        bid.recalculate_total()
        bid.save()
        ticket_services.record_milestone(
            locked,
            lifecycle.SUBMIT_BID,
            user,
            f"{bid.vendor.name} bid {bid.total_amount}",
        )
        ticket_services.announce(locked, lifecycle.SUBMIT_BID, user, entity_cache.BIDS)
    return bid


def update_bid(bid: VendorBid, user: User, data: Mapping[str, Any]) -> VendorBid:
    with transaction.atomic():
        locked = _lock_bid(bid.pk)
        lifecycle.apply_bid(locked.status, lifecycle.BID_UPDATE, ticket_services.actor_for(user))
        _ensure_own(locked, user)
        _ensure_open(locked.ticket, lifecycle.BID_UPDATE)
        for name in REVISABLE_FIELDS:
            if name in data:
                setattr(locked, name, data[name])
        locked.recalculate_total()
        locked.save()
        entity_cache.invalidate_on_commit(entity_cache.BIDS)
    return locked


def respond_to_bid(
    bid: VendorBid,
    user: User,
    decision: str,
    reason: Optional[str] = None,
    counter_offer: Optional[Decimal] = None,
    counter_notes: Optional[str] = None,
) -> VendorBid:
    """Accept, reject or counter a pending bid on behalf of the ticket's owner.

    Accepting hands the ticket to the bid's vendor and closes the other open
    bids; rejecting or countering leaves the ticket in the marketplace.
    """

    actor = ticket_services.actor_for(user)
    with transaction.atomic():
        locked = _lock_bid(bid.pk)
        ticket = ticket_services.lock_ticket(locked.ticket_id)
        _ensure_open(ticket, decision)
        tier = ticket_services.vendor_tier(ticket.organization_id, locked.vendor)
        fields = {
            "reason": (reason or "").strip(),
            "counter_offer": counter_offer,
            "counter_notes": (counter_notes or "").strip(),
        }
        outcome = lifecycle.apply_bid(locked.status, decision, actor, fields, vendor_tier=tier)

        if decision == lifecycle.BID_ACCEPT:
            ticket_outcome = lifecycle.apply(
                ticket.status, lifecycle.ACCEPT_BID, actor, vendor_tier=tier
            )
            locked.status = outcome.status
            locked.approved = True
            ticket.status = ticket_outcome.status
            ticket.maintenance_vendor_id = locked.vendor_id
            ticket_services.ensure_valid(ticket)
            ticket.save()
            superseded = ticket.bids.exclude(pk=locked.pk).filter(
                status__in=(lifecycle.BID_PENDING, lifecycle.BID_COUNTER)
            ).update(
                status=lifecycle.BID_REJECTED,
                rejection_reason=SUPERSEDED_REASON,
                counter_offer=None,
                counter_notes="",
            )
            logger.info("Closed %s competing bids on ticket %s", superseded, ticket.pk)
            milestone = lifecycle.ACCEPT_BID
            description = f"{locked.vendor.name} for {locked.total_amount}"
        elif decision == lifecycle.BID_REJECT:
            locked.status = outcome.status
            locked.rejection_reason = fields["reason"]
            milestone = "bid_rejected"
            description = fields["reason"]
        else:
            locked.status = outcome.status
            locked.counter_offer = counter_offer
            locked.counter_notes = fields["counter_notes"]
            milestone = "bid_countered"
            description = f"Countered at {counter_offer}: {fields['counter_notes']}"

        _ensure_valid(locked)
        locked.save()
        ticket_services.record_milestone(ticket, milestone, user, description)
        ticket_services.announce(ticket, milestone, user, entity_cache.BIDS)
    return locked


def respond_to_counter(
    bid: VendorBid, user: User, amount: Optional[Decimal], notes: Optional[str]
) -> VendorBid:
    """The vendor answers a counter offer; the agreed amount becomes the bid total."""

    cleaned = (notes or "").strip()
    with transaction.atomic():
        locked = _lock_bid(bid.pk)
        ticket = ticket_services.lock_ticket(locked.ticket_id)
        lifecycle.apply_bid(
            locked.status,
            lifecycle.BID_COUNTER_RESPONSE,
            ticket_services.actor_for(user),
            {"amount": amount, "notes": cleaned},
        )
        _ensure_own(locked, user)
        _ensure_open(ticket, lifecycle.BID_COUNTER_RESPONSE)

        locked.status = lifecycle.BID_PENDING
        locked.total_amount = amount
        locked.counter_offer = None
        locked.counter_notes = ""
        locked.additional_notes = "\n\n".join(
            part for part in (locked.additional_notes, f"Counter response: {cleaned}") if part
        )
        _ensure_valid(locked)
        locked.save()
        ticket_services.record_milestone(ticket, "counter_response", user, cleaned)
        ticket_services.announce(ticket, "counter_response", user, entity_cache.BIDS)
    return locked
