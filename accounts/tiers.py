"""Vendor-tier grants for organization sub-admins.

Tiers are ordered: a sub-admin allowed to accept work for ``tier_3`` vendors
is always allowed ``tier_2`` and ``tier_1`` as well. Every function here is
pure and recomputes the grant set from its inputs.
"""
from __future__ import annotations

from typing import Iterable, Tuple

PLACE_TICKET = "place_ticket"
ACCEPT_TICKET = "accept_ticket"

PERMISSION_CHOICES = [
    (PLACE_TICKET, "Place Ticket"),
    (ACCEPT_TICKET, "Accept Ticket"),
]

TIER_1 = "tier_1"
TIER_2 = "tier_2"
TIER_3 = "tier_3"

TIER_CHOICES = [
    (TIER_1, "Tier 1 - Basic"),
    (TIER_2, "Tier 2 - Standard"),
    (TIER_3, "Tier 3 - Premium"),
]

TIER_ORDER: Tuple[str, ...] = (TIER_1, TIER_2, TIER_3)


def _rank(tier: str) -> int:
    try:
        return TIER_ORDER.index(tier)
    except ValueError:
        raise ValueError(f"Unknown vendor tier: {tier!r}") from None


def set_tier(current_tiers: Iterable[str], tier: str, checked: bool) -> frozenset:
    """Return the tier set after ticking or unticking ``tier``.

    Ticking a tier grants it and every tier below it; unticking a tier
    revokes it and every tier above it.
    """

    rank = _rank(tier)
    tiers = set(current_tiers)
    if checked:
        tiers.update(TIER_ORDER[: rank + 1])
    else:
        tiers.difference_update(TIER_ORDER[rank:])
    return frozenset(tiers)


def normalize_tiers(tiers: Iterable[str]) -> frozenset:
    """Close a tier set downward so the highest granted tier implies the rest."""

    ranks = [_rank(tier) for tier in tiers]
    if not ranks:
        return frozenset()
    return frozenset(TIER_ORDER[: max(ranks) + 1])


def set_permission(
    permissions: Iterable[str],
    tiers: Iterable[str],
    permission: str,
    checked: bool,
) -> Tuple[frozenset, frozenset]:
    """Toggle a permission; dropping ``accept_ticket`` clears every vendor tier."""

    updated = set(permissions)
    if checked:
        updated.add(permission)
    else:
        updated.discard(permission)

    if ACCEPT_TICKET not in updated:
        return frozenset(updated), frozenset()
    return frozenset(updated), frozenset(tiers)


def sorted_tiers(tiers: Iterable[str]) -> list:
    return sorted(tiers, key=_rank)
