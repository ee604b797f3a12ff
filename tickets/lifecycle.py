"""Ticket and vendor-bid lifecycle rules.

Both state machines are declared as tables mapping ``(status, action)`` to a
:class:`Transition` and are evaluated by one guard. Nothing here touches the
database: callers pass the current status and an :class:`Actor` and get back
the status the record should move to, or a :class:`LifecycleError`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from accounts import roles
from accounts.tiers import ACCEPT_TICKET

# Ticket statuses
PENDING = "pending"
OPEN = "open"
MARKETPLACE = "marketplace"
ACCEPTED = "accepted"
IN_PROGRESS = "in-progress"
RETURN_NEEDED = "return_needed"
PENDING_CONFIRMATION = "pending_confirmation"
COMPLETED = "completed"
READY_FOR_BILLING = "ready_for_billing"
BILLED = "billed"
REJECTED = "rejected"
FORCE_CLOSED = "force_closed"

STATUS_CHOICES = [
    (PENDING, "Pending"),
    (OPEN, "Open"),
    (MARKETPLACE, "Marketplace"),
    (ACCEPTED, "Accepted"),
    (IN_PROGRESS, "In Progress"),
    (RETURN_NEEDED, "Return Needed"),
    (PENDING_CONFIRMATION, "Pending Confirmation"),
    (COMPLETED, "Completed"),
    (READY_FOR_BILLING, "Ready for Billing"),
    (BILLED, "Billed"),
    (REJECTED, "Rejected"),
    (FORCE_CLOSED, "Force Closed"),
]

STATUSES: FrozenSet[str] = frozenset(value for value, _ in STATUS_CHOICES)
TERMINAL_STATUSES: FrozenSet[str] = frozenset({BILLED, FORCE_CLOSED, REJECTED})

# Statuses in which a technician may be assigned.
ASSIGNABLE_STATUSES: FrozenSet[str] = frozenset(
    {
        ACCEPTED,
        IN_PROGRESS,
        RETURN_NEEDED,
        PENDING_CONFIRMATION,
        COMPLETED,
        READY_FOR_BILLING,
        BILLED,
        FORCE_CLOSED,
    }
)

# Once billing starts, recorded work is frozen.
WORK_ORDER_LOCKED_STATUSES: FrozenSet[str] = frozenset({READY_FOR_BILLING, BILLED, FORCE_CLOSED})

# Ticket actions
ACCEPT = "accept"
REJECT = "reject"
START = "start"
CREATE_WORK_ORDER = "create_work_order"
CONFIRM_COMPLETION = "confirm_completion"
REQUEST_RETURN = "request_return"
RELEASE_FOR_BILLING = "release_for_billing"
CREATE_INVOICE = "create_invoice"
SUBMIT_BID = "submit_bid"
ACCEPT_BID = "accept_bid"
FORCE_CLOSE = "force_close"

# Work order outcomes decide where a ticket goes after a visit.
WORK_COMPLETED = "completed"
WORK_RETURN_NEEDED = "return_needed"

WORK_ORDER_OUTCOMES: Dict[str, str] = {
    WORK_COMPLETED: PENDING_CONFIRMATION,
    WORK_RETURN_NEEDED: RETURN_NEEDED,
}

# Bid statuses
BID_PENDING = "pending"
BID_ACCEPTED = "accepted"
BID_REJECTED = "rejected"
BID_COUNTER = "counter"

BID_STATUS_CHOICES = [
    (BID_PENDING, "Pending"),
    (BID_ACCEPTED, "Accepted"),
    (BID_REJECTED, "Rejected"),
    (BID_COUNTER, "Counter Offer"),
]

# Bid actions
BID_ACCEPT = "accept"
BID_REJECT = "reject"
BID_COUNTER_OFFER = "counter"
BID_COUNTER_RESPONSE = "respond_to_counter"
BID_UPDATE = "update"

REQUIRED_MESSAGES: Dict[str, str] = {
    "reason": "Please provide a reason",
    "assignee": "Please select a technician",
    "work_description": "Please describe the work performed",
    "completion_status": "Please select a completion status",
    "counter_offer": "Please provide a counter offer amount",
    "counter_notes": "Please provide notes for the counter offer",
    "amount": "Please provide an amount",
    "notes": "Please provide notes",
}


class LifecycleError(Exception):
    """Base class for rejected lifecycle actions."""

    code = "lifecycle_error"


class InvalidTransition(LifecycleError):
    """The action is not available from the record's current status."""

    code = "invalid_transition"

    def __init__(self, status: str, action: str, message: Optional[str] = None) -> None:
        self.status = status
        self.action = action
        super().__init__(message or f"Cannot {action.replace('_', ' ')} while status is '{status}'.")


class ActionForbidden(LifecycleError):
    """The actor's role, permissions or vendor tiers do not allow the action."""

    code = "forbidden"


class MissingField(LifecycleError):
    """A field the transition requires was blank."""

    code = "required"

    def __init__(self, field_name: str) -> None:
        self.field = field_name
        super().__init__(REQUIRED_MESSAGES.get(field_name, f"Please provide {field_name}"))


@dataclass(frozen=True)
class Actor:
    """The acting user as the rules see it."""

    user_id: Optional[int]
    role: str
    permissions: FrozenSet[str] = frozenset()
    vendor_tiers: FrozenSet[str] = frozenset()
    organization_id: Optional[int] = None
    vendor_id: Optional[int] = None


@dataclass(frozen=True)
class Transition:
    allowed_roles: FrozenSet[str]
    next_status: Optional[str]
    required_fields: Tuple[str, ...] = ()
    # Sub-admins additionally need ``accept_ticket`` and a matching vendor tier.
    permission_gated: bool = False


@dataclass(frozen=True)
class Outcome:
    """Result of a permitted action."""

    action: str
    previous_status: str
    status: str
    transition: Transition = field(repr=False)

    @property
    def changed(self) -> bool:
        return self.status != self.previous_status


_ORG = roles.ORGANIZATION_ROLES
_ORG_ADMINS = frozenset({roles.ROOT, roles.ORG_ADMIN, roles.ORG_SUBADMIN})
_ACCEPTORS = _ORG_ADMINS | {roles.MAINTENANCE_ADMIN}
_FIELD_CREW = frozenset({roles.TECHNICIAN, roles.MAINTENANCE_ADMIN})
_INVOICERS = frozenset({roles.MAINTENANCE_ADMIN, roles.BILLING})
_CLOSERS = frozenset({roles.ROOT, roles.ORG_ADMIN})
_VENDOR_ADMINS = frozenset({roles.MAINTENANCE_ADMIN})


def _rows(
    statuses: Iterable[str], action: str, transition: Transition
) -> Dict[Tuple[str, str], Transition]:
    return {(status, action): transition for status in statuses}


TICKET_TRANSITIONS: Dict[Tuple[str, str], Transition] = {
    **_rows((PENDING, OPEN), ACCEPT, Transition(_ACCEPTORS, ACCEPTED, permission_gated=True)),
    (MARKETPLACE, ACCEPT): Transition(_VENDOR_ADMINS, ACCEPTED),
    # Re-accepting only moves the technician assignment.
    (ACCEPTED, ACCEPT): Transition(_VENDOR_ADMINS, ACCEPTED, ("assignee",)),
    **_rows(
        (PENDING, OPEN),
        REJECT,
        Transition(_ACCEPTORS, REJECTED, ("reason",), permission_gated=True),
    ),
    (MARKETPLACE, REJECT): Transition(_VENDOR_ADMINS, REJECTED, ("reason",)),
    (ACCEPTED, REJECT): Transition(_ACCEPTORS, REJECTED, ("reason",), permission_gated=True),
    (ACCEPTED, START): Transition(_FIELD_CREW, IN_PROGRESS),
    **_rows(
        (IN_PROGRESS, RETURN_NEEDED),
        CREATE_WORK_ORDER,
        Transition(_FIELD_CREW, None, ("work_description", "completion_status")),
    ),
    (PENDING_CONFIRMATION, CONFIRM_COMPLETION): Transition(_ORG, COMPLETED),
    (PENDING_CONFIRMATION, REQUEST_RETURN): Transition(_ORG, RETURN_NEEDED, ("reason",)),
    (COMPLETED, RELEASE_FOR_BILLING): Transition(_ORG | _VENDOR_ADMINS, READY_FOR_BILLING),
    (READY_FOR_BILLING, CREATE_INVOICE): Transition(_INVOICERS, BILLED),
    (MARKETPLACE, SUBMIT_BID): Transition(_VENDOR_ADMINS, None),
    (MARKETPLACE, ACCEPT_BID): Transition(_ORG, ACCEPTED, permission_gated=True),
    **_rows(STATUSES - TERMINAL_STATUSES, FORCE_CLOSE, Transition(_CLOSERS, FORCE_CLOSED)),
}

BID_TRANSITIONS: Dict[Tuple[str, str], Transition] = {
    (BID_PENDING, BID_ACCEPT): Transition(_ORG, BID_ACCEPTED, permission_gated=True),
    (BID_PENDING, BID_REJECT): Transition(_ORG, BID_REJECTED, ("reason",)),
    (BID_PENDING, BID_COUNTER_OFFER): Transition(_ORG, BID_COUNTER, ("counter_offer", "counter_notes")),
    (BID_COUNTER, BID_COUNTER_RESPONSE): Transition(_VENDOR_ADMINS, BID_PENDING, ("amount", "notes")),
    (BID_PENDING, BID_UPDATE): Transition(_VENDOR_ADMINS, BID_PENDING),
}


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _check_actor(
    transition: Transition, action: str, actor: Actor, vendor_tier: Optional[str]
) -> None:
    if actor.role not in transition.allowed_roles:
        raise ActionForbidden(f"Role '{actor.role}' may not {action.replace('_', ' ')}.")
    if transition.permission_gated and actor.role == roles.ORG_SUBADMIN:
        if ACCEPT_TICKET not in actor.permissions:
            raise ActionForbidden("Sub-admin lacks the accept_ticket permission.")
        if vendor_tier is not None and vendor_tier not in actor.vendor_tiers:
            raise ActionForbidden(f"Sub-admin may not engage {vendor_tier} vendors.")


def _evaluate(
    table: Mapping[Tuple[str, str], Transition],
    status: str,
    action: str,
    actor: Actor,
    fields: Optional[Mapping[str, Any]],
    vendor_tier: Optional[str],
) -> Transition:
    transition = table.get((status, action))
    if transition is None:
        raise InvalidTransition(status, action)
    _check_actor(transition, action, actor, vendor_tier)
    provided = fields or {}
    for name in transition.required_fields:
        if _is_blank(provided.get(name)):
            raise MissingField(name)
    return transition


def apply(
    status: str,
    action: str,
    actor: Actor,
    fields: Optional[Mapping[str, Any]] = None,
    vendor_tier: Optional[str] = None,
) -> Outcome:
    """Check a ticket action and return the resulting status.

    ``fields`` carries the submitted values the transition may require;
    ``vendor_tier`` is the organization's tier for the vendor being engaged,
    when there is one.
    """

    transition = _evaluate(TICKET_TRANSITIONS, status, action, actor, fields, vendor_tier)
    next_status = transition.next_status
    if action == CREATE_WORK_ORDER:
        outcome = (fields or {}).get("completion_status")
        if outcome not in WORK_ORDER_OUTCOMES:
            raise MissingField("completion_status")
        next_status = WORK_ORDER_OUTCOMES[outcome]
    return Outcome(action, status, next_status or status, transition)


def apply_bid(
    status: str,
    action: str,
    actor: Actor,
    fields: Optional[Mapping[str, Any]] = None,
    vendor_tier: Optional[str] = None,
) -> Outcome:
    """Check a vendor-bid action and return the bid's resulting status."""

    transition = _evaluate(BID_TRANSITIONS, status, action, actor, fields, vendor_tier)
    return Outcome(action, status, transition.next_status or status, transition)


def allowed_actions(status: str, actor: Actor) -> List[str]:
    """Ticket actions the actor may attempt from ``status``; used for UI gating."""

    allowed = []
    for (row_status, action), transition in TICKET_TRANSITIONS.items():
        if row_status != status:
            continue
        try:
            _check_actor(transition, action, actor, vendor_tier=None)
        except ActionForbidden:
            continue
        allowed.append(action)
    return allowed


def ticket_violations(status: str, rejection_reason: Optional[str], has_assignee: bool) -> List[str]:
    """Describe every ticket invariant the given field values break."""

    problems = []
    if status not in STATUSES:
        problems.append(f"Unknown status '{status}'.")
    if (status == REJECTED) == _is_blank(rejection_reason):
        problems.append("A rejection reason is required exactly when the ticket is rejected.")
    if has_assignee and status not in ASSIGNABLE_STATUSES:
        problems.append(f"A technician cannot be assigned while the ticket is '{status}'.")
    return problems


def bid_violations(
    status: str,
    rejection_reason: Optional[str],
    counter_offer: Optional[Any],
    counter_notes: Optional[str],
) -> List[str]:
    """Describe every vendor-bid invariant the given field values break."""

    problems = []
    has_counter = counter_offer is not None or not _is_blank(counter_notes)
    if status == BID_COUNTER:
        if counter_offer is None or _is_blank(counter_notes):
            problems.append("A counter offer needs both an amount and notes.")
    elif has_counter:
        problems.append("Counter offer fields are only kept while the bid is countered.")
    if (status == BID_REJECTED) == _is_blank(rejection_reason):
        problems.append("A rejection reason is required exactly when the bid is rejected.")
    return problems
