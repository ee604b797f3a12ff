"""Labels and colours clients use to render ticket and bid states."""
from __future__ import annotations

from typing import Dict, List

from accounts import roles

from . import lifecycle

STATUS_LABELS: Dict[str, str] = dict(lifecycle.STATUS_CHOICES)
STATUS_LABELS[lifecycle.MARKETPLACE] = "Open for Bids"

# Vendors read the same states as a to-do list.
VENDOR_STATUS_LABELS: Dict[str, str] = {
    lifecycle.ACCEPTED: "Action Required",
    lifecycle.IN_PROGRESS: "Work Started",
    lifecycle.RETURN_NEEDED: "Return Visit",
    lifecycle.PENDING_CONFIRMATION: "Customer Review",
    lifecycle.READY_FOR_BILLING: "Ready to Bill",
    lifecycle.BILLED: "Invoice Sent",
    lifecycle.COMPLETED: "Work Approved",
    lifecycle.REJECTED: "Declined",
    lifecycle.FORCE_CLOSED: "Closed",
}

STATUS_COLORS: Dict[str, str] = {
    lifecycle.PENDING: "#f59e0b",
    lifecycle.OPEN: "#06b6d4",
    lifecycle.MARKETPLACE: "#3b82f6",
    lifecycle.ACCEPTED: "#8b5cf6",
    lifecycle.IN_PROGRESS: "#3b82f6",
    lifecycle.RETURN_NEEDED: "#f97316",
    lifecycle.PENDING_CONFIRMATION: "#f97316",
    lifecycle.COMPLETED: "#10b981",
    lifecycle.READY_FOR_BILLING: "#7c3aed",
    lifecycle.BILLED: "#1f2937",
    lifecycle.REJECTED: "#ef4444",
    lifecycle.FORCE_CLOSED: "#6b7280",
}

BID_STATUS_COLORS: Dict[str, str] = {
    lifecycle.BID_PENDING: "#f59e0b",
    lifecycle.BID_ACCEPTED: "#10b981",
    lifecycle.BID_REJECTED: "#ef4444",
    lifecycle.BID_COUNTER: "#3b82f6",
}

PRIORITY_COLORS: Dict[str, str] = {
    "high": "#ef4444",
    "medium": "#f59e0b",
    "low": "#10b981",
}

DEFAULT_COLOR = "#94a3b8"


def status_label(status: str, role: str = "") -> str:
    if role in roles.VENDOR_ROLES and status in VENDOR_STATUS_LABELS:
        return VENDOR_STATUS_LABELS[status]
    return STATUS_LABELS.get(status, status)


def status_badge(status: str, role: str = "") -> Dict[str, str]:
    return {
        "value": status,
        "label": status_label(status, role),
        "color": STATUS_COLORS.get(status, DEFAULT_COLOR),
    }


def bid_badge(status: str) -> Dict[str, str]:
    return {
        "value": status,
        "label": dict(lifecycle.BID_STATUS_CHOICES).get(status, status),
        "color": BID_STATUS_COLORS.get(status, DEFAULT_COLOR),
    }


def priority_color(priority: str) -> str:
    return PRIORITY_COLORS.get(priority, DEFAULT_COLOR)


def status_options(role: str) -> List[Dict[str, str]]:
    """Filter options for a ticket list, in the order each audience works them."""

    if role in roles.VENDOR_ROLES:
        return [status_badge(status, role) for status in VENDOR_STATUS_LABELS]
    return [status_badge(status, role) for status, _ in lifecycle.STATUS_CHOICES]
