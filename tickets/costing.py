"""Money arithmetic for bids, work orders and invoices."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, Optional

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parts_cost(parts: Iterable[Mapping[str, Any]]) -> Decimal:
    """Sum ``quantity * cost`` over part lines; quantity defaults to one."""

    total = ZERO
    for part in parts or ():
        quantity = to_decimal(part.get("quantity", 1) or 1)
        total += quantity * to_decimal(part.get("cost"))
    return quantize(total)


def charges_cost(charges: Iterable[Mapping[str, Any]]) -> Decimal:
    return quantize(sum((to_decimal(charge.get("cost")) for charge in charges or ()), ZERO))


def bid_total(hourly_rate: Any, estimated_hours: Any, parts: Iterable[Mapping[str, Any]]) -> Decimal:
    """Labor estimate plus parts for a vendor bid."""

    labor = to_decimal(hourly_rate) * to_decimal(estimated_hours)
    return quantize(labor + parts_cost(parts))


def hours_between(time_in: Optional[datetime], time_out: Optional[datetime]) -> Decimal:
    if time_in is None or time_out is None or time_out <= time_in:
        return ZERO
    seconds = Decimal(int((time_out - time_in).total_seconds()))
    return quantize(seconds / Decimal(3600))


@dataclass(frozen=True)
class WorkOrderCosts:
    total_hours: Decimal
    labor_cost: Decimal
    parts_cost: Decimal
    other_charges_cost: Decimal

    @property
    def total_cost(self) -> Decimal:
        return self.labor_cost + self.parts_cost + self.other_charges_cost


def work_order_costs(
    hourly_rate: Any,
    parts_used: Iterable[Mapping[str, Any]],
    other_charges: Iterable[Mapping[str, Any]],
    total_hours: Any = None,
    time_in: Optional[datetime] = None,
    time_out: Optional[datetime] = None,
) -> WorkOrderCosts:
    """Cost breakdown for a visit; hours come from the clock times when not given."""

    hours = to_decimal(total_hours) if total_hours not in (None, "") else hours_between(time_in, time_out)
    return WorkOrderCosts(
        total_hours=quantize(hours),
        labor_cost=quantize(hours * to_decimal(hourly_rate)),
        parts_cost=parts_cost(parts_used),
        other_charges_cost=charges_cost(other_charges),
    )


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax: Decimal

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.tax


def line_amount(quantity: Any, rate: Any) -> Decimal:
    return quantize(to_decimal(quantity) * to_decimal(rate))


def invoice_totals(
    work_order_totals: Iterable[Any],
    item_amounts: Iterable[Any],
    tax: Any,
) -> InvoiceTotals:
    """Subtotal is every work order's total plus every extra line; total adds tax."""

    subtotal = sum((to_decimal(value) for value in work_order_totals), ZERO)
    subtotal += sum((to_decimal(value) for value in item_amounts), ZERO)
    return InvoiceTotals(subtotal=quantize(subtotal), tax=quantize(to_decimal(tax)))
