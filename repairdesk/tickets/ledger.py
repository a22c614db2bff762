"""Cost ledger: keeps ``total_cost`` derived and records every price change.

The ledger is append-only and deduplicated on the total: a snapshot is added
only when the freshly computed total differs from the last recorded total,
or when nothing has been recorded yet.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .errors import InvalidCostError, TerminalStateError
from .models import CENT, CostBreakdown, CostDelta, PriceHistoryEntry, RepairTicket, UNATTRIBUTED

# Cost columns are Numeric(12, 2).
MAX_AMOUNT = Decimal("10000000000")


@dataclass(slots=True, frozen=True)
class LedgerResult:
    """New ticket state plus the entry appended to its price history, if any."""

    ticket: RepairTicket
    entry: PriceHistoryEntry | None


def to_amount(value: Decimal | int | float | str, *, component: str) -> Decimal:
    """Convert a cost component into a non-negative two-place ``Decimal``."""

    if isinstance(value, bool):
        raise InvalidCostError(f"{component} must be a number")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise InvalidCostError(f"{component} must be a number, got {value!r}") from exc
    if not amount.is_finite():
        raise InvalidCostError(f"{component} must be a finite amount")
    if amount < 0:
        raise InvalidCostError(f"{component} cannot be negative (got {amount})")
    if amount >= MAX_AMOUNT:
        raise InvalidCostError(f"{component} must be below {MAX_AMOUNT}")
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise InvalidCostError(f"{component} cannot be stored as an amount: {value!r}") from exc


def merge_costs(current: CostBreakdown, delta: CostDelta) -> CostBreakdown:
    """Apply the provided components of ``delta`` on top of ``current``."""

    return CostBreakdown(
        repair_cost=current.repair_cost
        if delta.repair_cost is None
        else to_amount(delta.repair_cost, component="repair_cost"),
        parts_cost=current.parts_cost
        if delta.parts_cost is None
        else to_amount(delta.parts_cost, component="parts_cost"),
        labor_cost=current.labor_cost
        if delta.labor_cost is None
        else to_amount(delta.labor_cost, component="labor_cost"),
    )


def initial_costs(delta: CostDelta) -> CostBreakdown:
    """Costs for a ticket at intake. No ledger entry is produced on creation."""

    return merge_costs(CostBreakdown(), delta)


def apply_cost_update(
    ticket: RepairTicket,
    delta: CostDelta,
    actor: str | None = None,
    *,
    now: datetime | None = None,
) -> LedgerResult:
    """Return ``ticket`` with ``delta`` applied and the ledger entry it produced.

    An empty ``delta`` re-checks the current costs against the ledger, which is
    how status changes take their price snapshot.
    """

    if ticket.is_terminal:
        raise TerminalStateError(f"Ticket {ticket.ticket_number} is {ticket.status.value}; costs are frozen")

    costs = merge_costs(ticket.costs, delta)
    timestamp = now or datetime.now(timezone.utc)
    total = costs.total_cost

    entry: PriceHistoryEntry | None = None
    history = ticket.price_history
    if not history or history[-1].total_cost != total:
        entry = PriceHistoryEntry(
            repair_cost=costs.repair_cost,
            parts_cost=costs.parts_cost,
            labor_cost=costs.labor_cost,
            total_cost=total,
            updated_at=timestamp,
            updated_by=actor or UNATTRIBUTED,
        )
        history = (*history, entry)

    updated = replace(ticket, costs=costs, price_history=history, updated_at=timestamp)
    return LedgerResult(ticket=updated, entry=entry)
