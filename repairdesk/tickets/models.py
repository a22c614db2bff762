from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from .state import RepairStatus, TERMINAL_STATUSES

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
UNATTRIBUTED = "unattributed"


class RepairPriority(str, Enum):
    """Advisory priority, independent of the ticket status."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Channel(str, Enum):
    """Customer-facing channels a message can be sent through."""

    WHATSAPP = "whatsapp"
    EMAIL = "email"


class UpdateKind(str, Enum):
    """What produced a communication log entry."""

    MANUAL = "manual"
    STATUS_CHANGE = "status_change"
    COMPLETION = "completion"


@dataclass(slots=True, frozen=True)
class CostBreakdown:
    """Cost components of a repair; the total is always derived."""

    repair_cost: Decimal = ZERO
    parts_cost: Decimal = ZERO
    labor_cost: Decimal = ZERO

    @property
    def total_cost(self) -> Decimal:
        return (self.repair_cost + self.parts_cost + self.labor_cost).quantize(CENT)


@dataclass(slots=True, frozen=True)
class CostDelta:
    """Partial cost update; ``None`` keeps the current component."""

    repair_cost: Decimal | int | float | str | None = None
    parts_cost: Decimal | int | float | str | None = None
    labor_cost: Decimal | int | float | str | None = None


@dataclass(slots=True, frozen=True)
class PriceHistoryEntry:
    """Immutable snapshot of the cost fields at the time of a price change."""

    repair_cost: Decimal
    parts_cost: Decimal
    labor_cost: Decimal
    total_cost: Decimal
    updated_at: datetime
    updated_by: str = UNATTRIBUTED


@dataclass(slots=True, frozen=True)
class TicketUpdate:
    """One customer-facing message recorded against a ticket."""

    message: str
    sent_at: datetime
    via: frozenset[Channel] = frozenset()
    kind: UpdateKind = UpdateKind.MANUAL


@dataclass(slots=True, frozen=True)
class DeviceInfo:
    device_type: str
    brand: str
    model: str
    serial_number: str = ""

    def describe(self) -> str:
        return " ".join(part for part in (self.device_type, self.brand, self.model) if part).strip()


@dataclass(slots=True, frozen=True)
class CustomerAddress:
    line1: str = ""
    line2: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""


@dataclass(slots=True, frozen=True)
class CustomerSummary:
    """Display fields of the customer a ticket refers to."""

    id: str
    name: str
    phone: str
    email: str
    address: CustomerAddress = field(default_factory=CustomerAddress)


@dataclass(slots=True, frozen=True)
class RepairTicket:
    """Aggregate representing a device repair from intake to delivery."""

    id: str
    ticket_number: str
    customer_id: str
    device: DeviceInfo
    issue_description: str
    status: RepairStatus
    priority: RepairPriority
    costs: CostBreakdown
    received_date: datetime
    updated_at: datetime
    diagnosis: str = ""
    technician: str = ""
    notes: str = ""
    estimated_completion: datetime | None = None
    warranty_period_days: int = 30
    price_history: tuple[PriceHistoryEntry, ...] = ()
    updates: tuple[TicketUpdate, ...] = ()
    version: int = 1
    customer: CustomerSummary | None = None

    @property
    def total_cost(self) -> Decimal:
        return self.costs.total_cost

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(slots=True, frozen=True)
class TicketPage:
    """A page of tickets together with paging metadata."""

    tickets: tuple[RepairTicket, ...]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return (self.total + self.limit - 1) // self.limit
