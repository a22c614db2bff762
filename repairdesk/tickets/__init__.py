"""Repair ticket lifecycle, price-history ledger and lookup."""

from .errors import (
    ConcurrencyConflictError,
    DuplicateTicketError,
    EmptyMessageError,
    InvalidCostError,
    InvalidTransitionError,
    NotFoundError,
    RepairTicketError,
    TerminalStateError,
    ValidationError,
)
from .lookup import LookupCriteria, LookupField, PageRequest
from .models import (
    Channel,
    CostBreakdown,
    CostDelta,
    CustomerSummary,
    DeviceInfo,
    PriceHistoryEntry,
    RepairPriority,
    RepairTicket,
    TicketPage,
    TicketUpdate,
    UpdateKind,
)
from .repository import RepairTicketRepository
from .service import NotificationOutcome, RepairTicketService, TicketDetailsUpdate
from .state import RepairStateMachine, RepairStatus

__all__ = [
    "Channel",
    "ConcurrencyConflictError",
    "CostBreakdown",
    "CostDelta",
    "CustomerSummary",
    "DeviceInfo",
    "DuplicateTicketError",
    "EmptyMessageError",
    "InvalidCostError",
    "InvalidTransitionError",
    "LookupCriteria",
    "LookupField",
    "NotFoundError",
    "NotificationOutcome",
    "PageRequest",
    "PriceHistoryEntry",
    "RepairPriority",
    "RepairStateMachine",
    "RepairStatus",
    "RepairTicket",
    "RepairTicketError",
    "RepairTicketRepository",
    "RepairTicketService",
    "TerminalStateError",
    "TicketDetailsUpdate",
    "TicketPage",
    "TicketUpdate",
    "UpdateKind",
    "ValidationError",
]
