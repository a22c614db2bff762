from __future__ import annotations

from enum import Enum
from typing import Mapping, Sequence

from .errors import InvalidTransitionError, TerminalStateError


class RepairStatus(str, Enum):
    """Supported states of a repair ticket's lifecycle."""

    RECEIVED = "received"
    DIAGNOSED = "diagnosed"
    IN_REPAIR = "in_repair"
    READY_FOR_PICKUP = "ready_for_pickup"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: frozenset[RepairStatus] = frozenset({RepairStatus.DELIVERED, RepairStatus.CANCELLED})


class RepairStateMachine:
    """Validate repair ticket status transitions."""

    _DEFAULT_TRANSITIONS: Mapping[RepairStatus, Sequence[RepairStatus]] = {
        RepairStatus.RECEIVED: (RepairStatus.DIAGNOSED, RepairStatus.CANCELLED),
        RepairStatus.DIAGNOSED: (RepairStatus.IN_REPAIR, RepairStatus.CANCELLED),
        RepairStatus.IN_REPAIR: (RepairStatus.READY_FOR_PICKUP, RepairStatus.CANCELLED),
        RepairStatus.READY_FOR_PICKUP: (RepairStatus.DELIVERED, RepairStatus.CANCELLED),
        RepairStatus.DELIVERED: (),
        RepairStatus.CANCELLED: (),
    }

    def __init__(self, transitions: Mapping[RepairStatus, Sequence[RepairStatus]] | None = None) -> None:
        self._transitions = transitions or self._DEFAULT_TRANSITIONS

    @staticmethod
    def initial_state() -> RepairStatus:
        return RepairStatus.RECEIVED

    @staticmethod
    def is_terminal(status: RepairStatus) -> bool:
        return status in TERMINAL_STATUSES

    def successors(self, current: RepairStatus) -> tuple[RepairStatus, ...]:
        return tuple(self._transitions.get(current, ()))

    def can_transition(self, current: RepairStatus, target: RepairStatus) -> bool:
        if self.is_terminal(current):
            return False
        if current == target:
            return True
        return target in self._transitions.get(current, ())

    def assert_transition(self, current: RepairStatus, target: RepairStatus) -> None:
        """Raise unless ``current -> target`` is allowed.

        Terminal states reject every target, including their own value, so a
        delivered or cancelled ticket can never be observed changing.
        """

        if self.is_terminal(current):
            raise TerminalStateError(f"Ticket is {current.value}; no further status changes are allowed")
        if not self.can_transition(current, target):
            raise InvalidTransitionError(f"Invalid status transition: {current.value} -> {target.value}")
