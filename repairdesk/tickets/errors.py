from __future__ import annotations


class RepairTicketError(RuntimeError):
    """Base error for repair ticket operations.

    ``status_code`` is the HTTP status the API layer reports for the error.
    """

    status_code: int = 400


class InvalidCostError(RepairTicketError):
    """Raised when a cost component is negative or not a finite amount."""

    status_code = 422


class EmptyMessageError(RepairTicketError):
    """Raised when a communication log entry has a blank message."""

    status_code = 422


class ValidationError(RepairTicketError):
    """Raised when lookup criteria or paging parameters are malformed."""

    status_code = 422


class TerminalStateError(RepairTicketError):
    """Raised when a delivered or cancelled ticket would be mutated."""

    status_code = 409


class InvalidTransitionError(RepairTicketError):
    """Raised when the requested status is not a direct successor."""

    status_code = 409


class DuplicateTicketError(RepairTicketError):
    """Raised when a ticket number collides with an existing ticket."""

    status_code = 409


class ConcurrencyConflictError(RepairTicketError):
    """Raised when the stored ticket version moved since it was read."""

    status_code = 409


class NotFoundError(RepairTicketError):
    """Raised when a ticket or customer could not be located."""

    status_code = 404
