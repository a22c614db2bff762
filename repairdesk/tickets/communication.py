from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable

from .errors import EmptyMessageError
from .models import Channel, RepairTicket, TicketUpdate, UpdateKind


def log_update(
    ticket: RepairTicket,
    message: str,
    channels: Iterable[Channel | str] = (),
    *,
    kind: UpdateKind = UpdateKind.MANUAL,
    now: datetime | None = None,
) -> RepairTicket:
    """Append a customer-facing message to ``ticket.updates``.

    Nothing is sent from here; ``channels`` records where the message went.
    Terminal tickets still accept entries so completion notices can be logged.
    """

    text = (message or "").strip()
    if not text:
        raise EmptyMessageError("Message is required and cannot be empty")

    timestamp = now or datetime.now(timezone.utc)
    entry = TicketUpdate(
        message=text,
        sent_at=timestamp,
        via=frozenset(Channel(channel) for channel in channels),
        kind=kind,
    )
    return replace(ticket, updates=(*ticket.updates, entry), updated_at=timestamp)
