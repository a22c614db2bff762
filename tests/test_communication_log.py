from datetime import datetime, timezone

import pytest

from repairdesk.tickets.communication import log_update
from repairdesk.tickets.errors import EmptyMessageError
from repairdesk.tickets.ledger import initial_costs
from repairdesk.tickets.models import Channel, CostDelta, DeviceInfo, RepairPriority, RepairTicket, UpdateKind
from repairdesk.tickets.state import RepairStatus


def _make_ticket(*, status: RepairStatus = RepairStatus.DIAGNOSED) -> RepairTicket:
    now = datetime(2024, 3, 7, 10, 0, tzinfo=timezone.utc)
    return RepairTicket(
        id="ticket-1",
        ticket_number="0703202432101234",
        customer_id="customer-1",
        device=DeviceInfo(device_type="Laptop", brand="HP", model="Pavilion 15"),
        issue_description="Battery drains fast",
        status=status,
        priority=RepairPriority.LOW,
        costs=initial_costs(CostDelta()),
        received_date=now,
        updated_at=now,
    )


def test_log_update_appends_entry_with_channels():
    sent_at = datetime(2024, 3, 8, 9, 15, tzinfo=timezone.utc)

    updated = log_update(_make_ticket(), "  Battery replaced, testing now  ", ["whatsapp"], now=sent_at)

    assert len(updated.updates) == 1
    entry = updated.updates[0]
    assert entry.message == "Battery replaced, testing now"
    assert entry.sent_at == sent_at
    assert entry.via == frozenset({Channel.WHATSAPP})
    assert entry.kind is UpdateKind.MANUAL
    assert updated.updated_at == sent_at


def test_log_update_without_channels_records_no_delivery():
    updated = log_update(_make_ticket(), "Awaiting parts")

    assert updated.updates[0].via == frozenset()


def test_entries_keep_insertion_order():
    ticket = _make_ticket()
    for message in ("first", "second", "third"):
        ticket = log_update(ticket, message, [Channel.EMAIL])

    assert [entry.message for entry in ticket.updates] == ["first", "second", "third"]


@pytest.mark.parametrize("message", ["", "   ", "\n\t"])
def test_blank_message_is_rejected(message):
    with pytest.raises(EmptyMessageError):
        log_update(_make_ticket(), message)


def test_terminal_ticket_still_accepts_log_entries():
    updated = log_update(_make_ticket(status=RepairStatus.DELIVERED), "Thanks for visiting", kind=UpdateKind.COMPLETION)

    assert updated.updates[-1].kind is UpdateKind.COMPLETION


def test_unknown_channel_is_rejected():
    with pytest.raises(ValueError):
        log_update(_make_ticket(), "hello", ["sms"])
