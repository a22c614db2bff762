from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from fastapi.testclient import TestClient
from unittest.mock import AsyncMock
import pytest

from repairdesk.api.routes import tickets as ticket_routes
from repairdesk.dependencies import tickets as ticket_deps
from repairdesk.dependencies.auth import Role, User
from repairdesk.main import create_app
from repairdesk.tickets.errors import InvalidCostError, InvalidTransitionError, NotFoundError
from repairdesk.tickets.ledger import apply_cost_update, initial_costs
from repairdesk.tickets.lookup import LookupField, PageRequest
from repairdesk.tickets.models import (
    Channel,
    CostDelta,
    CustomerSummary,
    DeviceInfo,
    RepairPriority,
    RepairTicket,
    TicketPage,
    TicketUpdate,
)
from repairdesk.tickets.notifications import ChannelDelivery, NotificationResult
from repairdesk.tickets.service import NotificationOutcome
from repairdesk.tickets.state import RepairStatus


def _make_ticket(*, status: RepairStatus = RepairStatus.RECEIVED) -> RepairTicket:
    now = datetime.now(timezone.utc)
    return RepairTicket(
        id=str(uuid4()),
        ticket_number="0703202432101234",
        customer_id="customer-1",
        device=DeviceInfo(device_type="Laptop", brand="Acer", model="Aspire 7"),
        issue_description="No display",
        status=status,
        priority=RepairPriority.MEDIUM,
        costs=initial_costs(CostDelta(repair_cost=500, parts_cost=200)),
        received_date=now,
        updated_at=now,
        customer=CustomerSummary(id="customer-1", name="Asha Verma", phone="+91 98765 43210", email="asha@example.com"),
    )


def _page(*tickets: RepairTicket) -> TicketPage:
    return TicketPage(tickets=tickets, total=len(tickets), page=1, limit=20)


@pytest.fixture
def ticket_client():
    app = create_app()
    service = AsyncMock()

    user_staff = User("staff", (Role.STAFF, Role.VIEWER))
    user_viewer = User("viewer", (Role.VIEWER,))

    async def override_service():
        return service

    app.dependency_overrides[ticket_routes.get_ticket_service] = override_service
    app.dependency_overrides[ticket_deps.require_staff] = lambda: user_staff
    app.dependency_overrides[ticket_deps.require_viewer] = lambda: user_viewer

    client = TestClient(app)
    try:
        yield client, service
    finally:
        app.dependency_overrides.clear()


def test_create_repair_returns_created(ticket_client):
    client, service = ticket_client
    ticket = _make_ticket()
    service.create_ticket = AsyncMock(return_value=ticket)

    response = client.post(
        "/repairs",
        json={
            "customer_id": "customer-1",
            "device_type": "Laptop",
            "brand": "Acer",
            "model": "Aspire 7",
            "issue_description": "No display",
            "repair_cost": "500",
            "parts_cost": 200,
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["id"] == ticket.id
    assert Decimal(body["total_cost"]) == Decimal("700.00")
    assert body["price_history"] == []
    kwargs = service.create_ticket.await_args.kwargs
    assert kwargs["actor"] == "staff"
    assert kwargs["costs"] == CostDelta(repair_cost=Decimal("500"), parts_cost=Decimal("200"))


def test_create_repair_reports_invalid_cost(ticket_client):
    client, service = ticket_client
    service.create_ticket = AsyncMock(side_effect=InvalidCostError("repair_cost cannot be negative"))

    response = client.post(
        "/repairs",
        json={
            "customer_id": "customer-1",
            "device_type": "Laptop",
            "brand": "Acer",
            "model": "Aspire 7",
            "issue_description": "No display",
            "repair_cost": -1,
        },
    )

    assert response.status_code == 422
    assert "negative" in response.json()["detail"]


def test_list_repairs_passes_filters(ticket_client):
    client, service = ticket_client
    service.list_tickets = AsyncMock(return_value=_page(_make_ticket(status=RepairStatus.DIAGNOSED)))

    response = client.get("/repairs", params={"status": "diagnosed", "page": 1, "limit": 5})

    assert response.status_code == 200
    assert response.json()["total"] == 1
    kwargs = service.list_tickets.await_args.kwargs
    assert kwargs["status"] == RepairStatus.DIAGNOSED
    assert kwargs["page"] == PageRequest(page=1, limit=5)


def test_list_repairs_rejects_oversized_limit(ticket_client):
    client, service = ticket_client
    service.list_tickets = AsyncMock()

    response = client.get("/repairs", params={"limit": 1000})

    assert response.status_code == 422
    service.list_tickets.assert_not_awaited()


def test_track_is_public_and_normalizes_phone(ticket_client):
    client, service = ticket_client
    service.find_tickets = AsyncMock(return_value=_page(_make_ticket()))

    response = client.get("/repairs/track", params={"phone": "+91 98765-43210"})

    assert response.status_code == 200
    item = response.json()["items"][0]
    assert item["ticket_number"] == "0703202432101234"
    assert item["status"] == "received"
    criteria, page = service.find_tickets.await_args.args
    assert criteria.field is LookupField.PHONE
    assert criteria.value == "919876543210"


def test_track_hides_staff_and_contact_details(ticket_client):
    client, service = ticket_client
    ticket = apply_cost_update(
        replace(_make_ticket(), technician="Ravi", notes="Customer dropped it twice"),
        CostDelta(labor_cost=100),
        "front-desk",
    ).ticket
    service.find_tickets = AsyncMock(return_value=_page(ticket))

    response = client.get("/repairs/track", params={"ticket": ticket.ticket_number})

    assert response.status_code == 200
    body = response.text
    item = response.json()["items"][0]
    assert Decimal(item["total_cost"]) == Decimal("800.00")
    for hidden in ("customer", "customer_id", "notes", "technician", "price_history", "id", "version"):
        assert hidden not in item
    for secret in ("asha@example.com", "+91 98765 43210", "Customer dropped it twice", "Ravi", "front-desk"):
        assert secret not in body


def test_track_rejects_short_phone_before_querying(ticket_client):
    client, service = ticket_client
    service.find_tickets = AsyncMock()

    response = client.get("/repairs/track", params={"phone": "98765"})

    assert response.status_code == 422
    service.find_tickets.assert_not_awaited()


def test_track_requires_exactly_one_key(ticket_client):
    client, _ = ticket_client

    assert client.get("/repairs/track").status_code == 422
    assert client.get("/repairs/track", params={"ticket": "1", "name": "Asha"}).status_code == 422


def test_track_without_matches_returns_not_found(ticket_client):
    client, service = ticket_client
    service.find_tickets = AsyncMock(return_value=_page())

    response = client.get("/repairs/track", params={"name": "Nobody"})

    assert response.status_code == 404


def test_get_repair_not_found(ticket_client):
    client, service = ticket_client
    service.get_ticket = AsyncMock(side_effect=NotFoundError("Ticket missing not found"))

    response = client.get("/repairs/missing")

    assert response.status_code == 404


def test_patch_requires_fields(ticket_client):
    client, service = ticket_client
    service.update_details = AsyncMock()

    response = client.patch(f"/repairs/{uuid4()}", json={})

    assert response.status_code == 400
    service.update_details.assert_not_awaited()


def test_patch_forwards_details(ticket_client):
    client, service = ticket_client
    ticket = _make_ticket()
    service.update_details = AsyncMock(return_value=ticket)

    response = client.patch(f"/repairs/{ticket.id}", json={"diagnosis": "Faulty backlight", "priority": "high"})

    assert response.status_code == 200
    changes = service.update_details.await_args.args[1]
    assert changes.diagnosis == "Faulty backlight"
    assert changes.priority is RepairPriority.HIGH
    assert changes.notes is None


def test_update_costs_returns_ticket(ticket_client):
    client, service = ticket_client
    ticket = apply_cost_update(_make_ticket(), CostDelta(labor_cost=100), "staff").ticket
    service.apply_cost_update = AsyncMock(return_value=ticket)

    response = client.put(f"/repairs/{ticket.id}/costs", json={"labor_cost": 100})

    assert response.status_code == 200
    body = response.json()
    assert Decimal(body["total_cost"]) == Decimal("800.00")
    assert body["price_history"][0]["updated_by"] == "staff"


def test_update_costs_requires_a_component(ticket_client):
    client, _ = ticket_client

    response = client.put(f"/repairs/{uuid4()}/costs", json={})

    assert response.status_code == 400


def test_status_change_conflict(ticket_client):
    client, service = ticket_client
    service.transition = AsyncMock(side_effect=InvalidTransitionError("Invalid status transition"))

    response = client.post(f"/repairs/{uuid4()}/status", json={"status": "in_repair"})

    assert response.status_code == 409


def test_send_update_reports_delivery(ticket_client):
    client, service = ticket_client
    ticket = _make_ticket()
    result = NotificationResult(
        deliveries=(
            ChannelDelivery(channel=Channel.EMAIL, success=True),
            ChannelDelivery(channel=Channel.WHATSAPP, success=False, detail="HTTP 500"),
        )
    )
    service.send_update = AsyncMock(return_value=NotificationOutcome(ticket=ticket, notification=result))

    response = client.post(f"/repairs/{ticket.id}/send-update", json={"message": "Parts arrived"})

    assert response.status_code == 200
    body = response.json()
    assert body["delivered_via"] == {"whatsapp": False, "email": True}
    assert body["notifier_configured"] is True
    assert len(body["deliveries"]) == 2


def test_complete_without_notifier(ticket_client):
    client, service = ticket_client
    ticket = _make_ticket(status=RepairStatus.DELIVERED)
    service.complete = AsyncMock(return_value=NotificationOutcome(ticket=ticket, notification=None))

    response = client.post(f"/repairs/{ticket.id}/complete")

    assert response.status_code == 200
    body = response.json()
    assert body["ticket"]["status"] == "delivered"
    assert body["notifier_configured"] is False
    assert body["deliveries"] == []


def test_log_update_and_history_endpoints(ticket_client):
    client, service = ticket_client
    base = apply_cost_update(_make_ticket(), CostDelta(repair_cost=600), "staff").ticket
    sent_at = datetime(2024, 3, 8, tzinfo=timezone.utc)
    update = TicketUpdate(message="Called customer", sent_at=sent_at, via=frozenset({Channel.WHATSAPP}))
    ticket = replace(base, updates=(update,))
    service.log_update = AsyncMock(return_value=ticket)
    service.get_ticket = AsyncMock(return_value=ticket)

    logged = client.post(f"/repairs/{ticket.id}/updates", json={"message": "Called customer", "via": ["whatsapp"]})
    history = client.get(f"/repairs/{ticket.id}/price-history")
    updates = client.get(f"/repairs/{ticket.id}/updates")

    assert logged.status_code == 201
    assert service.log_update.await_args.args[2] == [Channel.WHATSAPP]
    assert [Decimal(item["total_cost"]) for item in history.json()] == [Decimal("800.00")]
    assert updates.json()[0]["via"] == {"whatsapp": True, "email": False}
    assert updates.json()[0]["kind"] == "manual"


def test_service_unavailable_when_not_configured():
    app = create_app()
    app.dependency_overrides[ticket_deps.require_viewer] = lambda: User("viewer", (Role.VIEWER,))
    client = TestClient(app)

    response = client.get(f"/repairs/{uuid4()}")

    assert response.status_code == 503


def test_staff_routes_require_credentials():
    app = create_app()
    app.dependency_overrides[ticket_routes.get_ticket_service] = lambda: AsyncMock()
    client = TestClient(app)

    anonymous = client.post(f"/repairs/{uuid4()}/status", json={"status": "diagnosed"})
    viewer = client.post(
        f"/repairs/{uuid4()}/status",
        json={"status": "diagnosed"},
        headers={"Authorization": "Bearer viewer-token"},
    )

    assert anonymous.status_code == 403
    assert viewer.status_code == 403


def test_ping():
    client = TestClient(create_app())

    assert client.get("/ping").json() == {"status": "ok"}
    assert client.get("/ping/ready").status_code == 503
