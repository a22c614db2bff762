from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from repairdesk.dependencies.tickets import PageDep, StaffUser, ViewerUser, get_ticket_service
from repairdesk.tickets.errors import RepairTicketError
from repairdesk.tickets.lookup import LookupCriteria
from repairdesk.tickets.models import (
    Channel,
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
from repairdesk.tickets.notifications import NotificationResult
from repairdesk.tickets.service import NotificationOutcome, RepairTicketService, TicketDetailsUpdate
from repairdesk.tickets.state import RepairStatus

router = APIRouter(prefix="/repairs", tags=["repairs"])


class RepairCreateRequest(BaseModel):
    customer_id: str = Field(..., min_length=1)
    device_type: str = Field(..., min_length=1, max_length=50)
    brand: str = Field(..., min_length=1, max_length=100)
    model: str = Field(..., min_length=1, max_length=100)
    serial_number: str = Field(default="", max_length=100)
    issue_description: str = Field(..., min_length=1)
    priority: RepairPriority = RepairPriority.MEDIUM
    diagnosis: str = ""
    technician: str = ""
    notes: str = ""
    estimated_completion: datetime | None = None
    warranty_period_days: int | None = Field(default=None, ge=0)
    repair_cost: Decimal | None = None
    parts_cost: Decimal | None = None
    labor_cost: Decimal | None = None


class RepairDetailsRequest(BaseModel):
    device_type: str | None = Field(default=None, min_length=1, max_length=50)
    brand: str | None = Field(default=None, min_length=1, max_length=100)
    model: str | None = Field(default=None, min_length=1, max_length=100)
    serial_number: str | None = Field(default=None, max_length=100)
    issue_description: str | None = Field(default=None, min_length=1)
    diagnosis: str | None = None
    technician: str | None = None
    notes: str | None = None
    priority: RepairPriority | None = None
    estimated_completion: datetime | None = None
    warranty_period_days: int | None = Field(default=None, ge=0)

    def ensure_payload(self) -> None:
        if not self.model_dump(exclude_none=True):
            raise HTTPException(status_code=400, detail="No fields provided for update")


class CostUpdateRequest(BaseModel):
    repair_cost: Decimal | None = None
    parts_cost: Decimal | None = None
    labor_cost: Decimal | None = None

    def ensure_payload(self) -> None:
        if self.repair_cost is None and self.parts_cost is None and self.labor_cost is None:
            raise HTTPException(status_code=400, detail="No cost fields provided for update")


class StatusChangeRequest(BaseModel):
    status: RepairStatus


class UpdateLogRequest(BaseModel):
    message: str
    via: list[Channel] = Field(default_factory=list)


class SendUpdateRequest(BaseModel):
    message: str


class DeviceResponse(BaseModel):
    device_type: str
    brand: str
    model: str
    serial_number: str


class CustomerResponse(BaseModel):
    id: str
    name: str
    phone: str
    email: str


class PriceHistoryResponse(BaseModel):
    repair_cost: Decimal
    parts_cost: Decimal
    labor_cost: Decimal
    total_cost: Decimal
    updated_at: datetime
    updated_by: str


class DeliveryFlags(BaseModel):
    whatsapp: bool = False
    email: bool = False


class TicketUpdateResponse(BaseModel):
    message: str
    sent_at: datetime
    via: DeliveryFlags
    kind: UpdateKind


class RepairTicketResponse(BaseModel):
    id: str
    ticket_number: str
    customer_id: str
    customer: CustomerResponse | None
    device: DeviceResponse
    issue_description: str
    diagnosis: str
    technician: str
    notes: str
    status: RepairStatus
    priority: RepairPriority
    repair_cost: Decimal
    parts_cost: Decimal
    labor_cost: Decimal
    total_cost: Decimal
    estimated_completion: datetime | None
    warranty_period_days: int
    received_date: datetime
    updated_at: datetime
    version: int
    price_history: list[PriceHistoryResponse]
    updates: list[TicketUpdateResponse]


class TicketPageResponse(BaseModel):
    items: list[RepairTicketResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class TrackedRepairResponse(BaseModel):
    """What an anonymous customer sees: progress and price, no contact or staff details."""

    ticket_number: str
    device_type: str
    brand: str
    model: str
    issue_description: str
    status: RepairStatus
    priority: RepairPriority
    total_cost: Decimal
    estimated_completion: datetime | None
    warranty_period_days: int
    received_date: datetime
    updated_at: datetime
    updates: list[TicketUpdateResponse]


class TrackedPageResponse(BaseModel):
    items: list[TrackedRepairResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class ChannelDeliveryResponse(BaseModel):
    channel: Channel
    success: bool
    detail: str


class NotificationOutcomeResponse(BaseModel):
    ticket: RepairTicketResponse
    delivered_via: DeliveryFlags
    deliveries: list[ChannelDeliveryResponse]
    notifier_configured: bool


TicketServiceDep = Annotated[RepairTicketService, Depends(get_ticket_service)]


def _http_error(exc: RepairTicketError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


def _flags(channels: frozenset[Channel]) -> DeliveryFlags:
    return DeliveryFlags(whatsapp=Channel.WHATSAPP in channels, email=Channel.EMAIL in channels)


def _customer_response(customer: CustomerSummary | None) -> CustomerResponse | None:
    if customer is None:
        return None
    return CustomerResponse(id=customer.id, name=customer.name, phone=customer.phone, email=customer.email)


def _entry_response(entry: PriceHistoryEntry) -> PriceHistoryResponse:
    return PriceHistoryResponse(
        repair_cost=entry.repair_cost,
        parts_cost=entry.parts_cost,
        labor_cost=entry.labor_cost,
        total_cost=entry.total_cost,
        updated_at=entry.updated_at,
        updated_by=entry.updated_by,
    )


def _update_response(update: TicketUpdate) -> TicketUpdateResponse:
    return TicketUpdateResponse(message=update.message, sent_at=update.sent_at, via=_flags(update.via), kind=update.kind)


def _to_response(ticket: RepairTicket) -> RepairTicketResponse:
    return RepairTicketResponse(
        id=ticket.id,
        ticket_number=ticket.ticket_number,
        customer_id=ticket.customer_id,
        customer=_customer_response(ticket.customer),
        device=DeviceResponse(
            device_type=ticket.device.device_type,
            brand=ticket.device.brand,
            model=ticket.device.model,
            serial_number=ticket.device.serial_number,
        ),
        issue_description=ticket.issue_description,
        diagnosis=ticket.diagnosis,
        technician=ticket.technician,
        notes=ticket.notes,
        status=ticket.status,
        priority=ticket.priority,
        repair_cost=ticket.costs.repair_cost,
        parts_cost=ticket.costs.parts_cost,
        labor_cost=ticket.costs.labor_cost,
        total_cost=ticket.total_cost,
        estimated_completion=ticket.estimated_completion,
        warranty_period_days=ticket.warranty_period_days,
        received_date=ticket.received_date,
        updated_at=ticket.updated_at,
        version=ticket.version,
        price_history=[_entry_response(entry) for entry in ticket.price_history],
        updates=[_update_response(update) for update in ticket.updates],
    )


def _page_response(page: TicketPage) -> TicketPageResponse:
    return TicketPageResponse(
        items=[_to_response(ticket) for ticket in page.tickets],
        total=page.total,
        page=page.page,
        limit=page.limit,
        total_pages=page.total_pages,
    )


def _tracked_page_response(page: TicketPage) -> TrackedPageResponse:
    return TrackedPageResponse(
        items=[
            TrackedRepairResponse(
                ticket_number=ticket.ticket_number,
                device_type=ticket.device.device_type,
                brand=ticket.device.brand,
                model=ticket.device.model,
                issue_description=ticket.issue_description,
                status=ticket.status,
                priority=ticket.priority,
                total_cost=ticket.total_cost,
                estimated_completion=ticket.estimated_completion,
                warranty_period_days=ticket.warranty_period_days,
                received_date=ticket.received_date,
                updated_at=ticket.updated_at,
                updates=[_update_response(update) for update in ticket.updates],
            )
            for ticket in page.tickets
        ],
        total=page.total,
        page=page.page,
        limit=page.limit,
        total_pages=page.total_pages,
    )


def _outcome_response(outcome: NotificationOutcome) -> NotificationOutcomeResponse:
    result: NotificationResult | None = outcome.notification
    deliveries = result.deliveries if result is not None else ()
    delivered = result.delivered_channels if result is not None else frozenset()
    return NotificationOutcomeResponse(
        ticket=_to_response(outcome.ticket),
        delivered_via=_flags(delivered),
        deliveries=[
            ChannelDeliveryResponse(channel=item.channel, success=item.success, detail=item.detail)
            for item in deliveries
        ],
        notifier_configured=result is not None,
    )


@router.post("", response_model=RepairTicketResponse, status_code=status.HTTP_201_CREATED)
async def create_repair(
    payload: RepairCreateRequest,
    service: TicketServiceDep,
    user: StaffUser,
) -> RepairTicketResponse:
    try:
        ticket = await service.create_ticket(
            customer_id=payload.customer_id,
            device=DeviceInfo(
                device_type=payload.device_type,
                brand=payload.brand,
                model=payload.model,
                serial_number=payload.serial_number,
            ),
            issue_description=payload.issue_description,
            costs=CostDelta(
                repair_cost=payload.repair_cost,
                parts_cost=payload.parts_cost,
                labor_cost=payload.labor_cost,
            ),
            priority=payload.priority,
            diagnosis=payload.diagnosis,
            technician=payload.technician,
            notes=payload.notes,
            estimated_completion=payload.estimated_completion,
            warranty_period_days=payload.warranty_period_days,
            actor=user.username,
        )
    except RepairTicketError as exc:
        raise _http_error(exc) from exc
    return _to_response(ticket)


@router.get("", response_model=TicketPageResponse)
async def list_repairs(
    service: TicketServiceDep,
    page: PageDep,
    _: ViewerUser,
    status_filter: RepairStatus | None = Query(default=None, alias="status"),
    received_from: datetime | None = Query(default=None),
    received_to: datetime | None = Query(default=None),
) -> TicketPageResponse:
    try:
        result = await service.list_tickets(
            status=status_filter,
            received_from=received_from,
            received_to=received_to,
            page=page,
        )
    except RepairTicketError as exc:
        raise _http_error(exc) from exc
    return _page_response(result)


@router.get("/track", response_model=TrackedPageResponse, summary="Public repair tracker")
async def track_repair(
    service: TicketServiceDep,
    page: PageDep,
    ticket: str | None = Query(default=None),
    phone: str | None = Query(default=None),
    name: str | None = Query(default=None),
    email: str | None = Query(default=None),
) -> TrackedPageResponse:
    try:
        criteria = LookupCriteria.build(ticket_number=ticket, phone=phone, name=name, email=email)
        result = await service.find_tickets(criteria, page)
    except RepairTicketError as exc:
        raise _http_error(exc) from exc
    if result.total == 0:
        raise HTTPException(status_code=404, detail="No repair found with the provided details")
    return _tracked_page_response(result)


@router.get("/{ticket_id}", response_model=RepairTicketResponse)
async def get_repair(ticket_id: str, service: TicketServiceDep, _: ViewerUser) -> RepairTicketResponse:
    try:
        ticket = await service.get_ticket(ticket_id)
    except RepairTicketError as exc:
        raise _http_error(exc) from exc
    return _to_response(ticket)


@router.patch("/{ticket_id}", response_model=RepairTicketResponse)
async def update_repair(
    ticket_id: str,
    payload: RepairDetailsRequest,
    service: TicketServiceDep,
    user: StaffUser,
) -> RepairTicketResponse:
    payload.ensure_payload()
    try:
        ticket = await service.update_details(
            ticket_id,
            TicketDetailsUpdate(**payload.model_dump()),
            actor=user.username,
        )
    except RepairTicketError as exc:
        raise _http_error(exc) from exc
    return _to_response(ticket)


@router.put("/{ticket_id}/costs", response_model=RepairTicketResponse)
async def update_costs(
    ticket_id: str,
    payload: CostUpdateRequest,
    service: TicketServiceDep,
    user: StaffUser,
) -> RepairTicketResponse:
    payload.ensure_payload()
    delta = CostDelta(
        repair_cost=payload.repair_cost,
        parts_cost=payload.parts_cost,
        labor_cost=payload.labor_cost,
    )
    try:
        ticket = await service.apply_cost_update(ticket_id, delta, actor=user.username)
    except RepairTicketError as exc:
        raise _http_error(exc) from exc
    return _to_response(ticket)


@router.post("/{ticket_id}/status", response_model=RepairTicketResponse)
async def change_repair_status(
    ticket_id: str,
    payload: StatusChangeRequest,
    service: TicketServiceDep,
    user: StaffUser,
) -> RepairTicketResponse:
    try:
        ticket = await service.transition(ticket_id, payload.status, actor=user.username)
    except RepairTicketError as exc:
        raise _http_error(exc) from exc
    return _to_response(ticket)


@router.post("/{ticket_id}/complete", response_model=NotificationOutcomeResponse)
async def complete_repair(
    ticket_id: str,
    service: TicketServiceDep,
    user: StaffUser,
) -> NotificationOutcomeResponse:
    try:
        outcome = await service.complete(ticket_id, actor=user.username)
    except RepairTicketError as exc:
        raise _http_error(exc) from exc
    return _outcome_response(outcome)


@router.post("/{ticket_id}/updates", response_model=RepairTicketResponse, status_code=status.HTTP_201_CREATED)
async def log_repair_update(
    ticket_id: str,
    payload: UpdateLogRequest,
    service: TicketServiceDep,
    user: StaffUser,
) -> RepairTicketResponse:
    try:
        ticket = await service.log_update(ticket_id, payload.message, payload.via, actor=user.username)
    except RepairTicketError as exc:
        raise _http_error(exc) from exc
    return _to_response(ticket)


@router.post("/{ticket_id}/send-update", response_model=NotificationOutcomeResponse)
async def send_repair_update(
    ticket_id: str,
    payload: SendUpdateRequest,
    service: TicketServiceDep,
    user: StaffUser,
) -> NotificationOutcomeResponse:
    try:
        outcome = await service.send_update(ticket_id, payload.message, actor=user.username)
    except RepairTicketError as exc:
        raise _http_error(exc) from exc
    return _outcome_response(outcome)


@router.get("/{ticket_id}/price-history", response_model=list[PriceHistoryResponse])
async def get_price_history(ticket_id: str, service: TicketServiceDep, _: ViewerUser) -> list[PriceHistoryResponse]:
    try:
        ticket = await service.get_ticket(ticket_id)
    except RepairTicketError as exc:
        raise _http_error(exc) from exc
    return [_entry_response(entry) for entry in ticket.price_history]


@router.get("/{ticket_id}/updates", response_model=list[TicketUpdateResponse])
async def get_repair_updates(ticket_id: str, service: TicketServiceDep, _: ViewerUser) -> list[TicketUpdateResponse]:
    try:
        ticket = await service.get_ticket(ticket_id)
    except RepairTicketError as exc:
        raise _http_error(exc) from exc
    return [_update_response(update) for update in ticket.updates]
