from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, Sequence

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from repairdesk.db.models import CustomerTable, RepairTicketTable

from .errors import ConcurrencyConflictError, DuplicateTicketError, NotFoundError
from .lookup import LookupCriteria, LookupField, PageRequest
from .models import (
    CENT,
    Channel,
    CostBreakdown,
    CustomerAddress,
    CustomerSummary,
    DeviceInfo,
    PriceHistoryEntry,
    RepairPriority,
    RepairTicket,
    TicketPage,
    TicketUpdate,
    UNATTRIBUTED,
    UpdateKind,
)
from .state import RepairStatus, TERMINAL_STATUSES


class RepairTicketRepository:
    """Persistence for repair tickets with optimistic version checks.

    Each ticket lives in a single row, price history and communication log
    included, so every mutation is one conditional ``UPDATE``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def insert(self, ticket: RepairTicket) -> RepairTicket:
        """Persist a new ticket; the unique constraint rejects reused numbers."""

        async with self._session_factory() as session:
            try:
                async with session.begin():
                    session.add(self._ticket_to_table(ticket))
            except IntegrityError as exc:
                if "ticket_number" in str(exc.orig):
                    raise DuplicateTicketError(f"Ticket number {ticket.ticket_number} already exists") from exc
                raise

        stored = await self.get(ticket.id)
        if stored is None:
            raise NotFoundError(f"Ticket {ticket.id} not found after insert")
        return stored

    async def get(self, ticket_id: str) -> RepairTicket | None:
        return await self._fetch_one(RepairTicketTable.id == ticket_id)

    async def get_by_ticket_number(self, ticket_number: str) -> RepairTicket | None:
        return await self._fetch_one(RepairTicketTable.ticket_number == ticket_number)

    async def save(self, ticket: RepairTicket, *, expected_version: int) -> RepairTicket:
        """Write ``ticket`` only if the stored version is still ``expected_version``."""

        values = self._ticket_values(ticket)
        statement = (
            update(RepairTicketTable)
            .where(RepairTicketTable.id == ticket.id, RepairTicketTable.version == expected_version)
            .values(**values, version=expected_version + 1)
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(statement)
                if result.rowcount == 0:
                    current = await session.scalar(
                        select(RepairTicketTable.version).where(RepairTicketTable.id == ticket.id)
                    )
                    if current is None:
                        raise NotFoundError(f"Ticket {ticket.id} not found")
                    raise ConcurrencyConflictError(
                        f"Ticket {ticket.ticket_number} changed concurrently "
                        f"(expected version {expected_version}, found {current})"
                    )
        return replace(ticket, version=expected_version + 1)

    async def find(self, criteria: LookupCriteria, page: PageRequest) -> TicketPage:
        """Resolve tickets by one search key; open tickets first, newest first."""

        conditions = self._criteria_conditions(criteria)
        outer = criteria.field is LookupField.TICKET_NUMBER
        return await self._fetch_page(conditions, page, outer_join=outer, open_first=True)

    async def list_tickets(
        self,
        *,
        status: RepairStatus | None = None,
        received_from: datetime | None = None,
        received_to: datetime | None = None,
        page: PageRequest | None = None,
    ) -> TicketPage:
        conditions: list[Any] = []
        if status is not None:
            conditions.append(RepairTicketTable.status == status.value)
        if received_from is not None:
            conditions.append(RepairTicketTable.received_date >= received_from)
        if received_to is not None:
            conditions.append(RepairTicketTable.received_date < received_to)
        return await self._fetch_page(conditions, page or PageRequest(), outer_join=True, open_first=False)

    async def get_customer(self, customer_id: str) -> CustomerSummary | None:
        async with self._session_factory() as session:
            row = await session.get(CustomerTable, customer_id)
        if row is None:
            return None
        return self._table_to_customer(row)

    async def _fetch_one(self, condition: Any) -> RepairTicket | None:
        statement = (
            select(RepairTicketTable, CustomerTable)
            .join(CustomerTable, CustomerTable.id == RepairTicketTable.customer_id, isouter=True)
            .where(condition)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            row = result.first()
        if row is None:
            return None
        ticket_row, customer_row = row
        return self._table_to_ticket(ticket_row, customer_row)

    async def _fetch_page(
        self,
        conditions: Sequence[Any],
        page: PageRequest,
        *,
        outer_join: bool,
        open_first: bool,
    ) -> TicketPage:
        join_on = CustomerTable.id == RepairTicketTable.customer_id
        statement = (
            select(RepairTicketTable, CustomerTable)
            .join(CustomerTable, join_on, isouter=outer_join)
            .where(*conditions)
        )
        ordering: list[Any] = [_terminal_rank()] if open_first else []
        ordering += [RepairTicketTable.received_date.desc(), RepairTicketTable.ticket_number.asc()]
        statement = statement.order_by(*ordering).offset(page.offset).limit(page.limit)

        count_statement = (
            select(func.count(RepairTicketTable.id))
            .select_from(RepairTicketTable)
            .join(CustomerTable, join_on, isouter=outer_join)
            .where(*conditions)
        )

        async with self._session_factory() as session:
            total = await session.scalar(count_statement)
            result = await session.execute(statement)
            rows = result.all()

        tickets = tuple(self._table_to_ticket(ticket_row, customer_row) for ticket_row, customer_row in rows)
        return TicketPage(tickets=tickets, total=int(total or 0), page=page.page, limit=page.limit)

    @staticmethod
    def _criteria_conditions(criteria: LookupCriteria) -> list[Any]:
        if criteria.field is LookupField.TICKET_NUMBER:
            return [RepairTicketTable.ticket_number == criteria.value]
        if criteria.field is LookupField.PHONE:
            return [CustomerTable.phone_digits.contains(criteria.value)]
        if criteria.field is LookupField.EMAIL:
            return [func.lower(CustomerTable.email) == criteria.value]
        return [func.lower(CustomerTable.name).contains(term, autoescape=True) for term in criteria.name_terms]

    @staticmethod
    def _ticket_values(ticket: RepairTicket) -> dict[str, Any]:
        return {
            "ticket_number": ticket.ticket_number,
            "customer_id": ticket.customer_id,
            "device_type": ticket.device.device_type,
            "brand": ticket.device.brand,
            "device_model": ticket.device.model,
            "serial_number": ticket.device.serial_number,
            "issue_description": ticket.issue_description,
            "diagnosis": ticket.diagnosis,
            "technician": ticket.technician,
            "notes": ticket.notes,
            "status": ticket.status.value,
            "priority": ticket.priority.value,
            "repair_cost": ticket.costs.repair_cost,
            "parts_cost": ticket.costs.parts_cost,
            "labor_cost": ticket.costs.labor_cost,
            "total_cost": ticket.costs.total_cost,
            "price_history": [_entry_to_json(entry) for entry in ticket.price_history],
            "updates": [_update_to_json(entry) for entry in ticket.updates],
            "estimated_completion": ticket.estimated_completion,
            "warranty_period_days": ticket.warranty_period_days,
            "received_date": ticket.received_date,
            "updated_at": ticket.updated_at,
        }

    @classmethod
    def _ticket_to_table(cls, ticket: RepairTicket) -> RepairTicketTable:
        return RepairTicketTable(id=ticket.id, version=ticket.version, **cls._ticket_values(ticket))

    @classmethod
    def _table_to_ticket(cls, row: RepairTicketTable, customer: CustomerTable | None) -> RepairTicket:
        return RepairTicket(
            id=row.id,
            ticket_number=row.ticket_number,
            customer_id=row.customer_id,
            device=DeviceInfo(
                device_type=row.device_type,
                brand=row.brand,
                model=row.device_model,
                serial_number=row.serial_number or "",
            ),
            issue_description=row.issue_description,
            diagnosis=row.diagnosis or "",
            technician=row.technician or "",
            notes=row.notes or "",
            status=RepairStatus(row.status),
            priority=RepairPriority(row.priority),
            costs=CostBreakdown(
                repair_cost=_to_decimal(row.repair_cost),
                parts_cost=_to_decimal(row.parts_cost),
                labor_cost=_to_decimal(row.labor_cost),
            ),
            price_history=tuple(_json_to_entry(item) for item in row.price_history or []),
            updates=tuple(_json_to_update(item) for item in row.updates or []),
            estimated_completion=_optional_datetime(row.estimated_completion),
            warranty_period_days=int(row.warranty_period_days),
            received_date=_ensure_datetime(row.received_date),
            updated_at=_ensure_datetime(row.updated_at),
            version=int(row.version),
            customer=cls._table_to_customer(customer) if customer is not None else None,
        )

    @staticmethod
    def _table_to_customer(row: CustomerTable) -> CustomerSummary:
        address = row.address or {}
        return CustomerSummary(
            id=row.id,
            name=row.name,
            phone=row.phone,
            email=row.email,
            address=CustomerAddress(
                line1=str(address.get("line1", "")),
                line2=str(address.get("line2", "") or ""),
                city=str(address.get("city", "")),
                state=str(address.get("state", "")),
                pincode=str(address.get("pincode", "")),
            ),
        )


def _terminal_rank() -> Any:
    terminal = sorted(status.value for status in TERMINAL_STATUSES)
    return case((RepairTicketTable.status.in_(terminal), 1), else_=0)


def _entry_to_json(entry: PriceHistoryEntry) -> dict[str, Any]:
    return {
        "repair_cost": str(entry.repair_cost),
        "parts_cost": str(entry.parts_cost),
        "labor_cost": str(entry.labor_cost),
        "total_cost": str(entry.total_cost),
        "updated_at": entry.updated_at.isoformat(),
        "updated_by": entry.updated_by,
    }


def _json_to_entry(data: Mapping[str, Any]) -> PriceHistoryEntry:
    return PriceHistoryEntry(
        repair_cost=_to_decimal(data.get("repair_cost")),
        parts_cost=_to_decimal(data.get("parts_cost")),
        labor_cost=_to_decimal(data.get("labor_cost")),
        total_cost=_to_decimal(data.get("total_cost")),
        updated_at=_ensure_datetime(data["updated_at"]),
        updated_by=str(data.get("updated_by") or UNATTRIBUTED),
    )


def _update_to_json(entry: TicketUpdate) -> dict[str, Any]:
    return {
        "message": entry.message,
        "sent_at": entry.sent_at.isoformat(),
        "via": {channel.value: channel in entry.via for channel in Channel},
        "kind": entry.kind.value,
    }


def _json_to_update(data: Mapping[str, Any]) -> TicketUpdate:
    via = data.get("via") or {}
    return TicketUpdate(
        message=str(data["message"]),
        sent_at=_ensure_datetime(data["sent_at"]),
        via=frozenset(channel for channel in Channel if via.get(channel.value)),
        kind=UpdateKind(data.get("kind", UpdateKind.MANUAL.value)),
    )


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT)


def _optional_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    return _ensure_datetime(value)


def _ensure_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed
