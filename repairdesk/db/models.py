"""SQLModel table definitions for the repair desk data layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, Numeric, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    """Generate a random UUID string."""

    return str(uuid.uuid4())


def _money_column() -> Column:
    return Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))


class CustomerTable(SQLModel, table=True):
    """Read model of the customer records tickets refer to.

    Customers are owned by the customer management screens; the ticket core
    only reads them.
    """

    __tablename__ = "customers"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(255), nullable=False, index=True))
    email: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    phone: str = Field(sa_column=Column(String(32), nullable=False))
    phone_digits: str = Field(sa_column=Column(String(32), nullable=False, index=True))
    address: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class RepairTicketTable(SQLModel, table=True):
    """Repair tickets with their price history and communication log."""

    __tablename__ = "repair_tickets"
    __table_args__ = (UniqueConstraint("ticket_number", name="uq_repair_tickets_ticket_number"),)

    id: str = Field(primary_key=True, index=True)
    ticket_number: str = Field(sa_column=Column(String(32), nullable=False, index=True))
    customer_id: str = Field(
        sa_column=Column(String(36), ForeignKey("customers.id"), nullable=False, index=True)
    )
    device_type: str = Field(sa_column=Column(String(100), nullable=False))
    brand: str = Field(sa_column=Column(String(100), nullable=False))
    device_model: str = Field(sa_column=Column(String(100), nullable=False))
    serial_number: str = Field(default="", sa_column=Column(String(100), nullable=False, default=""))
    issue_description: str = Field(sa_column=Column(Text, nullable=False))
    diagnosis: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    technician: str = Field(default="", sa_column=Column(String(255), nullable=False, default=""))
    notes: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    status: str = Field(sa_column=Column(String(50), nullable=False, index=True))
    priority: str = Field(sa_column=Column(String(20), nullable=False))
    repair_cost: Decimal = Field(default=Decimal("0.00"), sa_column=_money_column())
    parts_cost: Decimal = Field(default=Decimal("0.00"), sa_column=_money_column())
    labor_cost: Decimal = Field(default=Decimal("0.00"), sa_column=_money_column())
    total_cost: Decimal = Field(default=Decimal("0.00"), sa_column=_money_column())
    price_history: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    updates: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    estimated_completion: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    warranty_period_days: int = Field(default=30, sa_column=Column(Integer, nullable=False, default=30))
    received_date: datetime = Field(
        default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    version: int = Field(default=1, sa_column=Column(Integer, nullable=False, default=1))
