from __future__ import annotations

import re
import uuid

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from repairdesk.db.models import CustomerTable
from repairdesk.tickets.models import CustomerAddress, CustomerSummary
from repairdesk.tickets.repository import RepairTicketRepository


@pytest_asyncio.fixture
async def engine(tmp_path):
    # A file database so concurrent sessions see each other's commits.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'repairdesk.db'}", future=True)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def repository(engine, session_factory):
    repository = RepairTicketRepository(session_factory, engine=engine)
    await repository.ensure_schema()
    return repository


@pytest.fixture
def add_customer(repository, session_factory):
    async def factory(
        *,
        name: str = "Asha Verma",
        phone: str = "+91 98765 43210",
        email: str | None = None,
        city: str = "Pune",
    ) -> CustomerSummary:
        customer_id = str(uuid.uuid4())
        email = email or f"{customer_id[:8]}@example.com"
        async with session_factory() as session:
            async with session.begin():
                session.add(
                    CustomerTable(
                        id=customer_id,
                        name=name,
                        email=email.lower(),
                        phone=phone,
                        phone_digits=re.sub(r"\D", "", phone),
                        address={"line1": "12 MG Road", "city": city, "state": "MH", "pincode": "411001"},
                    )
                )
        return CustomerSummary(
            id=customer_id,
            name=name,
            phone=phone,
            email=email.lower(),
            address=CustomerAddress(line1="12 MG Road", city=city, state="MH", pincode="411001"),
        )

    return factory
