from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from repairdesk.api.routes import ping, tickets
from repairdesk.core.config import Settings, get_settings
from repairdesk.core.logging import configure_logging, init_tracer, shutdown_tracer
from repairdesk.tickets.notifications import HttpNotifier, StoreProfile
from repairdesk.tickets.numbering import TicketNumberIssuer
from repairdesk.tickets.repository import RepairTicketRepository
from repairdesk.tickets.service import RepairTicketService
from repairdesk.tickets.state import RepairStateMachine


def _to_asyncpg_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    return dsn


def build_ticket_service(settings: Settings, repository: RepairTicketRepository) -> RepairTicketService:
    notifier = None
    if settings.notification_gateway_url:
        notifier = HttpNotifier(
            settings.notification_gateway_url,
            token=settings.notification_gateway_token,
            timeout=settings.notification_timeout,
            default_country_code=settings.default_country_code,
        )
    store = StoreProfile(
        name=settings.store_name,
        phone=settings.store_phone,
        email=settings.store_email,
        hours=settings.store_hours,
    )
    return RepairTicketService(
        repository,
        state_machine=RepairStateMachine(),
        number_issuer=TicketNumberIssuer(),
        notifier=notifier,
        store=store,
        mutation_max_attempts=settings.mutation_max_attempts,
        ticket_number_max_attempts=settings.ticket_number_max_attempts,
        default_warranty_days=settings.default_warranty_days,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider
    db_engine = None
    app.state.db_engine = None
    app.state.ticket_service = None
    try:
        db_engine = create_async_engine(_to_asyncpg_dsn(settings.database_url), future=True)
        session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
        repository = RepairTicketRepository(session_factory, engine=db_engine)
        await repository.ensure_schema()
        app.state.ticket_service = build_ticket_service(settings, repository)
        app.state.db_engine = db_engine
    except Exception:  # pragma: no cover - service initialisation best effort
        logger.exception("Repair ticket service could not be initialised")
        app.state.ticket_service = None
        if db_engine is not None:
            await db_engine.dispose()
            db_engine = None
    try:
        yield
    finally:
        if db_engine is not None:
            await db_engine.dispose()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    return app


app = create_app()
