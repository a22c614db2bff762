from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Iterable

from opentelemetry import trace

from .communication import log_update
from .errors import (
    ConcurrencyConflictError,
    DuplicateTicketError,
    EmptyMessageError,
    NotFoundError,
    TerminalStateError,
    ValidationError,
)
from .ledger import apply_cost_update, initial_costs
from .lookup import LookupCriteria, PageRequest
from .models import (
    Channel,
    CostDelta,
    DeviceInfo,
    RepairPriority,
    RepairTicket,
    TicketPage,
    UpdateKind,
)
from .notifications import (
    ChannelDelivery,
    NotificationResult,
    NotificationTemplate,
    Notifier,
    StoreProfile,
    build_request,
    render_completion,
    render_status_update,
)
from .numbering import TicketNumberIssuer
from .repository import RepairTicketRepository
from .state import RepairStateMachine, RepairStatus

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(slots=True, frozen=True)
class TicketDetailsUpdate:
    """Staff edits to descriptive fields; ``None`` leaves a field unchanged."""

    device_type: str | None = None
    brand: str | None = None
    model: str | None = None
    serial_number: str | None = None
    issue_description: str | None = None
    diagnosis: str | None = None
    technician: str | None = None
    notes: str | None = None
    priority: RepairPriority | None = None
    estimated_completion: datetime | None = None
    warranty_period_days: int | None = None


@dataclass(slots=True, frozen=True)
class NotificationOutcome:
    """A committed ticket change plus the best-effort notification result.

    ``notification`` is ``None`` when no notifier is configured.
    """

    ticket: RepairTicket
    notification: NotificationResult | None


class RepairTicketService:
    """High level orchestration for the repair ticket lifecycle.

    Every mutation reads the ticket, computes the new state with the pure
    ledger / state machine / communication functions and writes it back
    conditionally on the version it read, retrying on version conflicts.
    """

    def __init__(
        self,
        repository: RepairTicketRepository,
        *,
        state_machine: RepairStateMachine | None = None,
        number_issuer: TicketNumberIssuer | None = None,
        notifier: Notifier | None = None,
        store: StoreProfile | None = None,
        mutation_max_attempts: int = 3,
        ticket_number_max_attempts: int = 5,
        default_warranty_days: int = 30,
    ) -> None:
        self._repository = repository
        self._state_machine = state_machine or RepairStateMachine()
        self._number_issuer = number_issuer or TicketNumberIssuer()
        self._notifier = notifier
        self._store = store or StoreProfile()
        self._mutation_max_attempts = max(1, mutation_max_attempts)
        self._ticket_number_max_attempts = max(1, ticket_number_max_attempts)
        self._default_warranty_days = default_warranty_days

    async def create_ticket(
        self,
        *,
        customer_id: str,
        device: DeviceInfo,
        issue_description: str,
        costs: CostDelta | None = None,
        priority: RepairPriority = RepairPriority.MEDIUM,
        diagnosis: str = "",
        technician: str = "",
        notes: str = "",
        estimated_completion: datetime | None = None,
        warranty_period_days: int | None = None,
        actor: str | None = None,
    ) -> RepairTicket:
        with tracer.start_as_current_span("repair_ticket.create"):
            missing = [
                name
                for name, value in (
                    ("device_type", device.device_type),
                    ("brand", device.brand),
                    ("model", device.model),
                    ("issue_description", issue_description),
                )
                if not (value or "").strip()
            ]
            if missing:
                raise ValidationError(f"Required fields are missing: {', '.join(missing)}")

            opening_costs = initial_costs(costs or CostDelta())
            customer = await self._repository.get_customer(customer_id)
            if customer is None:
                raise NotFoundError(f"Customer {customer_id} not found")

            now = datetime.now(timezone.utc)
            collision: DuplicateTicketError | None = None
            for attempt in range(1, self._ticket_number_max_attempts + 1):
                ticket = RepairTicket(
                    id=str(uuid.uuid4()),
                    ticket_number=self._number_issuer.issue(customer.phone),
                    customer_id=customer.id,
                    device=device,
                    issue_description=issue_description.strip(),
                    diagnosis=diagnosis,
                    technician=technician,
                    notes=notes,
                    status=self._state_machine.initial_state(),
                    priority=priority,
                    costs=opening_costs,
                    estimated_completion=estimated_completion,
                    warranty_period_days=(
                        self._default_warranty_days if warranty_period_days is None else warranty_period_days
                    ),
                    received_date=now,
                    updated_at=now,
                )
                try:
                    created = await self._repository.insert(ticket)
                except DuplicateTicketError as exc:
                    collision = exc
                    logger.warning(
                        "Ticket number %s already taken (attempt %d/%d)",
                        ticket.ticket_number,
                        attempt,
                        self._ticket_number_max_attempts,
                    )
                    continue
                logger.info(
                    "Created repair ticket %s for customer %s by %s",
                    created.ticket_number,
                    customer.id,
                    actor or "unattributed",
                )
                return created

            raise DuplicateTicketError(
                f"Could not issue a unique ticket number after {self._ticket_number_max_attempts} attempts"
            ) from collision

    async def get_ticket(self, ticket_id: str) -> RepairTicket:
        ticket = await self._repository.get(ticket_id)
        if ticket is None:
            raise NotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def get_by_ticket_number(self, ticket_number: str) -> RepairTicket:
        ticket = await self._repository.get_by_ticket_number(ticket_number.strip())
        if ticket is None:
            raise NotFoundError(f"Ticket {ticket_number} not found")
        return ticket

    async def find_tickets(self, criteria: LookupCriteria, page: PageRequest | None = None) -> TicketPage:
        with tracer.start_as_current_span("repair_ticket.find") as span:
            span.set_attribute("repair_ticket.lookup_field", criteria.field.value)
            return await self._repository.find(criteria, page or PageRequest())

    async def find_one(self, criteria: LookupCriteria) -> RepairTicket:
        """Like :meth:`find_tickets` for callers that expect a single ticket."""

        result = await self.find_tickets(criteria, PageRequest(page=1, limit=1))
        if not result.tickets:
            raise NotFoundError(f"No repair ticket matches the provided {criteria.field.value}")
        return result.tickets[0]

    async def list_tickets(
        self,
        *,
        status: RepairStatus | None = None,
        received_from: datetime | None = None,
        received_to: datetime | None = None,
        page: PageRequest | None = None,
    ) -> TicketPage:
        if received_from is not None and received_to is not None and received_from >= received_to:
            raise ValidationError("received_from must be earlier than received_to")
        return await self._repository.list_tickets(
            status=status,
            received_from=received_from,
            received_to=received_to,
            page=page,
        )

    async def update_details(self, ticket_id: str, changes: TicketDetailsUpdate, *, actor: str | None = None) -> RepairTicket:
        if changes.warranty_period_days is not None and changes.warranty_period_days < 0:
            raise ValidationError("warranty_period_days cannot be negative")

        def change(ticket: RepairTicket) -> RepairTicket:
            if ticket.is_terminal:
                raise TerminalStateError(f"Ticket {ticket.ticket_number} is {ticket.status.value}; details are frozen")
            device = DeviceInfo(
                device_type=_pick(changes.device_type, ticket.device.device_type),
                brand=_pick(changes.brand, ticket.device.brand),
                model=_pick(changes.model, ticket.device.model),
                serial_number=_pick(changes.serial_number, ticket.device.serial_number),
            )
            return replace(
                ticket,
                device=device,
                issue_description=_pick(changes.issue_description, ticket.issue_description),
                diagnosis=_pick(changes.diagnosis, ticket.diagnosis),
                technician=_pick(changes.technician, ticket.technician),
                notes=_pick(changes.notes, ticket.notes),
                priority=changes.priority or ticket.priority,
                estimated_completion=changes.estimated_completion or ticket.estimated_completion,
                warranty_period_days=_pick(changes.warranty_period_days, ticket.warranty_period_days),
                updated_at=datetime.now(timezone.utc),
            )

        with tracer.start_as_current_span("repair_ticket.update_details"):
            updated = await self._mutate(ticket_id, "update_details", change)
        logger.info("Ticket %s details updated by %s", updated.ticket_number, actor or "unattributed")
        return updated

    async def apply_cost_update(self, ticket_id: str, delta: CostDelta, *, actor: str | None = None) -> RepairTicket:
        appended = False

        def change(ticket: RepairTicket) -> RepairTicket:
            nonlocal appended
            result = apply_cost_update(ticket, delta, actor)
            appended = result.entry is not None
            return result.ticket

        with tracer.start_as_current_span("repair_ticket.apply_cost_update"):
            updated = await self._mutate(ticket_id, "apply_cost_update", change)
        if appended:
            logger.info(
                "Ticket %s price changed to %s by %s",
                updated.ticket_number,
                updated.total_cost,
                actor or "unattributed",
            )
        return updated

    async def transition(self, ticket_id: str, target: RepairStatus, *, actor: str | None = None) -> RepairTicket:
        """Move the ticket to ``target``; asking for the current status is a no-op."""

        with tracer.start_as_current_span("repair_ticket.transition") as span:
            span.set_attribute("repair_ticket.target_status", target.value)
            before: RepairStatus | None = None

            def change(ticket: RepairTicket) -> RepairTicket:
                nonlocal before
                before = ticket.status
                return self._advance(ticket, target, actor)

            updated = await self._mutate(ticket_id, "transition", change)
        if before is not None and before != updated.status:
            logger.info(
                "Ticket %s moved %s -> %s by %s",
                updated.ticket_number,
                before.value,
                updated.status.value,
                actor or "unattributed",
            )
        return updated

    async def complete(self, ticket_id: str, *, actor: str | None = None) -> NotificationOutcome:
        """Deliver the ticket, then notify the customer and log the outcome.

        The status change is committed first; the notification result never
        rolls it back and is recorded in the communication log on its own.
        """

        with tracer.start_as_current_span("repair_ticket.complete"):
            delivered = await self._mutate(
                ticket_id,
                "complete",
                lambda ticket: self._advance(ticket, RepairStatus.DELIVERED, actor),
            )
            logger.info("Ticket %s delivered by %s", delivered.ticket_number, actor or "unattributed")

            message = render_completion(delivered, delivered.customer, self._store)
            notification = await self._notify(delivered, message, NotificationTemplate.COMPLETION)
            channels = notification.delivered_channels if notification is not None else frozenset()
            logged = await self._append_update(ticket_id, message, channels, kind=UpdateKind.COMPLETION)
        return NotificationOutcome(ticket=logged, notification=notification)

    async def log_update(
        self,
        ticket_id: str,
        message: str,
        channels: Iterable[Channel | str] = (),
        *,
        actor: str | None = None,
        kind: UpdateKind = UpdateKind.MANUAL,
    ) -> RepairTicket:
        with tracer.start_as_current_span("repair_ticket.log_update"):
            updated = await self._append_update(ticket_id, message, channels, kind=kind)
        logger.info("Logged %s update on ticket %s by %s", kind.value, updated.ticket_number, actor or "unattributed")
        return updated

    async def send_update(self, ticket_id: str, message: str, *, actor: str | None = None) -> NotificationOutcome:
        """Send a staff-written message to the customer and log where it went."""

        if not (message or "").strip():
            raise EmptyMessageError("Message is required and cannot be empty")
        ticket = await self.get_ticket(ticket_id)
        formatted = render_status_update(ticket, message, self._store)
        notification = await self._notify(ticket, formatted, NotificationTemplate.STATUS_UPDATE)
        channels = notification.delivered_channels if notification is not None else frozenset()
        updated = await self.log_update(ticket_id, message, channels, actor=actor, kind=UpdateKind.MANUAL)
        return NotificationOutcome(ticket=updated, notification=notification)

    def _advance(self, ticket: RepairTicket, target: RepairStatus, actor: str | None) -> RepairTicket:
        self._state_machine.assert_transition(ticket.status, target)
        if ticket.status == target:
            return ticket
        snapshot = apply_cost_update(ticket, CostDelta(), actor)
        return replace(snapshot.ticket, status=target)

    async def _append_update(
        self,
        ticket_id: str,
        message: str,
        channels: Iterable[Channel | str],
        *,
        kind: UpdateKind,
    ) -> RepairTicket:
        channel_set = frozenset(Channel(channel) for channel in channels)
        return await self._mutate(
            ticket_id,
            "log_update",
            lambda ticket: log_update(ticket, message, channel_set, kind=kind),
        )

    async def _notify(
        self, ticket: RepairTicket, message: str, template: NotificationTemplate
    ) -> NotificationResult | None:
        if self._notifier is None:
            logger.debug("No notifier configured; skipping %s for %s", template.value, ticket.ticket_number)
            return None
        request = build_request(ticket, message, template, self._store)
        try:
            result = await self._notifier.send(request)
        except Exception as exc:
            logger.exception("Notifier failed for ticket %s (%s)", ticket.ticket_number, template.value)
            result = NotificationResult(
                deliveries=tuple(
                    ChannelDelivery(channel=channel, success=False, detail=str(exc) or type(exc).__name__)
                    for channel in sorted(request.channels, key=lambda item: item.value)
                )
            )
        if not result.succeeded:
            failed = [item.channel.value for item in result.deliveries if not item.success]
            logger.warning("Notification for ticket %s not delivered via: %s", ticket.ticket_number, failed or "any channel")
        return result

    async def _mutate(
        self,
        ticket_id: str,
        operation: str,
        change: Callable[[RepairTicket], RepairTicket],
    ) -> RepairTicket:
        conflict: ConcurrencyConflictError | None = None
        for attempt in range(1, self._mutation_max_attempts + 1):
            current = await self.get_ticket(ticket_id)
            updated = change(current)
            if updated is current:
                return current
            try:
                return await self._repository.save(updated, expected_version=current.version)
            except ConcurrencyConflictError as exc:
                conflict = exc
                logger.warning(
                    "Version conflict on ticket %s during %s (attempt %d/%d)",
                    current.ticket_number,
                    operation,
                    attempt,
                    self._mutation_max_attempts,
                )

        raise ConcurrencyConflictError(
            f"Ticket {ticket_id} kept changing during {operation}; gave up after {self._mutation_max_attempts} attempts"
        ) from conflict


def _pick(value, fallback):
    return fallback if value is None else value
