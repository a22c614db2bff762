"""Customer notification contract and an HTTP gateway client.

Delivery itself (email, WhatsApp) happens behind a gateway; this module only
builds requests, renders the store's message templates and reports per
channel whether the gateway accepted the message.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Protocol

import httpx

from .models import Channel, CustomerSummary, RepairTicket

logger = logging.getLogger(__name__)

_E164_RE = re.compile(r"^\+[1-9]\d{1,14}$")
_NON_DIGITS = re.compile(r"\D")


class NotificationTemplate(str, Enum):
    STATUS_UPDATE = "status_update"
    COMPLETION = "completion"


@dataclass(slots=True, frozen=True)
class StoreProfile:
    """Store contact details printed in customer-facing messages."""

    name: str = "Laptop Store"
    phone: str = "+91 98765 43210"
    email: str = "info@laptopstore.com"
    hours: str = "Mon-Sat 10AM-8PM, Sun 11AM-6PM"


@dataclass(slots=True, frozen=True)
class NotificationRequest:
    ticket_number: str
    customer_name: str
    customer_email: str
    customer_phone: str
    message: str
    template: NotificationTemplate
    context: Mapping[str, str] = field(default_factory=dict)
    channels: frozenset[Channel] = frozenset(Channel)


@dataclass(slots=True, frozen=True)
class ChannelDelivery:
    channel: Channel
    success: bool
    detail: str = ""


@dataclass(slots=True, frozen=True)
class NotificationResult:
    deliveries: tuple[ChannelDelivery, ...] = ()

    @property
    def delivered_channels(self) -> frozenset[Channel]:
        return frozenset(item.channel for item in self.deliveries if item.success)

    @property
    def succeeded(self) -> bool:
        return bool(self.deliveries) and all(item.success for item in self.deliveries)


class Notifier(Protocol):
    async def send(self, request: NotificationRequest) -> NotificationResult:
        ...


def to_e164(phone: str, *, default_country_code: str = "+91") -> str | None:
    """Return ``phone`` in E.164 form, or ``None`` if it cannot be made valid."""

    raw = (phone or "").strip()
    if raw.lower().startswith("whatsapp:"):
        raw = raw.split(":", 1)[1].strip()
    if raw.startswith("+"):
        candidate = "+" + _NON_DIGITS.sub("", raw[1:])
    else:
        digits = _NON_DIGITS.sub("", raw).lstrip("0")
        candidate = f"{default_country_code}{digits}" if digits else ""
    return candidate if _E164_RE.match(candidate) else None


def _status_label(ticket: RepairTicket) -> str:
    return ticket.status.value.replace("_", " ").capitalize()


def render_status_update(ticket: RepairTicket, message: str, store: StoreProfile) -> str:
    device = ticket.device.describe() or "device"
    return (
        f"Repair Update for {device} (Ticket #{ticket.ticket_number})\n\n"
        f"{message.strip()}\n\n"
        f"Current Status: {_status_label(ticket)}\n"
        f"Last Updated: {ticket.updated_at:%d %b %Y %H:%M}\n\n"
        f"Thank you for choosing {store.name}!"
    )


def render_completion(ticket: RepairTicket, customer: CustomerSummary | None, store: StoreProfile) -> str:
    device = ticket.device.describe() or "device"
    name = customer.name if customer is not None and customer.name else "there"
    return (
        f"Hello {name},\n\n"
        f"Your {device} repair is complete.\n\n"
        f"Repair Details\n"
        f"- Ticket: #{ticket.ticket_number}\n"
        f"- Issue: {ticket.issue_description or 'Not specified'}\n"
        f"- Total Cost: {ticket.total_cost:,.2f}\n"
        f"- Completion Date: {ticket.updated_at:%d %b %Y}\n\n"
        f"{store.name} | {store.phone} | {store.hours}\n"
        f"Thank you for choosing {store.name}!"
    )


def build_request(
    ticket: RepairTicket,
    message: str,
    template: NotificationTemplate,
    store: StoreProfile,
) -> NotificationRequest:
    customer = ticket.customer
    channels: set[Channel] = set()
    if customer is not None and customer.phone:
        channels.add(Channel.WHATSAPP)
    if customer is not None and customer.email:
        channels.add(Channel.EMAIL)
    return NotificationRequest(
        ticket_number=ticket.ticket_number,
        customer_name=customer.name if customer is not None else "",
        customer_email=customer.email if customer is not None else "",
        customer_phone=customer.phone if customer is not None else "",
        message=message,
        template=template,
        context={
            "status": ticket.status.value,
            "device": ticket.device.describe(),
            "total_cost": str(ticket.total_cost),
            "store_name": store.name,
            "store_phone": store.phone,
            "store_email": store.email,
        },
        channels=frozenset(channels),
    )


class HttpNotifier:
    """Deliver notifications through an HTTP gateway, one call per channel.

    Failures are reported in the result, never raised, so a notification can
    not undo the ticket change that triggered it.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 10.0,
        default_country_code: str = "+91",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._default_country_code = default_country_code
        self._transport = transport

    async def send(self, request: NotificationRequest) -> NotificationResult:
        headers: dict[str, str] = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        deliveries: list[ChannelDelivery] = []
        async with httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            for channel in sorted(request.channels, key=lambda item: item.value):
                deliveries.append(await self._deliver(client, channel, request))
        return NotificationResult(deliveries=tuple(deliveries))

    async def _deliver(
        self, client: httpx.AsyncClient, channel: Channel, request: NotificationRequest
    ) -> ChannelDelivery:
        recipient = self._recipient(channel, request)
        if recipient is None:
            logger.warning("No valid %s recipient for ticket %s", channel.value, request.ticket_number)
            return ChannelDelivery(channel=channel, success=False, detail="invalid recipient")

        payload: dict[str, Any] = {
            "to": recipient,
            "ticket_number": request.ticket_number,
            "template": request.template.value,
            "message": request.message,
            "context": dict(request.context),
            "requested_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            response = await client.post(f"/messages/{channel.value}", json=payload)
        except httpx.HTTPError as exc:
            logger.warning("%s delivery for ticket %s failed: %s", channel.value, request.ticket_number, exc)
            return ChannelDelivery(channel=channel, success=False, detail=str(exc))

        if response.status_code >= 400:
            logger.warning(
                "%s delivery for ticket %s rejected with %s",
                channel.value,
                request.ticket_number,
                response.status_code,
            )
            return ChannelDelivery(channel=channel, success=False, detail=f"HTTP {response.status_code}")
        return ChannelDelivery(channel=channel, success=True)

    def _recipient(self, channel: Channel, request: NotificationRequest) -> str | None:
        if channel is Channel.WHATSAPP:
            number = to_e164(request.customer_phone, default_country_code=self._default_country_code)
            return f"whatsapp:{number}" if number else None
        email = request.customer_email.strip()
        return email or None
